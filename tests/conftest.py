"""Shared test fixtures for spreadline tests."""

import pytest

from spreadline.config import LayoutConfig
from spreadline.layout.align import aligning
from spreadline.layout.compact import compacting
from spreadline.layout.order import ordering
from spreadline.pipeline import SpreadLine

# Ego A over three yearly buckets:
#   2020: B -> A, A -> C, D -> B   (D is a second-hop neighbour via B)
#   2021: A -> C                   (B is idle between 2020 and 2022)
#   2022: B -> A, C -> E           (C -> E is unreachable from A in 2022)
# X -> Y shares 2021 with the ego but is never connected to it.
TOPOLOGY_ROWS = [
    {"from": "B", "to": "A", "year": 2020, "count": 2},
    {"from": "A", "to": "C", "year": 2020, "count": 1},
    {"from": "D", "to": "B", "year": 2020, "count": 1},
    {"from": "A", "to": "C", "year": 2021, "count": 3},
    {"from": "X", "to": "Y", "year": 2021, "count": 1},
    {"from": "B", "to": "A", "year": 2022, "count": 1},
    {"from": "C", "to": "E", "year": 2022, "count": 1},
]

TOPOLOGY_MAPPING = {"source": "from", "target": "to", "time": "year", "weight": "count"}


@pytest.fixture()
def topology_rows():
    return [dict(row) for row in TOPOLOGY_ROWS]


@pytest.fixture()
def liner(topology_rows):
    """SpreadLine loaded with the sample topology and centered on A."""
    liner = SpreadLine()
    liner.load(topology_rows, TOPOLOGY_MAPPING)
    liner.center("A", time_delta="year", time_format="%Y")
    return liner


@pytest.fixture()
def network(liner):
    return liner.network


@pytest.fixture()
def phases(network):
    """(tables, ordering) after ordering, aligning and compacting a private copy."""
    tables = network.tables.copy()
    ordered = ordering(network, tables)
    alignment = aligning(network, tables, ordered)
    compacting(network, tables, ordered, alignment, LayoutConfig(), {})
    return tables, ordered
