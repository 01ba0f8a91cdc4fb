"""Barycenter ordering of sessions with forward/backward sweeps."""

import logging
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from spreadline.network.sessions import EgoNetwork, Node, Session
from spreadline.tables import Tables, sparse_argsort

logger = logging.getLogger(__name__)

ITERATIONS = 10


@dataclass
class Ordering:
    """Per-slice results of the ordering phase."""

    entities: list[list[int]]  # entity indices top to bottom
    idle_entities: list[list[int]]
    sessions: list[list[int]]  # session ids top to bottom
    contact: dict[int, Session]  # reordered copies of the contact sessions


def bundle_sessions(network: EgoNetwork, session_table: NDArray[np.int64]) -> list[list[Session]]:
    """Sessions per slice; contact sessions are cloned, idle ones built here."""
    bundles: list[list[Session]] = []
    for col in range(session_table.shape[1]):
        column = session_table[:, col]
        sessions: list[Session] = []
        for session_id in dict.fromkeys(column.tolist()):
            if session_id == 0:
                continue
            if session_id in network.idle_ids:
                members = np.flatnonzero(column == session_id).tolist()
                nodes = [Node(network.names[r], r, session_id, order) for order, r in enumerate(members)]
                sessions.append(Session(id=session_id, nodes=nodes, kind="idle"))
                continue
            session = network.session_by_id(session_id)
            if session is not None:
                sessions.append(session.clone())
        bundles.append(sessions)
    return bundles


def _within_sort(group: list[str], session: Session, neighbours: dict[int, Node], start: int) -> None:
    nodes = [node for node in (session.find_node(name) for name in group) if node is not None]
    nodes.sort(key=lambda node: node.barycenter_leaf(neighbours))
    session.replace_nodes(nodes, start)


def _barycenter_sort(neighbours: dict[int, Node], sessions: list[Session]) -> list[Session]:
    for session in sessions:
        existed = [neighbours[node.entity].order for node in session.nodes if node.entity in neighbours]
        session.barycenter = sum(existed) / session.entity_weight
    sessions.sort(key=lambda session: session.barycenter)

    position = 0
    for session in sessions:
        for node in session.nodes:
            node.order = position
            position += 1
    return sessions


def constrained_crossing_reduction(current: list[Session], following: list[Session]) -> list[Session]:
    """Reorder `following` against the fixed slice `current`.

    Inside a contact session each tier sub-group is sorted on its own so the
    tier structure around the ego is preserved.
    """
    neighbours = {node.entity: node for session in current for node in session.nodes}
    for session in following:
        start = 0
        for idx, tier in enumerate(session.constraints):
            for group in tier:
                if idx != 2 and len(group) > 1:
                    _within_sort(group, session, neighbours, start)
                start += len(group)
    return _barycenter_sort(neighbours, following)


def ordering(network: EgoNetwork, tables: Tables, iterations: int = ITERATIONS) -> Ordering:
    """Fill tables.order (1-based slots, 0 = absent) and return slice orderings."""
    bundles = bundle_sessions(network, tables.session)
    num_timestamps = len(bundles)

    for _ in range(iterations):
        for col in range(num_timestamps - 1):
            bundles[col + 1] = constrained_crossing_reduction(bundles[col], bundles[col + 1])
        for col in range(num_timestamps - 1, 0, -1):
            bundles[col - 1] = constrained_crossing_reduction(bundles[col], bundles[col - 1])

    tables.order[:] = 0
    for col, sessions in enumerate(bundles):
        position = 0
        for session in sessions:
            for node in session.nodes:
                node.order = position
                tables.order[node.entity, col] = position + 1
                position += 1

    result = Ordering(entities=[], idle_entities=[], sessions=[], contact={})
    for col, sessions in enumerate(bundles):
        ordered = sparse_argsort(tables.order[:, col])
        result.entities.append(ordered)
        result.idle_entities.append([r for r in ordered if tables.presence[r, col] == -1])
        result.sessions.append(list(dict.fromkeys(int(tables.session[r, col]) for r in ordered)))
        result.contact.update({s.id: s for s in sessions if s.kind == "contact"})

    logger.info("Ordering done: %d slices, %d iterations", num_timestamps, iterations)
    return result
