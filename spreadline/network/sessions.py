"""Sessions, entity timelines and the table set built by SpreadLine.center()."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import numpy as np

from spreadline.network.constructor import Constraints, Edge
from spreadline.tables import IdAllocator, Tables

logger = logging.getLogger(__name__)

TierFn = Callable[[int, list[Edge]], tuple[Constraints, list[list[str]]]]


# --- Data structures ---


@dataclass
class Node:
    """One entity inside one session."""

    name: str
    entity: int  # row index in the tables
    session: int
    order: int

    def barycenter_leaf(self, neighbours: dict[int, "Node"]) -> int:
        """Order of this entity in the neighbouring slice, else its own order."""
        other = neighbours.get(self.entity)
        return other.order if other is not None else self.order


@dataclass
class Entity:
    index: int
    name: str
    timeline: list[int]  # session id per time slice, 0 = absent


@dataclass
class Session:
    id: int
    nodes: list[Node]
    kind: str = "contact"  # "contact" or "idle"
    timestamp: int = -1  # bucket index into the full time array
    weight: float = 0
    hops: list[list[str]] = field(default_factory=list)
    constraints: Constraints = field(default_factory=list)
    links: list[tuple[str, str, float]] = field(default_factory=list)
    barycenter: float = 0

    @property
    def entity_weight(self) -> int:
        return len(self.nodes)

    def identity(self, name: str) -> int:
        """Tier index of `name`, or -1."""
        for idx, group in enumerate(self.hops):
            if name in group:
                return idx
        return -1

    def entity_ids(self) -> list[int]:
        return [node.entity for node in self.nodes]

    def find_node(self, name: str) -> Node | None:
        for node in self.nodes:
            if node.name == name:
                return node
        return None

    def replace_nodes(self, nodes: list[Node], start: int) -> None:
        self.nodes[start:start + len(nodes)] = nodes

    def clone(self) -> "Session":
        """Copy with fresh nodes so ordering can reorder without side effects."""
        return Session(
            id=self.id,
            nodes=[Node(n.name, n.entity, n.session, n.order) for n in self.nodes],
            kind=self.kind,
            timestamp=self.timestamp,
            weight=self.weight,
            hops=self.hops,
            constraints=self.constraints,
            links=self.links,
        )


class EgoNetwork:
    """Everything center() derives from the topology, read-only during fit()."""

    def __init__(
        self,
        ego: str,
        time_labels: list[str],
        entities: list[Entity],
        sessions: list[Session],
        idle_ids: set[int],
        tables: Tables,
        effective_timestamps: list[int],
    ) -> None:
        self.ego = ego
        self.time_labels = time_labels
        self.entities = entities
        self.sessions = sessions
        self.idle_ids = idle_ids
        self.tables = tables
        self.effective_timestamps = effective_timestamps
        self.names = [entity.name for entity in entities]
        self.ego_index = self.names.index(ego) if ego in self.names else -1
        self._by_id = {session.id: session for session in sessions}

    @property
    def span(self) -> tuple[int, int]:
        return self.tables.span

    @property
    def is_empty(self) -> bool:
        return not self.entities

    def session_by_id(self, session_id: int) -> Session | None:
        return self._by_id.get(session_id)

    def __repr__(self) -> str:
        return (
            f"EgoNetwork(ego={self.ego!r}: {len(self.entities)} entities, "
            f"{len(self.sessions)} contact sessions, "
            f"{len(self.idle_ids)} idle sessions, "
            f"{len(self.effective_timestamps)} effective slices)"
        )


# --- Builders ---


def build_entities(network: dict[int, list[Edge]], num_timestamps: int) -> list[Entity]:
    """One entity per participant: all sources first, then all targets."""
    names: dict[str, None] = {}
    edges = [edge for entries in network.values() for edge in entries]
    for edge in edges:
        names.setdefault(edge.source)
    for edge in edges:
        names.setdefault(edge.target)
    return [Entity(idx, name, [0] * num_timestamps) for idx, name in enumerate(names)]


def build_contact_sessions(
    network: dict[int, list[Edge]],
    entities: list[Entity],
    tiers_for: TierFn,
    allocator: IdAllocator,
) -> list[Session]:
    """One contact session per non-empty bucket, in bucket order."""
    index = {entity.name: entity.index for entity in entities}
    sessions: list[Session] = []
    for bucket, entries in network.items():
        session_id = allocator.allocate()
        constraints, hops = tiers_for(bucket, entries)
        names = [name for tier in hops for name in tier]
        nodes = [Node(name, index[name], session_id, order) for order, name in enumerate(names)]
        sessions.append(Session(
            id=session_id,
            nodes=nodes,
            timestamp=bucket,
            weight=sum(edge.weight for edge in entries),
            hops=hops,
            constraints=constraints,
            links=[(edge.source, edge.target, edge.weight) for edge in entries],
        ))
    return sessions


def assign_timelines(
    entities: list[Entity],
    sessions: list[Session],
    allocator: IdAllocator,
) -> set[int]:
    """Write contact ids into timelines and bridge gaps with idle sessions.

    Every gap between two appearances of one entity gets its own idle id.
    """
    by_index = {entity.index: entity for entity in entities}
    idle_ids: set[int] = set()
    last_seen: dict[int, int] = {}

    for session in sessions:
        col = session.timestamp
        for node in session.nodes:
            timeline = by_index[node.entity].timeline
            timeline[col] = session.id
            previous = last_seen.get(node.entity)
            last_seen[node.entity] = col
            if previous is None or col - previous <= 1:
                continue
            idle_id = allocator.allocate()
            for gap in range(previous + 1, col):
                timeline[gap] = idle_id
            idle_ids.add(idle_id)

    logger.debug("Allocated %d idle sessions", len(idle_ids))
    return idle_ids


def build_tables(entities: list[Entity], idle_ids: set[int]) -> tuple[Tables, list[int]]:
    """Drop the headroom bucket and merge each column identical to its predecessor.

    Returns the table set and the bucket index of every effective column.
    Entity timelines are rewritten to effective columns.
    """
    if not entities:
        return Tables.empty(0, 0), []

    timelines = np.array([entity.timeline[:-1] for entity in entities], dtype=np.int64)
    effective: list[int] = []
    for col in range(timelines.shape[1]):
        if effective and np.array_equal(timelines[:, col], timelines[:, effective[-1]]):
            continue
        effective.append(col)

    session = timelines[:, effective]
    for entity, row in zip(entities, session):
        entity.timeline = row.tolist()

    tables = Tables.from_sessions(session, idle_ids)
    logger.info(
        "Tables built: %d entities x %d effective slices (%d merged)",
        len(entities), len(effective), timelines.shape[1] - len(effective),
    )
    return tables, effective
