"""Build the two-hop egocentric network and assign ordering tiers.

Tiers are the five ordered groups a contact session is laid out in:
far-outside, near-outside, ego, near-inside, far-inside.
"""

import logging
from bisect import bisect_right
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

import networkx as nx

logger = logging.getLogger(__name__)

HOP_LIMIT = 2

# tier index -> meaning
FAR_OUTSIDE, NEAR_OUTSIDE, EGO, NEAR_INSIDE, FAR_INSIDE = range(5)

# tiers[i] is a list of sub-groups; within-tier reordering never crosses a sub-group
Constraints = list[list[list[str]]]


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    time: datetime
    weight: float

    def touches(self, name: str) -> bool:
        return name == self.source or name == self.target


# --- Network construction ---


def filter_time_by_ego(ego: str, edges: list[Edge]) -> list[Edge]:
    """Drop every edge whose raw time value has no edge touching the ego."""
    valid_times = {edge.time for edge in edges if edge.touches(ego)}
    return [edge for edge in edges if edge.time in valid_times]


def bucket_edges(edges: list[Edge], time_array: list[datetime]) -> dict[int, list[Edge]]:
    """Assign edges to buckets t_i <= time < t_{i+1}, summing duplicate pairs.

    Returns {bucket index: edges} for non-empty buckets only, ordered by index.
    Edge times are snapped to the bucket start.
    """
    weights: dict[int, dict[tuple[str, str], float]] = defaultdict(dict)
    for edge in edges:
        idx = bisect_right(time_array, edge.time) - 1
        if idx < 0 or idx >= len(time_array) - 1:
            continue
        pair = (edge.source, edge.target)
        weights[idx][pair] = weights[idx].get(pair, 0) + edge.weight

    return {
        idx: [Edge(source, target, time_array[idx], weight) for (source, target), weight in pairs.items()]
        for idx, pairs in sorted(weights.items())
    }


def bucket_graph(entries: list[Edge]) -> nx.Graph:
    """Undirected view of one bucket; direction only matters for tiering."""
    graph = nx.Graph()
    graph.add_edges_from((edge.source, edge.target) for edge in entries)
    return graph


def hop_distances(entries: list[Edge], ego: str, hop_limit: int = HOP_LIMIT) -> dict[str, int]:
    """Shortest hop count from the ego for every name within hop_limit."""
    graph = bucket_graph(entries)
    if ego not in graph:
        return {}
    return nx.single_source_shortest_path_length(graph, ego, cutoff=hop_limit)


def construct_egocentric_network(
    ego: str,
    buckets: dict[int, list[Edge]],
    hop_limit: int = HOP_LIMIT,
) -> dict[int, list[Edge]]:
    """Keep, per bucket, only the edges reached by a BFS from the ego.

    An edge is kept when one of its endpoints is at most hop_limit - 1 hops
    from the ego, i.e. it lies on a path of at most hop_limit edges.
    """
    network: dict[int, list[Edge]] = {}
    for idx, entries in buckets.items():
        distances = hop_distances(entries, ego, hop_limit)
        kept = [
            edge for edge in entries
            if min(distances.get(edge.source, hop_limit), distances.get(edge.target, hop_limit)) < hop_limit
        ]
        if kept:
            network[idx] = kept

    logger.info(
        "Ego network for %s: %d buckets, %d edges",
        ego, len(network), sum(len(v) for v in network.values()),
    )
    return network


def participants(entries: list[Edge]) -> list[str]:
    """Endpoint names in first-appearance order."""
    names: dict[str, None] = {}
    for edge in entries:
        names.setdefault(edge.source)
        names.setdefault(edge.target)
    return list(names)


# --- Tier assignment ---


def _order_within(
    constraints: list[tuple[str, str, float]],
    categories: dict[str, str],
    ascending: bool,
) -> tuple[list[list[str]], list[str]]:
    """Split one-hop neighbours into weight groups.

    Sources (x -> ego) are ordered by ascending weight, targets (ego -> x)
    by descending weight. Every other weight group is reversed.
    """
    ranked = sorted(constraints, key=lambda c: c[2], reverse=not ascending)
    weight_groups: dict[float, list[str]] = {}
    for source, target, weight in ranked:
        entity = source if ascending else target
        group = weight_groups.setdefault(weight, [])
        if entity not in group:
            group.append(entity)

    groups: list[list[str]] = []
    flat: list[str] = []
    for counter, weight in enumerate(sorted(weight_groups, reverse=not ascending)):
        group = sorted(weight_groups[weight], key=lambda name: (categories.get(name, ""), name))
        if counter % 2 == 1:
            group.reverse()
        groups.append(group)
        flat.extend(group)
    return groups, flat


def find_within_constraints(
    entries: list[Edge],
    ego: str,
    categories: dict[str, str],
) -> tuple[Constraints, list[list[str]]]:
    """Direction-based tiering, used when no category map is available.

    Returns (constraints, hops). Sources of edges into the ego sit above it,
    targets of edges out of the ego below it; two-hop neighbours follow the
    side of the one-hop neighbour that reaches them.
    """
    resolved: dict[tuple[str, str], tuple[str, str, float]] = {}
    for edge in entries:
        key = (edge.source, edge.target)
        reverse = resolved.get((edge.target, edge.source))
        if reverse is not None:
            if reverse[2] > edge.weight:
                resolved.pop(key, None)
                continue
            if reverse[2] == edge.weight:
                # opposite directions with equal weight cancel out
                del resolved[(edge.target, edge.source)]
                continue
            del resolved[(edge.target, edge.source)]
        resolved[key] = (edge.source, edge.target, edge.weight)

    constraints = list(resolved.values())
    source_groups, sources = _order_within([c for c in constraints if c[1] == ego and c[0] != ego], categories, True)
    target_groups, targets = _order_within([c for c in constraints if c[0] == ego and c[1] != ego], categories, False)
    one_hops = set(sources) | set(targets)
    distances = hop_distances(entries, ego)

    tops: list[str] = []
    bottoms: list[str] = []
    remained = sorted(
        (c for c in constraints if ego not in (c[0], c[1])),
        key=lambda c: c[2],
        reverse=True,
    )
    for source, target, _ in remained:
        neighbour, far = sorted((source, target), key=lambda name: distances.get(name, HOP_LIMIT + 1))
        if distances.get(neighbour) != 1 or distances.get(far) != 2:
            continue
        # a neighbour whose edges to the ego cancelled out leaves its far side to the leftovers
        if neighbour not in one_hops or far in tops or far in bottoms:
            continue
        if neighbour in sources:
            tops.append(far)
        else:
            bottoms.append(far)

    tiers: Constraints = [[tops], source_groups, [[ego]], target_groups, [bottoms]]
    return _place_leftovers(tiers, entries, ego)


def assign_category_tiers(
    entries: list[Edge],
    ego: str,
    categories: dict[str, str],
    session_counts: dict[str, int],
    internal: str = "internal",
) -> tuple[Constraints, list[list[str]]]:
    """Category-based tiering.

    First-hop neighbours sharing the ego's category go to near-inside, the
    rest to near-outside; second-hop neighbours go to far-inside or
    far-outside the same way. Hop counts come from the bucket graph, so an
    entity that is both a first-hop neighbour and a second-hop endpoint only
    ever lands in the inner tier. Outer tiers are sorted by ascending
    distinct-session count, inner tiers by descending count, to funnel busy
    entities toward the ego.
    """
    ego_category = categories.get(ego, internal)
    distances = hop_distances(entries, ego)
    tiers: list[list[str]] = [[] for _ in range(5)]
    tiers[EGO].append(ego)

    for name in participants(entries):
        hop = distances.get(name)
        if name == ego or hop is None:
            continue
        same = categories.get(name) == ego_category
        if hop == 1:
            tiers[NEAR_INSIDE if same else NEAR_OUTSIDE].append(name)
        else:
            tiers[FAR_INSIDE if same else FAR_OUTSIDE].append(name)

    for idx, names in enumerate(tiers):
        if idx != EGO:
            names.sort(key=lambda name: (session_counts.get(name, 0), name), reverse=idx > EGO)

    return _place_leftovers([[group] for group in tiers], entries, ego)


def explicit_tiers(
    groups: list[list[str]],
    entries: list[Edge],
    ego: str,
) -> tuple[Constraints, list[list[str]]]:
    """Tiers supplied by the caller for one time label."""
    present = set(participants(entries)) | {ego}
    seen: set[str] = {ego}
    tiers: list[list[str]] = []
    for idx in range(5):
        if idx == EGO:
            tiers.append([ego])
            continue
        group = groups[idx] if idx < len(groups) else []
        kept = [name for name in group if name in present and name not in seen]
        seen.update(kept)
        tiers.append(kept)
    return _place_leftovers([[group] for group in tiers], entries, ego)


def _place_leftovers(
    tiers: Constraints,
    entries: list[Edge],
    ego: str,
) -> tuple[Constraints, list[list[str]]]:
    """Give every participant a slot and flatten sub-groups into hops.

    Participants no tiering rule placed (e.g. both directions cancelled out)
    are appended to near-inside when adjacent to the ego, else to far-inside.
    """
    placed = {name for tier in tiers for group in tier for name in group}
    adjacent: list[str] = []
    distant: list[str] = []
    for name in participants(entries):
        if name in placed:
            continue
        if any(edge.touches(ego) and edge.touches(name) for edge in entries):
            adjacent.append(name)
        else:
            distant.append(name)
    if adjacent:
        tiers[NEAR_INSIDE].append(adjacent)
    if distant:
        tiers[FAR_INSIDE].append(distant)

    tiers = [[group for group in tier if group] for tier in tiers]
    hops = [[name for group in tier for name in group] for tier in tiers]
    return tiers, hops
