"""Overlay auxiliary per-entity data on the finished layout.

Two kinds of context are supported: a scalar intensity per (time label,
entity) and a 2D spatial profile per entity, either static or one position
per timestamp.
"""

import logging
from bisect import bisect_left
from collections import defaultdict
from dataclasses import dataclass, field

from spreadline.config import ContextConfig
from spreadline.models import ConfigurationError, ContentRow, DataShapeError, NodeContextRow
from spreadline.network.sessions import EgoNetwork
from spreadline.timeutil import str_to_datetime

logger = logging.getLogger(__name__)


@dataclass
class ContextLayout:
    positions: dict[tuple[str, int], tuple[float, float]] = field(default_factory=dict)  # (entity, bucket)
    intensity: dict[tuple[str, str], float] = field(default_factory=dict)  # (time label, entity)


def sum_intensity(rows: list[NodeContextRow]) -> dict[tuple[str, str], float]:
    totals: dict[tuple[str, str], float] = defaultdict(float)
    for row in rows:
        totals[(row.time, row.entity)] += row.context
    return dict(totals)


def closest_timestamp(candidates: list[str], time: str, time_format: str) -> str:
    """Candidate nearest to `time`; ties go to the earlier timestamp.

    Falls back to lexical order (the latest candidate not after `time`, else
    the first) when timestamps do not parse with the time format.
    """
    try:
        target = str_to_datetime(time, time_format)
        parsed = sorted((str_to_datetime(c, time_format), c) for c in candidates)
    except DataShapeError:
        ordered = sorted(candidates)
        return ordered[max(bisect_left(ordered, time) - 1, 0)]
    return min(parsed, key=lambda item: (abs(item[0] - target), item[0]))[1]


def collect_profiles(
    network: EgoNetwork,
    content: list[ContentRow],
    dynamic: bool,
    missing: str,
    time_format: str,
) -> list[tuple[str, int, float, float]]:
    by_entity: dict[str, list[ContentRow]] = defaultdict(list)
    for row in content:
        by_entity[row.id].append(row)

    profiles: list[tuple[str, int, float, float]] = []
    for session in network.sessions:
        time = network.time_labels[session.timestamp]
        for node in session.nodes:
            candidates = by_entity.get(node.name)
            if not candidates:
                continue
            if not dynamic:
                match = candidates[0]
            else:
                exact = {row.timestamp: row for row in candidates if row.timestamp}
                match = exact.get(time)
                if match is None and exact and missing == "closest":
                    match = exact[closest_timestamp(list(exact), time, time_format)]
            if match is not None:
                profiles.append((node.name, session.timestamp, match.posX, match.posY))
    return profiles


def normalize_profiles(profiles: list[tuple[str, int, float, float]]) -> list[tuple[str, int, float, float]]:
    """Min-max scale each axis to [0, 1]; a constant axis maps to 0."""
    if not profiles:
        return profiles
    xs = [p[2] for p in profiles]
    ys = [p[3] for p in profiles]
    min_x, min_y = min(xs), min(ys)
    range_x = (max(xs) - min_x) or 1
    range_y = (max(ys) - min_y) or 1
    return [(name, ts, (x - min_x) / range_x, (y - min_y) / range_y) for name, ts, x, y in profiles]


def center_profiles(profiles: list[tuple[str, int, float, float]], ego: str) -> list[tuple[str, int, float, float]]:
    """Shift every position so the ego sits at (0.5, 0.5).

    Raises ConfigurationError when the ego moves over time, since centering
    on one of its positions would discard the others.
    """
    positions = {(x, y) for name, _, x, y in profiles if name == ego}
    if not positions:
        return profiles
    if len(positions) != 1:
        raise ConfigurationError("The layout is dynamic, centering is not recommended due to information loss")
    center_x, center_y = positions.pop()
    return [(name, ts, x - center_x + 0.5, y - center_y + 0.5) for name, ts, x, y in profiles]


def contextualizing(
    network: EgoNetwork,
    config: ContextConfig,
    content: list[ContentRow],
    dynamic: bool,
    node_context: list[NodeContextRow],
    time_format: str,
) -> ContextLayout:
    layout = ContextLayout(intensity=sum_intensity(node_context))
    if not content:
        return layout

    names = set(network.names)
    content = [row for row in content if row.id in names]
    profiles = collect_profiles(network, content, dynamic, config.missing, time_format)
    if config.normalize:
        profiles = normalize_profiles(profiles)
    if config.centered:
        profiles = center_profiles(profiles, network.ego)

    layout.positions = {(name, ts): (x, y) for name, ts, x, y in profiles}
    logger.info("Context layout: %d positions, %d intensity values", len(layout.positions), len(layout.intensity))
    return layout
