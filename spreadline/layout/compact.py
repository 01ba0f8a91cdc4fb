"""Turn slice orderings into integer height levels.

Within a slice the contact block is stacked around the ego (ego = level 0)
and idle lines are stacked outward from it, so height is strictly monotonic
with order. An idle line prefers the level of the idle session the session
alignment continues it from, keeping aligned sessions in one vertical slot.
Optional straightening sweeps then pull lines outward to the most extreme
level they reach on the same side of the ego.
"""

import logging
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from spreadline.config import LayoutConfig
from spreadline.layout.align import Alignment
from spreadline.layout.order import Ordering
from spreadline.network.sessions import EgoNetwork, Session
from spreadline.tables import ABSENT, Tables

logger = logging.getLogger(__name__)

DISTANCE_LINE = 5  # between lines
DISTANCE_HOP = 10  # between tiers
DISTANCE_SESSION = 5  # between the ego block and idle lines
SQUEEZE_LINE = 2  # between same-category lines when squeezing
STRAIGHTEN_LIMIT = 50  # max levels a line is moved while straightening
WIGGLE_ITERATIONS = 10


@dataclass
class Stack:
    """Top-to-bottom entities of one slice and the minimum gap below each."""

    entities: list[int]
    gaps: list[int]  # gaps[i] separates entities[i] and entities[i + 1]
    block: tuple[int, int]  # first/last position of the anchor block


# --- Distances ---


def have_different_identity(session: Session | None, one: str, other: str) -> str:
    if session is None:
        return "same"
    identity = session.identity(one)
    other_identity = session.identity(other)

    result = "same" if identity == other_identity else "different"
    if 2 in (identity, other_identity):
        if abs(identity - other_identity) == 1:
            result = "ego 1-level"
        elif abs(identity - other_identity) == 2:
            result = "ego 2-level"
    return result


def determine_distance(
    network: EgoNetwork,
    colors: dict[str, str],
    current: int,
    previous: int,
    session: Session | None = None,
    idle: bool = False,
    squeeze: bool = False,
) -> int:
    """Minimum level gap between two vertically adjacent lines."""
    squeeze_line = SQUEEZE_LINE if squeeze else DISTANCE_LINE
    current_color = colors.get(network.names[current])
    distance = DISTANCE_LINE
    if current_color is not None and current_color == colors.get(network.names[previous]):
        distance = squeeze_line

    if idle:
        return squeeze_line
    if session is None:
        return distance

    result = have_different_identity(session, network.names[current], network.names[previous])
    if result in ("different", "ego 2-level"):
        distance = DISTANCE_HOP
    elif result == "ego 1-level":
        distance = DISTANCE_LINE
    return distance


def build_stack(
    network: EgoNetwork,
    tables: Tables,
    ordered: Ordering,
    col: int,
    colors: dict[str, str],
    squeeze: bool,
) -> Stack | None:
    """Gaps for one slice; the anchor is the contact block, else the ego alone."""
    entities = ordered.entities[col]
    if not entities:
        return None

    session = next((ordered.contact[s] for s in ordered.sessions[col] if s in ordered.contact), None)
    if session is not None:
        members = {r for r in entities if tables.session[r, col] == session.id}
    elif network.ego_index in entities:
        members = {network.ego_index}
    else:
        members = {entities[0]}
    positions = [pos for pos, r in enumerate(entities) if r in members]
    block = (positions[0], positions[-1])

    gaps: list[int] = []
    for pos in range(len(entities) - 1):
        upper, lower = entities[pos], entities[pos + 1]
        if upper in members and lower in members:
            gaps.append(determine_distance(network, colors, lower, upper, session, squeeze=squeeze))
        elif upper in members or lower in members:
            gaps.append(DISTANCE_SESSION)
        else:
            gaps.append(determine_distance(network, colors, lower, upper, idle=True, squeeze=squeeze))
    return Stack(entities=entities, gaps=gaps, block=block)


# --- Height assignment ---


def session_links(network: EgoNetwork, tables: Tables, ordered: Ordering, alignment: Alignment) -> list[dict[int, list[int]]]:
    """Per slice, idle session id -> entities of the idle sessions aligned into it from the slice before.

    Contact sessions stay in the ego's slot, so only idle-to-idle links are kept.
    """
    links: list[dict[int, list[int]]] = [{} for _ in ordered.entities]
    for col, aligned in enumerate(alignment.session):
        for source, target in aligned.items():
            if source not in network.idle_ids or target not in network.idle_ids:
                continue
            members = [r for r in ordered.entities[col] if tables.session[r, col] == source]
            links[col + 1].setdefault(target, []).extend(members)
    return links


def _nearest(levels: NDArray[np.int64], defined: NDArray[np.bool_], row: int, col: int, step: int) -> int | None:
    idx = col + step
    while 0 <= idx < levels.shape[1]:
        if defined[row, idx]:
            return int(levels[row, idx])
        idx += step
    return None


def _preferred(
    levels: NDArray[np.int64],
    defined: NDArray[np.bool_],
    row: int,
    col: int,
    side: int,
    linked: int | None = None,
) -> int | None:
    """Level an idle line would like on its side of the ego.

    Looking back, the idle session it continues wins over the line's own
    previous level; looking forward, its next real height.
    """
    before = linked if linked is not None else _nearest(levels, defined, row, col, -1)
    candidates = [
        value
        for value in (before, _nearest(levels, defined, row, col, 1))
        if value is not None and value * side > 0
    ]
    if len(candidates) == 2:
        return (candidates[0] + candidates[1]) // 2
    if candidates:
        return candidates[0]
    return None


def _place_block(levels: NDArray[np.int64], defined: NDArray[np.bool_], stack: Stack, col: int, ego: int) -> None:
    start, end = stack.block
    offsets = [0]
    for pos in range(start, end):
        offsets.append(offsets[-1] + stack.gaps[pos])
    members = stack.entities[start:end + 1]
    center = offsets[members.index(ego)] if ego in members else offsets[0]
    for r, offset in zip(members, offsets):
        levels[r, col] = offset - center
        defined[r, col] = True


def _place_outside(
    levels: NDArray[np.int64],
    defined: NDArray[np.bool_],
    stack: Stack,
    col: int,
    tables: Tables,
    links: dict[int, list[int]],
) -> None:
    def linked(r: int) -> int | None:
        for source in links.get(int(tables.session[r, col]), []):
            if defined[source, col - 1]:
                return int(levels[source, col - 1])
        return None

    start, end = stack.block
    previous = int(levels[stack.entities[start], col])
    for pos in range(start - 1, -1, -1):
        r = stack.entities[pos]
        limit = previous - stack.gaps[pos]
        preferred = _preferred(levels, defined, r, col, -1, linked(r))
        previous = limit if preferred is None else min(preferred, limit)
        levels[r, col] = previous
        defined[r, col] = True

    previous = int(levels[stack.entities[end], col])
    for pos in range(end + 1, len(stack.entities)):
        r = stack.entities[pos]
        limit = previous + stack.gaps[pos - 1]
        preferred = _preferred(levels, defined, r, col, 1, linked(r))
        previous = limit if preferred is None else max(preferred, limit)
        levels[r, col] = previous
        defined[r, col] = True


def _push(levels: NDArray[np.int64], stack: Stack, col: int, pos: int) -> None:
    """Restore minimum gaps outward from position `pos` after it moved."""
    if levels[stack.entities[pos], col] < 0:
        for q in range(pos - 1, -1, -1):
            limit = levels[stack.entities[q + 1], col] - stack.gaps[q]
            levels[stack.entities[q], col] = min(levels[stack.entities[q], col], limit)
    else:
        for q in range(pos + 1, len(stack.entities)):
            limit = levels[stack.entities[q - 1], col] + stack.gaps[q - 1]
            levels[stack.entities[q], col] = max(levels[stack.entities[q], col], limit)


def _aligned_runs(tables: Tables, row: int) -> list[list[int]]:
    """Maximal column runs along which the alignment keeps `row` straight."""
    runs: list[list[int]] = []
    current: list[int] = []
    for col in range(tables.span[1]):
        if tables.presence[row, col] == 0:
            current = []
            continue
        if current and tables.align[row, current[-1]] == row and current[-1] == col - 1:
            current.append(col)
        else:
            current = [col]
            runs.append(current)
    return [run for run in runs if len(run) > 1]


def straighten(levels: NDArray[np.int64], tables: Tables, stacks: list[Stack | None], ego: int) -> bool:
    """One outward straightening sweep; returns True when any level moved."""
    moved = False
    for row in range(tables.span[0]):
        if row == ego:
            continue
        for run in _aligned_runs(tables, row):
            for side in (-1, 1):
                cols = [col for col in run if levels[row, col] * side > 0]
                if len(cols) < 2:
                    continue
                target = min(levels[row, cols]) if side < 0 else max(levels[row, cols])
                for col in cols:
                    shift = abs(int(target) - int(levels[row, col]))
                    if shift == 0 or shift > STRAIGHTEN_LIMIT:
                        continue
                    stack = stacks[col]
                    if stack is None:
                        continue
                    levels[row, col] = target
                    _push(levels, stack, col, stack.entities.index(row))
                    moved = True
    return moved


def build_side_table(levels: NDArray[np.int64], present: NDArray[np.bool_]) -> NDArray[np.int64]:
    """Side of the ego line per cell: -1 above, 1 below, 0 ego or absent."""
    return np.where(present, np.sign(levels), 0).astype(np.int64)


def compacting(
    network: EgoNetwork,
    tables: Tables,
    ordered: Ordering,
    alignment: Alignment,
    config: LayoutConfig,
    colors: dict[str, str],
) -> None:
    """Fill tables.height (-1 when absent, minimum level 0) and tables.crossing."""
    num_entities, num_timestamps = tables.span
    levels = np.zeros((num_entities, num_timestamps), dtype=np.int64)
    defined = np.zeros((num_entities, num_timestamps), dtype=bool)
    ego = network.ego_index

    stacks = [
        build_stack(network, tables, ordered, col, colors, config.squeeze_same_category)
        for col in range(num_timestamps)
    ]
    for col, stack in enumerate(stacks):
        if stack is not None:
            _place_block(levels, defined, stack, col, ego)
    links = session_links(network, tables, ordered, alignment)
    for col, stack in enumerate(stacks):
        if stack is not None:
            _place_outside(levels, defined, stack, col, tables, links[col])

    if config.minimize != "space":
        sweeps = 1 if config.minimize == "line" else WIGGLE_ITERATIONS
        for sweep in range(sweeps):
            if not straighten(levels, tables, stacks, ego):
                break
        logger.debug("Straightening finished after %d sweep(s)", sweep + 1)

    present = tables.presence != 0
    tables.crossing[:] = build_side_table(levels, present)

    tables.height[:] = ABSENT
    if present.any():
        tables.height[present] = levels[present] - levels[present].min()
        if ego >= 0:
            ego_levels = np.unique(tables.height[ego][present[ego]])
            if len(ego_levels) > 1:
                logger.warning("Ego line spans %d height levels", len(ego_levels))

    logger.info(
        "Compaction done (%s): %d levels, %d crossing lines",
        config.minimize,
        int(tables.height.max()) + 1 if present.any() else 0,
        int(np.count_nonzero((tables.crossing == -1).any(axis=1) & (tables.crossing == 1).any(axis=1))),
    )
