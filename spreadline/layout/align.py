"""Align entities across consecutive slices to maximise straight lines.

A longest-common-subsequence dynamic program matches the ordered entities of
slice c with those of slice c + 1; the reward of a match is the number of
lines its two sessions could keep straight plus a small bonus for similar
relative positions. The ego always matches itself.
"""

import logging
from dataclasses import dataclass

import numpy as np

from spreadline.layout.order import Ordering
from spreadline.network.sessions import EgoNetwork
from spreadline.tables import Tables

logger = logging.getLogger(__name__)

ALPHA = 0.1  # weight of the order-similarity bonus

# backtracking directions
_MATCH, _SKIP_NEXT, _SKIP_CURRENT = range(3)


@dataclass
class Alignment:
    session: list[dict[int, int]]  # per slice pair: session id -> session id in c + 1 (-1 none)


def _members(network: EgoNetwork, tables: Tables, ordered: Ordering, entity: int, col: int) -> list[int]:
    session_id = int(tables.session[entity, col])
    if session_id in network.idle_ids:
        return ordered.idle_entities[col]
    session = ordered.contact.get(session_id)
    return session.entity_ids() if session is not None else []


def compute_rewards(network: EgoNetwork, tables: Tables, ordered: Ordering) -> list[list[list[float]]]:
    rewards: list[list[list[float]]] = []
    for col in range(len(ordered.entities) - 1):
        current = ordered.entities[col]
        following = ordered.entities[col + 1]
        current_members = [_members(network, tables, ordered, r, col) for r in current]
        following_members = [set(_members(network, tables, ordered, r, col + 1)) for r in following]

        matrix: list[list[float]] = []
        for i, entity in enumerate(current):
            members = current_members[i]
            row: list[float] = []
            for j, other in enumerate(following):
                if entity == network.ego_index and other == network.ego_index:
                    row.append(float("inf"))
                    continue
                straight = sum(1 for m in members if m in following_members[j])
                similarity = ALPHA * (
                    1 - abs((i + 1) / max(len(members), 1) - (j + 1) / max(len(following_members[j]), 1))
                )
                row.append(straight + similarity)
            matrix.append(row)
        rewards.append(matrix)
    return rewards


def longest_common_subsequence(reward: list[list[float]], current_length: int, next_length: int) -> dict[int, int]:
    """Maximum-reward monotone matching of positions; returns {i: j}."""
    score = [[0.0] * next_length for _ in range(current_length)]
    direction = [[_MATCH] * next_length for _ in range(current_length)]

    for i in range(current_length):
        for j in range(next_length):
            diagonal = score[i - 1][j - 1] if i > 0 and j > 0 else 0.0
            left = score[i][j - 1] if j > 0 else 0.0
            up = score[i - 1][j] if i > 0 else 0.0
            candidates = [diagonal + reward[i][j], left, up]
            best = max(candidates)
            score[i][j] = best
            direction[i][j] = candidates.index(best)

    matched: dict[int, int] = {}
    i, j = current_length - 1, next_length - 1
    while i >= 0 and j >= 0:
        step = direction[i][j]
        if step == _MATCH:
            matched[i] = j
            i -= 1
            j -= 1
        elif step == _SKIP_NEXT:
            j -= 1
        else:
            i -= 1
    return matched


def align_sessions(network: EgoNetwork, tables: Tables, ordered: Ordering) -> list[dict[int, int]]:
    """Derive session continuity from entity alignment; ego sessions pair first."""
    ego = network.ego_index
    result: list[dict[int, int]] = []
    for col in range(len(ordered.entities) - 1):
        aligned: dict[int, int] = {}
        entities = ordered.entities[col]
        if ego in entities:
            aligned[int(tables.session[ego, col])] = int(tables.session[ego, col + 1]) or -1

        for entity in entities:
            if entity == ego:
                continue
            session_id = int(tables.session[entity, col])
            partner = int(tables.align[entity, col])
            target = int(tables.session[partner, col + 1]) if partner != -1 else 0
            if aligned.get(session_id, -1) == -1:
                aligned[session_id] = target or -1
        result.append(aligned)
    return result


def aligning(network: EgoNetwork, tables: Tables, ordered: Ordering) -> Alignment:
    """Fill tables.align: entity index continuing each line in slice c + 1, or -1."""
    tables.align[:] = -1
    rewards = compute_rewards(network, tables, ordered)
    for col, reward in enumerate(rewards):
        current = ordered.entities[col]
        following = ordered.entities[col + 1]
        for i, j in longest_common_subsequence(reward, len(current), len(following)).items():
            tables.align[current[i], col] = following[j]

    rows = np.arange(tables.span[0])[:, None]
    straight = int(np.count_nonzero(tables.align == rows))
    logger.info("Alignment done: %d straight continuations", straight)
    return Alignment(session=align_sessions(network, tables, ordered))
