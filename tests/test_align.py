"""Tests for cross-slice alignment."""

import math

from spreadline.layout.align import aligning, compute_rewards, longest_common_subsequence
from spreadline.layout.order import ordering


class TestLongestCommonSubsequence:
    def test_diagonal_match(self):
        reward = [[1, 0], [0, 1]]
        assert longest_common_subsequence(reward, 2, 2) == {0: 0, 1: 1}

    def test_matching_is_monotone(self):
        # crossing pairs (0 -> 1, 1 -> 0) cannot both be chosen
        reward = [[0, 5], [5, 0]]
        matched = longest_common_subsequence(reward, 2, 2)
        assert len(matched) == 1

    def test_empty(self):
        assert longest_common_subsequence([], 0, 0) == {}

    def test_skips_unrewarding_rows(self):
        reward = [[0.0], [2.0], [0.0]]
        assert longest_common_subsequence(reward, 3, 1) == {1: 0}


class TestAligning:
    def test_ego_aligned_to_itself(self, network):
        tables = network.tables.copy()
        aligning(network, tables, ordering(network, tables))
        ego = network.ego_index
        assert tables.align[ego, 0] == ego
        assert tables.align[ego, 1] == ego

    def test_last_column_unaligned(self, network):
        tables = network.tables.copy()
        aligning(network, tables, ordering(network, tables))
        assert (tables.align[:, -1] == -1).all()

    def test_ego_reward_infinite(self, network):
        tables = network.tables.copy()
        ordered = ordering(network, tables)
        rewards = compute_rewards(network, tables, ordered)
        i = ordered.entities[0].index(network.ego_index)
        j = ordered.entities[1].index(network.ego_index)
        assert math.isinf(rewards[0][i][j])

    def test_session_alignment_pairs_ego_sessions(self, network):
        tables = network.tables.copy()
        alignment = aligning(network, tables, ordering(network, tables))
        assert alignment.session[0][1] == 2
        assert alignment.session[1][2] == 3
