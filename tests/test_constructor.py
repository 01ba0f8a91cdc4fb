"""Tests for egocentric network construction and tier assignment."""

from datetime import datetime

from spreadline.network.constructor import (
    Edge,
    assign_category_tiers,
    bucket_edges,
    construct_egocentric_network,
    explicit_tiers,
    filter_time_by_ego,
    find_within_constraints,
    hop_distances,
    participants,
)

Y2020 = datetime(2020, 1, 1)
Y2021 = datetime(2021, 1, 1)
Y2022 = datetime(2022, 1, 1)
TIME_ARRAY = [Y2020, Y2021, Y2022]


def edge(source, target, weight=1, time=Y2020):
    return Edge(source, target, time, weight)


class TestFilterAndBucket:
    def test_filter_keeps_times_with_ego(self):
        edges = [edge("A", "B"), edge("C", "D"), edge("C", "D", time=Y2021)]
        kept = filter_time_by_ego("A", edges)
        assert kept == edges[:2]

    def test_bucket_sums_duplicates(self):
        edges = [edge("A", "B", 2), edge("A", "B", 3, time=datetime(2020, 6, 1))]
        buckets = bucket_edges(edges, TIME_ARRAY)
        assert list(buckets) == [0]
        assert buckets[0] == [Edge("A", "B", Y2020, 5)]

    def test_bucket_drops_out_of_range(self):
        edges = [edge("A", "B", time=datetime(2019, 1, 1)), edge("A", "B", time=Y2022)]
        assert bucket_edges(edges, TIME_ARRAY) == {}

    def test_buckets_sorted(self):
        edges = [edge("A", "B", time=Y2021), edge("A", "C")]
        assert list(bucket_edges(edges, TIME_ARRAY)) == [0, 1]


class TestConstructEgocentricNetwork:
    def test_hop_distances_stop_at_two(self):
        edges = [edge("A", "B"), edge("C", "B"), edge("C", "D")]
        assert hop_distances(edges, "A") == {"A": 0, "B": 1, "C": 2}

    def test_hop_distances_without_ego(self):
        assert hop_distances([edge("B", "C")], "A") == {}

    def test_two_hop_limit(self):
        edges = [edge("A", "B"), edge("B", "C"), edge("C", "D")]
        network = construct_egocentric_network("A", {0: edges})
        assert network[0] == edges[:2]

    def test_unreachable_component_dropped(self):
        edges = [edge("A", "B"), edge("X", "Y")]
        network = construct_egocentric_network("A", {0: edges})
        assert network[0] == [edges[0]]

    def test_bucket_without_ego_dropped(self):
        network = construct_egocentric_network("A", {0: [edge("B", "C")]})
        assert network == {}

    def test_empty_input(self):
        assert construct_egocentric_network("A", {}) == {}

    def test_participants_in_first_appearance_order(self):
        assert participants([edge("B", "A"), edge("A", "C"), edge("D", "B")]) == ["B", "A", "C", "D"]


class TestDirectionTiers:
    def test_sources_above_targets_below(self):
        entries = [edge("B", "A", 2), edge("A", "C"), edge("D", "B")]
        constraints, hops = find_within_constraints(entries, "A", {})
        assert hops == [["D"], ["B"], ["A"], ["C"], []]
        assert constraints[2] == [["A"]]

    def test_second_hop_via_target_goes_below(self):
        entries = [edge("A", "C"), edge("C", "E")]
        _, hops = find_within_constraints(entries, "A", {})
        assert hops[4] == ["E"]

    def test_heavier_direction_wins(self):
        entries = [edge("A", "B", 3), edge("B", "A", 1)]
        _, hops = find_within_constraints(entries, "A", {})
        assert hops[3] == ["B"]
        assert hops[1] == []

    def test_equal_weights_cancel_and_leftover_is_placed(self):
        entries = [edge("A", "B", 2), edge("B", "A", 2)]
        _, hops = find_within_constraints(entries, "A", {})
        assert hops == [[], [], ["A"], ["B"], []]

    def test_weight_groups_split_near_tier(self):
        entries = [edge("A", "B", 1), edge("A", "C", 2), edge("A", "D", 2)]
        constraints, hops = find_within_constraints(entries, "A", {})
        # descending weight: {C, D} first, then the reversed second group {B}
        assert constraints[3] == [["C", "D"], ["B"]]
        assert hops[3] == ["C", "D", "B"]

    def test_every_participant_placed_once(self):
        entries = [edge("B", "A"), edge("A", "C"), edge("D", "B"), edge("C", "E"), edge("D", "E")]
        _, hops = find_within_constraints(entries, "A", {})
        flat = [name for tier in hops for name in tier]
        assert sorted(flat) == sorted(participants(entries))


class TestCategoryTiers:
    def test_same_category_goes_inside(self):
        categories = {"A": "lab", "B": "lab", "C": "external", "D": "lab", "E": "external"}
        entries = [edge("A", "B"), edge("C", "A"), edge("B", "D"), edge("C", "E")]
        _, hops = assign_category_tiers(entries, "A", categories, {})
        assert hops == [["E"], ["C"], ["A"], ["B"], ["D"]]

    def test_ego_without_category_uses_internal(self):
        categories = {"B": "internal", "C": "external"}
        _, hops = assign_category_tiers([edge("A", "B"), edge("A", "C")], "A", categories, {})
        assert hops[3] == ["B"]
        assert hops[1] == ["C"]

    def test_overlap_removed_from_outer_tier(self):
        categories = {"A": "lab", "B": "lab", "C": "lab"}
        # C is first-hop and also an endpoint of a second-hop edge
        entries = [edge("A", "B"), edge("A", "C"), edge("B", "C")]
        _, hops = assign_category_tiers(entries, "A", categories, {})
        assert hops[4] == []
        assert hops[3] == ["C", "B"]

    def test_outer_tiers_ascending_by_session_count(self):
        categories = {"A": "lab"}
        entries = [edge("A", "B"), edge("A", "C")]
        _, hops = assign_category_tiers(entries, "A", categories, {"B": 5, "C": 1})
        assert hops[1] == ["C", "B"]


class TestExplicitTiers:
    def test_groups_filtered_to_participants(self):
        entries = [edge("B", "A"), edge("A", "C")]
        groups = [["Z"], ["C"], ["A"], ["B"], []]
        _, hops = explicit_tiers(groups, entries, "A")
        assert hops == [[], ["C"], ["A"], ["B"], []]

    def test_unlisted_participant_goes_inside(self):
        entries = [edge("B", "A"), edge("B", "D")]
        _, hops = explicit_tiers([[], ["B"], ["A"], [], []], entries, "A")
        assert hops[4] == ["D"]
