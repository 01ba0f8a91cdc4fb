"""Tests for band layout, storylines and block geometry."""

import logging
import math

import pytest
from svgpathtools import Arc, CubicBezier, Line, parse_path

from spreadline.models import Point
from spreadline.output.render import (
    EGO_COLOR,
    arc,
    compute_block,
    fit_time,
    hop_section,
    path_d,
    segment,
    truncate_label,
)
from spreadline.pipeline import SpreadLine


def point(pid, y, name=None):
    return Point(id=pid, pos_x=100, pos_y=y, name=name or str(pid), group=0)


class TestBandScale:
    def test_newest_band_leftmost(self):
        scale = fit_time(1000, ["2020", "2021", "2022"], [])
        assert scale.labels[0] > scale.labels[1] > scale.labels[2]
        assert scale.block_width == 40

    def test_step_and_bandwidth(self):
        scale = fit_time(1000, ["2020", "2021", "2022"], [])
        assert scale.band_width == pytest.approx(333.33 * 0.8)

    def test_narrow_bands_shrink_blocks(self):
        scale = fit_time(100, ["a", "b", "c", "d", "e"], [])
        assert scale.block_width == pytest.approx(0.6 * scale.band_width)

    def test_stretch_widens_gap(self):
        plain = fit_time(1000, ["2020", "2021", "2022"], [])
        stretched = fit_time(1000, ["2020", "2021", "2022"], [("2021", "")])
        assert stretched.labels[0] - stretched.labels[2] > plain.labels[0] - plain.labels[2]

    def test_unknown_stretch_label_ignored(self, caplog):
        plain = fit_time(1000, ["2020", "2021"], [])
        with caplog.at_level(logging.WARNING):
            scale = fit_time(1000, ["2020", "2021"], [("1999", "2021")])
        assert scale.labels == plain.labels
        assert "1999" in caplog.text


class TestBlockOutline:
    def test_capsule_without_outer_tiers(self):
        points = [point(0, 10), point(1, 20)]
        outline, move_x = compute_block(points, [[], [0], [1], [], []], 40)
        assert move_x == 10
        assert outline["topHop"] is None and outline["bottomHop"] is None
        assert outline["left"].startswith("M")
        assert outline["button"]["posY"] == 40

    def test_outer_tier_sections(self):
        points = [point(0, 0), point(1, 10), point(2, 20), point(3, 30)]
        outline, _ = compute_block(points, [[0], [1], [2], [], [3]], 40)
        assert outline["topHop"]["topY"] == 0
        assert outline["topHop"]["mainY"] == 10
        assert outline["bottomHop"]["mainY"] == 20
        assert outline["bottomHop"]["lineHeight"] == 0

    def test_empty_block(self):
        assert compute_block([], [[], [], [], [], []], 40) == ({}, 0)

    def test_hop_section(self):
        section = hop_section([point(4, 10, "D"), point(5, 30, "E")])
        assert section.center_y == 20
        assert section.names == ["D", "E"]
        assert hop_section([]) is None


class TestLabels:
    def test_truncate(self):
        assert truncate_label("x" * 25) == "x" * 20 + "..."
        assert truncate_label("short") == "short"


class TestRendering:
    def test_sample_result(self, liner):
        result = liner.fit(1400, 500)
        assert [t.label for t in result.time_labels] == ["2020", "2021", "2022"]
        assert [s.name for s in result.storylines] == ["B", "A", "D", "C"]
        assert len(result.blocks) == 3
        assert result.height_extents[0] == 8

    def test_storyline_colours_and_marks(self, liner):
        result = liner.fit()
        ego = result.storylines[1]
        assert ego.color == EGO_COLOR
        assert ego.marks == []
        d = result.storylines[2]
        assert d.lines == []
        assert len(d.marks) == 2
        assert d.label.label == "D"
        assert d.lifespan == 1

    def test_single_path_per_line(self, liner):
        result = liner.fit()
        b = result.storylines[0]
        assert len(b.lines) == 1
        assert b.lines[0].startswith("M")
        assert b.lines[0].count("M") == 1
        assert b.lifespan == 3

    def test_block_relations_and_hops(self, liner):
        result = liner.fit()
        first = result.blocks[0]
        assert first.time == "2020"
        assert sorted(first.relations) == [(0, 1), (1, 3), (2, 0)]
        assert first.hop_sections.top.names == ["D"]
        assert first.hop_sections.bottom is None
        assert {p.name for p in first.points} == {"B", "A", "D", "C"}

    def test_ego_only_slice(self):
        liner = SpreadLine()
        liner.load([{"source": "A", "target": "A", "time": "2020", "weight": 1}],
                   {"source": "source", "target": "target", "time": "time", "weight": "weight"})
        liner.center("A", time_delta="year", time_format="%Y")
        result = liner.fit()
        assert len(result.blocks) == 1
        block = result.blocks[0]
        assert len(block.points) == 1
        assert block.hop_sections.top is None
        assert block.hop_sections.bottom is None
        assert result.storylines[0].lines == []

    def test_json_uses_camel_case(self, liner):
        text = liner.fit().to_json()
        assert '"bandWidth"' in text
        assert '"hopSections"' in text
        assert '"crossingCheck"' in text


class TestSvgPaths:
    def test_empty(self):
        assert path_d([]) == ""

    def test_gap_is_bridged_with_a_line(self):
        d = path_d([segment(0, 0, 10, 0), segment(20, 5, 30, 5)])
        assert d.count("M") == 1
        parsed = parse_path(d)
        assert len(parsed) == 3
        assert parsed[1].start == pytest.approx(10 + 0j)
        assert parsed[1].end == pytest.approx(20 + 5j)

    def test_clockwise_quarter_arc(self):
        quarter = arc(0, 0, 5, 0, math.pi / 2)
        assert quarter.start == pytest.approx(5 + 0j)
        assert quarter.end == pytest.approx(5j, abs=1e-9)
        assert quarter.sweep and not quarter.large_arc

    def test_counter_clockwise_takes_the_long_way(self):
        long_way = arc(0, 0, 5, 0, math.pi / 2, ccw=True)
        assert not long_way.sweep
        assert long_way.large_arc

    def test_round_off_gap_is_snapped(self):
        # the arc ends at (-5, ~6e-16), the line starts at (-5, 0)
        d = path_d([arc(0, 0, 5, -math.pi / 2, math.pi, True), segment(-5, 0, -5, 10)])
        parsed = parse_path(d)
        assert len(parsed) == 2
        assert isinstance(parsed[0], Arc)
        assert isinstance(parsed[1], Line)
        assert parsed[1].end == pytest.approx(-5 + 10j)

    def test_storylines_use_lines_and_curves_only(self, liner):
        for storyline in liner.fit().storylines:
            for line in storyline.lines:
                assert line.count("M") == 1
                assert all(isinstance(seg, (Line, CubicBezier)) for seg in parse_path(line))
