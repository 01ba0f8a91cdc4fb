"""Geometry pass: turn the filled tables into storylines, blocks and labels."""

import logging
import math
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from svgpathtools import Arc, CubicBezier, Line, Path

from spreadline.layout.contextualize import ContextLayout
from spreadline.layout.order import Ordering
from spreadline.models import (
    Block,
    HopSection,
    HopSections,
    InlineLabel,
    Label,
    Mark,
    Point,
    SpreadLineResult,
    Storyline,
    TimeLabel,
)
from spreadline.network.sessions import EgoNetwork
from spreadline.tables import Tables

logger = logging.getLogger(__name__)

BLOCK_WIDTH = 40
BLOCK_WEIGHT = 0.6  # max share of a band taken by a block
PADDING_INNER = 0.2
PADDING_OUTER = 0.1
ALIGN = 0.5
STRETCH = 1.1  # extra steps added to a stretched band
LEVEL_SCALE = 8  # pixels per height level
EGO_COLOR = "#888888"
DEFAULT_COLOR = "#424242"
LABEL_MAX_CHARS = 20
MARK_HEIGHT = 7
LABEL_DX = 12
LABEL_LINE_START = 10
LABEL_LINE_END = 2
BLOCK_MARGIN = 5
INLINE_RUN = 3  # consecutive straight slices before an inline label appears
TAU = 2 * math.pi
SNAP = 1e-6


def truncate_label(name: str, limit: int = LABEL_MAX_CHARS) -> str:
    return name[:limit] + "..." if len(name) > limit else name


# --- SVG paths ---


def arc(cx: float, cy: float, radius: float, start_angle: float, end_angle: float, ccw: bool = False) -> Arc:
    """Circular arc in canvas terms: angles in radians, clockwise unless ccw."""
    start = complex(cx + radius * math.cos(start_angle), cy + radius * math.sin(start_angle))
    end = complex(cx + radius * math.cos(end_angle), cy + radius * math.sin(end_angle))
    span = (start_angle - end_angle if ccw else end_angle - start_angle) % TAU
    return Arc(start, complex(radius, radius), 0, span >= math.pi, not ccw, end)


def segment(x0: float, y0: float, x1: float, y1: float) -> Line:
    return Line(complex(x0, y0), complex(x1, y1))


def path_d(segments: list) -> str:
    """Serialize segments as one continuous path.

    Gaps wider than SNAP are bridged with a line; smaller ones (trigonometry
    round-off at arc ends) are closed by moving the adjoining line's endpoint.
    """
    if not segments:
        return ""
    joined = [segments[0]]
    for seg in segments[1:]:
        prev = joined[-1]
        gap = abs(seg.start - prev.end)
        if 0 < gap <= SNAP and isinstance(seg, Line):
            seg = Line(prev.end, seg.end)
        elif 0 < gap <= SNAP and isinstance(prev, Line):
            joined[-1] = Line(prev.start, seg.start)
        elif gap:
            joined.append(Line(prev.end, seg.start))
        joined.append(seg)
    return Path(*joined).d()


# --- Band scale ---


@dataclass
class Cell:
    """Pixel position of one entity in one effective slice."""

    left: float
    right: float
    y: float

    @property
    def mid(self) -> float:
        return (self.left + self.right) / 2


@dataclass
class BandScale:
    """d3.scaleBand emulation, newest band leftmost."""

    band_width: float
    block_width: float
    labels: list[float]  # label centre per time label
    blocks: list[tuple[float, float]]  # block left/right per time label


def fit_time(width: float, domain: list[str], band_stretch: list[tuple[str, str]]) -> BandScale:
    size = len(domain)
    stretched: set[int] = set()
    for start, end in band_stretch:
        if (start and start not in domain) or (end and end not in domain):
            logger.warning("Ignoring band stretch %s..%s outside the time range", start, end)
            continue
        first = domain.index(start) if start else 0
        last = domain.index(end) if end else size - 1
        stretched.update(range(first, last + 1))

    step = math.floor(width / (size + PADDING_OUTER * 2 - PADDING_INNER) * 100 + 0.5) / 100
    band_width = step - step * PADDING_INNER
    starts = [step * PADDING_OUTER * ALIGN * 2]
    for idx in range(1, size):
        starts.append(starts[-1] + step + (step * STRETCH if idx in stretched else 0))
    starts.reverse()

    block_width: float = BLOCK_WIDTH
    weight = BLOCK_WEIGHT
    if weight * band_width < block_width:
        block_width = weight * band_width
    else:
        weight = block_width / band_width
    side = (1 - weight) / 2

    return BandScale(
        band_width=band_width,
        block_width=block_width,
        labels=[s + band_width / 2 for s in starts],
        blocks=[(s + band_width * side, s + band_width * (1 - side)) for s in starts],
    )


def _extents(points: list[Point]) -> tuple[Point, Point] | None:
    """Topmost and bottommost point; first one wins ties."""
    if not points:
        return None
    top = bottom = points[0]
    for point in points:
        if point.pos_y < top.pos_y:
            top = point
        if point.pos_y > bottom.pos_y:
            bottom = point
    return top, bottom


def _hop_outline(pos_x: float, radius: float, top_y: float, bottom_y: float, main_y: float,
                 portion: float, offset: float, above: bool) -> dict[str, Any]:
    """Arcs and vertical lines of one collapsible outer-tier section."""
    if above:
        top_arcs = (
            [arc(pos_x, top_y, radius, math.pi * (1.5 + offset), math.pi, True)],
            [arc(pos_x, top_y, radius, math.pi * (1.5 - offset), 0)],
        )
        bottom_arcs = (
            [arc(pos_x, bottom_y, radius, math.pi, math.pi * (1 - portion + offset), True),
             arc(pos_x, main_y, radius, math.pi * (1 + portion), math.pi, True)],
            [arc(pos_x, bottom_y, radius, 0, math.pi * (portion + offset)),
             arc(pos_x, main_y, radius, -math.pi * portion, 0)],
        )
    else:
        top_arcs = (
            [arc(pos_x, main_y, radius, math.pi, math.pi * (1 - portion + offset), True),
             arc(pos_x, top_y, radius, math.pi * (1 + portion), math.pi, True)],
            [arc(pos_x, main_y, radius, 0, math.pi * (portion + offset)),
             arc(pos_x, top_y, radius, -math.pi * portion, 0)],
        )
        bottom_arcs = (
            [arc(pos_x, bottom_y, radius, math.pi, math.pi * (0.5 - offset), True)],
            [arc(pos_x, bottom_y, radius, 0, math.pi * (0.5 + offset))],
        )

    return {
        "topArcLeft": path_d(top_arcs[0]),
        "topArcRight": path_d(top_arcs[1]),
        "lineLeft": path_d([segment(pos_x - radius, top_y, pos_x - radius, bottom_y)]),
        "lineRight": path_d([segment(pos_x + radius, top_y, pos_x + radius, bottom_y)]),
        "bottomArcLeft": path_d(bottom_arcs[0]),
        "bottomArcRight": path_d(bottom_arcs[1]),
        "topY": top_y,
        "bottomY": bottom_y,
        "mainY": main_y,
        "lineHeight": bottom_y - top_y,
    }


def compute_block(points: list[Point], hops: list[list[int]], block_width: float,
                  portion: float = 0.35) -> tuple[dict[str, Any], float]:
    """Outline of one block.

    Without outer-tier members the outline is a rounded capsule (left/right
    halves). Otherwise the outer tiers get their own sections, `topHop` and
    `bottomHop`, so the UI can collapse them independently.
    """
    radius = block_width / 2
    extents = _extents(points)
    if extents is None:
        return {}, 0
    top, bottom = extents
    pos_x = points[0].pos_x
    width = abs(bottom.pos_y - top.pos_y)
    offset = 0.005

    outline: dict[str, Any] = {
        "button": {"width": 60, "height": 18, "posX": pos_x, "posY": bottom.pos_y + radius},
        "top": path_d([segment(pos_x, top.pos_y - radius, pos_x + width, top.pos_y - radius)]),
        "bottom": path_d([segment(pos_x, bottom.pos_y + radius, pos_x + width, bottom.pos_y + radius)]),
    }

    main_ids = set(hops[1]) | set(hops[2]) | set(hops[3])
    main = _extents([p for p in points if p.id in main_ids])
    if main is None:
        return outline, width
    top_main, bottom_main = main

    top_hop = _extents([p for p in points if p.id in hops[0]])
    bottom_hop = _extents([p for p in points if p.id in hops[4]])
    outline["topHop"] = None
    outline["bottomHop"] = None
    if top_hop is not None:
        outline["topHop"] = _hop_outline(
            pos_x, radius, top_hop[0].pos_y, top_hop[1].pos_y, top_main.pos_y, portion, offset, above=True,
        )
    if bottom_hop is not None:
        outline["bottomHop"] = _hop_outline(
            pos_x, radius, bottom_hop[0].pos_y, bottom_hop[1].pos_y, bottom_main.pos_y, portion, offset, above=False,
        )

    left = [segment(pos_x - radius, top_main.pos_y, pos_x - radius, bottom_main.pos_y)]
    right = [segment(pos_x + radius, top_main.pos_y, pos_x + radius, bottom_main.pos_y)]
    if top_hop is None:
        left.insert(0, arc(pos_x, top_main.pos_y, radius, math.pi * (1.5 + offset), math.pi, True))
        right.insert(0, arc(pos_x, top_main.pos_y, radius, math.pi * (1.5 - offset), 0))
    if bottom_hop is None:
        left.append(arc(pos_x, bottom_main.pos_y, radius, math.pi, math.pi * (0.5 - offset), True))
        right.append(arc(pos_x, bottom_main.pos_y, radius, 0, math.pi * (0.5 + offset)))

    outline["left"] = path_d(left)
    outline["right"] = path_d(right)
    return outline, width


def hop_section(points: list[Point]) -> HopSection | None:
    if not points:
        return None
    ys = [p.pos_y for p in points]
    return HopSection(
        node_count=len(points),
        center_y=(min(ys) + max(ys)) / 2,
        node_ids=[p.id for p in points],
        names=[p.name for p in points],
        min_y=min(ys),
        max_y=max(ys),
    )


def _number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


@dataclass
class Renderer:
    network: EgoNetwork
    tables: Tables
    ordered: Ordering
    context: ContextLayout
    colors: dict[str, str]
    band_stretch: list[tuple[str, str]] = field(default_factory=list)

    def fit(self, width: float, height: float) -> SpreadLineResult:
        scale = fit_time(width, self.network.time_labels, self.band_stretch)
        cells, extents = self.fit_entities(scale)
        num_entities, num_timestamps = self.tables.span
        label_table = np.full((num_entities, num_timestamps), -1, dtype=np.int64)
        block_range = np.full((2, num_timestamps), -1.0)

        lines = [self.line_segments(row, cells[row], label_table) for row in range(num_entities)]
        blocks = self.points_blocks(cells, label_table, block_range, scale.block_width)

        storylines = []
        for row in range(num_entities):
            valid = [c for c in cells[row] if c is not None]
            storylines.append(Storyline(
                name=self.network.names[row],
                lines=lines[row],
                marks=self.marks(row, valid),
                label=self.label(row, valid),
                inline_labels=self.inline_labels(row, cells[row], label_table, block_range),
                color=self.line_color(row),
                id=row,
                lifespan=self.lifespan(row),
                crossing_check=bool((self.tables.crossing[row] == -1).any() and (self.tables.crossing[row] == 1).any()),
            ))

        logger.info("Rendered %d storylines and %d blocks (canvas %sx%s)", len(storylines), len(blocks), width, height)
        return SpreadLineResult(
            band_width=scale.band_width,
            block_width=scale.block_width,
            ego=self.network.ego,
            time_labels=[
                TimeLabel(label=label, pos_x=scale.labels[idx])
                for idx, label in enumerate(self.network.time_labels[:-1])
            ],
            height_extents=extents,
            storylines=storylines,
            blocks=blocks,
        )

    def fit_entities(self, scale: BandScale) -> tuple[list[list[Cell | None]], tuple[float, float]]:
        heights = self.tables.height
        present = self.tables.presence != 0
        pixels = (heights + 1) * LEVEL_SCALE
        extents = (float(pixels[present].min()), float(pixels[present].max())) if present.any() else (0.0, 0.0)

        cells: list[list[Cell | None]] = []
        for row in range(heights.shape[0]):
            cells.append([
                Cell(*scale.blocks[bucket], float(pixels[row, col])) if present[row, col] else None
                for col, bucket in enumerate(self.network.effective_timestamps)
            ])
        return cells, extents

    def line_color(self, row: int) -> str:
        if row == self.network.ego_index:
            return EGO_COLOR
        return self.colors.get(self.network.names[row], DEFAULT_COLOR)

    def lifespan(self, row: int) -> int:
        cols = np.flatnonzero(self.tables.presence[row])
        if not len(cols):
            return 0
        effective = self.network.effective_timestamps
        return effective[cols[-1]] - effective[cols[0]] + 1

    def line_segments(self, row: int, cells: list[Cell | None], label_table: np.ndarray) -> list[str]:
        """One continuous path: straight when levels match, else a cubic curve."""
        valids = [(col, cell) for col, cell in enumerate(cells) if cell is not None]
        if len(valids) <= 1:
            return []

        segments: list = []
        x = valids[0][1].mid
        for (_, prev), (col, curr) in zip(valids, valids[1:]):
            going_left = prev.left > curr.left
            exit_x = prev.left if going_left else prev.right
            entry_x = curr.right if going_left else curr.left
            segments.append(segment(x, prev.y, exit_x, prev.y))
            if prev.y == curr.y:
                label_table[row, col] = col
                segments.append(segment(exit_x, prev.y, entry_x, curr.y))
            else:
                mid_x = (exit_x + entry_x) / 2
                segments.append(CubicBezier(
                    complex(exit_x, prev.y), complex(mid_x, prev.y), complex(mid_x, curr.y), complex(entry_x, curr.y),
                ))
            x = entry_x
        return [path_d(segments)]

    def points_blocks(self, cells: list[list[Cell | None]], label_table: np.ndarray,
                      block_range: np.ndarray, block_width: float) -> list[Block]:
        names = self.network.names
        index = {name: idx for idx, name in enumerate(names)}
        blocks: list[Block] = []

        for col, bucket in enumerate(self.network.effective_timestamps):
            session = next(
                (s for s in self.ordered.contact.values() if s.timestamp == bucket), None,
            )
            if session is None:
                continue
            time = self.network.time_labels[bucket]
            entities = session.entity_ids()
            label_table[entities, col] = -1
            hops = [[index[name] for name in tier] for tier in session.hops]

            points: list[Point] = []
            for entity in entities:
                cell = cells[entity][col]
                if cell is None:
                    continue
                scale_x, scale_y = self.context.positions.get((names[entity], bucket), (0, 0))
                points.append(Point(
                    id=entity,
                    pos_x=cell.mid,
                    pos_y=cell.y,
                    name=names[entity],
                    group=len(blocks),
                    scale_x=scale_x,
                    scale_y=scale_y,
                    label=_number(self.context.intensity.get((time, names[entity]), -1)),
                ))

            outline, move_x = compute_block(points, hops, block_width)
            extents = _extents(points)
            if extents is not None:
                block_range[0, col] = extents[0].pos_y - BLOCK_MARGIN
                block_range[1, col] = extents[1].pos_y + BLOCK_MARGIN

            by_name = {p.name: p.id for p in points}
            relations = [
                (by_name[source], by_name[target])
                for source, target, _ in session.links
                if source in by_name and target in by_name
            ]
            blocks.append(Block(
                id=len(blocks),
                time=time,
                outline=outline,
                names=[names[e] for e in entities],
                relations=relations,
                points=points,
                move_x=move_x,
                top_pos_y=min((p.pos_y for p in points), default=0),
                hop_sections=HopSections(
                    top=hop_section([p for p in points if p.id in hops[0]]),
                    bottom=hop_section([p for p in points if p.id in hops[4]]),
                ),
            ))
        return blocks

    def marks(self, row: int, valid: list[Cell]) -> list[Mark]:
        """Triangular end markers, left one first; the ego line has none."""
        if row == self.network.ego_index or not valid:
            return []
        a = 2 * MARK_HEIGHT / math.sqrt(3)
        area = math.sqrt(3) / 4 * a * a
        start, end = valid[0], valid[-1]
        left, right = (start, end) if start.left <= end.left else (end, start)
        name = self.network.names[row]
        return [
            Mark(pos_x=left.left - MARK_HEIGHT / 2, pos_y=left.y, name=name, size=area),
            Mark(pos_x=right.right + MARK_HEIGHT / 2, pos_y=right.y, name=name, size=area),
        ]

    def label(self, row: int, valid: list[Cell]) -> Label:
        """Leading label at whichever end of the line is visually leftmost."""
        if not valid:
            return Label()
        start, end = valid[0], valid[-1]
        anchor = start if start.left <= end.left else end
        name = self.network.names[row]
        return Label(
            pos_x=anchor.left - LABEL_DX,
            pos_y=anchor.y,
            text_align="end",
            line=path_d([segment(anchor.left - LABEL_LINE_START, anchor.y, anchor.left - LABEL_LINE_END, anchor.y)]),
            label=truncate_label(name),
            full_label=name,
        )

    def inline_labels(self, row: int, cells: list[Cell | None], label_table: np.ndarray,
                      block_range: np.ndarray) -> list[InlineLabel]:
        """One label in the middle of every run of straight, unlabelled slices."""
        slots = label_table[row].copy()
        for col, value in enumerate(slots):
            cell = cells[col]
            if value == -1 or cell is None:
                continue
            if block_range[0, col] < cell.y < block_range[1, col]:
                slots[col] = -1

        runs: list[list[int]] = []
        current: list[int] = []
        for value in slots.tolist():
            if value != -1 and (not current or value == current[-1] + 1):
                current.append(value)
                continue
            if len(current) >= INLINE_RUN:
                runs.append(current)
            current = [value] if value != -1 else []
        if len(current) >= INLINE_RUN:
            runs.append(current)

        name = self.network.names[row]
        labels = []
        for run in runs:
            cell = cells[run[len(run) // 2]]
            if cell is None:
                continue
            labels.append(InlineLabel(pos_x=cell.mid, pos_y=cell.y, name=truncate_label(name), full_name=name))
        return labels


def rendering(
    width: float,
    height: float,
    network: EgoNetwork,
    tables: Tables,
    ordered: Ordering,
    context: ContextLayout,
    colors: dict[str, str],
    band_stretch: list[tuple[str, str]],
) -> SpreadLineResult:
    renderer = Renderer(network, tables, ordered, context, colors, band_stretch)
    return renderer.fit(width, height)
