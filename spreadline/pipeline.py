"""SpreadLine facade: load -> center -> configure -> fit."""

import logging
from collections import Counter
from collections.abc import Iterable
from typing import Any, Literal

from spreadline.config import Config, ContextConfig, LayoutConfig, split_options
from spreadline.layout.align import aligning
from spreadline.layout.compact import compacting
from spreadline.layout.contextualize import contextualizing
from spreadline.layout.order import ordering
from spreadline.models import (
    ColumnMapping,
    ConfigurationError,
    ContentMapping,
    ContentRow,
    LineMapping,
    LineRow,
    NodeContextMapping,
    NodeContextRow,
    SpreadLineResult,
    TopologyMapping,
    TopologyRow,
)
from spreadline.network.constructor import (
    Constraints,
    Edge,
    assign_category_tiers,
    bucket_edges,
    construct_egocentric_network,
    explicit_tiers,
    filter_time_by_ego,
    find_within_constraints,
)
from spreadline.network.sessions import (
    EgoNetwork,
    assign_timelines,
    build_contact_sessions,
    build_entities,
    build_tables,
)
from spreadline.output.render import BLOCK_WIDTH, rendering
from spreadline.tables import IdAllocator
from spreadline.timeutil import datetime_to_str, get_time_array, str_to_datetime

logger = logging.getLogger(__name__)

Tiering = Literal["auto", "category", "direction"]


class SpreadLine:
    """Egocentric storyline layout.

    Usage::

        liner = SpreadLine()
        liner.load(rows, {"source": "from", "target": "to", "time": "year", "weight": "count"})
        liner.center("Alice", time_delta="year", time_format="%Y")
        result = liner.fit(1400, 500)
    """

    def __init__(self, config: Config | None = None) -> None:
        self.config = config or Config()
        self.layout_config: LayoutConfig = self.config.layout.model_copy()
        self.context_config: ContextConfig = self.config.context.model_copy()

        self._topology: list[TopologyRow] = []
        self._line_color: dict[str, str] = {}
        self._node_context: list[NodeContextRow] = []
        self._content: list[ContentRow] = []
        self._content_dynamic = True
        self._time_format = self.config.time.format
        self._network: EgoNetwork | None = None

    @property
    def network(self) -> EgoNetwork | None:
        return self._network

    # --- load ---

    def load(
        self,
        rows: Iterable[dict[str, Any]],
        mapping: ColumnMapping | dict[str, str | None],
        key: str = "topology",
    ) -> None:
        """Validate and store one input table.

        `key` is one of "topology", "line" (entity colour / category),
        "node" (per-entity intensity per time label) or "content" (2D
        positions, static when the timestamp column is empty).
        """
        if key == "topology":
            self._topology = TopologyMapping.parse(mapping).apply(rows, TopologyRow)
            logger.info("Loaded %d topology rows", len(self._topology))
        elif key == "line":
            records = LineMapping.parse(mapping).apply(rows, LineRow)
            self._line_color = {row.entity: row.color for row in records}
            logger.info("Loaded %d line colours", len(self._line_color))
        elif key == "node":
            self._node_context = NodeContextMapping.parse(mapping).apply(rows, NodeContextRow)
            logger.info("Loaded %d node context rows", len(self._node_context))
        elif key == "content":
            content_mapping = ContentMapping.parse(mapping)
            records = content_mapping.apply(rows, ContentRow)
            if not content_mapping.dynamic:
                counts = Counter(row.id for row in records)
                repeated = sorted(name for name, count in counts.items() if count > 1)
                if repeated:
                    raise ConfigurationError(
                        f"Static content layout has more than one row for: {', '.join(repeated)}"
                    )
            self._content = records
            self._content_dynamic = content_mapping.dynamic
            logger.info("Loaded %d content rows (%s)", len(records), "dynamic" if content_mapping.dynamic else "static")
        else:
            raise ConfigurationError(f"Not supported key type: {key}")

    # --- center ---

    def center(
        self,
        ego: str,
        time_extents: tuple[str, str] | None = None,
        time_delta: str | None = None,
        time_format: str | None = None,
        groups: dict[str, list[list[str]]] | None = None,
        tiering: Tiering = "auto",
    ) -> EgoNetwork:
        """Build the ego network, sessions, timelines and tables.

        Tiering per time label: explicit `groups` win; otherwise category
        tiering when line colours were loaded (or `tiering="category"`),
        else direction tiering.
        """
        time_delta = time_delta or self.config.time.delta
        time_format = time_format or self.config.time.format
        groups = groups or {}
        if tiering not in ("auto", "category", "direction"):
            raise ConfigurationError(f"Unknown tiering mode: {tiering}")
        self._time_format = time_format

        edges = [
            Edge(row.source, row.target, str_to_datetime(row.time, time_format), row.weight)
            for row in self._topology
        ]
        edges = filter_time_by_ego(ego, edges)

        if time_extents is None and not edges:
            logger.warning("No interactions involve %s", ego)
            self._network = EgoNetwork(ego, [], [], [], set(), *build_tables([], set()))
            return self._network
        if time_extents is None:
            times = [edge.time for edge in edges]
            time_extents = (datetime_to_str(min(times), time_format), datetime_to_str(max(times), time_format))

        time_labels = get_time_array(time_extents, time_delta, time_format)
        time_array = [str_to_datetime(label, time_format) for label in time_labels]
        start = str_to_datetime(time_extents[0], time_format)
        end = str_to_datetime(time_extents[1], time_format)
        edges = [edge for edge in edges if start <= edge.time <= end]

        network = construct_egocentric_network(ego, bucket_edges(edges, time_array))
        entities = build_entities(network, len(time_labels))

        use_categories = tiering == "category" or (tiering == "auto" and bool(self._line_color))
        session_counts: Counter[str] = Counter()
        for entries in network.values():
            session_counts.update({name for edge in entries for name in (edge.source, edge.target)})

        def tiers_for(bucket: int, entries: list[Edge]) -> tuple[Constraints, list[list[str]]]:
            explicit = groups.get(time_labels[bucket])
            if explicit:
                return explicit_tiers(explicit, entries, ego)
            if use_categories:
                return assign_category_tiers(
                    entries, ego, self._line_color, session_counts, self.config.internal_category,
                )
            return find_within_constraints(entries, ego, self._line_color)

        allocator = IdAllocator()
        sessions = build_contact_sessions(network, entities, tiers_for, allocator)
        idle_ids = assign_timelines(entities, sessions, allocator)
        tables, effective = build_tables(entities, idle_ids)

        self._network = EgoNetwork(ego, time_labels, entities, sessions, idle_ids, tables, effective)
        logger.info("Centered on %s: %r", ego, self._network)
        return self._network

    # --- configure ---

    def configure(self, **options: Any) -> None:
        """Update layout and context options; unknown keys raise ConfigurationError."""
        layout, context = split_options(options)
        try:
            self.layout_config = LayoutConfig.model_validate({**self.layout_config.model_dump(), **layout})
            self.context_config = ContextConfig.model_validate({**self.context_config.model_dump(), **context})
        except ValueError as exc:
            raise ConfigurationError(f"Invalid option value: {exc}") from exc

    # --- fit ---

    def fit(self, width: float | None = None, height: float | None = None) -> SpreadLineResult:
        """Run ordering, aligning, compacting, contextualizing and rendering.

        Works on a private copy of the tables, so repeated calls return
        identical results.
        """
        if self._network is None:
            raise ConfigurationError("center() must be called before fit()")
        width = self.config.canvas.width if width is None else width
        height = self.config.canvas.height if height is None else height
        network = self._network

        if network.is_empty:
            logger.info("Empty network for %s, nothing to lay out", network.ego)
            return SpreadLineResult(band_width=0, block_width=BLOCK_WIDTH, ego=network.ego)

        tables = network.tables.copy()
        ordered = ordering(network, tables)
        alignment = aligning(network, tables, ordered)
        compacting(network, tables, ordered, alignment, self.layout_config, self._line_color)
        context = contextualizing(
            network, self.context_config, self._content, self._content_dynamic,
            self._node_context, self._time_format,
        )
        result = rendering(
            width, height, network, tables, ordered, context, self._line_color, self.layout_config.band_stretch,
        )
        logger.info("Fit done: %r", result)
        return result
