"""Pydantic models for the SpreadLine layout engine."""

import json
from collections.abc import Iterable
from typing import Annotated, Any, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel


# --- Errors ---


class SpreadLineError(ValueError):
    """Base class for every error raised by the layout pipeline."""


class ConfigurationError(SpreadLineError):
    """Invalid configuration, column mapping or layout request."""


class DataShapeError(SpreadLineError):
    """Rows do not carry the columns their mapping refers to."""


# --- Row models (canonical record shapes after column mapping) ---


def _as_text(value: Any) -> Any:
    # CSV/JSON sources often carry years and ids as numbers
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


Text = Annotated[str, BeforeValidator(_as_text)]


class TopologyRow(BaseModel):
    source: Text
    target: Text
    time: Text
    weight: float


class LineRow(BaseModel):
    entity: Text
    color: Text


class NodeContextRow(BaseModel):
    time: Text
    entity: Text
    context: float


class ContentRow(BaseModel):
    id: Text
    timestamp: Text | None = None
    posX: float
    posY: float


# --- Column mappings ---

Column = Annotated[str, Field(min_length=1)]

RowT = TypeVar("RowT", bound=BaseModel)


class ColumnMapping(BaseModel):
    """Canonical field name -> caller column name, validated once at load."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    def columns(self) -> dict[str, str]:
        return {name: column for name, column in self.model_dump().items() if column}

    @classmethod
    def parse(cls, mapping: "ColumnMapping | dict[str, str | None]") -> "ColumnMapping":
        """Validate a plain dict mapping, raising ConfigurationError on mismatch."""
        if isinstance(mapping, cls):
            return mapping
        if isinstance(mapping, ColumnMapping):
            mapping = mapping.model_dump()
        try:
            return cls(**mapping)
        except ValidationError as exc:
            problems = ", ".join(
                f"{'.'.join(str(p) for p in err['loc'])} ({err['type']})" for err in exc.errors()
            )
            raise ConfigurationError(f"Unmatched keys in the column mapping: {problems}") from exc

    def apply(self, rows: Iterable[dict[str, Any]], row_model: type[RowT]) -> list[RowT]:
        """Rename columns to canonical fields, validate and drop exact duplicates."""
        columns = self.columns()
        records: list[RowT] = []
        seen: set[str] = set()
        for idx, row in enumerate(rows):
            missing = [column for column in columns.values() if column not in row]
            if missing:
                raise DataShapeError(f"Column(s) {missing} not found in row {idx}")
            key = json.dumps(row, sort_keys=True, default=str)
            if key in seen:
                continue
            seen.add(key)
            try:
                records.append(row_model(**{name: row[column] for name, column in columns.items()}))
            except ValidationError as exc:
                raise DataShapeError(f"Row {idx} has invalid values: {exc}") from exc
        return records


class TopologyMapping(ColumnMapping):
    source: Column
    target: Column
    time: Column
    weight: Column


class LineMapping(ColumnMapping):
    entity: Column
    color: Column


class NodeContextMapping(ColumnMapping):
    time: Column
    entity: Column
    context: Column


class ContentMapping(ColumnMapping):
    id: Column
    timestamp: str | None
    posX: Column
    posY: Column

    @property
    def dynamic(self) -> bool:
        """A content layout without a timestamp column is static."""
        return bool(self.timestamp)


# --- Result models (what fit() hands back) ---


class _Output(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class TimeLabel(_Output):
    label: str
    pos_x: float


class Mark(_Output):
    pos_x: float
    pos_y: float
    name: str
    size: float
    visibility: str = "visible"


class Label(_Output):
    pos_x: float = 0
    pos_y: float = 0
    text_align: str = "start"
    line: str = ""
    label: str = ""
    full_label: str = ""
    visibility: str = "visible"


class InlineLabel(_Output):
    pos_x: float
    pos_y: float
    name: str
    full_name: str


class Storyline(_Output):
    name: str
    lines: list[str] = Field(default_factory=list)
    marks: list[Mark] = Field(default_factory=list)
    label: Label = Field(default_factory=Label)
    inline_labels: list[InlineLabel] = Field(default_factory=list)
    color: str
    id: int
    lifespan: int
    crossing_check: bool = False


class Point(_Output):
    id: int
    pos_x: float
    pos_y: float
    name: str
    group: int
    aggregate_group: int = 0
    visibility: str = "visible"
    scale_x: float = 0
    scale_y: float = 0
    label: int | float = -1


class HopSection(_Output):
    """Collapsible outer-tier section of a block."""

    node_count: int
    center_y: float
    node_ids: list[int]
    names: list[str]
    min_y: float
    max_y: float


class HopSections(_Output):
    top: HopSection | None = None
    bottom: HopSection | None = None


class Block(_Output):
    id: int
    time: str
    outline: dict[str, Any]
    names: list[str]
    relations: list[tuple[int, int]]
    points: list[Point]
    move_x: float
    top_pos_y: float
    hop_sections: HopSections = Field(default_factory=HopSections)


class SpreadLineResult(_Output):
    """Immutable snapshot of one fit() call."""

    band_width: float
    block_width: float
    ego: str
    time_labels: list[TimeLabel] = Field(default_factory=list)
    height_extents: tuple[float, float] = (0, 0)
    storylines: list[Storyline] = Field(default_factory=list)
    blocks: list[Block] = Field(default_factory=list)

    def to_json(self, indent: int | None = None) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)

    def __repr__(self) -> str:
        return (
            f"SpreadLineResult(ego={self.ego!r}, {len(self.storylines)} storylines, "
            f"{len(self.blocks)} blocks, {len(self.time_labels)} time labels)"
        )
