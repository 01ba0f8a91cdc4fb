"""Configuration loading for the SpreadLine layout engine."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from spreadline.models import ConfigurationError


class LayoutConfig(BaseModel):
    """Runtime layout options accepted by SpreadLine.configure()."""

    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)

    band_stretch: list[tuple[str, str]] = Field(default_factory=list)
    squeeze_same_category: bool = False
    minimize: Literal["space", "line", "wiggles"] = "space"


class ContextConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    normalize: bool = True
    centered: bool = False
    missing: Literal["closest", "skip"] = "closest"


class CanvasConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    width: float = 1400
    height: float = 500


class TimeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    delta: Literal["year", "month", "week", "day", "hour"] = "day"
    format: str = "%Y-%m-%d"


class Config(BaseModel):
    model_config = ConfigDict(extra="forbid")

    layout: LayoutConfig = Field(default_factory=LayoutConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    canvas: CanvasConfig = Field(default_factory=CanvasConfig)
    time: TimeConfig = Field(default_factory=TimeConfig)
    internal_category: str = "internal"  # category value shared with the ego


def _project_root() -> Path:
    """Return the spreadline project root directory."""
    return Path(__file__).parent.parent


def load_config(config_path: Path | None = None) -> Config:
    """Load config from YAML file. Falls back to defaults if file missing."""
    if config_path is None:
        config_path = _project_root() / "config.yaml"

    if config_path.exists():
        raw: dict[str, Any] = yaml.safe_load(config_path.read_text()) or {}
        try:
            return Config(**raw)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid config file {config_path}: {exc}") from exc

    return Config()


def split_options(options: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Route configure() keyword options to the layout or context section.

    Layout keys are accepted in snake_case or camelCase and returned as field
    names. Raises ConfigurationError naming the first key neither section accepts.
    """
    layout_keys = {name: name for name in LayoutConfig.model_fields}
    layout_keys.update({to_camel(name): name for name in LayoutConfig.model_fields})
    context_keys = set(ContextConfig.model_fields)

    layout: dict[str, Any] = {}
    context: dict[str, Any] = {}
    for key, value in options.items():
        if key in layout_keys:
            layout[layout_keys[key]] = value
        elif key in context_keys:
            context[key] = value
        else:
            raise ConfigurationError(f"Unmatched key in config: {key}")
    return layout, context
