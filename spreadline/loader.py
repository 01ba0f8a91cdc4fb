"""Read input tables from disk for the CLI."""

import csv
import json
import logging
from pathlib import Path
from typing import Any

from spreadline.models import ConfigurationError, DataShapeError

logger = logging.getLogger(__name__)


def read_rows(path: Path) -> list[dict[str, Any]]:
    """Rows from a .json (list of objects) or .csv (header row) file."""
    suffix = path.suffix.lower()
    if suffix == ".json":
        data = json.loads(path.read_text())
        if not isinstance(data, list) or not all(isinstance(row, dict) for row in data):
            raise DataShapeError(f"{path} must contain a JSON list of objects")
        rows = data
    elif suffix == ".csv":
        with path.open(newline="") as f:
            rows = list(csv.DictReader(f))
    else:
        raise ConfigurationError(f"Unsupported input file type: {path.suffix or path.name}")

    logger.debug("Read %d rows from %s", len(rows), path)
    return rows


def read_groups(path: Path) -> dict[str, list[list[str]]]:
    """Explicit tiers per time label: {"2020": [[...], [...], [ego], [...], [...]]}."""
    data = json.loads(path.read_text())
    if not isinstance(data, dict):
        raise DataShapeError(f"{path} must contain a JSON object keyed by time label")
    groups: dict[str, list[list[str]]] = {}
    for label, tiers in data.items():
        if not isinstance(tiers, list) or len(tiers) != 5:
            raise DataShapeError(f"Groups for {label} must be a list of five tiers")
        groups[str(label)] = [[str(name) for name in tier] for tier in tiers]
    return groups
