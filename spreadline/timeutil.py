"""Time parsing and bucketing helpers."""

import calendar
import logging
from datetime import datetime, timedelta

from spreadline.models import ConfigurationError, DataShapeError

logger = logging.getLogger(__name__)

_FIXED_DELTAS = {
    "week": timedelta(weeks=1),
    "day": timedelta(days=1),
    "hour": timedelta(hours=1),
}


def str_to_datetime(value: str, fmt: str) -> datetime:
    try:
        return datetime.strptime(str(value), fmt)
    except ValueError as exc:
        raise DataShapeError(f"Time {value!r} does not match format {fmt!r}") from exc


def datetime_to_str(value: datetime, fmt: str) -> str:
    if fmt == "%Y":
        return str(value.year)
    return value.strftime(fmt)


def _shift_months(value: datetime, months: int) -> datetime:
    """Move `value` by whole months, clamping the day to the target month."""
    index = value.month - 1 + months
    year = value.year + index // 12
    month = index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def get_time_array(extents: tuple[str, str], delta: str, fmt: str) -> list[str]:
    """Bucket labels from extents[0] to extents[1] at `delta` granularity.

    One label beyond the last bucket is appended so every bucket has an
    exclusive upper bound.
    """
    start = str_to_datetime(extents[0], fmt)
    end = str_to_datetime(extents[1], fmt)

    if delta == "year":
        steps = [_shift_months(start, 12 * idx) for idx in range(end.year - start.year + 2)]
    elif delta == "month":
        months = (end.year - start.year) * 12 + end.month - start.month
        steps = [_shift_months(start, idx) for idx in range(months + 2)]
    elif delta in _FIXED_DELTAS:
        unit = _FIXED_DELTAS[delta]
        count = (end - start) // unit
        steps = [start + idx * unit for idx in range(count + 2)]
    else:
        raise ConfigurationError(f'The given delta "{delta}" is not supported')

    labels = [datetime_to_str(step, fmt) for step in steps]
    logger.debug("Time array %s..%s by %s: %d labels", extents[0], extents[1], delta, len(labels))
    return labels
