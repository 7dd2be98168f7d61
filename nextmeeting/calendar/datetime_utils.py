"""DateTime parsing utilities for raw iCalendar property values.

Values arrive as ``(params, raw_value)`` pairs straight from the content line
splitter, so TZID resolution goes through
:func:`nextmeeting.core.timezone_utils.resolve_timezone` rather than through
icalendar's own (strict) timezone lookup.
"""

import logging
from datetime import UTC, datetime, time, tzinfo
from typing import Mapping, Optional

from nextmeeting.core.timezone_utils import resolve_timezone, warn_unresolved_timezone
from nextmeeting.exceptions import EventParseError

logger = logging.getLogger(__name__)

DATETIME_FORMATS = (
    "%Y%m%dT%H%M%S",  # Standard: 20251031T090000
    "%Y%m%dT%H%M",  # Without seconds: 20251031T0900
    "%Y-%m-%dT%H:%M:%S",  # ISO format: 2025-10-31T09:00:00
)
DATE_FORMATS = (
    "%Y%m%d",  # 20251031
    "%Y-%m-%d",  # 2025-10-31
)

QUERY_TIME_FORMAT = "%Y%m%dT%H%M%SZ"
OCCURRENCE_KEY_FORMAT = "%Y%m%dT%H%M%S"


def _param(params: Mapping[str, str], name: str) -> Optional[str]:
    value = params.get(name)
    if value is None:
        return None
    return str(value).strip().strip('"') or None


def is_date_value(params: Mapping[str, str], value: str) -> bool:
    """True when the property carries a date-only value."""
    value_type = _param(params, "VALUE")
    if value_type is not None:
        return value_type.upper() == "DATE"
    return "T" not in value.strip().upper()


def _parse_naive(value: str) -> tuple[datetime, bool]:
    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(value, fmt), False
        except ValueError:
            continue
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt), True
        except ValueError:
            continue
    raise EventParseError(f"Unable to parse date-time value: {value!r}")


def localize(naive: datetime, zone: tzinfo) -> datetime:
    """Attach ``zone`` to a wall-clock datetime."""
    return naive.replace(tzinfo=zone)


def parse_ical_datetime(
    value: str,
    params: Mapping[str, str],
    local_tz: tzinfo,
) -> tuple[datetime, bool]:
    """Parse a DATE or DATE-TIME property value.

    Handles:
    - UTC values (``20251031T090000Z``)
    - TZID values, resolved through the three-tier resolver; unknown zones
      fall back to local wall-clock time with a warning
    - floating values, interpreted as local time
    - date-only values, interpreted as local midnight

    Args:
        value: Raw property value
        params: Property parameters (TZID, VALUE)
        local_tz: Zone used for floating and fallback values

    Returns:
        Tuple of (aware datetime in its source zone, is_date flag)

    Raises:
        EventParseError: If the value is not a recognized date or date-time
    """
    raw = value.strip()
    if not raw:
        raise EventParseError("Empty date-time value")

    is_utc = raw.upper().endswith("Z")
    naive, is_date = _parse_naive(raw[:-1] if is_utc else raw)
    if (_param(params, "VALUE") or "").upper() == "DATE" or is_date:
        return localize(datetime.combine(naive.date(), time()), local_tz), True

    if is_utc:
        return naive.replace(tzinfo=UTC), False

    tzid = _param(params, "TZID")
    if tzid:
        zone = resolve_timezone(tzid)
        if zone is not None:
            return localize(naive, zone), False
        warn_unresolved_timezone(tzid)

    return localize(naive, local_tz), False


def parse_ical_datetime_list(
    value: str,
    params: Mapping[str, str],
    local_tz: tzinfo,
) -> list[datetime]:
    """Parse a comma-separated EXDATE/RDATE value; malformed items are skipped.

    PERIOD values contribute their start instant.
    """
    results: list[datetime] = []
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        if "/" in item:
            item = item.split("/", 1)[0]
        try:
            parsed, _ = parse_ical_datetime(item, params, local_tz)
        except EventParseError:
            logger.debug("Skipping malformed date list item %r", item)
            continue
        results.append(parsed)
    return results


def format_query_time(dt: datetime) -> str:
    """Format an aware datetime as ``YYYYMMDDTHHMMSSZ`` in UTC."""
    return dt.astimezone(UTC).strftime(QUERY_TIME_FORMAT)


def occurrence_key(dt: datetime) -> str:
    """Format the local wall-clock start used in derived occurrence uids."""
    return dt.strftime(OCCURRENCE_KEY_FORMAT)
