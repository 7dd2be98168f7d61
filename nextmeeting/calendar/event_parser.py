"""Record parsing for raw iCalendar strings returned by the calendar service.

The service hands back one object per record: usually a bare VEVENT block,
sometimes a full VCALENDAR holding a master event plus detached instances.
Content lines are unfolded and split by icalendar's content-line parser;
nested components such as VALARM never contribute properties to their event.
"""

import logging
from datetime import timedelta, tzinfo
from typing import Any, Optional

from icalendar.parser import Contentlines
from icalendar.prop import vDuration, vText

from nextmeeting.calendar.datetime_utils import parse_ical_datetime, parse_ical_datetime_list
from nextmeeting.exceptions import EventParseError
from nextmeeting.models import DEFAULT_EVENT_TITLE, AttendeeEntry, RawEventProps

logger = logging.getLogger(__name__)

PropertyLine = tuple[str, Any, str]

VCALENDAR_HEADER = "BEGIN:VCALENDAR\r\nVERSION:2.0\r\nPRODID:-//nextmeeting//EN\r\n"
VCALENDAR_FOOTER = "END:VCALENDAR\r\n"


def ensure_vcalendar(raw: str) -> str:
    """Wrap a bare component in a minimal VCALENDAR envelope.

    Examples:
        >>> ensure_vcalendar("BEGIN:VEVENT\\nUID:a\\nEND:VEVENT").splitlines()[0]
        'BEGIN:VCALENDAR'
    """
    text = raw.strip()
    if text.upper().startswith("BEGIN:VCALENDAR"):
        return text + "\r\n"
    return f"{VCALENDAR_HEADER}{text}\r\n{VCALENDAR_FOOTER}"


def _text(value: str) -> Optional[str]:
    unescaped = str(vText.from_ical(value)).strip()
    return unescaped or None


def _param(params: Any, name: str) -> Optional[str]:
    value = params.get(name) if params is not None else None
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return str(value).strip().strip('"') or None


class EventRecordParser:
    """Parser for raw records into :class:`RawEventProps`."""

    def __init__(self, local_tz: tzinfo):
        """Initialize record parser.

        Args:
            local_tz: Zone used for floating times, dates and unknown TZIDs
        """
        self.local_tz = local_tz

    def split_events(self, raw: str) -> list[list[PropertyLine]]:
        """Return the top-level property lines of every VEVENT in ``raw``."""
        events: list[list[PropertyLine]] = []
        stack: list[str] = []
        current: Optional[list[PropertyLine]] = None
        event_depth = 0

        for line in Contentlines.from_ical(ensure_vcalendar(raw)):
            if not line:
                continue
            try:
                name, params, value = line.parts()
            except ValueError:
                logger.debug("Skipping unparseable content line %r", str(line)[:80])
                continue
            name = name.upper()

            if name == "BEGIN":
                component = value.strip().upper()
                stack.append(component)
                if component == "VEVENT" and current is None:
                    current = []
                    event_depth = len(stack)
                continue

            if name == "END":
                component = value.strip().upper()
                if component in stack:
                    while stack and stack.pop() != component:
                        pass
                if current is not None and len(stack) < event_depth:
                    events.append(current)
                    current = None
                continue

            if current is not None and len(stack) == event_depth:
                current.append((name, params, value))

        if current is not None:
            logger.debug("Record ended inside a VEVENT; keeping what was read")
            events.append(current)
        return events

    def parse_record(self, raw: str) -> list[RawEventProps]:
        """Parse every VEVENT in a raw record, dropping invalid ones."""
        results: list[RawEventProps] = []
        for lines in self.split_events(raw):
            props = self.parse_event_lines(lines)
            if props is not None:
                results.append(props)
        return results

    def parse_event_lines(self, lines: list[PropertyLine]) -> Optional[RawEventProps]:
        """Build RawEventProps from one VEVENT's property lines.

        Returns:
            RawEventProps, or None when UID or DTSTART is missing or malformed
        """
        first: dict[str, tuple[Any, str]] = {}
        for name, params, value in lines:
            first.setdefault(name, (params, value))

        uid = first.get("UID", (None, ""))[1].strip()
        if not uid:
            logger.debug("Dropping record without UID")
            return None

        try:
            start, is_all_day = self._parse_start(first)
        except EventParseError as e:
            logger.debug("Dropping record %s: %s", uid, e)
            return None

        try:
            return RawEventProps(
                uid=uid,
                summary=self._optional_text(first, "SUMMARY") or DEFAULT_EVENT_TITLE,
                location=self._optional_text(first, "LOCATION"),
                description=self._optional_text(first, "DESCRIPTION"),
                start=start,
                end=self._parse_optional_datetime(first, "DTEND", uid),
                duration=self._parse_duration(first, uid),
                is_all_day=is_all_day,
                rrule=(first.get("RRULE", (None, ""))[1].strip() or None),
                rdates=self._collect_dates(lines, "RDATE"),
                exdates=self._collect_dates(lines, "EXDATE"),
                recurrence_id=self._parse_optional_datetime(first, "RECURRENCE-ID", uid),
                attendees=self._extract_attendees(lines),
            )
        except ValueError as e:
            logger.debug("Dropping record %s: %s", uid, e)
            return None

    def _parse_start(self, first: dict[str, tuple[Any, str]]) -> tuple[Any, bool]:
        if "DTSTART" not in first:
            raise EventParseError("missing DTSTART")
        params, value = first["DTSTART"]
        return parse_ical_datetime(value, params or {}, self.local_tz)

    def _parse_optional_datetime(self, first: dict[str, tuple[Any, str]], name: str, uid: str) -> Any:
        if name not in first:
            return None
        params, value = first[name]
        try:
            parsed, _ = parse_ical_datetime(value, params or {}, self.local_tz)
        except EventParseError as e:
            logger.debug("Ignoring malformed %s on %s: %s", name, uid, e)
            return None
        return parsed

    def _parse_duration(self, first: dict[str, tuple[Any, str]], uid: str) -> Optional[timedelta]:
        if "DURATION" not in first:
            return None
        value = first["DURATION"][1].strip()
        try:
            duration = vDuration.from_ical(value)
        except ValueError:
            logger.debug("Ignoring malformed DURATION %r on %s", value, uid)
            return None
        return duration if isinstance(duration, timedelta) else None

    @staticmethod
    def _optional_text(first: dict[str, tuple[Any, str]], name: str) -> Optional[str]:
        if name not in first:
            return None
        return _text(first[name][1])

    def _collect_dates(self, lines: list[PropertyLine], name: str) -> list[Any]:
        """Collect every instance of a multi-valued date property (EXDATE, RDATE)."""
        dates = []
        for prop_name, params, value in lines:
            if prop_name == name:
                dates.extend(parse_ical_datetime_list(value, params or {}, self.local_tz))
        return dates

    @staticmethod
    def _extract_attendees(lines: list[PropertyLine]) -> list[AttendeeEntry]:
        attendees = []
        for name, params, value in lines:
            if name != "ATTENDEE":
                continue
            partstat = _param(params, "PARTSTAT")
            attendees.append(
                AttendeeEntry(
                    value=value.strip(),
                    email=_param(params, "EMAIL"),
                    partstat=partstat.upper() if partstat else None,
                    common_name=_param(params, "CN"),
                )
            )
        return attendees


def parse_calendar_object(raw: str, local_tz: tzinfo) -> list[RawEventProps]:
    """Parse all events in one record; invalid events are dropped."""
    try:
        return EventRecordParser(local_tz).parse_record(raw)
    except ValueError:
        logger.warning("Unable to split record into content lines; dropping it")
        return []


def parse_event(raw: str, local_tz: tzinfo) -> Optional[RawEventProps]:
    """Parse the first event of a raw record, or None if it is unusable."""
    events = parse_calendar_object(raw, local_tz)
    return events[0] if events else None
