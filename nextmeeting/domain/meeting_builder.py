"""Turns one source's raw records into Meeting occurrences.

Per source the builder:
1. parses every record (a record may hold a master plus detached instances)
2. collects RECURRENCE-ID overrides so the matching expanded slots are suppressed
3. expands recurring masters inside the fetch window
4. classifies attendance and applies the inclusion rule per occurrence
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo

from nextmeeting.calendar.attendee_parser import classify_attendance
from nextmeeting.calendar.datetime_utils import occurrence_key
from nextmeeting.calendar.event_parser import parse_calendar_object
from nextmeeting.calendar.rrule_expander import RecurrenceExpander
from nextmeeting.domain.event_filter import should_include
from nextmeeting.exceptions import RecurrenceExpansionError
from nextmeeting.models import Meeting, RawEventProps

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchWindow:
    """Time bounds of one fetch: ``[now - lookback, now + lookahead]``."""

    now: datetime
    query_start: datetime
    query_end: datetime

    @classmethod
    def around(cls, now: datetime, lookback_minutes: int = 30, lookahead_days: int = 30) -> FetchWindow:
        return cls(
            now=now,
            query_start=now - timedelta(minutes=lookback_minutes),
            query_end=now + timedelta(days=lookahead_days),
        )


def _instant(dt: datetime) -> datetime:
    return dt.astimezone(UTC)


class MeetingBuilder:
    """Builds Meeting objects for a single calendar source."""

    def __init__(self, local_tz: tzinfo, expander: RecurrenceExpander | None = None):
        self.local_tz = local_tz
        self.expander = expander or RecurrenceExpander()

    def parse_records(self, raw_records: Iterable[str]) -> list[RawEventProps]:
        events: list[RawEventProps] = []
        for raw in raw_records:
            events.extend(parse_calendar_object(raw, self.local_tz))
        return events

    def build(
        self,
        raw_records: Iterable[str],
        calendar_uid: str,
        user_emails: Sequence[str],
        window: FetchWindow,
    ) -> list[Meeting]:
        """Produce the included occurrences of every record of one source.

        Args:
            raw_records: iCalendar strings returned by the time-range query
            calendar_uid: Owning source uid
            user_emails: Addresses identifying the user for attendance
            window: Fetch window used for expansion and inclusion

        Returns:
            Unsorted list of meetings
        """
        events = self.parse_records(raw_records)
        overrides = {
            (e.uid, _instant(e.recurrence_id)) for e in events if e.recurrence_id is not None
        }

        meetings: list[Meeting] = []
        for event in events:
            status = classify_attendance(event.attendees, user_emails)
            for uid, start, end in self._occurrences(event, overrides, window):
                local_start = start.astimezone(self.local_tz)
                local_end = end.astimezone(self.local_tz)
                if not should_include(local_start, local_end, window.now, window.query_start):
                    continue
                if event.is_recurring:
                    uid = f"{uid}@{occurrence_key(local_start)}"
                meetings.append(
                    Meeting(
                        uid=uid,
                        title=event.summary,
                        start=local_start,
                        end=local_end,
                        location=event.location,
                        description=event.description,
                        calendar_uid=calendar_uid,
                        is_all_day=event.is_all_day,
                        attendance_status=status,
                    )
                )

        logger.debug(
            "Source %s: %d records parsed, %d meetings kept", calendar_uid, len(events), len(meetings)
        )
        return meetings

    def _occurrences(
        self,
        event: RawEventProps,
        overrides: set[tuple[str, datetime]],
        window: FetchWindow,
    ) -> list[tuple[str, datetime, datetime]]:
        if not event.is_recurring:
            return [(event.uid, event.start, event.effective_end())]

        try:
            expanded = self.expander.expand(event, window.query_start, window.query_end)
        except RecurrenceExpansionError as e:
            logger.warning("Dropping recurring event %s: %s", event.uid, e)
            return []

        kept = [
            (event.uid, start, end)
            for start, end in expanded
            if (event.uid, _instant(start)) not in overrides
        ]
        suppressed = len(expanded) - len(kept)
        if suppressed:
            logger.debug("Suppressed %d overridden occurrences of %s", suppressed, event.uid)
        return kept
