"""Meeting filtering, ranking and display policy."""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable, Sequence

from nextmeeting.models import AttendanceStatus, CalendarInfo, Meeting

logger = logging.getLogger(__name__)

STATUS_FILTER_ALLOWED: dict[str, frozenset[AttendanceStatus]] = {
    "accepted": frozenset({AttendanceStatus.ACCEPTED, AttendanceStatus.NONE}),
    "accepted_or_tentative": frozenset(
        {AttendanceStatus.ACCEPTED, AttendanceStatus.TENTATIVE, AttendanceStatus.NONE}
    ),
}


def should_include(
    start: datetime.datetime,
    end: datetime.datetime,
    now: datetime.datetime,
    query_start: datetime.datetime,
) -> bool:
    """Decide whether an occurrence belongs in the upcoming list.

    Future occurrences are always kept. Occurrences that already started are
    kept only while still running and only if they started inside the fetch
    window (strictly after ``query_start``). Zero-length or inverted
    occurrences are never kept.

    Args:
        start: Occurrence start
        end: Occurrence end
        now: Current time
        query_start: Lower bound of the fetch window

    Returns:
        True if the occurrence should be shown
    """
    if not start < end:
        return False
    if start > now:
        return True
    return start > query_start and end > now


def dedupe_meetings(meetings: Iterable[Meeting]) -> list[Meeting]:
    """Drop repeated occurrences with the same uid and start, keeping the first."""
    seen: set[tuple[str, datetime.datetime]] = set()
    unique: list[Meeting] = []
    for meeting in meetings:
        key = (meeting.uid, meeting.start)
        if key in seen:
            continue
        seen.add(key)
        unique.append(meeting)
    return unique


def rank_meetings(meetings: Iterable[Meeting], limit: int) -> list[Meeting]:
    """Dedupe, sort by start and keep at most ``max(limit, 1)`` meetings."""
    unique = dedupe_meetings(meetings)
    unique.sort(key=lambda m: (m.start, m.end, m.title, m.uid))
    return unique[: max(limit, 1)]


def enabled_meeting_source_uids(
    calendars: Sequence[CalendarInfo],
    enabled_uids: Sequence[str],
) -> list[str]:
    """Resolve the set of calendars to query.

    An empty ``enabled_uids`` means every meeting calendar. Sources whose
    backend never holds events (contacts, weather, birthdays) are always
    removed. Without a discovered calendar list the enabled list is used as-is.
    """
    if not calendars:
        return list(enabled_uids)
    meeting_sources = {c.uid for c in calendars if c.is_meeting_source()}
    if not enabled_uids:
        return [c.uid for c in calendars if c.uid in meeting_sources]
    return [uid for uid in enabled_uids if uid in meeting_sources]


class MeetingDisplayFilter:
    """Presentation-side filtering applied on top of the ranked list.

    Fields:
        show_all_day_events: keep all-day meetings
        event_status_filter: "all", "accepted" or "accepted_or_tentative"
        show_in_progress_minutes: keep started meetings for this many minutes (0 hides them)
    """

    def __init__(
        self,
        show_all_day_events: bool = True,
        event_status_filter: str = "all",
        show_in_progress_minutes: int = 5,
    ):
        self.show_all_day_events = show_all_day_events
        self.event_status_filter = event_status_filter
        self.show_in_progress_minutes = show_in_progress_minutes

    @classmethod
    def from_config(cls, config: object) -> MeetingDisplayFilter:
        return cls(
            show_all_day_events=getattr(config, "show_all_day_events", True),
            event_status_filter=getattr(config, "event_status_filter", "all"),
            show_in_progress_minutes=getattr(config, "show_in_progress_minutes", 5),
        )

    def accepts(self, meeting: Meeting, now: datetime.datetime) -> bool:
        if meeting.is_all_day and not self.show_all_day_events:
            return False

        if meeting.start <= now:
            minutes_since_start = int((now - meeting.start).total_seconds() // 60)
            if self.show_in_progress_minutes <= 0 or minutes_since_start > self.show_in_progress_minutes:
                return False

        allowed = STATUS_FILTER_ALLOWED.get(self.event_status_filter)
        return allowed is None or meeting.attendance_status in allowed

    def apply(self, meetings: Iterable[Meeting], now: datetime.datetime) -> list[Meeting]:
        """Filter meetings, preserving order."""
        kept = [m for m in meetings if self.accepts(m, now)]
        logger.debug("Display filter kept %d meetings", len(kept))
        return kept
