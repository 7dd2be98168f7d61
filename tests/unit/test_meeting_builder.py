"""Unit tests for nextmeeting.domain.meeting_builder."""

import zoneinfo
from datetime import UTC, datetime, timedelta

import pytest

from nextmeeting.calendar.event_parser import ensure_vcalendar
from nextmeeting.domain.meeting_builder import FetchWindow, MeetingBuilder
from nextmeeting.models import AttendanceStatus

pytestmark = pytest.mark.unit

NOW = datetime(2025, 3, 10, 8, 0, tzinfo=UTC)
WINDOW = FetchWindow.around(NOW, lookback_minutes=30, lookahead_days=7)


@pytest.fixture
def builder() -> MeetingBuilder:
    return MeetingBuilder(zoneinfo.ZoneInfo("UTC"))


class TestFetchWindow:
    def test_around(self):
        assert WINDOW.query_start == NOW - timedelta(minutes=30)
        assert WINDOW.query_end == NOW + timedelta(days=7)


class TestMeetingBuilder:
    """Tests for turning one source's records into meetings."""

    def test_single_event(self, builder, vevent):
        raw = vevent("one", ":20250310T090000Z", ":20250310T100000Z", summary="Planning")

        (meeting,) = builder.build([raw], "cal", [], WINDOW)

        assert meeting.uid == "one"
        assert meeting.title == "Planning"
        assert meeting.calendar_uid == "cal"

    def test_recurring_uid_suffixed_with_local_start(self, builder, vevent):
        raw = vevent("daily", ":20250310T090000Z", ":20250310T093000Z", extra=("RRULE:FREQ=DAILY;COUNT=3",))

        meetings = builder.build([raw], "cal", [], WINDOW)

        assert [m.uid for m in meetings] == [
            "daily@20250310T090000",
            "daily@20250311T090000",
            "daily@20250312T090000",
        ]

    def test_override_replaces_expanded_slot(self, builder, vevent):
        master = vevent("series", ":20250310T090000Z", ":20250310T100000Z", extra=("RRULE:FREQ=DAILY;COUNT=3",))
        moved = vevent(
            "series",
            ":20250311T150000Z",
            ":20250311T160000Z",
            summary="Moved",
            extra=("RECURRENCE-ID:20250311T090000Z",),
        )

        meetings = builder.build([ensure_vcalendar(master + moved)], "cal", [], WINDOW)
        starts = sorted(m.start.hour for m in meetings if m.start.day == 11)

        assert starts == [15]
        assert [m.uid for m in meetings if m.title == "Moved"] == ["series"]

    def test_times_normalized_to_local_zone(self, vevent):
        builder = MeetingBuilder(zoneinfo.ZoneInfo("America/New_York"))
        raw = vevent("ny", ":20250310T140000Z", ":20250310T150000Z")

        (meeting,) = builder.build([raw], "cal", [], WINDOW)

        assert meeting.start.tzinfo == zoneinfo.ZoneInfo("America/New_York")
        assert meeting.start.hour == 10

    def test_attendance_classified(self, builder, vevent):
        raw = vevent(
            "att",
            ":20250310T090000Z",
            ":20250310T100000Z",
            extra=("ATTENDEE;PARTSTAT=TENTATIVE:mailto:me@example.com",),
        )

        (meeting,) = builder.build([raw], "cal", ["ME@example.com"], WINDOW)

        assert meeting.attendance_status is AttendanceStatus.TENTATIVE

    def test_past_and_zero_length_events_excluded(self, builder, vevent):
        past = vevent("past", ":20250309T090000Z", ":20250309T100000Z")
        instant = vevent("instant", ":20250310T090000Z")

        assert builder.build([past, instant], "cal", [], WINDOW) == []

    def test_broken_rule_drops_only_that_record(self, builder, vevent):
        broken = vevent("broken", ":20250310T090000Z", ":20250310T100000Z", extra=("RRULE:FREQ=SOMETIMES",))
        fine = vevent("fine", ":20250310T110000Z", ":20250310T120000Z")

        meetings = builder.build([broken, fine], "cal", [], WINDOW)

        assert [m.uid for m in meetings] == ["fine"]

    def test_unparseable_record_skipped(self, builder, vevent):
        fine = vevent("fine", ":20250310T110000Z", ":20250310T120000Z")

        meetings = builder.build(["BEGIN:VEVENT\r\nSUMMARY:no uid\r\nEND:VEVENT\r\n", fine], "cal", [], WINDOW)

        assert [m.uid for m in meetings] == ["fine"]
