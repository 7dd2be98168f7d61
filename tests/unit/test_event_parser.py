"""Unit tests for nextmeeting.calendar.event_parser."""

import zoneinfo
from datetime import UTC, datetime, timedelta

import pytest

from nextmeeting.calendar.event_parser import (
    EventRecordParser,
    ensure_vcalendar,
    parse_calendar_object,
    parse_event,
)
from nextmeeting.models import DEFAULT_EVENT_TITLE

pytestmark = pytest.mark.unit

LOCAL = zoneinfo.ZoneInfo("UTC")


class TestParseEvent:
    """Tests for single-record parsing."""

    def test_bare_vevent_is_parsed(self, vevent):
        raw = vevent("evt-1", ":20250310T090000Z", ":20250310T100000Z", summary="Standup")

        props = parse_event(raw, LOCAL)

        assert props is not None
        assert props.uid == "evt-1"
        assert props.summary == "Standup"
        assert props.start == datetime(2025, 3, 10, 9, 0, tzinfo=UTC)
        assert props.end == datetime(2025, 3, 10, 10, 0, tzinfo=UTC)
        assert props.is_recurring is False

    def test_missing_summary_uses_default_title(self, vevent):
        raw = vevent("evt-1", ":20250310T090000Z", ":20250310T100000Z", summary=None)

        assert parse_event(raw, LOCAL).summary == DEFAULT_EVENT_TITLE

    def test_missing_uid_drops_record(self):
        raw = "BEGIN:VEVENT\r\nDTSTART:20250310T090000Z\r\nSUMMARY:x\r\nEND:VEVENT\r\n"

        assert parse_event(raw, LOCAL) is None

    def test_missing_dtstart_drops_record(self):
        raw = "BEGIN:VEVENT\r\nUID:evt-2\r\nSUMMARY:x\r\nEND:VEVENT\r\n"

        assert parse_event(raw, LOCAL) is None

    def test_all_day_event(self, vevent):
        raw = vevent("day", ";VALUE=DATE:20250311", ";VALUE=DATE:20250312")

        props = parse_event(raw, LOCAL)

        assert props.is_all_day is True
        assert props.effective_end() - props.start == timedelta(days=1)

    def test_duration_instead_of_dtend(self, vevent):
        raw = vevent("dur", ":20250310T090000Z", extra=("DURATION:PT45M",))

        props = parse_event(raw, LOCAL)

        assert props.end is None
        assert props.effective_end() == datetime(2025, 3, 10, 9, 45, tzinfo=UTC)

    def test_escaped_text_is_unescaped(self, vevent):
        raw = vevent(
            "txt",
            ":20250310T090000Z",
            ":20250310T100000Z",
            summary="Plan\\, review",
            extra=("LOCATION:Room 4\\; floor 2",),
        )

        props = parse_event(raw, LOCAL)

        assert props.summary == "Plan, review"
        assert props.location == "Room 4; floor 2"

    def test_folded_description(self, vevent):
        raw = vevent(
            "fold",
            ":20250310T090000Z",
            ":20250310T100000Z",
            extra=("DESCRIPTION:Join at https://meet.example.com/", " abc-defg"),
        )

        assert parse_event(raw, LOCAL).description == "Join at https://meet.example.com/abc-defg"

    def test_valarm_properties_do_not_leak(self, vevent):
        raw = vevent(
            "alarm",
            ":20250310T090000Z",
            ":20250310T100000Z",
            summary="Real title",
            extra=(
                "BEGIN:VALARM",
                "ACTION:DISPLAY",
                "DESCRIPTION:Reminder text",
                "TRIGGER:-PT15M",
                "END:VALARM",
            ),
        )

        props = parse_event(raw, LOCAL)

        assert props.summary == "Real title"
        assert props.description is None

    def test_attendees_read_email_param_and_partstat(self, vevent):
        raw = vevent(
            "att",
            ":20250310T090000Z",
            ":20250310T100000Z",
            extra=(
                'ATTENDEE;CN="Sam";PARTSTAT=accepted;EMAIL=sam@example.com:mailto:alias@example.com',
                "ATTENDEE;PARTSTAT=DECLINED:mailto:kim@example.com",
            ),
        )

        attendees = parse_event(raw, LOCAL).attendees

        assert attendees[0].address() == "sam@example.com"
        assert attendees[0].partstat == "ACCEPTED"
        assert attendees[0].common_name == "Sam"
        assert attendees[1].address() == "kim@example.com"

    def test_exdates_collected_from_every_line(self, vevent):
        raw = vevent(
            "rec",
            ":20250310T090000Z",
            ":20250310T100000Z",
            extra=(
                "RRULE:FREQ=DAILY;COUNT=5",
                "EXDATE:20250311T090000Z",
                "EXDATE:20250312T090000Z,20250313T090000Z",
            ),
        )

        props = parse_event(raw, LOCAL)

        assert props.is_recurring is True
        assert len(props.exdates) == 3


class TestParseCalendarObject:
    """Tests for records holding several components."""

    def test_master_and_override_in_one_vcalendar(self, vevent):
        master = vevent("series", ":20250310T090000Z", ":20250310T100000Z", extra=("RRULE:FREQ=DAILY",))
        override = vevent(
            "series",
            ":20250311T130000Z",
            ":20250311T140000Z",
            summary="Moved",
            extra=("RECURRENCE-ID:20250311T090000Z",),
        )
        raw = ensure_vcalendar(master + override)

        events = parse_calendar_object(raw, LOCAL)

        assert [e.is_override for e in events] == [False, True]
        assert events[1].recurrence_id == datetime(2025, 3, 11, 9, 0, tzinfo=UTC)

    def test_vtimezone_ignored(self, vevent):
        raw = (
            "BEGIN:VCALENDAR\r\nVERSION:2.0\r\n"
            "BEGIN:VTIMEZONE\r\nTZID:Custom\r\nBEGIN:STANDARD\r\nDTSTART:19700101T000000\r\n"
            "TZOFFSETFROM:+0100\r\nTZOFFSETTO:+0100\r\nEND:STANDARD\r\nEND:VTIMEZONE\r\n"
            + vevent("tz", ";TZID=Europe/Berlin:20250310T090000", ";TZID=Europe/Berlin:20250310T100000")
            + "END:VCALENDAR\r\n"
        )

        events = parse_calendar_object(raw, LOCAL)

        assert len(events) == 1
        assert events[0].start == datetime(2025, 3, 10, 8, 0, tzinfo=UTC)

    def test_invalid_event_dropped_but_valid_kept(self, vevent):
        good = vevent("good", ":20250310T090000Z", ":20250310T100000Z")
        bad = "BEGIN:VEVENT\r\nUID:bad\r\nDTSTART:garbage\r\nEND:VEVENT\r\n"

        events = parse_calendar_object(good + bad, LOCAL)

        assert [e.uid for e in events] == ["good"]

    def test_split_events_keeps_top_level_lines_only(self, vevent):
        raw = vevent(
            "nested",
            ":20250310T090000Z",
            extra=("BEGIN:VALARM", "TRIGGER:-PT5M", "END:VALARM", "LOCATION:After alarm"),
        )

        (lines,) = EventRecordParser(LOCAL).split_events(raw)
        names = [name for name, _params, _value in lines]

        assert "TRIGGER" not in names
        assert "LOCATION" in names
