"""Unit tests for nextmeeting.eds.sources."""

import pytest

from nextmeeting.eds.sources import (
    calendar_info_from_source,
    list_calendar_source_uids,
    list_calendar_sources,
    parse_source_data,
)
from nextmeeting.exceptions import CalendarServiceError

pytestmark = pytest.mark.unit

ADDRESS_BOOK = """[Data Source]
DisplayName=Personal contacts
Enabled=true

[Address Book]
BackendName=local
"""


class TestParseSourceData:
    """Tests for INI-style source Data parsing."""

    def test_sections_and_keys(self):
        sections = parse_source_data("[Data Source]\nDisplayName=Work\n\n[Calendar]\nColor=#62a0ea\n")

        assert sections == {"Data Source": {"DisplayName": "Work"}, "Calendar": {"Color": "#62a0ea"}}

    def test_color_scoped_to_calendar_section(self):
        data = "[Data Source]\nDisplayName=Work\n[Alarms]\nColor=\n[Calendar]\nColor=#ff0000\nBackendName=caldav\n"

        info = calendar_info_from_source("work", data)

        assert info.color == "#ff0000"

    def test_empty_color_in_calendar_is_none(self):
        data = "[Calendar]\nColor=\n[Other]\nColor=#00ff00\n"

        assert calendar_info_from_source("c", data).color is None

    def test_display_name_falls_back_to_uid(self):
        assert calendar_info_from_source("uid-1", "[Calendar]\nBackendName=local\n").display_name == "uid-1"

    def test_source_without_calendar_section_skipped(self):
        assert calendar_info_from_source("ab", ADDRESS_BOOK) is None

    def test_keys_before_first_section_ignored(self):
        sections = parse_source_data("Stray=1\n[Calendar]\nBackendName=local\n")

        assert sections == {"Calendar": {"BackendName": "local"}}

    def test_percent_signs_not_interpolated(self):
        sections = parse_source_data("[Data Source]\nDisplayName=100% Work\n[Calendar]\n")

        assert sections["Data Source"]["DisplayName"] == "100% Work"

    def test_key_case_preserved(self):
        assert "BackendName" in parse_source_data("[Calendar]\nBackendName=caldav\n")["Calendar"]


class TestListCalendarSources:
    """Tests for discovery against the fake registry."""

    @pytest.mark.asyncio
    async def test_sorted_by_display_name_and_filtered(self, fake_bus, source_data, fake_calendar):
        fake_bus.add_source("z", source_data("Zeta"), fake_calendar(revision="2026-01-08T04:19:20Z(0)"))
        fake_bus.add_source("a", source_data("Alpha", backend="contacts"), fake_calendar())
        fake_bus.add_source("book", ADDRESS_BOOK)

        calendars = await list_calendar_sources(fake_bus)

        assert [c.display_name for c in calendars] == ["Alpha", "Zeta"]
        assert calendars[0].is_meeting_source() is False
        assert calendars[1].last_synced == "2026-01-08T04:19:20Z"

    @pytest.mark.asyncio
    async def test_unopenable_calendar_still_listed(self, fake_bus, source_data, fake_calendar):
        fake_bus.add_source("broken", source_data("Broken"), fake_calendar(fail_open=True))

        calendars = await list_calendar_sources(fake_bus)

        assert [c.uid for c in calendars] == ["broken"]
        assert calendars[0].last_synced is None

    @pytest.mark.asyncio
    async def test_without_revisions_opens_nothing(self, fake_bus, source_data, fake_calendar):
        fake_bus.add_source("w", source_data("Work"), fake_calendar())

        await list_calendar_sources(fake_bus, with_revisions=False)

        assert "OpenCalendar" not in [member for member, _ in fake_bus.calls]

    @pytest.mark.asyncio
    async def test_registry_unavailable_raises(self, fake_bus):
        fake_bus.registry_available = False

        with pytest.raises(CalendarServiceError):
            await list_calendar_sources(fake_bus)

    @pytest.mark.asyncio
    async def test_source_uids(self, fake_bus, source_data):
        fake_bus.add_source("w", source_data("Work"))
        fake_bus.add_source("book", ADDRESS_BOOK)

        assert await list_calendar_source_uids(fake_bus) == ["w"]
