"""Unit tests for nextmeeting.core.timezone_utils."""

import datetime
import logging
import zoneinfo

import pytest

from nextmeeting.core.timezone_utils import (
    TimezoneTables,
    abbreviation_to_iana,
    get_local_timezone,
    now_local,
    resolve_timezone,
    strip_libical_prefix,
    warn_unresolved_timezone,
    windows_tz_to_iana,
)

pytestmark = pytest.mark.unit


class TestResolveTimezone:
    """Tests for the three-tier TZID resolver."""

    @pytest.mark.parametrize(
        ("tzid", "expected"),
        [
            ("America/New_York", "America/New_York"),
            ("america/los_angeles", "America/Los_Angeles"),
            ("Eastern Standard Time", "America/New_York"),
            ("Pacific Daylight Time", "America/Los_Angeles"),
            ("W. Europe Standard Time", "Europe/Berlin"),
            ("PST", "America/Los_Angeles"),
            ("JST", "Asia/Tokyo"),
        ],
    )
    def test_resolves_known_identifiers(self, tzid, expected):
        assert resolve_timezone(tzid) == zoneinfo.ZoneInfo(expected)

    @pytest.mark.parametrize("tzid", ["CST", "IST", "Nowhere/Special", "", None])
    def test_ambiguous_or_unknown_returns_none(self, tzid):
        assert resolve_timezone(tzid) is None

    @pytest.mark.parametrize("tzid", ["UTC", "Z", "gmt", "Etc/UTC", "Coordinated Universal Time"])
    def test_utc_aliases(self, tzid):
        assert resolve_timezone(tzid) == zoneinfo.ZoneInfo("UTC")

    def test_libical_prefix_is_stripped(self):
        tzid = "/freeassociation.sourceforge.net/tzfile/Europe/Paris"

        assert resolve_timezone(tzid) == zoneinfo.ZoneInfo("Europe/Paris")

    def test_quoted_tzid(self):
        assert resolve_timezone('"Europe/London"') == zoneinfo.ZoneInfo("Europe/London")


class TestLookupTables:
    """Tests for the individual lookup helpers."""

    def test_ambiguous_abbreviations_not_in_table(self):
        for abbrev in ("CST", "IST", "EST"):
            assert abbrev not in TimezoneTables.TZ_ABBREV_MAP

    def test_abbreviation_lookup_is_case_insensitive(self):
        assert abbreviation_to_iana("aedt") == "Australia/Sydney"

    def test_windows_daylight_name_normalized(self):
        assert windows_tz_to_iana("Central Daylight Time") == "America/Chicago"

    def test_windows_unknown_returns_none(self):
        assert windows_tz_to_iana("Martian Standard Time") is None

    def test_strip_prefix_leaves_plain_names(self):
        assert strip_libical_prefix("Asia/Tokyo") == "Asia/Tokyo"


class TestLocalTimezone:
    """Tests for local zone selection."""

    def test_configured_zone_wins(self):
        assert get_local_timezone("Europe/Berlin") == zoneinfo.ZoneInfo("Europe/Berlin")

    def test_invalid_configured_zone_falls_back_to_system(self, caplog):
        with caplog.at_level(logging.WARNING):
            zone = get_local_timezone("Not/AZone")

        assert isinstance(zone, datetime.tzinfo)
        assert "Not/AZone" in caplog.text

    def test_now_local_is_aware(self):
        now = now_local(zoneinfo.ZoneInfo("Asia/Tokyo"))

        assert now.tzinfo == zoneinfo.ZoneInfo("Asia/Tokyo")

    def test_unresolved_warning_logged_once(self, caplog):
        with caplog.at_level(logging.WARNING):
            warn_unresolved_timezone("Custom Zone")
            warn_unresolved_timezone("Custom Zone")

        assert caplog.text.count("Custom Zone") == 1
