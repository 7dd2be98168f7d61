"""Timezone resolution utilities for nextmeeting."""

from __future__ import annotations

import datetime
import logging
import zoneinfo
from functools import lru_cache
from typing import ClassVar

from dateutil import tz as dateutil_tz

logger = logging.getLogger(__name__)

# Prefixes libical-based writers (Evolution, older Thunderbird) put in front of TZIDs
LIBICAL_TZID_PREFIXES = (
    "/freeassociation.sourceforge.net/tzfile/",
    "/freeassociation.sourceforge.net/",
    "/softwarestudio.org/olson_20011030_5/",
    "/mozilla.org/20070129_1/",
    "/mozilla.org/20050126_1/",
    "/citadel.org/20190914_1/",
)


class TimezoneTables:
    """Lookup tables used by :func:`resolve_timezone`."""

    # UTC aliases, normalized to the canonical UTC zone
    UTC_ALIASES: ClassVar[frozenset[str]] = frozenset(
        {
            "utc",
            "z",
            "gmt",
            "zulu",
            "universal",
            "etc/utc",
            "etc/gmt",
            "etc/universal",
            "etc/zulu",
            "coordinated universal time",
        }
    )

    # Unambiguous abbreviations only. CST (US Central / China), IST (India /
    # Ireland / Israel), EST (US / Australia) and similar are left out.
    TZ_ABBREV_MAP: ClassVar[dict[str, str]] = {
        "PST": "America/Los_Angeles",
        "PDT": "America/Los_Angeles",
        "EDT": "America/New_York",
        "CDT": "America/Chicago",
        "MDT": "America/Denver",
        "BST": "Europe/London",
        "CEST": "Europe/Berlin",
        "JST": "Asia/Tokyo",
        "SGT": "Asia/Singapore",
        "KST": "Asia/Seoul",
        "NZST": "Pacific/Auckland",
        "NZDT": "Pacific/Auckland",
        "AEST": "Australia/Sydney",
        "AEDT": "Australia/Sydney",
        "AWST": "Australia/Perth",
    }

    # Windows zone ids to IANA identifiers (CLDR windowsZones, territory 001)
    WINDOWS_TZ_MAP: ClassVar[dict[str, str]] = {
        # Americas
        "Dateline Standard Time": "Etc/GMT+12",
        "UTC-11": "Etc/GMT+11",
        "Aleutian Standard Time": "America/Adak",
        "Hawaiian Standard Time": "Pacific/Honolulu",
        "Marquesas Standard Time": "Pacific/Marquesas",
        "Alaskan Standard Time": "America/Anchorage",
        "UTC-09": "Etc/GMT+9",
        "Pacific Standard Time (Mexico)": "America/Tijuana",
        "UTC-08": "Etc/GMT+8",
        "Pacific Standard Time": "America/Los_Angeles",
        "US Mountain Standard Time": "America/Phoenix",
        "Mountain Standard Time (Mexico)": "America/Mazatlan",
        "Mountain Standard Time": "America/Denver",
        "Yukon Standard Time": "America/Whitehorse",
        "Central America Standard Time": "America/Guatemala",
        "Central Standard Time": "America/Chicago",
        "Easter Island Standard Time": "Pacific/Easter",
        "Central Standard Time (Mexico)": "America/Mexico_City",
        "Canada Central Standard Time": "America/Regina",
        "SA Pacific Standard Time": "America/Bogota",
        "Eastern Standard Time (Mexico)": "America/Cancun",
        "Eastern Standard Time": "America/New_York",
        "Haiti Standard Time": "America/Port-au-Prince",
        "Cuba Standard Time": "America/Havana",
        "US Eastern Standard Time": "America/Indiana/Indianapolis",
        "Turks And Caicos Standard Time": "America/Grand_Turk",
        "Paraguay Standard Time": "America/Asuncion",
        "Atlantic Standard Time": "America/Halifax",
        "Venezuela Standard Time": "America/Caracas",
        "Central Brazilian Standard Time": "America/Cuiaba",
        "SA Western Standard Time": "America/La_Paz",
        "Pacific SA Standard Time": "America/Santiago",
        "Newfoundland Standard Time": "America/St_Johns",
        "Tocantins Standard Time": "America/Araguaina",
        "E. South America Standard Time": "America/Sao_Paulo",
        "SA Eastern Standard Time": "America/Cayenne",
        "Argentina Standard Time": "America/Argentina/Buenos_Aires",
        "Greenland Standard Time": "America/Nuuk",
        "Montevideo Standard Time": "America/Montevideo",
        "Magallanes Standard Time": "America/Punta_Arenas",
        "Saint Pierre Standard Time": "America/Miquelon",
        "Bahia Standard Time": "America/Bahia",
        "UTC-02": "Etc/GMT+2",
        # Europe & Africa
        "Azores Standard Time": "Atlantic/Azores",
        "Cape Verde Standard Time": "Atlantic/Cape_Verde",
        "UTC": "UTC",
        "GMT Standard Time": "Europe/London",
        "Greenwich Standard Time": "Atlantic/Reykjavik",
        "Sao Tome Standard Time": "Africa/Sao_Tome",
        "Morocco Standard Time": "Africa/Casablanca",
        "W. Europe Standard Time": "Europe/Berlin",
        "Central Europe Standard Time": "Europe/Budapest",
        "Romance Standard Time": "Europe/Paris",
        "Central European Standard Time": "Europe/Warsaw",
        "W. Central Africa Standard Time": "Africa/Lagos",
        "GTB Standard Time": "Europe/Bucharest",
        "Egypt Standard Time": "Africa/Cairo",
        "E. Europe Standard Time": "Europe/Chisinau",
        "South Africa Standard Time": "Africa/Johannesburg",
        "FLE Standard Time": "Europe/Kiev",
        "South Sudan Standard Time": "Africa/Juba",
        "Kaliningrad Standard Time": "Europe/Kaliningrad",
        "Sudan Standard Time": "Africa/Khartoum",
        "Libya Standard Time": "Africa/Tripoli",
        "Namibia Standard Time": "Africa/Windhoek",
        "Turkey Standard Time": "Europe/Istanbul",
        "Belarus Standard Time": "Europe/Minsk",
        "Russian Standard Time": "Europe/Moscow",
        "E. Africa Standard Time": "Africa/Nairobi",
        "Volgograd Standard Time": "Europe/Volgograd",
        "Astrakhan Standard Time": "Europe/Astrakhan",
        "Russia Time Zone 3": "Europe/Samara",
        "Saratov Standard Time": "Europe/Saratov",
        "Mauritius Standard Time": "Indian/Mauritius",
        # Middle East & Asia
        "Jordan Standard Time": "Asia/Amman",
        "Middle East Standard Time": "Asia/Beirut",
        "Syria Standard Time": "Asia/Damascus",
        "West Bank Standard Time": "Asia/Hebron",
        "Israel Standard Time": "Asia/Jerusalem",
        "Arabic Standard Time": "Asia/Baghdad",
        "Arab Standard Time": "Asia/Riyadh",
        "Iran Standard Time": "Asia/Tehran",
        "Arabian Standard Time": "Asia/Dubai",
        "Azerbaijan Standard Time": "Asia/Baku",
        "Georgian Standard Time": "Asia/Tbilisi",
        "Caucasus Standard Time": "Asia/Yerevan",
        "Afghanistan Standard Time": "Asia/Kabul",
        "West Asia Standard Time": "Asia/Tashkent",
        "Ekaterinburg Standard Time": "Asia/Yekaterinburg",
        "Pakistan Standard Time": "Asia/Karachi",
        "Qyzylorda Standard Time": "Asia/Qyzylorda",
        "India Standard Time": "Asia/Kolkata",
        "Sri Lanka Standard Time": "Asia/Colombo",
        "Nepal Standard Time": "Asia/Kathmandu",
        "Central Asia Standard Time": "Asia/Almaty",
        "Bangladesh Standard Time": "Asia/Dhaka",
        "Omsk Standard Time": "Asia/Omsk",
        "Myanmar Standard Time": "Asia/Yangon",
        "SE Asia Standard Time": "Asia/Bangkok",
        "Altai Standard Time": "Asia/Barnaul",
        "W. Mongolia Standard Time": "Asia/Hovd",
        "North Asia Standard Time": "Asia/Krasnoyarsk",
        "N. Central Asia Standard Time": "Asia/Novosibirsk",
        "Tomsk Standard Time": "Asia/Tomsk",
        "China Standard Time": "Asia/Shanghai",
        "North Asia East Standard Time": "Asia/Irkutsk",
        "Singapore Standard Time": "Asia/Singapore",
        "Taipei Standard Time": "Asia/Taipei",
        "Ulaanbaatar Standard Time": "Asia/Ulaanbaatar",
        "Transbaikal Standard Time": "Asia/Chita",
        "Tokyo Standard Time": "Asia/Tokyo",
        "North Korea Standard Time": "Asia/Pyongyang",
        "Korea Standard Time": "Asia/Seoul",
        "Yakutsk Standard Time": "Asia/Yakutsk",
        "Vladivostok Standard Time": "Asia/Vladivostok",
        "Russia Time Zone 10": "Asia/Srednekolymsk",
        "Magadan Standard Time": "Asia/Magadan",
        "Sakhalin Standard Time": "Asia/Sakhalin",
        "Russia Time Zone 11": "Asia/Kamchatka",
        # Australia & Pacific
        "W. Australia Standard Time": "Australia/Perth",
        "Aus Central W. Standard Time": "Australia/Eucla",
        "Cen. Australia Standard Time": "Australia/Adelaide",
        "AUS Central Standard Time": "Australia/Darwin",
        "E. Australia Standard Time": "Australia/Brisbane",
        "AUS Eastern Standard Time": "Australia/Sydney",
        "West Pacific Standard Time": "Pacific/Port_Moresby",
        "Tasmania Standard Time": "Australia/Hobart",
        "Lord Howe Standard Time": "Australia/Lord_Howe",
        "Bougainville Standard Time": "Pacific/Bougainville",
        "Norfolk Standard Time": "Pacific/Norfolk",
        "Central Pacific Standard Time": "Pacific/Guadalcanal",
        "New Zealand Standard Time": "Pacific/Auckland",
        "UTC+12": "Etc/GMT-12",
        "Fiji Standard Time": "Pacific/Fiji",
        "Chatham Islands Standard Time": "Pacific/Chatham",
        "UTC+13": "Etc/GMT-13",
        "Tonga Standard Time": "Pacific/Tongatapu",
        "Samoa Standard Time": "Pacific/Apia",
        "Line Islands Standard Time": "Pacific/Kiritimati",
    }


@lru_cache(maxsize=1)
def _iana_names_by_lower() -> dict[str, str]:
    """Map lower-cased IANA identifiers to their canonical spelling."""
    return {name.lower(): name for name in zoneinfo.available_timezones()}


@lru_cache(maxsize=1)
def _windows_names_by_lower() -> dict[str, str]:
    return {name.lower(): iana for name, iana in TimezoneTables.WINDOWS_TZ_MAP.items()}


def strip_libical_prefix(tzid: str) -> str:
    """Remove the vendor prefix libical writers put in front of IANA names.

    Examples:
        >>> strip_libical_prefix("/freeassociation.sourceforge.net/America/New_York")
        'America/New_York'
        >>> strip_libical_prefix("Europe/Berlin")
        'Europe/Berlin'
    """
    lowered = tzid.lower()
    for prefix in LIBICAL_TZID_PREFIXES:
        if lowered.startswith(prefix):
            return tzid[len(prefix) :]
    return tzid


def _zone(name: str) -> zoneinfo.ZoneInfo | None:
    try:
        return zoneinfo.ZoneInfo(name)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError):
        logger.debug("zoneinfo has no data for %r", name)
        return None


def iana_tz(tzid: str) -> zoneinfo.ZoneInfo | None:
    """Resolve a standard IANA identifier, ignoring case."""
    canonical = _iana_names_by_lower().get(tzid.lower())
    return _zone(canonical) if canonical else None


def windows_tz_to_iana(windows_tz: str) -> str | None:
    """Convert a Windows timezone name to an IANA identifier.

    The CLDR table only carries "Standard Time" ids, so "Daylight Time"
    variants are normalized before lookup.

    Args:
        windows_tz: Windows timezone name (e.g., "Pacific Daylight Time")

    Returns:
        IANA timezone identifier (e.g., "America/Los_Angeles") or None if not found
    """
    normalized = windows_tz.replace(" Daylight Time", " Standard Time")
    return _windows_names_by_lower().get(normalized.lower())


def abbreviation_to_iana(abbrev: str) -> str | None:
    """Map an unambiguous abbreviation to IANA; ambiguous ones return None."""
    return TimezoneTables.TZ_ABBREV_MAP.get(abbrev.upper())


@lru_cache(maxsize=512)
def resolve_timezone(tzid: str | None) -> zoneinfo.ZoneInfo | None:
    """Resolve a TZID parameter to a zone.

    Resolution order:
    1. standard IANA identifier, case-insensitive
    2. Windows display name via the CLDR table
    3. curated unambiguous abbreviations

    libical prefixes are stripped and UTC aliases map to ``UTC`` first.

    Args:
        tzid: TZID as found in the record (e.g. "Eastern Standard Time")

    Returns:
        ZoneInfo, or None when no tier matches (callers fall back to local time)

    Examples:
        >>> resolve_timezone("america/los_angeles")
        zoneinfo.ZoneInfo(key='America/Los_Angeles')
        >>> resolve_timezone("CST") is None
        True
    """
    if not tzid:
        return None
    name = strip_libical_prefix(tzid.strip().strip('"'))
    if not name:
        return None

    if name.lower() in TimezoneTables.UTC_ALIASES:
        return _zone("UTC")

    zone = iana_tz(name)
    if zone is not None:
        return zone

    windows = windows_tz_to_iana(name)
    if windows:
        zone = _zone(windows)
        if zone is not None:
            return zone

    abbrev = abbreviation_to_iana(name)
    if abbrev:
        return _zone(abbrev)

    return None


@lru_cache(maxsize=128)
def warn_unresolved_timezone(tzid: str) -> None:
    """Log once per TZID that it fell back to local time."""
    logger.warning("Unrecognized timezone %r, falling back to local time", tzid)


def get_local_timezone(name: str | None = None) -> datetime.tzinfo:
    """Return the configured zone, or the system local zone.

    Args:
        name: Optional zone name; anything :func:`resolve_timezone` accepts

    Returns:
        tzinfo used to normalize meeting times
    """
    if name:
        zone = resolve_timezone(name)
        if zone is not None:
            return zone
        logger.warning("Configured timezone %r is invalid; using system local zone", name)
    return dateutil_tz.tzlocal()


def now_local(local_tz: datetime.tzinfo) -> datetime.datetime:
    """Current time as an aware datetime in ``local_tz``."""
    return datetime.datetime.now(datetime.UTC).astimezone(local_tz)
