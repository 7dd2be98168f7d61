"""Calendar source discovery through the EDS source registry.

Each registry object carries its configuration as an INI-like ``Data``
string. It is parsed once into a section -> key -> value map and queried
from there, so a key in one section never shadows the same key in another
(``Color`` lives in ``[Calendar]``; other sections may carry an empty one).
"""

from __future__ import annotations

import asyncio
import configparser
import logging
from typing import Any, Optional

from nextmeeting.eds.client import BusClient
from nextmeeting.eds.session import CalendarSession, parse_revision_timestamp
from nextmeeting.exceptions import CalendarServiceError, CalendarSourceError, ServiceCallError
from nextmeeting.models import CalendarInfo

logger = logging.getLogger(__name__)

SOURCES_BUS = "org.gnome.evolution.dataserver.Sources5"
SOURCE_MANAGER_PATH = "/org/gnome/evolution/dataserver/SourceManager"
OBJECT_MANAGER_INTERFACE = "org.freedesktop.DBus.ObjectManager"
SOURCE_INTERFACE = "org.gnome.evolution.dataserver.Source"

CALENDAR_SECTION = "Calendar"
DATA_SOURCE_SECTION = "Data Source"

SourceData = dict[str, dict[str, str]]


def parse_source_data(data: str) -> SourceData:
    """Parse a source ``Data`` block into a section -> key -> value map.

    Key case is preserved and interpolation is off. Lines that do not parse
    are skipped; everything readable is kept.

    Examples:
        >>> parse_source_data("[Calendar]\\nColor=#62a0ea")["Calendar"]["Color"]
        '#62a0ea'
    """
    parser = configparser.ConfigParser(
        interpolation=None,
        strict=False,
        delimiters=("=",),
        comment_prefixes=("#", ";"),
        allow_no_value=True,
        default_section="\x00",
    )
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    try:
        parser.read_string(data)
    except configparser.MissingSectionHeaderError:
        logger.debug("Source data has keys before the first section; ignoring them")
        first_section = data.find("\n[")
        if first_section == -1:
            return {}
        return parse_source_data(data[first_section + 1 :])
    except configparser.ParsingError as e:
        logger.debug("Skipping malformed source data lines: %s", e)

    return {
        section: {key: (value or "").strip() for key, value in parser.items(section, raw=True)}
        for section in parser.sections()
    }


def _first_value(sections: SourceData, key: str, preferred: str) -> Optional[str]:
    value = sections.get(preferred, {}).get(key)
    if value:
        return value
    for values in sections.values():
        if values.get(key):
            return values[key]
    return None


def calendar_info_from_source(uid: str, data: str) -> Optional[CalendarInfo]:
    """Build CalendarInfo for a source, or None if it is not a calendar."""
    sections = parse_source_data(data)
    if CALENDAR_SECTION not in sections:
        return None
    calendar = sections[CALENDAR_SECTION]
    return CalendarInfo(
        uid=uid,
        display_name=_first_value(sections, "DisplayName", DATA_SOURCE_SECTION) or uid,
        color=calendar.get("Color") or None,
        backend=calendar.get("BackendName") or None,
    )


async def _managed_sources(client: BusClient) -> list[tuple[str, str]]:
    """(uid, Data) for every object exposing the Source interface.

    Raises:
        CalendarServiceError: If the registry does not answer
    """
    try:
        body = await client.call(SOURCES_BUS, SOURCE_MANAGER_PATH, OBJECT_MANAGER_INTERFACE, "GetManagedObjects")
    except ServiceCallError as e:
        raise CalendarServiceError(f"Source registry unavailable: {e}") from e

    objects: dict[str, Any] = body[0] if body else {}
    sources = []
    for _path, interfaces in objects.items():
        props = interfaces.get(SOURCE_INTERFACE)
        if not props:
            continue
        uid = props.get("UID")
        data = props.get("Data")
        if isinstance(uid, str) and uid and isinstance(data, str):
            sources.append((uid, data))
    return sources


async def list_calendar_source_uids(client: BusClient) -> list[str]:
    """Uids of every source whose Data block has a [Calendar] section.

    Raises:
        CalendarServiceError: If the registry does not answer
    """
    return [
        uid
        for uid, data in await _managed_sources(client)
        if CALENDAR_SECTION in parse_source_data(data)
    ]


async def _last_synced(client: BusClient, calendar: CalendarInfo) -> CalendarInfo:
    try:
        session = await CalendarSession.open(client, calendar.uid)
    except CalendarSourceError as e:
        logger.debug("Cannot read revision of %s: %s", calendar.uid, e)
        return calendar
    last_synced = parse_revision_timestamp(await session.revision())
    return calendar.model_copy(update={"last_synced": last_synced}) if last_synced else calendar


async def list_calendar_sources(client: BusClient, with_revisions: bool = True) -> list[CalendarInfo]:
    """Discover calendar sources, sorted by display name.

    Args:
        client: Session bus client
        with_revisions: Also open each calendar to read its last sync time

    Raises:
        CalendarServiceError: If the registry does not answer
    """
    calendars = []
    for uid, data in await _managed_sources(client):
        info = calendar_info_from_source(uid, data)
        if info is not None:
            calendars.append(info)

    if with_revisions and calendars:
        calendars = list(await asyncio.gather(*(_last_synced(client, c) for c in calendars)))

    calendars.sort(key=lambda c: c.display_name)
    logger.debug("Discovered %d calendar sources", len(calendars))
    return calendars
