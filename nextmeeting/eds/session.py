"""Calendar sessions opened through the EDS calendar factory."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, Optional

from nextmeeting.calendar.datetime_utils import format_query_time
from nextmeeting.eds.client import PROPERTIES_INTERFACE, BusClient, SignalSubscription
from nextmeeting.exceptions import CalendarSourceError, ServiceCallError

logger = logging.getLogger(__name__)

CALENDAR_FACTORY_BUS = "org.gnome.evolution.dataserver.Calendar8"
CALENDAR_FACTORY_PATH = "/org/gnome/evolution/dataserver/CalendarFactory"
CALENDAR_FACTORY_INTERFACE = "org.gnome.evolution.dataserver.CalendarFactory"
CALENDAR_INTERFACE = "org.gnome.evolution.dataserver.Calendar"


def build_time_range_query(start: datetime, end: datetime) -> str:
    """S-expression selecting objects with an occurrence in ``[start, end]``.

    Examples:
        >>> from datetime import UTC, datetime
        >>> build_time_range_query(datetime(2025, 1, 1, tzinfo=UTC), datetime(2025, 1, 2, tzinfo=UTC))
        '(occur-in-time-range? (make-time "20250101T000000Z") (make-time "20250102T000000Z"))'
    """
    return (
        f'(occur-in-time-range? (make-time "{format_query_time(start)}") '
        f'(make-time "{format_query_time(end)}"))'
    )


def parse_revision_timestamp(revision: Optional[str]) -> Optional[str]:
    """Strip the ``(n)`` counter EDS appends to revision timestamps.

    Examples:
        >>> parse_revision_timestamp("2026-01-08T04:19:20Z(0)")
        '2026-01-08T04:19:20Z'
    """
    if not revision:
        return None
    timestamp = revision.split("(", 1)[0].strip()
    return timestamp or None


class CalendarSession:
    """An opened calendar object for one source uid."""

    def __init__(self, client: BusClient, source_uid: str, object_path: str, bus_name: str):
        self.client = client
        self.source_uid = source_uid
        self.object_path = object_path
        self.bus_name = bus_name

    def __repr__(self) -> str:
        return f"CalendarSession({self.source_uid!r}, {self.object_path!r})"

    @classmethod
    async def open(cls, client: BusClient, source_uid: str) -> CalendarSession:
        """Open the calendar for ``source_uid``.

        Raises:
            CalendarSourceError: If the factory rejects the request
        """
        try:
            body = await client.call(
                CALENDAR_FACTORY_BUS,
                CALENDAR_FACTORY_PATH,
                CALENDAR_FACTORY_INTERFACE,
                "OpenCalendar",
                "s",
                [source_uid],
            )
        except ServiceCallError as e:
            raise CalendarSourceError(source_uid, f"OpenCalendar failed: {e}") from e
        if len(body) < 2:
            raise CalendarSourceError(source_uid, f"unexpected OpenCalendar reply {body!r}")
        object_path, bus_name = str(body[0]), str(body[1])
        logger.debug("Opened calendar %s at %s on %s", source_uid, object_path, bus_name)
        return cls(client, source_uid, object_path, bus_name)

    async def _property(self, name: str) -> Any:
        return await self.client.get_property(self.bus_name, self.object_path, CALENDAR_INTERFACE, name)

    async def identity_email(self) -> Optional[str]:
        """The calendar's own email address (CalEmailAddress), if any."""
        try:
            value = await self._property("CalEmailAddress")
        except ServiceCallError as e:
            logger.debug("No CalEmailAddress for %s: %s", self.source_uid, e)
            return None
        email = str(value or "").strip()
        return email or None

    async def revision(self) -> Optional[str]:
        """Raw Revision property, e.g. ``2026-01-08T04:19:20Z(0)``."""
        try:
            value = await self._property("Revision")
        except ServiceCallError as e:
            logger.debug("No Revision for %s: %s", self.source_uid, e)
            return None
        return str(value) if value else None

    async def query_range(self, start: datetime, end: datetime) -> list[str]:
        """Raw iCalendar objects with an occurrence inside ``[start, end]``.

        Raises:
            CalendarSourceError: If the query fails
        """
        query = build_time_range_query(start, end)
        try:
            body = await self.client.call(
                self.bus_name, self.object_path, CALENDAR_INTERFACE, "GetObjectList", "s", [query]
            )
        except ServiceCallError as e:
            raise CalendarSourceError(self.source_uid, f"GetObjectList failed: {e}") from e
        objects = body[0] if body else []
        logger.debug("Source %s returned %d objects", self.source_uid, len(objects))
        return [str(obj) for obj in objects]

    def request_refresh(self) -> None:
        """Ask the backend to sync with its remote server; does not wait."""
        self.client.send_no_reply(self.bus_name, self.object_path, CALENDAR_INTERFACE, "Refresh")
        logger.debug("Requested refresh of %s", self.source_uid)

    async def subscribe_changes(self, callback: Callable[[list[Any]], None]) -> SignalSubscription:
        """Subscribe to PropertiesChanged on this calendar object."""
        return await self.client.subscribe_signal(
            sender=self.bus_name,
            path=self.object_path,
            interface=PROPERTIES_INTERFACE,
            member="PropertiesChanged",
            callback=callback,
        )
