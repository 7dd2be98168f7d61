"""Fetch orchestration across calendar sources for nextmeeting."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Sequence
from typing import Optional

from dbus_fast import BusType

from .calendar.attendee_parser import build_user_emails
from .calendar.rrule_expander import RecurrenceExpander, RRuleExpanderConfig
from .config import EngineSettings
from .core.async_utils import bounded, gather_with_timeout
from .core.timezone_utils import get_local_timezone, now_local
from .domain.event_filter import enabled_meeting_source_uids, rank_meetings
from .domain.meeting_builder import FetchWindow, MeetingBuilder
from .eds.client import BusClient, ClientFactory, connect_bus
from .eds.session import CalendarSession
from .eds.sources import list_calendar_sources
from .eds.watchers import watch_calendar_changes, watch_system_resume
from .exceptions import CalendarServiceError, CalendarSourceError
from .models import CalendarInfo, Meeting

logger = logging.getLogger(__name__)


class FetchOrchestrator:
    """Fetches calendars and meetings from the local calendar service.

    Each public call opens its own session bus connection and closes it when
    done. Failures of the service as a whole degrade to empty results; a
    failing source only drops that source's meetings.
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        client_factory: ClientFactory = connect_bus,
    ):
        """Initialize fetch orchestrator.

        Args:
            settings: Pipeline settings (defaults to EngineSettings())
            client_factory: Coroutine returning a connected BusClient for a bus type
        """
        self.settings = settings or EngineSettings()
        self.client_factory = client_factory

    async def _connect(self) -> Optional[BusClient]:
        try:
            return await self.client_factory(BusType.SESSION)
        except CalendarServiceError as e:
            logger.warning("Calendar service unavailable: %s", e)
            return None

    async def _resolve_sources(self, client: BusClient, enabled_uids: Sequence[str]) -> list[str]:
        """Enabled uids narrowed to discovered meeting calendars.

        An empty ``enabled_uids`` selects every meeting calendar. Unknown uids and
        non-meeting backends (contacts, weather, birthdays) are dropped.
        """
        try:
            calendars = await list_calendar_sources(client, with_revisions=False)
        except CalendarServiceError as e:
            logger.warning("Unable to list calendars: %s", e)
            return []
        if not calendars:
            return []
        return enabled_meeting_source_uids(calendars, enabled_uids)

    async def get_available_calendars(self) -> list[CalendarInfo]:
        """Every calendar source, sorted by display name; [] when unavailable."""
        if self.settings.simulate_no_calendars:
            logger.debug("Simulating an empty calendar list")
            return []

        client = await self._connect()
        if client is None:
            return []
        try:
            return await list_calendar_sources(client)
        except CalendarServiceError as e:
            logger.warning("Unable to list calendars: %s", e)
            return []
        finally:
            await client.close()

    async def get_upcoming_meetings(
        self,
        enabled_uids: Sequence[str],
        limit: int,
        extra_emails: Sequence[str] = (),
        now: Optional[datetime.datetime] = None,
    ) -> list[Meeting]:
        """Upcoming meetings across ``enabled_uids``, sorted by start.

        Args:
            enabled_uids: Calendar uids to query; empty means every meeting calendar
            limit: Maximum number of meetings (at least one is always allowed)
            extra_emails: Addresses identifying the user besides each calendar's own
            now: Reference time (defaults to the current local time)

        Returns:
            At most ``max(limit, 1)`` meetings in ascending start order
        """
        if self.settings.simulate_no_calendars:
            return []

        local_tz = get_local_timezone(self.settings.local_timezone)
        now = now_local(local_tz) if now is None else now.astimezone(local_tz)
        window = FetchWindow.around(
            now, self.settings.query_lookback_minutes, self.settings.query_lookahead_days
        )
        builder = MeetingBuilder(
            local_tz, RecurrenceExpander(RRuleExpanderConfig.from_settings(self.settings))
        )

        client = await self._connect()
        if client is None:
            return []

        semaphore = asyncio.Semaphore(self.settings.max_concurrency)
        try:
            uids = await self._resolve_sources(client, enabled_uids)
            results = await gather_with_timeout(
                *(
                    bounded(semaphore, self._fetch_source(client, uid, builder, extra_emails, window))
                    for uid in uids
                ),
                timeout=self.settings.fetch_timeout,
                return_exceptions=True,
            )
        finally:
            await client.close()

        meetings: list[Meeting] = []
        for uid, result in zip(uids, results):
            if isinstance(result, BaseException):
                logger.warning("Skipping calendar %s: %s", uid, result)
                continue
            meetings.extend(result)

        ranked = rank_meetings(meetings, limit)
        logger.debug(
            "Fetched %d meetings from %d calendars, returning %d",
            len(meetings),
            len(uids),
            len(ranked),
        )
        return ranked

    async def _fetch_source(
        self,
        client: BusClient,
        uid: str,
        builder: MeetingBuilder,
        extra_emails: Sequence[str],
        window: FetchWindow,
    ) -> list[Meeting]:
        session = await CalendarSession.open(client, uid)
        user_emails = build_user_emails(await session.identity_email(), extra_emails)
        records = await session.query_range(window.query_start, window.query_end)
        return builder.build(records, uid, user_emails, window)

    async def refresh_calendars(self, enabled_uids: Sequence[str]) -> int:
        """Ask each calendar's backend to sync with its server.

        Requests are fire-and-forget; completion is observed through the
        calendar change watcher or the next fetch.

        Args:
            enabled_uids: Calendar uids to refresh; empty means every meeting calendar

        Returns:
            Number of calendars a refresh was requested for
        """
        if self.settings.simulate_no_calendars:
            return 0
        client = await self._connect()
        if client is None:
            return 0

        requested = 0
        try:
            uids = await self._resolve_sources(client, enabled_uids)
            for uid in uids:
                try:
                    session = await CalendarSession.open(client, uid)
                except CalendarSourceError as e:
                    logger.debug("Not refreshing %s: %s", uid, e)
                    continue
                session.request_refresh()
                requested += 1
        finally:
            await client.close()

        logger.info("Requested refresh of %d of %d calendars", requested, len(uids))
        return requested

    async def refresh_and_fetch(
        self,
        enabled_uids: Sequence[str],
        limit: int,
        extra_emails: Sequence[str] = (),
    ) -> list[Meeting]:
        """Request a refresh, wait briefly, then fetch."""
        await self.refresh_calendars(enabled_uids)
        if self.settings.refresh_settle_seconds > 0:
            await asyncio.sleep(self.settings.refresh_settle_seconds)
        return await self.get_upcoming_meetings(enabled_uids, limit, extra_emails)

    async def fetch_raw_records(self, uid: str) -> list[str]:
        """Raw iCalendar records of one calendar inside the default window.

        Raises:
            CalendarServiceError: If the service is unreachable
            CalendarSourceError: If the calendar cannot be opened or queried
        """
        client = await self.client_factory(BusType.SESSION)
        try:
            local_tz = get_local_timezone(self.settings.local_timezone)
            window = FetchWindow.around(
                now_local(local_tz),
                self.settings.query_lookback_minutes,
                self.settings.query_lookahead_days,
            )
            session = await CalendarSession.open(client, uid)
            return await session.query_range(window.query_start, window.query_end)
        finally:
            await client.close()


async def get_available_calendars(
    *,
    settings: Optional[EngineSettings] = None,
    client_factory: ClientFactory = connect_bus,
) -> list[CalendarInfo]:
    """List calendar sources; see FetchOrchestrator.get_available_calendars."""
    return await FetchOrchestrator(settings, client_factory).get_available_calendars()


async def get_upcoming_meetings(
    enabled_uids: Sequence[str],
    limit: int,
    extra_emails: Sequence[str] = (),
    *,
    settings: Optional[EngineSettings] = None,
    client_factory: ClientFactory = connect_bus,
    now: Optional[datetime.datetime] = None,
) -> list[Meeting]:
    """Fetch upcoming meetings; see FetchOrchestrator.get_upcoming_meetings."""
    orchestrator = FetchOrchestrator(settings, client_factory)
    return await orchestrator.get_upcoming_meetings(enabled_uids, limit, extra_emails, now=now)


async def refresh_calendars(
    enabled_uids: Sequence[str],
    *,
    settings: Optional[EngineSettings] = None,
    client_factory: ClientFactory = connect_bus,
) -> int:
    return await FetchOrchestrator(settings, client_factory).refresh_calendars(enabled_uids)


async def refresh_and_fetch(
    enabled_uids: Sequence[str],
    limit: int,
    extra_emails: Sequence[str] = (),
    *,
    settings: Optional[EngineSettings] = None,
    client_factory: ClientFactory = connect_bus,
) -> list[Meeting]:
    orchestrator = FetchOrchestrator(settings, client_factory)
    return await orchestrator.refresh_and_fetch(enabled_uids, limit, extra_emails)


__all__ = [
    "FetchOrchestrator",
    "get_available_calendars",
    "get_upcoming_meetings",
    "refresh_and_fetch",
    "refresh_calendars",
    "watch_calendar_changes",
    "watch_system_resume",
]
