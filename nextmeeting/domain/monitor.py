"""Long-running consumer that keeps an upcoming-meetings list current.

``MeetingMonitor`` runs the calendar change and system resume watchers,
a periodic re-fetch timer and the optional upstream auto-refresh. Bursts of
notifications are coalesced into a single re-fetch, and every result is
handed to an async callback.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Optional

from nextmeeting.config import Config
from nextmeeting.core.async_utils import cancel_tasks
from nextmeeting.core.timezone_utils import get_local_timezone, now_local
from nextmeeting.domain.event_filter import MeetingDisplayFilter, enabled_meeting_source_uids
from nextmeeting.eds.watchers import (
    CALENDAR_CHANGE_QUEUE_SIZE,
    RESUME_QUEUE_SIZE,
    watch_calendar_changes,
    watch_system_resume,
)
from nextmeeting.fetch_orchestrator import FetchOrchestrator
from nextmeeting.models import CalendarInfo, Meeting

logger = logging.getLogger(__name__)

MeetingsCallback = Callable[[list[Meeting]], Awaitable[None]]
CalendarsCallback = Callable[[list[CalendarInfo]], Awaitable[None]]


async def _drain(queue: asyncio.Queue[None]) -> int:
    """Wait for one notification, then consume any queued behind it."""
    await queue.get()
    drained = 1
    while True:
        try:
            queue.get_nowait()
        except asyncio.QueueEmpty:
            return drained
        drained += 1


class MeetingMonitor:
    """Re-fetches meetings on change, resume and timer events."""

    def __init__(
        self,
        config: Config,
        on_update: MeetingsCallback,
        orchestrator: Optional[FetchOrchestrator] = None,
        on_calendars: Optional[CalendarsCallback] = None,
    ):
        """Initialize the monitor.

        Args:
            config: User configuration (display options, intervals, emails)
            on_update: Awaited with the displayed meetings after every re-fetch
            orchestrator: Fetch orchestrator (defaults to one built from config)
            on_calendars: Optional callback awaited with the discovered calendars
        """
        self.config = config
        self.on_update = on_update
        self.on_calendars = on_calendars
        self.orchestrator = orchestrator or FetchOrchestrator(config.engine_settings())
        self.display_filter = MeetingDisplayFilter.from_config(config)
        self._local_tz = get_local_timezone(config.engine.local_timezone)
        self._lock = asyncio.Lock()
        self.enabled_uids: list[str] = []

    async def refresh_once(self, request_upstream: bool = False) -> list[Meeting]:
        """Re-read calendars and meetings and publish the displayed list.

        Args:
            request_upstream: Ask each calendar to sync with its server first

        Returns:
            The meetings handed to ``on_update``
        """
        async with self._lock:
            calendars = await self.orchestrator.get_available_calendars()
            if self.on_calendars is not None:
                await self.on_calendars(calendars)
            self.enabled_uids = enabled_meeting_source_uids(calendars, self.config.enabled_calendar_uids)

            count = self.config.upcoming_events_count
            # One extra so an in-progress meeting hidden by the display filter leaves a full list
            if request_upstream:
                meetings = await self.orchestrator.refresh_and_fetch(
                    self.enabled_uids, count + 1, self.config.additional_emails
                )
            else:
                meetings = await self.orchestrator.get_upcoming_meetings(
                    self.enabled_uids, count + 1, self.config.additional_emails
                )

            shown = self.display_filter.apply(meetings, now_local(self._local_tz))[:count]
            logger.debug("Publishing %d meetings", len(shown))
            await self.on_update(shown)
            return shown

    async def _safe_refresh(self, reason: str, request_upstream: bool = False) -> None:
        logger.debug("Re-fetching meetings (%s)", reason)
        try:
            await self.refresh_once(request_upstream=request_upstream)
        except Exception:
            logger.exception("Meeting refresh failed (%s)", reason)

    async def _consume_changes(self, queue: asyncio.Queue[None]) -> None:
        while True:
            drained = await _drain(queue)
            logger.debug("Coalesced %d calendar change notifications", drained)
            await self._safe_refresh("calendar changed")

    async def _consume_resume(self, queue: asyncio.Queue[None]) -> None:
        while True:
            await _drain(queue)
            await self._safe_refresh("system resumed", request_upstream=self.config.auto_refresh_enabled)

    async def _periodic_refetch(self) -> None:
        interval = self.config.refetch_interval_seconds
        logger.debug("Re-fetch timer running every %d seconds", interval)
        while True:
            await asyncio.sleep(interval)
            await self._safe_refresh("timer")

    async def _auto_refresh(self) -> None:
        interval = self.config.auto_refresh_interval_minutes * 60
        logger.info("Auto-refresh every %d minutes", self.config.auto_refresh_interval_minutes)
        while True:
            # The initial fetch already covers the first tick
            await asyncio.sleep(interval)
            await self._safe_refresh("auto-refresh", request_upstream=True)

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run until ``stop_event`` is set, then cancel all background work."""
        await self._safe_refresh("startup")

        changes: asyncio.Queue[None] = asyncio.Queue(maxsize=CALENDAR_CHANGE_QUEUE_SIZE)
        resumes: asyncio.Queue[None] = asyncio.Queue(maxsize=RESUME_QUEUE_SIZE)
        client_factory = self.orchestrator.client_factory

        tasks = [
            asyncio.create_task(watch_calendar_changes(self.enabled_uids, changes, client_factory)),
            asyncio.create_task(watch_system_resume(resumes, client_factory)),
            asyncio.create_task(self._consume_changes(changes)),
            asyncio.create_task(self._consume_resume(resumes)),
            asyncio.create_task(self._periodic_refetch()),
        ]
        if self.config.auto_refresh_enabled:
            tasks.append(asyncio.create_task(self._auto_refresh()))

        try:
            await stop_event.wait()
        finally:
            logger.debug("Stopping meeting monitor")
            await cancel_tasks(tasks)
