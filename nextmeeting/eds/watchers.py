"""Long-running listeners that turn D-Bus signals into re-fetch triggers.

Both watchers only ever put ``None`` into a bounded ``asyncio.Queue`` with a
non-blocking send, run until cancelled, and return quietly on systems where
the bus or the service is missing.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence
from typing import Any

from dbus_fast import BusType
from dbus_fast.errors import DBusError

from nextmeeting.core.async_utils import best_effort_put
from nextmeeting.eds.client import BusClient, ClientFactory, SignalSubscription, connect_bus
from nextmeeting.eds.session import CalendarSession
from nextmeeting.eds.sources import list_calendar_source_uids
from nextmeeting.exceptions import (
    CalendarServiceError,
    CalendarSourceError,
    ServiceCallError,
)

logger = logging.getLogger(__name__)

LOGIN1_BUS = "org.freedesktop.login1"
LOGIN1_PATH = "/org/freedesktop/login1"
LOGIN1_MANAGER_INTERFACE = "org.freedesktop.login1.Manager"
LOGIN1_SESSION_INTERFACE = "org.freedesktop.login1.Session"

CALENDAR_CHANGE_QUEUE_SIZE = 4
RESUME_QUEUE_SIZE = 2


async def _hold(client: BusClient, subscriptions: list[SignalSubscription]) -> None:
    """Keep subscriptions alive until cancelled or the bus goes away."""
    try:
        await client.wait_for_disconnect()
    except (OSError, EOFError, DBusError) as e:
        logger.debug("Bus connection closed: %s", e)
    finally:
        for subscription in subscriptions:
            try:
                await client.unsubscribe(subscription)
            except (OSError, EOFError, DBusError, ServiceCallError) as e:
                logger.debug("Unsubscribe failed: %s", e)
        client.disconnect()


async def _open_sessions(client: BusClient, source_uids: Sequence[str]) -> list[CalendarSession]:
    sessions = []
    for uid in source_uids:
        try:
            sessions.append(await CalendarSession.open(client, uid))
        except CalendarSourceError as e:
            logger.debug("Not watching %s: %s", uid, e)
    return sessions


async def watch_calendar_changes(
    enabled_uids: Sequence[str],
    queue: asyncio.Queue[None],
    client_factory: ClientFactory = connect_bus,
) -> None:
    """Signal ``queue`` whenever a watched calendar's properties change.

    An empty ``enabled_uids`` watches every calendar source.
    """
    try:
        client = await client_factory(BusType.SESSION)
    except CalendarServiceError as e:
        logger.info("Calendar change watcher disabled: %s", e)
        return

    try:
        source_uids = await list_calendar_source_uids(client)
    except CalendarServiceError as e:
        logger.info("Calendar change watcher disabled: %s", e)
        client.disconnect()
        return

    if enabled_uids:
        wanted = set(enabled_uids)
        source_uids = [uid for uid in source_uids if uid in wanted]

    def on_change(_body: list[Any]) -> None:
        best_effort_put(queue)

    subscriptions = []
    for session in await _open_sessions(client, source_uids):
        try:
            subscriptions.append(await session.subscribe_changes(on_change))
        except ServiceCallError as e:
            logger.debug("Cannot subscribe to %s: %s", session.source_uid, e)

    if not subscriptions:
        logger.debug("No calendars to watch")
        client.disconnect()
        return

    logger.info("Watching %d calendars for changes", len(subscriptions))
    await _hold(client, subscriptions)


async def _session_path(client: BusClient) -> str | None:
    try:
        body = await client.call(
            LOGIN1_BUS, LOGIN1_PATH, LOGIN1_MANAGER_INTERFACE, "GetSessionByPID", "u", [os.getpid()]
        )
    except ServiceCallError as e:
        logger.debug("No logind session for this process: %s", e)
        return None
    return str(body[0]) if body else None


async def watch_system_resume(
    queue: asyncio.Queue[None],
    client_factory: ClientFactory = connect_bus,
) -> None:
    """Signal ``queue`` when the system wakes from sleep or the session unlocks.

    Only the wake edge of PrepareForSleep (argument ``False``) fires.
    """
    try:
        client = await client_factory(BusType.SYSTEM)
    except CalendarServiceError as e:
        logger.info("Resume watcher disabled: %s", e)
        return

    def on_prepare_for_sleep(body: list[Any]) -> None:
        if body and body[0] is False:
            logger.debug("System resumed from sleep")
            best_effort_put(queue)

    def on_unlock(_body: list[Any]) -> None:
        logger.debug("Session unlocked")
        best_effort_put(queue)

    subscriptions = []
    try:
        subscriptions.append(
            await client.subscribe_signal(
                sender=LOGIN1_BUS,
                path=LOGIN1_PATH,
                interface=LOGIN1_MANAGER_INTERFACE,
                member="PrepareForSleep",
                callback=on_prepare_for_sleep,
            )
        )
    except ServiceCallError as e:
        logger.debug("Cannot subscribe to PrepareForSleep: %s", e)

    session_path = await _session_path(client)
    if session_path:
        try:
            subscriptions.append(
                await client.subscribe_signal(
                    sender=LOGIN1_BUS,
                    path=session_path,
                    interface=LOGIN1_SESSION_INTERFACE,
                    member="Unlock",
                    callback=on_unlock,
                )
            )
        except ServiceCallError as e:
            logger.debug("Cannot subscribe to Unlock: %s", e)

    if not subscriptions:
        logger.info("Resume watcher disabled: logind not available")
        client.disconnect()
        return

    await _hold(client, subscriptions)
