"""Thin asyncio D-Bus client used by the EDS and logind integrations.

``EdsClient`` wraps one dbus-fast ``MessageBus`` connection. Everything above
it talks to the :class:`BusClient` protocol so tests can substitute an
in-memory fake through the orchestrator's ``client_factory`` argument.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from dbus_fast import BusType, Message, MessageFlag, MessageType, Variant
from dbus_fast.aio import MessageBus
from dbus_fast.errors import AuthError, DBusError, InvalidAddressError

from nextmeeting.exceptions import CalendarServiceError, ServiceCallError

logger = logging.getLogger(__name__)

DBUS_SERVICE = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
DBUS_INTERFACE = "org.freedesktop.DBus"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

DEFAULT_CALL_TIMEOUT = 10.0

SignalCallback = Callable[[list[Any]], None]


@dataclass
class SignalSubscription:
    """Handle returned by :meth:`BusClient.subscribe_signal`."""

    match_rule: str
    handler: Callable[[Message], None] | None = None


class BusClient(Protocol):
    """Operations the engine needs from a bus connection."""

    async def call(
        self,
        destination: str,
        path: str,
        interface: str,
        member: str,
        signature: str = "",
        body: Optional[list[Any]] = None,
    ) -> list[Any]: ...

    async def get_property(self, destination: str, path: str, interface: str, name: str) -> Any: ...

    def send_no_reply(
        self,
        destination: str,
        path: str,
        interface: str,
        member: str,
        signature: str = "",
        body: Optional[list[Any]] = None,
    ) -> None: ...

    async def subscribe_signal(
        self,
        *,
        sender: str,
        path: str,
        interface: str,
        member: str,
        callback: SignalCallback,
    ) -> SignalSubscription: ...

    async def unsubscribe(self, subscription: SignalSubscription) -> None: ...

    async def wait_for_disconnect(self) -> None: ...

    def disconnect(self) -> None: ...

    async def close(self) -> None: ...


ClientFactory = Callable[[BusType], Awaitable[BusClient]]


def _unwrap(value: Any) -> Any:
    """Recursively replace Variants with their values."""
    if isinstance(value, Variant):
        return _unwrap(value.value)
    if isinstance(value, dict):
        return {k: _unwrap(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_unwrap(v) for v in value]
    return value


def build_match_rule(sender: str, path: str, interface: str, member: str) -> str:
    """Build an AddMatch rule for one signal."""
    return f"type='signal',sender='{sender}',path='{path}',interface='{interface}',member='{member}'"


class EdsClient:
    """dbus-fast backed implementation of :class:`BusClient`."""

    def __init__(self, bus: MessageBus, call_timeout: float = DEFAULT_CALL_TIMEOUT):
        self.bus = bus
        self.call_timeout = call_timeout
        self._pending_sends: list[asyncio.Future[Any]] = []

    @classmethod
    async def connect(cls, bus_type: BusType = BusType.SESSION) -> EdsClient:
        """Open a connection to the session or system bus.

        Raises:
            CalendarServiceError: If the bus is not reachable
        """
        try:
            bus = await MessageBus(bus_type=bus_type).connect()
        except (OSError, EOFError, AuthError, InvalidAddressError, ValueError) as e:
            raise CalendarServiceError(f"Unable to connect to {bus_type.name.lower()} bus: {e}") from e
        logger.debug("Connected to %s bus as %s", bus_type.name.lower(), bus.unique_name)
        return cls(bus)

    async def call(
        self,
        destination: str,
        path: str,
        interface: str,
        member: str,
        signature: str = "",
        body: Optional[list[Any]] = None,
    ) -> list[Any]:
        """Call a method and return the reply body with Variants unwrapped.

        Raises:
            ServiceCallError: On error replies, timeouts or a dropped connection
        """
        message = Message(
            destination=destination,
            path=path,
            interface=interface,
            member=member,
            signature=signature,
            body=body or [],
        )
        try:
            reply = await asyncio.wait_for(self.bus.call(message), self.call_timeout)
        except asyncio.TimeoutError as e:
            raise ServiceCallError(member, f"timed out after {self.call_timeout}s") from e
        except (OSError, EOFError, DBusError) as e:
            raise ServiceCallError(member, str(e)) from e

        if reply is None:
            return []
        if reply.message_type == MessageType.ERROR:
            detail = reply.body[0] if reply.body else ""
            raise ServiceCallError(member, str(detail), error_name=reply.error_name)
        return _unwrap(list(reply.body))

    async def get_property(self, destination: str, path: str, interface: str, name: str) -> Any:
        """Read one property through org.freedesktop.DBus.Properties.Get."""
        body = await self.call(destination, path, PROPERTIES_INTERFACE, "Get", "ss", [interface, name])
        return body[0] if body else None

    def send_no_reply(
        self,
        destination: str,
        path: str,
        interface: str,
        member: str,
        signature: str = "",
        body: Optional[list[Any]] = None,
    ) -> None:
        """Send a method call without waiting for (or requesting) a reply."""
        message = Message(
            destination=destination,
            path=path,
            interface=interface,
            member=member,
            signature=signature,
            body=body or [],
            flags=MessageFlag.NO_REPLY_EXPECTED,
        )
        self._pending_sends.append(self.bus.send(message))

    async def subscribe_signal(
        self,
        *,
        sender: str,
        path: str,
        interface: str,
        member: str,
        callback: SignalCallback,
    ) -> SignalSubscription:
        """Register an AddMatch rule and a local handler for one signal.

        Raises:
            ServiceCallError: If the bus rejects the match rule
        """
        rule = build_match_rule(sender, path, interface, member)
        await self.call(DBUS_SERVICE, DBUS_PATH, DBUS_INTERFACE, "AddMatch", "s", [rule])

        def handler(message: Message) -> None:
            if (
                message.message_type == MessageType.SIGNAL
                and message.path == path
                and message.interface == interface
                and message.member == member
            ):
                callback(_unwrap(list(message.body)))

        self.bus.add_message_handler(handler)
        logger.debug("Subscribed to %s.%s on %s", interface, member, path)
        return SignalSubscription(match_rule=rule, handler=handler)

    async def unsubscribe(self, subscription: SignalSubscription) -> None:
        if subscription.handler is not None:
            self.bus.remove_message_handler(subscription.handler)
            subscription.handler = None
        if not self.bus.connected:
            return
        try:
            await self.call(
                DBUS_SERVICE, DBUS_PATH, DBUS_INTERFACE, "RemoveMatch", "s", [subscription.match_rule]
            )
        except ServiceCallError as e:
            logger.debug("RemoveMatch failed: %s", e)

    async def wait_for_disconnect(self) -> None:
        await self.bus.wait_for_disconnect()

    def disconnect(self) -> None:
        self.bus.disconnect()

    async def close(self) -> None:
        """Flush fire-and-forget sends, then disconnect."""
        pending = [f for f in self._pending_sends if not f.done()]
        self._pending_sends.clear()
        if pending:
            done, _ = await asyncio.wait(pending, timeout=self.call_timeout)
            for future in done:
                if not future.cancelled() and future.exception() is not None:
                    logger.debug("Fire-and-forget send failed: %s", future.exception())
        self.disconnect()


async def connect_bus(bus_type: BusType) -> BusClient:
    """Default client factory."""
    return await EdsClient.connect(bus_type)
