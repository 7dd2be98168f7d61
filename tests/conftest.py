"""Shared fixtures: an in-memory calendar service on a fake bus client."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Optional

import pytest
from dbus_fast import BusType

from nextmeeting.config import EngineSettings
from nextmeeting.core.timezone_utils import resolve_timezone, warn_unresolved_timezone
from nextmeeting.eds.client import SignalSubscription, build_match_rule
from nextmeeting.eds.session import CALENDAR_FACTORY_BUS
from nextmeeting.eds.sources import SOURCE_INTERFACE
from nextmeeting.exceptions import CalendarServiceError, ServiceCallError

CALENDAR_PATH_PREFIX = "/org/gnome/evolution/dataserver/Calendar/"
SESSION_PATH = "/org/freedesktop/login1/session/_31"


@dataclass
class FakeCalendar:
    """One calendar as the fake service exposes it.

    Fields:
      - objects: raw iCalendar strings returned by GetObjectList
      - email: CalEmailAddress property
      - revision: Revision property
      - fail_open / fail_query: make OpenCalendar / GetObjectList error out
      - delay: seconds GetObjectList sleeps before answering
    """

    objects: list[str] = field(default_factory=list)
    email: Optional[str] = None
    revision: Optional[str] = None
    fail_open: bool = False
    fail_query: bool = False
    delay: float = 0.0


class FakeBusClient:
    """In-memory stand-in for EdsClient speaking the EDS and logind calls."""

    def __init__(self) -> None:
        self.sources: dict[str, str] = {}
        self.calendars: dict[str, FakeCalendar] = {}
        self.calls: list[tuple[str, list[Any]]] = []
        self.sent: list[tuple[str, str]] = []
        self.subscriptions: list[tuple[str, str, str, Callable[[list[Any]], None]]] = []
        self.match_rules: list[str] = []
        self.logind_available = True
        self.registry_available = True
        self.closed = 0
        self._disconnected = asyncio.Event()

    def add_source(self, uid: str, data: str, calendar: Optional[FakeCalendar] = None) -> None:
        self.sources[uid] = data
        if calendar is not None:
            self.calendars[uid] = calendar

    @staticmethod
    def calendar_path(uid: str) -> str:
        return CALENDAR_PATH_PREFIX + uid

    def _calendar_at(self, path: str) -> FakeCalendar:
        uid = path[len(CALENDAR_PATH_PREFIX) :]
        return self.calendars[uid]

    async def call(
        self,
        destination: str,
        path: str,
        interface: str,
        member: str,
        signature: str = "",
        body: Optional[list[Any]] = None,
    ) -> list[Any]:
        body = body or []
        self.calls.append((member, body))

        if member == "GetManagedObjects":
            if not self.registry_available:
                raise ServiceCallError(member, "service unknown")
            return [
                {
                    f"/org/gnome/evolution/dataserver/SourceManager/Source_{i}": {
                        SOURCE_INTERFACE: {"UID": uid, "Data": data}
                    }
                    for i, (uid, data) in enumerate(self.sources.items())
                }
            ]
        if member == "OpenCalendar":
            uid = body[0]
            calendar = self.calendars.get(uid)
            if calendar is None or calendar.fail_open:
                raise ServiceCallError(member, f"no calendar {uid}", error_name="org.gnome.Error")
            return [self.calendar_path(uid), CALENDAR_FACTORY_BUS]
        if member == "GetObjectList":
            calendar = self._calendar_at(path)
            if calendar.delay:
                await asyncio.sleep(calendar.delay)
            if calendar.fail_query:
                raise ServiceCallError(member, "query failed")
            return [list(calendar.objects)]
        if member == "Get":
            _interface, name = body
            calendar = self._calendar_at(path)
            return [{"CalEmailAddress": calendar.email, "Revision": calendar.revision}.get(name)]
        if member == "AddMatch":
            self.match_rules.append(body[0])
            return []
        if member == "RemoveMatch":
            self.match_rules.remove(body[0])
            return []
        if member == "GetSessionByPID":
            if not self.logind_available:
                raise ServiceCallError(member, "no session")
            return [SESSION_PATH]
        raise ServiceCallError(member, "unknown method")

    async def get_property(self, destination: str, path: str, interface: str, name: str) -> Any:
        body = await self.call(destination, path, "org.freedesktop.DBus.Properties", "Get", "ss", [interface, name])
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
        self.sent.append((path, member))

    async def subscribe_signal(
        self,
        *,
        sender: str,
        path: str,
        interface: str,
        member: str,
        callback: Callable[[list[Any]], None],
    ) -> SignalSubscription:
        if member in ("PrepareForSleep", "Unlock") and not self.logind_available:
            raise ServiceCallError("AddMatch", "logind missing")
        rule = build_match_rule(sender, path, interface, member)
        await self.call("org.freedesktop.DBus", "/org/freedesktop/DBus", "org.freedesktop.DBus", "AddMatch", "s", [rule])
        self.subscriptions.append((path, interface, member, callback))
        return SignalSubscription(match_rule=rule)

    async def unsubscribe(self, subscription: SignalSubscription) -> None:
        if subscription.match_rule in self.match_rules:
            self.match_rules.remove(subscription.match_rule)

    def emit(self, path: str, interface: str, member: str, body: list[Any]) -> int:
        """Deliver a signal to matching subscribers; returns how many got it."""
        delivered = 0
        for sub_path, sub_interface, sub_member, callback in list(self.subscriptions):
            if (sub_path, sub_interface, sub_member) == (path, interface, member):
                callback(body)
                delivered += 1
        return delivered

    async def wait_for_disconnect(self) -> None:
        await self._disconnected.wait()

    def disconnect(self) -> None:
        self._disconnected.set()

    async def close(self) -> None:
        self.closed += 1
        self.disconnect()


@pytest.fixture
def fake_bus() -> FakeBusClient:
    """Fresh fake bus for one test."""
    return FakeBusClient()


@pytest.fixture
def fake_calendar() -> type[FakeCalendar]:
    """The FakeCalendar class, for building calendars inside tests."""
    return FakeCalendar


@pytest.fixture
def client_factory(fake_bus: FakeBusClient) -> Callable[[BusType], Any]:
    """Client factory handing out ``fake_bus`` for both buses.

    Each call resets the disconnect flag so sequential connections behave
    like new ones.
    """

    async def factory(bus_type: BusType) -> FakeBusClient:
        fake_bus._disconnected = asyncio.Event()
        return fake_bus

    return factory


@pytest.fixture
def unavailable_factory() -> Callable[[BusType], Any]:
    """Client factory simulating a machine without a reachable bus."""

    async def factory(bus_type: BusType) -> FakeBusClient:
        raise CalendarServiceError(f"Unable to connect to {bus_type.name.lower()} bus")

    return factory


@pytest.fixture
def engine_settings() -> EngineSettings:
    """Deterministic settings: UTC normalization and no refresh settle delay."""
    return EngineSettings(local_timezone="UTC", refresh_settle_seconds=0.0, fetch_timeout=5.0)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2025, 3, 10, 9, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def clear_timezone_caches() -> None:
    """Reset lru caches so warnings and lookups are observed per test."""
    resolve_timezone.cache_clear()
    warn_unresolved_timezone.cache_clear()


def make_vevent(
    uid: str,
    dtstart: str,
    dtend: Optional[str] = None,
    summary: Optional[str] = "Meeting",
    extra: tuple[str, ...] = (),
) -> str:
    """Build a bare VEVENT record the way the calendar service returns them."""
    lines = ["BEGIN:VEVENT", f"UID:{uid}", f"DTSTART{dtstart}"]
    if dtend is not None:
        lines.append(f"DTEND{dtend}")
    if summary is not None:
        lines.append(f"SUMMARY:{summary}")
    lines.extend(extra)
    lines.append("END:VEVENT")
    return "\r\n".join(lines) + "\r\n"


@pytest.fixture
def vevent() -> Callable[..., str]:
    """Factory for bare VEVENT strings; DTSTART/DTEND take ``:value`` or ``;params:value``."""
    return make_vevent


CALDAV_SOURCE = """[Data Source]
DisplayName={name}
Enabled=true
Parent=caldav-stub

[Calendar]
BackendName={backend}
Color={color}
Selected=true
"""


@pytest.fixture
def source_data() -> Callable[..., str]:
    """Factory for source Data blocks with a [Calendar] section."""

    def build(name: str, backend: str = "caldav", color: str = "#62a0ea") -> str:
        return CALDAV_SOURCE.format(name=name, backend=backend, color=color)

    return build


def pytest_configure(config: Any) -> None:
    """Register markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests exercising the full fetch pipeline")
