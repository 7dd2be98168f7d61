"""Data models for calendar sources, parsed records and meetings."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

NON_MEETING_BACKENDS = frozenset({"contacts", "weather", "birthdays"})

DEFAULT_EVENT_TITLE = "Untitled Event"


class AttendanceStatus(str, Enum):
    """The user's participation status for a meeting."""

    ACCEPTED = "accepted"
    TENTATIVE = "tentative"
    DECLINED = "declined"
    NEEDS_ACTION = "needs_action"
    NONE = "none"


class CalendarInfo(BaseModel):
    """A calendar source discovered on the calendar service."""

    uid: str = Field(..., description="Source uid")
    display_name: str = Field(..., description="Human-readable calendar name")
    color: Optional[str] = Field(default=None, description="Hex color, e.g. #62a0ea")
    last_synced: Optional[str] = Field(default=None, description="ISO-8601 revision timestamp")
    backend: Optional[str] = Field(default=None, description="Backend name, e.g. caldav")

    model_config = ConfigDict(frozen=True)

    def is_meeting_source(self) -> bool:
        """Return False for backends that never hold schedulable events."""
        return (self.backend or "").lower() not in NON_MEETING_BACKENDS


class AttendeeEntry(BaseModel):
    """One ATTENDEE property of a raw record."""

    value: str = Field(default="", description="Raw property value, usually mailto:")
    email: Optional[str] = Field(default=None, description="EMAIL parameter")
    partstat: Optional[str] = Field(default=None, description="PARTSTAT parameter")
    common_name: Optional[str] = Field(default=None, description="CN parameter")

    model_config = ConfigDict(frozen=True)

    def address(self) -> Optional[str]:
        """Email for matching: EMAIL parameter first, then the mailto: value."""
        if self.email and self.email.strip():
            return self.email.strip()
        value = self.value.strip()
        if value.lower().startswith("mailto:"):
            address = value[len("mailto:") :].strip()
            return address or None
        return None


class RawEventProps(BaseModel):
    """Properties extracted from one VEVENT before expansion."""

    uid: str
    summary: str = DEFAULT_EVENT_TITLE
    location: Optional[str] = None
    description: Optional[str] = None
    start: datetime
    end: Optional[datetime] = None
    duration: Optional[timedelta] = None
    is_all_day: bool = False
    rrule: Optional[str] = None
    rdates: list[datetime] = Field(default_factory=list)
    exdates: list[datetime] = Field(default_factory=list)
    recurrence_id: Optional[datetime] = None
    attendees: list[AttendeeEntry] = Field(default_factory=list)

    @property
    def is_recurring(self) -> bool:
        return bool(self.rrule or self.rdates) and self.recurrence_id is None

    @property
    def is_override(self) -> bool:
        return self.recurrence_id is not None

    def effective_end(self) -> datetime:
        """End instant from DTEND, then DURATION, then the RFC 5545 defaults.

        All-day records without either default to one day; timed records
        default to a zero-length event.
        """
        if self.end is not None:
            return self.end
        if self.duration is not None:
            return self.start + self.duration
        if self.is_all_day:
            return self.start + timedelta(days=1)
        return self.start


class Meeting(BaseModel):
    """One concrete, time-bound occurrence ready for presentation."""

    uid: str = Field(..., description="Master uid, or uid@YYYYMMDDTHHMMSS for expanded instances")
    title: str = Field(..., description="Event summary")
    start: datetime = Field(..., description="Local-time-normalized start")
    end: datetime = Field(..., description="Local-time-normalized end")
    location: Optional[str] = None
    description: Optional[str] = None
    calendar_uid: str = Field(..., description="Owning source uid")
    is_all_day: bool = False
    attendance_status: AttendanceStatus = AttendanceStatus.NONE

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_ordering(self) -> "Meeting":
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise ValueError("meeting start and end must be timezone-aware")
        if not self.start < self.end:
            raise ValueError("meeting start must be before end")
        return self

    @field_serializer("start", "end")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetimes to ISO format."""
        return dt.isoformat()
