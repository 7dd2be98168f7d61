"""Custom exception hierarchy for the meeting engine.

Internal helpers raise these typed errors; the public functions in
``nextmeeting.fetch_orchestrator`` catch them at the source or record boundary
and degrade to empty or partial results instead of propagating.
"""


class NextMeetingError(Exception):
    """Base exception for all engine errors.

    All custom exceptions in the package inherit from this base class so that
    boundaries can catch engine failures without catching programming errors.
    """


class CalendarServiceError(NextMeetingError):
    """The desktop calendar service could not be reached.

    Raised when:
    - The session bus connection cannot be established
    - The source registry does not answer the enumeration call

    Callers treat this as "no calendars" rather than a hard failure.
    """


class ServiceCallError(NextMeetingError):
    """A D-Bus method call returned an error reply or did not complete.

    Raised when:
    - The remote object answers with an error message
    - The call times out or the connection drops mid-call
    """

    def __init__(self, member: str, message: str, error_name: str | None = None):
        super().__init__(f"{member}: {message}")
        self.member = member
        self.error_name = error_name


class CalendarSourceError(NextMeetingError):
    """A single calendar source failed to open or answer a query.

    Raised when:
    - The calendar factory rejects an open request for a source uid
    - A time-range query returns an error reply

    The orchestrator logs the failure and skips only the affected source.
    """

    def __init__(self, source_uid: str, message: str):
        super().__init__(f"{source_uid}: {message}")
        self.source_uid = source_uid


class EventParseError(NextMeetingError):
    """A raw iCalendar record could not be parsed.

    Raised when:
    - The record is missing UID or DTSTART
    - A date or date-time value is malformed
    """


class RecurrenceExpansionError(NextMeetingError):
    """A recurrence rule could not be expanded.

    Raised when:
    - The RRULE string is malformed
    - The rule cannot be combined with the series start
    """


class ConfigError(NextMeetingError):
    """The configuration file could not be read or is not a mapping."""
