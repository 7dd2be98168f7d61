"""Attendance classification from ATTENDEE entries."""

import logging
from collections.abc import Iterable, Sequence
from typing import Optional

from nextmeeting.models import AttendanceStatus, AttendeeEntry

logger = logging.getLogger(__name__)

PARTSTAT_MAP: dict[str, AttendanceStatus] = {
    "ACCEPTED": AttendanceStatus.ACCEPTED,
    "TENTATIVE": AttendanceStatus.TENTATIVE,
    "DECLINED": AttendanceStatus.DECLINED,
    "NEEDS-ACTION": AttendanceStatus.NEEDS_ACTION,
}


def map_partstat(partstat: Optional[str]) -> AttendanceStatus:
    """Map a PARTSTAT value to AttendanceStatus; unknown values map to NONE."""
    if not partstat:
        return AttendanceStatus.NONE
    return PARTSTAT_MAP.get(partstat.strip().upper(), AttendanceStatus.NONE)


def build_user_emails(identity_email: Optional[str], extra_emails: Iterable[str]) -> list[str]:
    """Union of user-supplied extra emails and the calendar's own address.

    Blank entries are dropped and the identity email is only added when no
    extra email already matches it case-insensitively.
    """
    emails = [e.strip() for e in extra_emails if e and e.strip()]
    if identity_email and identity_email.strip():
        identity = identity_email.strip()
        if identity.lower() not in {e.lower() for e in emails}:
            emails.append(identity)
    return emails


def classify_attendance(
    attendees: Sequence[AttendeeEntry],
    user_emails: Sequence[str],
) -> AttendanceStatus:
    """Determine the user's participation status for one record.

    The first attendee whose address matches one of ``user_emails``
    (case-insensitively) decides the result; later entries are ignored.

    Args:
        attendees: ATTENDEE entries of the record
        user_emails: Addresses that identify the user

    Returns:
        AttendanceStatus; NONE when no user emails are known or nothing matches
    """
    wanted = {e.strip().lower() for e in user_emails if e and e.strip()}
    if not wanted:
        return AttendanceStatus.NONE

    for attendee in attendees:
        address = attendee.address()
        if address and address.lower() in wanted:
            status = map_partstat(attendee.partstat)
            logger.debug("Matched attendee %s with PARTSTAT=%s", address, attendee.partstat)
            return status
    return AttendanceStatus.NONE
