"""Meeting URL and physical location extraction."""

import logging
import re
from collections.abc import Iterable, Sequence
from functools import lru_cache
from typing import Optional, Union

from nextmeeting.models import Meeting

logger = logging.getLogger(__name__)

PatternsArg = Union[Iterable[str], Sequence["re.Pattern[str]"]]


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Optional["re.Pattern[str]"]:
    try:
        return re.compile(pattern)
    except re.error:
        logger.debug("Ignoring invalid meeting URL pattern %r", pattern)
        return None


def compile_patterns(patterns: PatternsArg) -> list["re.Pattern[str]"]:
    """Compile user patterns, silently dropping invalid ones."""
    compiled: list[re.Pattern[str]] = []
    for pattern in patterns:
        if isinstance(pattern, re.Pattern):
            compiled.append(pattern)
            continue
        regex = _compile(str(pattern))
        if regex is not None:
            compiled.append(regex)
    return compiled


def extract_meeting_url(meeting: Meeting, patterns: PatternsArg) -> Optional[str]:
    """Find a join link in the meeting's location, then its description.

    Args:
        meeting: Meeting to inspect
        patterns: Regex strings (or compiled patterns) that match join URLs

    Returns:
        First substring matched by any pattern; location wins over description
    """
    compiled = compile_patterns(patterns)
    if not compiled:
        return None

    for text in (meeting.location, meeting.description):
        if not text:
            continue
        for regex in compiled:
            match = regex.search(text)
            if match:
                return match.group(0)
    return None


def physical_location(meeting: Meeting, patterns: PatternsArg) -> Optional[str]:
    """Return the meeting's location when it looks like a place, not a link.

    The trimmed location is returned unless it is empty, starts with
    http:// or https://, or the first match of one of the URL patterns spans
    the whole location. A pattern matching only part of it does not disqualify it.
    """
    if meeting.location is None:
        return None
    location = meeting.location.strip()
    if not location:
        return None
    if location.startswith(("http://", "https://")):
        return None
    for regex in compile_patterns(patterns):
        match = regex.search(location)
        if match and match.span() == (0, len(location)):
            return None
    return location
