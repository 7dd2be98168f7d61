"""nextmeeting - upcoming meetings from the desktop calendar service.

The engine discovers calendar sources through Evolution Data Server over
D-Bus, expands recurring events, classifies the user's attendance and returns
a short, sorted list of upcoming meetings.
"""

__version__ = "0.1.0"

from typing import Optional

from .fetch_orchestrator import (
    FetchOrchestrator,
    get_available_calendars,
    get_upcoming_meetings,
    refresh_and_fetch,
    refresh_calendars,
    watch_calendar_changes,
    watch_system_resume,
)
from .models import AttendanceStatus, CalendarInfo, Meeting


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream to console.

    Installs a colorized console handler once and sets the root level.
    NEXTMEETING_DEBUG (truthy values: "1", "true", "yes", "on") forces DEBUG.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("NEXTMEETING_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none are present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message, with only the level colorized
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    logging.getLogger(__name__).debug("Logging initialized at level %s", logging.getLevelName(level))


__all__ = [
    "AttendanceStatus",
    "CalendarInfo",
    "FetchOrchestrator",
    "Meeting",
    "__version__",
    "get_available_calendars",
    "get_upcoming_meetings",
    "refresh_and_fetch",
    "refresh_calendars",
    "watch_calendar_changes",
    "watch_system_resume",
]
