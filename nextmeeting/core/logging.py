"""
Central logging configuration for nextmeeting.

Keeps the engine's own loggers at DEBUG when requested while holding chatty
third-party libraries (D-Bus message tracing, asyncio) at WARNING.
"""

import logging
import os
from typing import Optional

NOISY_LOGGERS: dict[str, int] = {
    "dbus_fast": logging.WARNING,  # message-level tracing
    "dbus_fast.message_bus": logging.WARNING,
    "asyncio": logging.WARNING,  # event loop debug logs
    "icalendar": logging.INFO,
}


def configure_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logger levels for nextmeeting.

    Args:
        debug_mode: Whether to enable debug logging for nextmeeting modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        NEXTMEETING_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        NEXTMEETING_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("NEXTMEETING_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("NEXTMEETING_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    # Handlers are installed by nextmeeting._init_logging; only levels are tuned here
    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    logger_config = dict(NOISY_LOGGERS)
    logger_config["nextmeeting"] = logging.DEBUG if final_debug else logging.INFO

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.debug("Debug logging enabled for nextmeeting modules")


def reset_logging_to_debug() -> None:
    """
    Reset all loggers to DEBUG level for troubleshooting.

    Used by the ``--verbose`` CLI flag to surface D-Bus traffic as well.
    """
    logging.getLogger().setLevel(logging.DEBUG)
    for logger_name in ("nextmeeting", *NOISY_LOGGERS):
        logging.getLogger(logger_name).setLevel(logging.DEBUG)
