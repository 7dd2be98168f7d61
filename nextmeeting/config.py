"""nextmeeting.config

Configuration for the meeting engine.

- User preferences are loaded from YAML (PyYAML) into a typed ``Config`` dataclass.
- Engine knobs live in a frozen ``EngineSettings`` that is passed explicitly to
  the orchestrator instead of being read from the environment at call time.
- Environment overrides are applied once, in ``load_config()``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "nextmeeting" / "config.yaml"

DEFAULT_MEETING_URL_PATTERNS: tuple[str, ...] = (
    # Google Meet
    r"https://meet\.google\.com/[a-z-]+",
    # Zoom
    r"https://[a-z0-9]+\.zoom\.us/j/[0-9]+",
    # Microsoft Teams
    r"https://teams\.microsoft\.com/l/meetup-join/[^\s]+",
    r"https://teams\.live\.com/meet/[^\s]+",
    # Webex
    r"https://[a-z0-9]+\.webex\.com/[^\s]+/j\.php\?MTID=[^\s]+",
    r"https://[a-z0-9]+\.webex\.com/meet/[^\s]+",
)

EVENT_STATUS_FILTERS = ("all", "accepted", "accepted_or_tentative")
IN_PROGRESS_MINUTES = (0, 5, 10, 15, 30)
AUTO_REFRESH_MINUTES = (5, 10, 15, 30)

_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class EngineSettings:
    """Knobs for the fetch pipeline.

    Fields:
        query_lookback_minutes: how far before now the query window starts
        query_lookahead_days: how far after now the query window ends
        max_occurrences_per_rule: cap on expanded instances per recurrence rule
        fetch_timeout: overall seconds allowed for one concurrent fetch
        max_concurrency: maximum sources queried at once
        refresh_settle_seconds: delay between a refresh request and the re-fetch
        simulate_no_calendars: report zero sources (empty-state testing)
        local_timezone: IANA zone for normalization; None uses the system zone
    """

    query_lookback_minutes: int = 30
    query_lookahead_days: int = 30
    max_occurrences_per_rule: int = 100
    fetch_timeout: float = 30.0
    max_concurrency: int = 8
    refresh_settle_seconds: float = 0.5
    simulate_no_calendars: bool = False
    local_timezone: str | None = None


@dataclass
class Config:
    """Typed user configuration.

    Fields:
        enabled_calendar_uids: calendars to show; empty means every meeting calendar
        additional_emails: extra addresses identifying the user in ATTENDEE entries
        meeting_url_patterns: regexes used to find join links
        upcoming_events_count: number of meetings to return (1..10)
        show_all_day_events: include all-day events
        event_status_filter: one of "all", "accepted", "accepted_or_tentative"
        show_in_progress_minutes: grace window for started meetings (0, 5, 10, 15, 30)
        refetch_interval_seconds: periodic re-read of the local calendar cache (15..3600)
        auto_refresh_enabled: periodically ask the service to sync remote calendars
        auto_refresh_interval_minutes: interval for the above (5, 10, 15, 30)
        log_level: logging level name
        engine: pipeline settings
    """

    enabled_calendar_uids: list[str] = field(default_factory=list)
    additional_emails: list[str] = field(default_factory=list)
    meeting_url_patterns: list[str] = field(
        default_factory=lambda: list(DEFAULT_MEETING_URL_PATTERNS)
    )
    upcoming_events_count: int = 3
    show_all_day_events: bool = True
    event_status_filter: str = "all"
    show_in_progress_minutes: int = 5
    refetch_interval_seconds: int = 60
    auto_refresh_enabled: bool = False
    auto_refresh_interval_minutes: int = 10
    log_level: str = "INFO"
    engine: EngineSettings = field(default_factory=EngineSettings)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced to int, string lists accept a single
        string, and out-of-range values are clamped or replaced with the
        default, logging a warning whenever a coercion happens.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int, source: dict[str, Any] = data) -> int:
            raw = source.get(key, default)
            try:
                return int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default

        def _coerce_float(key: str, default: float, source: dict[str, Any]) -> float:
            raw = source.get(key, default)
            try:
                return float(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not a number; using default %s", key, raw, default)
                return default

        def _coerce_bool(key: str, default: bool, source: dict[str, Any] = data) -> bool:
            raw = source.get(key, default)
            if isinstance(raw, bool):
                return raw
            if isinstance(raw, str):
                return raw.strip().lower() in _TRUTHY
            return bool(raw)

        def _string_list(key: str, default: list[str] | None = None) -> list[str]:
            raw = data.get(key)
            if raw is None:
                return list(default or [])
            if isinstance(raw, str):
                raw = [raw]
            if not isinstance(raw, (list, tuple)):
                logger.warning("Config `%s` is not a list; coercing to single-item list", key)
                raw = [raw]
            return [str(item).strip() for item in raw if str(item).strip()]

        count = _coerce_int("upcoming_events_count", 3)
        if count < 1:
            logger.warning("upcoming_events_count %d below minimum; coercing to 1", count)
            count = 1
        elif count > 10:
            logger.warning("upcoming_events_count %d above maximum; coercing to 10", count)
            count = 10

        status_filter = str(data.get("event_status_filter", "all")).strip().lower()
        if status_filter not in EVENT_STATUS_FILTERS:
            logger.warning("Unknown event_status_filter %r; using 'all'", status_filter)
            status_filter = "all"

        in_progress = _coerce_int("show_in_progress_minutes", 5)
        if in_progress not in IN_PROGRESS_MINUTES:
            logger.warning("show_in_progress_minutes %d not one of %s; using 5", in_progress, IN_PROGRESS_MINUTES)
            in_progress = 5

        refetch = _coerce_int("refetch_interval_seconds", 60)
        if refetch < 15:
            logger.warning("refetch_interval_seconds %d below minimum; coercing to 15", refetch)
            refetch = 15
        elif refetch > 3600:
            logger.warning("refetch_interval_seconds %d above maximum; coercing to 3600", refetch)
            refetch = 3600

        auto_minutes = _coerce_int("auto_refresh_interval_minutes", 10)
        if auto_minutes not in AUTO_REFRESH_MINUTES:
            logger.warning(
                "auto_refresh_interval_minutes %d not one of %s; using 10", auto_minutes, AUTO_REFRESH_MINUTES
            )
            auto_minutes = 10

        log_level = data.get("log_level", "INFO")
        log_level = str(log_level).upper() if log_level is not None else "INFO"

        engine_raw = data.get("engine") or {}
        if not isinstance(engine_raw, dict):
            logger.warning("Config `engine` is not a mapping; using defaults")
            engine_raw = {}
        defaults = EngineSettings()
        timezone_name = engine_raw.get("local_timezone", data.get("timezone"))
        engine = EngineSettings(
            query_lookback_minutes=max(0, _coerce_int("query_lookback_minutes", 30, engine_raw)),
            query_lookahead_days=max(1, _coerce_int("query_lookahead_days", 30, engine_raw)),
            max_occurrences_per_rule=max(1, _coerce_int("max_occurrences_per_rule", 100, engine_raw)),
            fetch_timeout=_coerce_float("fetch_timeout", defaults.fetch_timeout, engine_raw),
            max_concurrency=max(1, _coerce_int("max_concurrency", 8, engine_raw)),
            refresh_settle_seconds=_coerce_float(
                "refresh_settle_seconds", defaults.refresh_settle_seconds, engine_raw
            ),
            simulate_no_calendars=_coerce_bool("simulate_no_calendars", False, engine_raw),
            local_timezone=str(timezone_name) if timezone_name else None,
        )

        return cls(
            enabled_calendar_uids=_string_list("enabled_calendar_uids"),
            additional_emails=_string_list("additional_emails"),
            meeting_url_patterns=_string_list("meeting_url_patterns", list(DEFAULT_MEETING_URL_PATTERNS)),
            upcoming_events_count=count,
            show_all_day_events=_coerce_bool("show_all_day_events", True),
            event_status_filter=status_filter,
            show_in_progress_minutes=in_progress,
            refetch_interval_seconds=refetch,
            auto_refresh_enabled=_coerce_bool("auto_refresh_enabled", False),
            auto_refresh_interval_minutes=auto_minutes,
            log_level=log_level,
            engine=engine,
        )

    def engine_settings(self) -> EngineSettings:
        """Settings threaded through the fetch orchestrator."""
        return self.engine

    def apply_env_overrides(self, environ: dict[str, str] | None = None) -> Config:
        """Return a copy with NEXTMEETING_* environment overrides applied.

        Environment Variables:
            NEXTMEETING_ENABLED_CALENDARS: comma-separated calendar uids
            NEXTMEETING_EXTRA_EMAILS: comma-separated additional emails
            NEXTMEETING_TIMEZONE: IANA zone used for local normalization
            NEXTMEETING_DEBUG_NO_CALENDARS: truthy value reports zero calendars
            NEXTMEETING_LOG_LEVEL: root log level
        """
        env = os.environ if environ is None else environ
        cfg = self
        if env.get("NEXTMEETING_ENABLED_CALENDARS"):
            uids = [u.strip() for u in env["NEXTMEETING_ENABLED_CALENDARS"].split(",") if u.strip()]
            cfg = replace(cfg, enabled_calendar_uids=uids)
        if env.get("NEXTMEETING_EXTRA_EMAILS"):
            emails = [e.strip() for e in env["NEXTMEETING_EXTRA_EMAILS"].split(",") if e.strip()]
            cfg = replace(cfg, additional_emails=emails)
        if env.get("NEXTMEETING_LOG_LEVEL"):
            cfg = replace(cfg, log_level=env["NEXTMEETING_LOG_LEVEL"].strip().upper())
        engine = cfg.engine
        if env.get("NEXTMEETING_TIMEZONE"):
            engine = replace(engine, local_timezone=env["NEXTMEETING_TIMEZONE"].strip())
        if env.get("NEXTMEETING_DEBUG_NO_CALENDARS", "").strip().lower() in _TRUTHY:
            logger.info("NEXTMEETING_DEBUG_NO_CALENDARS set; reporting zero calendars")
            engine = replace(engine, simulate_no_calendars=True)
        if engine is not cfg.engine:
            cfg = replace(cfg, engine=engine)
        return cfg


def _load_yaml(path: Path) -> Any:
    """Load a YAML document, normalizing an empty file to an empty mapping."""
    try:
        loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Unable to read config {path}: {exc}") from exc
    return {} if loaded is None else loaded


def load_config(path: str | Path | None = None, environ: dict[str, str] | None = None) -> Config:
    """Load configuration from a YAML file and return a Config instance.

    Args:
        path: Optional path to the config file. Defaults to
              ~/.config/nextmeeting/config.yaml.
        environ: Environment mapping for overrides (defaults to os.environ).

    Returns:
        Config dataclass instance with values from file (or defaults).

    Raises:
        ConfigError: If the file exists but cannot be parsed or is not a mapping.
    """
    p = Path(path) if path else DEFAULT_CONFIG_PATH
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return Config().apply_env_overrides(environ)

    raw = _load_yaml(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ConfigError("Config file must contain a mapping at top level")
    cfg = Config.from_dict(raw).apply_env_overrides(environ)
    logger.info("Loaded configuration from %s", p)
    logger.debug("Configuration values: %s", cfg)
    return cfg
