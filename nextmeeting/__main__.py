"""Command-line entry for nextmeeting.

Debugging utility for the meeting engine: list calendars, print upcoming
meetings, dump raw records of one calendar, or follow changes live.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import re
import sys
from typing import NoReturn, Optional

from . import _init_logging
from .config import Config, load_config
from .core.logging import configure_logging, reset_logging_to_debug
from .domain.event_filter import enabled_meeting_source_uids
from .domain.meeting_links import compile_patterns, extract_meeting_url, physical_location
from .domain.monitor import MeetingMonitor
from .exceptions import CalendarServiceError, CalendarSourceError, ConfigError
from .fetch_orchestrator import FetchOrchestrator
from .models import Meeting

logger = logging.getLogger(__name__)


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the nextmeeting CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="nextmeeting",
        description="nextmeeting - upcoming meetings from the desktop calendar service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m nextmeeting calendars                 # List calendar sources
  python -m nextmeeting meetings --limit 5        # Next five meetings
  python -m nextmeeting raw <calendar-uid>        # Raw iCalendar records of one calendar
  python -m nextmeeting watch                     # Print meetings whenever they change
        """,
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Path to config.yaml (default: ~/.config/nextmeeting/config.yaml)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("calendars", help="List calendar sources")

    meetings = subparsers.add_parser("meetings", help="Print upcoming meetings")
    meetings.add_argument("--limit", type=int, help="Number of meetings (default: from config)")
    meetings.add_argument(
        "--email",
        action="append",
        default=[],
        metavar="ADDRESS",
        help="Additional address identifying you (repeatable)",
    )
    meetings.add_argument(
        "--calendar",
        action="append",
        default=[],
        metavar="UID",
        help="Calendar uid to query (repeatable; default: enabled calendars)",
    )

    raw = subparsers.add_parser("raw", help="Dump raw iCalendar records of one calendar")
    raw.add_argument("uid", help="Calendar uid")
    raw.add_argument("--limit", type=int, default=10, help="Maximum records to print (default: 10)")

    subparsers.add_parser("watch", help="Print meetings whenever calendars change")

    return parser


def _format_meeting(meeting: Meeting, patterns: list[re.Pattern[str]]) -> str:
    when = "all day" if meeting.is_all_day else f"{meeting.start:%H:%M}-{meeting.end:%H:%M}"
    lines = [
        f"{meeting.start:%a %Y-%m-%d} {when}  {meeting.title}  [{meeting.attendance_status.value}]"
    ]
    url = extract_meeting_url(meeting, patterns)
    if url:
        lines.append(f"    join: {url}")
    location = physical_location(meeting, patterns)
    if location:
        lines.append(f"    where: {location}")
    return "\n".join(lines)


def _print_meetings(meetings: list[Meeting], patterns: list[re.Pattern[str]]) -> None:
    if not meetings:
        print("No upcoming meetings")
        return
    for meeting in meetings:
        print(_format_meeting(meeting, patterns))


async def _cmd_calendars(orchestrator: FetchOrchestrator) -> int:
    calendars = await orchestrator.get_available_calendars()
    if not calendars:
        print("No calendars found")
        return 1
    for calendar in calendars:
        marker = " " if calendar.is_meeting_source() else "-"
        print(f"{marker} {calendar.display_name}")
        print(f"    uid: {calendar.uid}")
        print(f"    backend: {calendar.backend or '?'}  color: {calendar.color or '-'}")
        if calendar.last_synced:
            print(f"    last synced: {calendar.last_synced}")
    return 0


async def _cmd_meetings(orchestrator: FetchOrchestrator, config: Config, args: argparse.Namespace) -> int:
    uids: list[str] = args.calendar
    if not uids:
        calendars = await orchestrator.get_available_calendars()
        uids = enabled_meeting_source_uids(calendars, config.enabled_calendar_uids)
    limit = args.limit if args.limit is not None else config.upcoming_events_count
    emails = [*config.additional_emails, *args.email]

    meetings = await orchestrator.get_upcoming_meetings(uids, limit, emails)
    _print_meetings(meetings, compile_patterns(config.meeting_url_patterns))
    return 0


async def _cmd_raw(orchestrator: FetchOrchestrator, args: argparse.Namespace) -> int:
    try:
        records = await orchestrator.fetch_raw_records(args.uid)
    except (CalendarServiceError, CalendarSourceError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"# {len(records)} records in {args.uid}")
    for record in records[: max(args.limit, 0)]:
        print(record.rstrip())
        print()
    return 0


async def _cmd_watch(config: Config) -> int:
    patterns = compile_patterns(config.meeting_url_patterns)

    async def on_update(meetings: list[Meeting]) -> None:
        print(f"--- {len(meetings)} upcoming ---")
        _print_meetings(meetings, patterns)
        sys.stdout.flush()

    monitor = MeetingMonitor(config, on_update)
    await monitor.run(asyncio.Event())
    return 0


async def _dispatch(args: argparse.Namespace, config: Config) -> int:
    orchestrator = FetchOrchestrator(config.engine_settings())
    if args.command == "calendars":
        return await _cmd_calendars(orchestrator)
    if args.command == "meetings":
        return await _cmd_meetings(orchestrator, config, args)
    if args.command == "raw":
        return await _cmd_raw(orchestrator, args)
    return await _cmd_watch(config)


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the nextmeeting CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    _init_logging(os.environ.get("NEXTMEETING_LOG_LEVEL"))
    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(debug_mode=config.log_level == "DEBUG")
    if args.verbose:
        reset_logging_to_debug()

    try:
        sys.exit(asyncio.run(_dispatch(args, config)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    main()
