"""RRULE expansion for recurring records."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Any, Iterable, Optional

from dateutil.rrule import rrule, rruleset, rrulestr

from nextmeeting.exceptions import RecurrenceExpansionError
from nextmeeting.models import RawEventProps

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 100


@dataclass
class RRuleExpanderConfig:
    """Configuration for RRULE expansion."""

    max_occurrences_per_rule: int = DEFAULT_MAX_OCCURRENCES

    @classmethod
    def from_settings(cls, settings: Any) -> "RRuleExpanderConfig":
        """Extract expansion settings from an EngineSettings-like object."""
        return cls(
            max_occurrences_per_rule=getattr(
                settings, "max_occurrences_per_rule", DEFAULT_MAX_OCCURRENCES
            )
        )


def _clean_rule(rrule_string: str) -> str:
    rule = rrule_string.strip()
    if rule.upper().startswith("RRULE:"):
        rule = rule[len("RRULE:") :]
    return rule


def _wall_clock(dt: datetime, zone: Optional[tzinfo]) -> datetime:
    """Naive wall-clock time of ``dt`` in ``zone``."""
    return dt.astimezone(zone).replace(tzinfo=None)


def _build_ruleset(
    rrule_string: Optional[str],
    dtstart: datetime,
    rdates: Iterable[datetime],
    exdates: Iterable[datetime],
    ignoretz: bool,
) -> rruleset:
    rule_set = rruleset()
    if rrule_string:
        parsed_rule = rrulestr(
            _clean_rule(rrule_string), dtstart=dtstart, ignoretz=ignoretz, forceset=False
        )
        if isinstance(parsed_rule, rruleset):
            rule_set = parsed_rule
        elif isinstance(parsed_rule, rrule):
            rule_set.rrule(parsed_rule)
    else:
        rule_set.rdate(dtstart)
    for rdate in rdates:
        rule_set.rdate(rdate)
    for exdate in exdates:
        rule_set.exdate(exdate)
    return rule_set


def expand_occurrences(
    rrule_string: Optional[str],
    start: datetime,
    duration: timedelta,
    exdates: Iterable[datetime],
    window_start: datetime,
    window_end: datetime,
    rdates: Iterable[datetime] = (),
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> list[tuple[datetime, datetime]]:
    """Expand a recurrence into (start, end) pairs inside the window.

    Expansion runs in the series' own zone so wall-clock times survive DST
    transitions. When the rule's UNTIL does not agree with the start on
    timezone awareness (floating UNTIL, DATE-valued UNTIL), the series is
    expanded on naive wall-clock time and re-attached to its zone.

    Args:
        rrule_string: RRULE value; None expands RDATEs only
        start: Series start (timezone-aware)
        duration: Fixed duration paired with each occurrence
        exdates: Excluded instants
        window_start: Inclusive lower bound for occurrence starts
        window_end: Inclusive upper bound for occurrence starts
        rdates: Additional occurrence instants
        max_occurrences: Cap on returned occurrences

    Returns:
        Ordered list of (start, end) tuples

    Raises:
        RecurrenceExpansionError: If the rule cannot be parsed
    """
    zone = start.tzinfo
    exdates = list(exdates)
    rdates = list(rdates)

    try:
        rule_set = _build_ruleset(rrule_string, start, rdates, exdates, ignoretz=False)
        lower, upper = window_start, window_end
        naive = False
    except (ValueError, TypeError) as aware_error:
        logger.debug("Aware expansion failed (%s); expanding on wall-clock time", aware_error)
        try:
            rule_set = _build_ruleset(
                rrule_string,
                start.replace(tzinfo=None),
                [_wall_clock(d, zone) for d in rdates],
                [_wall_clock(d, zone) for d in exdates],
                ignoretz=True,
            )
        except (ValueError, TypeError) as e:
            raise RecurrenceExpansionError(f"Invalid recurrence rule {rrule_string!r}: {e}") from e
        lower, upper = _wall_clock(window_start, zone), _wall_clock(window_end, zone)
        naive = True

    occurrences: list[tuple[datetime, datetime]] = []
    try:
        for occurrence in rule_set.xafter(lower, inc=True):
            if occurrence > upper:
                break
            if len(occurrences) >= max_occurrences:
                logger.debug("Recurrence limited to %d occurrences", max_occurrences)
                break
            if naive:
                occurrence = occurrence.replace(tzinfo=zone)
            occurrences.append((occurrence, occurrence + duration))
    except (ValueError, TypeError) as e:
        raise RecurrenceExpansionError(f"Failed to expand {rrule_string!r}: {e}") from e

    return occurrences


class RecurrenceExpander:
    """Expands recurring RawEventProps inside a fetch window."""

    def __init__(self, config: Optional[RRuleExpanderConfig] = None):
        self.config = config or RRuleExpanderConfig()

    def expand(
        self,
        props: RawEventProps,
        window_start: datetime,
        window_end: datetime,
    ) -> list[tuple[datetime, datetime]]:
        """Occurrences of a master record; overrides are never expanded.

        Raises:
            RecurrenceExpansionError: If the rule is malformed
        """
        if not props.is_recurring:
            return [(props.start, props.effective_end())]
        return expand_occurrences(
            props.rrule,
            props.start,
            props.effective_end() - props.start,
            props.exdates,
            window_start,
            window_end,
            rdates=props.rdates,
            max_occurrences=self.config.max_occurrences_per_rule,
        )
