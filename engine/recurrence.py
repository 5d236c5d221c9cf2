"""
Recurrence rule processing for reminders, bills, expenses and incomes.

Rules cross the API boundary in three string forms, all accepted by
parse_rule():

- a bare keyword:          "DAILY", "WEEKLY", "MONTHLY", "YEARLY"
- a compact interval form: "WEEKLY:2" (every second week)
- a JSON document:         '{"type": "WEEKLY", "daysOfWeek": [1, 3, 5]}'

Weekdays follow the 0=Sunday .. 6=Saturday numbering used by the web client.
Date arithmetic is wall-clock arithmetic on the anchor's own tzinfo.
"""

import calendar
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Dict, Any

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta
from jsonschema import validate, ValidationError

from engine.errors import RecurrenceFormatError
from observability.logging import recurrence_logger
from observability.metrics import synexa_metrics

logger = logging.getLogger(__name__)


class RecurrenceType(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"
    CUSTOM = "CUSTOM"


class RecurrenceStatus(str, Enum):
    """Outcome of a next-occurrence evaluation."""
    SCHEDULED = "scheduled"
    ENDED = "ended"
    UNSUPPORTED = "unsupported"


SIMPLE_TYPES = (
    RecurrenceType.DAILY.value,
    RecurrenceType.WEEKLY.value,
    RecurrenceType.MONTHLY.value,
    RecurrenceType.YEARLY.value,
)

RULE_SCHEMA = {
    "type": "object",
    "properties": {
        "type": {"enum": [t.value for t in RecurrenceType]},
        "interval": {"type": ["integer", "null"], "minimum": 1},
        "daysOfWeek": {
            "type": ["array", "null"],
            "items": {"type": "integer", "minimum": 0, "maximum": 6},
        },
        "dayOfMonth": {"type": ["integer", "null"], "minimum": 1, "maximum": 31},
        "endDate": {"type": ["string", "null"]},
        "count": {"type": ["integer", "null"], "minimum": 1},
        "cronExpression": {"type": ["string", "null"]},
    },
    "required": ["type"],
}


@dataclass(frozen=True)
class RecurrenceRule:
    """How often something repeats. Immutable; an edit creates a new rule."""
    type: RecurrenceType
    interval: Optional[int] = None
    days_of_week: Optional[List[int]] = None
    day_of_month: Optional[int] = None
    end_date: Optional[datetime] = None
    count: Optional[int] = None
    cron_expression: Optional[str] = None

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "type", RecurrenceType(self.type))
        except ValueError:
            raise RecurrenceFormatError(f"Unknown recurrence type: {self.type!r}")
        if self.interval is not None and (isinstance(self.interval, bool) or self.interval < 1):
            raise RecurrenceFormatError(f"interval must be a positive integer, got {self.interval!r}")
        if self.days_of_week is not None:
            invalid = [d for d in self.days_of_week if not 0 <= d <= 6]
            if invalid:
                raise RecurrenceFormatError(f"daysOfWeek values must be within 0..6, got {invalid}")
        if self.day_of_month is not None and not 1 <= self.day_of_month <= 31:
            raise RecurrenceFormatError(f"dayOfMonth must be within 1..31, got {self.day_of_month}")
        if self.count is not None and self.count < 1:
            raise RecurrenceFormatError(f"count must be positive, got {self.count}")

    @property
    def effective_interval(self) -> int:
        return self.interval or 1

    def to_dict(self) -> Dict[str, Any]:
        """Wire representation: camelCase keys, unset fields omitted."""
        data: Dict[str, Any] = {"type": self.type.value}
        if self.interval is not None:
            data["interval"] = self.interval
        if self.days_of_week is not None:
            data["daysOfWeek"] = list(self.days_of_week)
        if self.day_of_month is not None:
            data["dayOfMonth"] = self.day_of_month
        if self.end_date is not None:
            data["endDate"] = self.end_date.isoformat()
        if self.count is not None:
            data["count"] = self.count
        if self.cron_expression is not None:
            data["cronExpression"] = self.cron_expression
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecurrenceRule":
        """Build a rule from its wire representation.

        Raises:
            RecurrenceFormatError: if the mapping does not describe a valid rule
        """
        try:
            validate(instance=data, schema=RULE_SCHEMA)
        except ValidationError as e:
            raise RecurrenceFormatError(f"Invalid recurrence rule: {e.message}")

        end_date = data.get("endDate")
        if end_date is not None:
            try:
                end_date = isoparse(end_date)
            except ValueError as e:
                raise RecurrenceFormatError(f"Invalid endDate {end_date!r}: {e}")

        return cls(
            type=data["type"],
            interval=data.get("interval"),
            days_of_week=data.get("daysOfWeek"),
            day_of_month=data.get("dayOfMonth"),
            end_date=end_date,
            count=data.get("count"),
            cron_expression=data.get("cronExpression"),
        )


@dataclass(frozen=True)
class RecurrenceOutcome:
    status: RecurrenceStatus
    next_date: Optional[datetime] = None

    @property
    def scheduled(self) -> bool:
        return self.status is RecurrenceStatus.SCHEDULED


def _js_weekday(dt: datetime) -> int:
    """0=Sunday .. 6=Saturday."""
    return dt.isoweekday() % 7


def _relocalize(dt: datetime) -> datetime:
    # pytz zones keep the anchor's UTC offset after timedelta arithmetic
    tz = dt.tzinfo
    if tz is not None and hasattr(tz, "localize"):
        return tz.localize(dt.replace(tzinfo=None))
    return dt


def _shift_months_overflowing(dt: datetime, months: int = 0, years: int = 0) -> datetime:
    """Shift by months/years keeping the day number; missing days spill into the next month."""
    first = dt.replace(day=1) + relativedelta(months=months, years=years)
    return first + timedelta(days=dt.day - 1)


def _shift_months_clamped(dt: datetime, months: int, day_of_month: int) -> datetime:
    target = dt.replace(day=1) + relativedelta(months=months)
    last_day = calendar.monthrange(target.year, target.month)[1]
    return target.replace(day=min(day_of_month, last_day))


def _next_weekly_day(base_date: datetime, days_of_week: List[int]) -> datetime:
    current = _js_weekday(base_date)
    ordered = sorted(set(days_of_week))
    next_day = next((day for day in ordered if day > current), ordered[0])
    if next_day > current:
        days_to_add = next_day - current
    else:
        days_to_add = 7 - current + next_day
    return base_date + timedelta(days=days_to_add)


def _candidate(base_date: datetime, rule: RecurrenceRule) -> Optional[datetime]:
    interval = rule.effective_interval

    if rule.type is RecurrenceType.DAILY:
        return base_date + timedelta(days=interval)

    if rule.type is RecurrenceType.WEEKLY:
        if rule.days_of_week:
            # interval is not applied when explicit weekdays are listed
            return _next_weekly_day(base_date, rule.days_of_week)
        return base_date + timedelta(days=7 * interval)

    if rule.type is RecurrenceType.MONTHLY:
        if rule.day_of_month:
            return _shift_months_clamped(base_date, interval, rule.day_of_month)
        return _shift_months_overflowing(base_date, months=interval)

    if rule.type is RecurrenceType.YEARLY:
        return _shift_months_overflowing(base_date, years=interval)

    # CUSTOM: cron expressions are stored but not evaluated
    return None


def _is_after(candidate: datetime, end_date: datetime) -> bool:
    if (candidate.tzinfo is None) != (end_date.tzinfo is None):
        if candidate.tzinfo is None:
            candidate = candidate.replace(tzinfo=end_date.tzinfo)
        else:
            end_date = end_date.replace(tzinfo=candidate.tzinfo)
    return candidate > end_date


def evaluate_next_occurrence(base_date: datetime, rule: RecurrenceRule) -> RecurrenceOutcome:
    """Compute the next occurrence after base_date and say why there is none.

    Args:
        base_date: Anchor date/time of the current occurrence
        rule: Recurrence rule to apply

    Returns:
        RecurrenceOutcome with status SCHEDULED and next_date set, ENDED when
        the candidate falls strictly after rule.end_date, or UNSUPPORTED for
        CUSTOM rules.
    """
    candidate = _candidate(base_date, rule)

    if candidate is None:
        outcome = RecurrenceOutcome(RecurrenceStatus.UNSUPPORTED)
    else:
        candidate = _relocalize(candidate)
        if rule.end_date is not None and _is_after(candidate, rule.end_date):
            outcome = RecurrenceOutcome(RecurrenceStatus.ENDED)
        else:
            outcome = RecurrenceOutcome(RecurrenceStatus.SCHEDULED, candidate)

    synexa_metrics.record_recurrence_evaluation(rule.type.value, outcome.status.value)
    recurrence_logger.recurrence_evaluated(
        rule_type=rule.type.value,
        status=outcome.status.value,
        base_date=base_date,
        next_date=outcome.next_date,
    )
    return outcome


def compute_next_occurrence(base_date: datetime, rule: RecurrenceRule) -> Optional[datetime]:
    """Next occurrence after base_date, or None when the recurrence ended or is unsupported."""
    return evaluate_next_occurrence(base_date, rule).next_date


def upcoming_occurrences(base_date: datetime, rule: RecurrenceRule, limit: int = 5) -> List[datetime]:
    """List the next occurrences after base_date.

    The anchor counts as the first occurrence, so rule.count caps the list at
    count - 1 entries.
    """
    if rule.count is not None:
        limit = min(limit, rule.count - 1)

    dates: List[datetime] = []
    current = base_date
    while len(dates) < limit:
        nxt = compute_next_occurrence(current, rule)
        if nxt is None:
            break
        dates.append(nxt)
        current = nxt
    return dates


def parse_rule_strict(rule_string: str) -> RecurrenceRule:
    """Parse a rule string in keyword, compact or JSON form.

    Raises:
        RecurrenceFormatError: if no form matches
    """
    if not isinstance(rule_string, str):
        raise RecurrenceFormatError(f"Rule must be a string, got {type(rule_string).__name__}")

    if rule_string in SIMPLE_TYPES:
        return RecurrenceRule(type=rule_string)

    rule_type, sep, interval_str = rule_string.partition(":")
    if sep and rule_type in SIMPLE_TYPES:
        if interval_str == "":
            return RecurrenceRule(type=rule_type, interval=1)
        if interval_str.isdigit():
            return RecurrenceRule(type=rule_type, interval=int(interval_str))

    try:
        data = json.loads(rule_string)
    except ValueError as e:
        raise RecurrenceFormatError(f"Unrecognized recurrence rule {rule_string!r}: {e}")

    if not isinstance(data, dict):
        raise RecurrenceFormatError(f"Recurrence rule JSON must be an object, got {type(data).__name__}")
    return RecurrenceRule.from_dict(data)


def parse_rule(rule_string: str) -> Optional[RecurrenceRule]:
    """Lenient variant of parse_rule_strict(): None means the rule is unusable."""
    try:
        return parse_rule_strict(rule_string)
    except RecurrenceFormatError as e:
        logger.debug(f"Rejected recurrence rule: {e}")
        return None


def format_rule(rule: RecurrenceRule) -> str:
    """Serialize a rule; the compact form is only used for intervals above 1."""
    if rule.cron_expression:
        return json.dumps(rule.to_dict(), separators=(",", ":"))

    if rule.interval and rule.interval > 1:
        return f"{rule.type.value}:{rule.interval}"

    return json.dumps(rule.to_dict(), separators=(",", ":"))
