# scheduler/reminders.py
"""
Due reminder processing.

Shared by the APScheduler service and the POST /reminders/process endpoint:
sends every PENDING reminder whose time has come and, for recurring ones,
creates the next occurrence through the recurrence engine.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

import pytz
from sqlalchemy.orm import Session

from api.models import Reminder, ReminderStatus, utcnow
from engine.recurrence import compute_next_occurrence, parse_rule
from observability.logging import scheduler_logger
from observability.metrics import synexa_metrics

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "Europe/Paris"


class ReminderNotifier(Protocol):
    """Delivers a reminder to its user; raises when delivery fails."""

    def send(self, reminder: Reminder) -> None:
        ...


class LogNotifier:
    """Notifier that only records the reminder in the structured log."""

    def send(self, reminder: Reminder) -> None:
        scheduler_logger.info(
            f"Reminder due: {reminder.title}",
            reminder_id=reminder.id,
            user_id=reminder.user_id,
            scheduled_for=reminder.scheduled_for,
            event_type="reminder_notification",
        )


@dataclass
class ReminderProcessingReport:
    processed: int = 0
    sent: int = 0
    failed: int = 0
    created: int = 0
    results: List[Dict[str, Any]] = field(default_factory=list)


def next_reminder_time(reminder: Reminder, tz_name: str = DEFAULT_TIMEZONE) -> Optional[datetime]:
    """
    Next occurrence of a recurring reminder, as naive UTC.

    Calendar arithmetic happens in the local timezone so a daily 08:00
    reminder stays at 08:00 across DST changes. Returns None when the rule
    is unusable, produces no date, or the date passes recurrence_end.
    """
    rule = parse_rule(reminder.recurrence_rule) if reminder.recurrence_rule else None
    if rule is None:
        logger.warning(f"Reminder {reminder.id} has an unusable recurrence rule: {reminder.recurrence_rule!r}")
        return None

    tz = pytz.timezone(tz_name)
    local_base = pytz.utc.localize(reminder.scheduled_for).astimezone(tz)
    local_next = compute_next_occurrence(local_base, rule)
    if local_next is None:
        return None

    next_utc = local_next.astimezone(pytz.utc).replace(tzinfo=None)
    if reminder.recurrence_end is not None and next_utc > reminder.recurrence_end:
        return None
    return next_utc


def _spawn_next(session: Session, reminder: Reminder, scheduled_for: datetime) -> Reminder:
    nxt = Reminder(
        user_id=reminder.user_id,
        title=reminder.title,
        message=reminder.message,
        scheduled_for=scheduled_for,
        status=ReminderStatus.PENDING,
        is_recurring=True,
        recurrence_rule=reminder.recurrence_rule,
        recurrence_end=reminder.recurrence_end,
        parent_reminder_id=reminder.parent_reminder_id or reminder.id,
    )
    session.add(nxt)
    session.flush()
    return nxt


def process_due_reminders(
    session: Session,
    now: Optional[datetime] = None,
    notifier: Optional[ReminderNotifier] = None,
    tz_name: str = DEFAULT_TIMEZONE,
) -> ReminderProcessingReport:
    """
    Send every PENDING reminder scheduled at or before `now`.

    Args:
        session: Database session; committed after each reminder
        now: Naive UTC cut-off, defaults to the current time
        notifier: Delivery channel, defaults to LogNotifier
        tz_name: Timezone used for recurrence arithmetic

    Returns:
        ReminderProcessingReport with per-reminder results
    """
    now = now or utcnow()
    notifier = notifier or LogNotifier()
    report = ReminderProcessingReport()

    due = (
        session.query(Reminder)
        .filter(Reminder.status == ReminderStatus.PENDING, Reminder.scheduled_for <= now)
        .order_by(Reminder.scheduled_for.asc())
        .all()
    )
    logger.info(f"Processing {len(due)} due reminders")

    for reminder in due:
        report.processed += 1
        next_id = None
        error = None

        try:
            notifier.send(reminder)
        except Exception as e:
            logger.warning(f"Failed to send reminder {reminder.id}: {e}")
            error = str(e)

        if error is None:
            reminder.status = ReminderStatus.SENT
            reminder.sent_at = now
            report.sent += 1
            if reminder.is_recurring and reminder.recurrence_rule:
                next_time = next_reminder_time(reminder, tz_name)
                if next_time is not None:
                    next_id = _spawn_next(session, reminder, next_time).id
                    report.created += 1
        else:
            reminder.status = ReminderStatus.FAILED
            reminder.error = error
            report.failed += 1

        session.commit()

        result = "sent" if error is None else "failed"
        synexa_metrics.record_reminder_processed(result)
        scheduler_logger.reminder_processed(
            reminder_id=reminder.id,
            success=error is None,
            next_reminder_id=next_id,
            error=error,
        )
        report.results.append({
            "reminderId": reminder.id,
            "title": reminder.title,
            "success": error is None,
            "error": error,
            "nextReminderId": next_id,
        })

    return report
