"""
Reminder API routes.

Creates and lists reminders for the authenticated user, and exposes the
due-reminder processing pass for an external cron caller.
"""

import os
from datetime import datetime
from typing import List, Optional

import pytz
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from engine.recurrence import parse_rule_strict
from scheduler.reminders import process_due_reminders
from ..models import Reminder, ReminderStatus, User, AuditLog, utcnow
from ..schemas import ReminderCreateRequest, ReminderResponse, ReminderProcessResponse
from ..dependencies import get_db, get_current_user, verify_cron_secret

LOCAL_TIMEZONE = os.getenv("TZ", "Europe/Paris")

router = APIRouter(prefix="/reminders", tags=["reminders"])


def _to_utc_naive(value: datetime) -> datetime:
    """Storage form of a client timestamp; naive input is local wall time."""
    if value.tzinfo is None:
        value = pytz.timezone(LOCAL_TIMEZONE).localize(value)
    return value.astimezone(pytz.utc).replace(tzinfo=None)


@router.post("", response_model=ReminderResponse, status_code=status.HTTP_201_CREATED)
async def create_reminder(
    reminder_request: ReminderCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> ReminderResponse:
    """
    Create a reminder.

    The reminder is recurring when `recurrenceRule` is given; an invalid
    rule yields 422 and a time in the past yields 400.
    """
    scheduled_for = _to_utc_naive(reminder_request.scheduled_for)
    if scheduled_for < utcnow():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="scheduledFor must be in the future"
        )

    if reminder_request.recurrence_rule:
        parse_rule_strict(reminder_request.recurrence_rule)

    reminder = Reminder(
        user_id=current_user.id,
        title=reminder_request.title,
        message=reminder_request.message,
        scheduled_for=scheduled_for,
        status=ReminderStatus.PENDING,
        is_recurring=bool(reminder_request.recurrence_rule),
        recurrence_rule=reminder_request.recurrence_rule,
        recurrence_end=(
            _to_utc_naive(reminder_request.recurrence_end)
            if reminder_request.recurrence_end else None
        ),
    )
    db.add(reminder)
    db.flush()
    db.add(AuditLog(
        actor_user_id=current_user.id,
        action="reminder.created",
        subject_id=reminder.id,
        details={"title": reminder.title, "is_recurring": reminder.is_recurring}
    ))
    db.commit()
    db.refresh(reminder)
    return ReminderResponse.model_validate(reminder)


@router.get("", response_model=List[ReminderResponse])
async def list_reminders(
    status_filter: Optional[ReminderStatus] = Query(None, alias="status", description="Filter by reminder status"),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> List[ReminderResponse]:
    """The user's reminders, soonest first."""
    query = db.query(Reminder).filter(Reminder.user_id == current_user.id)
    if status_filter:
        query = query.filter(Reminder.status == status_filter)
    reminders = query.order_by(Reminder.scheduled_for.asc()).limit(limit).all()
    return [ReminderResponse.model_validate(reminder) for reminder in reminders]


@router.post(
    "/process",
    response_model=ReminderProcessResponse,
    dependencies=[Depends(verify_cron_secret)]
)
async def process_reminders(
    db: Session = Depends(get_db)
) -> ReminderProcessResponse:
    """
    Send every due reminder now.

    Meant for an external cron; requires `Authorization: Bearer <CRON_SECRET>`
    when CRON_SECRET is configured.
    """
    report = process_due_reminders(db, tz_name=LOCAL_TIMEZONE)
    return ReminderProcessResponse(
        processed=report.processed,
        sent=report.sent,
        failed=report.failed,
        created=report.created,
    )
