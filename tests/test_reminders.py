#!/usr/bin/env python3
"""
Reminder processing and scheduler service tests.
"""

import pytest
from datetime import datetime, timedelta

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from api.models import Reminder, ReminderStatus, utcnow
from scheduler.config import SchedulerConfig
from scheduler.reminders import next_reminder_time, process_due_reminders

NOW = datetime(2026, 3, 10, 7, 0)


class FailingNotifier:
    def send(self, reminder):
        raise ConnectionError("push service down")


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send(self, reminder):
        self.sent.append(reminder.title)


def _reminder(user, scheduled_for, title="Reminder", rule=None, recurrence_end=None, **fields):
    return Reminder(
        user_id=user.id,
        title=title,
        scheduled_for=scheduled_for,
        status=fields.pop("status", ReminderStatus.PENDING),
        is_recurring=rule is not None,
        recurrence_rule=rule,
        recurrence_end=recurrence_end,
        **fields
    )


@pytest.mark.scheduler
class TestProcessDueReminders:

    def test_only_due_pending_reminders_are_sent(self, db_session, test_user):
        notifier = RecordingNotifier()
        db_session.add_all([
            _reminder(test_user, NOW - timedelta(minutes=5), title="due"),
            _reminder(test_user, NOW, title="exactly now"),
            _reminder(test_user, NOW + timedelta(minutes=1), title="future"),
            _reminder(test_user, NOW - timedelta(days=1), title="already sent", status=ReminderStatus.SENT),
        ])
        db_session.commit()

        report = process_due_reminders(db_session, now=NOW, notifier=notifier)

        assert notifier.sent == ["due", "exactly now"]
        assert (report.processed, report.sent, report.failed, report.created) == (2, 2, 0, 0)
        sent = db_session.query(Reminder).filter(Reminder.title == "due").one()
        assert sent.status == ReminderStatus.SENT
        assert sent.sent_at == NOW

    def test_recurring_reminder_spawns_next(self, db_session, test_user):
        parent = _reminder(test_user, NOW - timedelta(minutes=1), title="pills", rule="DAILY")
        db_session.add(parent)
        db_session.commit()

        report = process_due_reminders(db_session, now=NOW, notifier=RecordingNotifier())

        assert report.created == 1
        child = db_session.query(Reminder).filter(Reminder.status == ReminderStatus.PENDING).one()
        assert child.parent_reminder_id == parent.id
        assert child.scheduled_for == NOW - timedelta(minutes=1) + timedelta(days=1)
        assert child.recurrence_rule == "DAILY"
        assert child.is_recurring is True
        assert report.results[0]["nextReminderId"] == child.id

    def test_chain_keeps_the_root_parent(self, db_session, test_user):
        root = _reminder(test_user, NOW - timedelta(days=1), title="root", rule="DAILY", status=ReminderStatus.SENT)
        db_session.add(root)
        db_session.flush()
        db_session.add(_reminder(test_user, NOW - timedelta(minutes=1), title="second", rule="DAILY",
                                 parent_reminder_id=root.id))
        db_session.commit()

        process_due_reminders(db_session, now=NOW, notifier=RecordingNotifier())

        third = db_session.query(Reminder).filter(Reminder.status == ReminderStatus.PENDING).one()
        assert third.parent_reminder_id == root.id

    def test_recurrence_end_stops_the_chain(self, db_session, test_user):
        db_session.add(_reminder(
            test_user, NOW - timedelta(minutes=1), rule="DAILY", recurrence_end=NOW + timedelta(hours=12)
        ))
        db_session.commit()

        report = process_due_reminders(db_session, now=NOW, notifier=RecordingNotifier())

        assert report.sent == 1
        assert report.created == 0
        assert db_session.query(Reminder).count() == 1

    def test_failed_delivery_marks_reminder_failed(self, db_session, test_user):
        db_session.add(_reminder(test_user, NOW - timedelta(minutes=1), rule="DAILY"))
        db_session.commit()

        report = process_due_reminders(db_session, now=NOW, notifier=FailingNotifier())

        assert (report.sent, report.failed, report.created) == (0, 1, 0)
        reminder = db_session.query(Reminder).one()
        assert reminder.status == ReminderStatus.FAILED
        assert reminder.error == "push service down"
        assert reminder.sent_at is None
        assert report.results[0]["success"] is False

    def test_unusable_rule_sends_without_next(self, db_session, test_user):
        db_session.add(_reminder(test_user, NOW - timedelta(minutes=1), rule="NOT A RULE"))
        db_session.commit()

        report = process_due_reminders(db_session, now=NOW, notifier=RecordingNotifier())

        assert (report.sent, report.created) == (1, 0)


@pytest.mark.unit
class TestNextReminderTime:

    def test_daily_keeps_local_wall_time_across_dst(self):
        # 08:00 in Paris on the day before summer time starts
        reminder = Reminder(id="r", scheduled_for=datetime(2026, 3, 28, 7, 0), recurrence_rule="DAILY")

        assert next_reminder_time(reminder, "Europe/Paris") == datetime(2026, 3, 29, 6, 0)

    def test_utc_timezone_is_plain_arithmetic(self):
        reminder = Reminder(id="r", scheduled_for=datetime(2026, 3, 28, 7, 0), recurrence_rule="WEEKLY")

        assert next_reminder_time(reminder, "UTC") == datetime(2026, 4, 4, 7, 0)

    def test_end_is_inclusive(self):
        reminder = Reminder(
            id="r",
            scheduled_for=datetime(2026, 1, 1, 9, 0),
            recurrence_rule="DAILY",
            recurrence_end=datetime(2026, 1, 2, 9, 0),
        )
        assert next_reminder_time(reminder, "UTC") == datetime(2026, 1, 2, 9, 0)

    def test_missing_rule_is_none(self):
        assert next_reminder_time(Reminder(id="r", scheduled_for=NOW), "UTC") is None

    def test_custom_rule_is_none(self):
        reminder = Reminder(
            id="r", scheduled_for=NOW, recurrence_rule='{"type":"CUSTOM","cronExpression":"0 8 * * *"}'
        )
        assert next_reminder_time(reminder, "UTC") is None


@pytest.mark.unit
class TestSchedulerConfig:

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite:///./elsewhere.db")
        monkeypatch.setenv("TZ", "UTC")
        monkeypatch.setenv("REMINDER_POLL_SECONDS", "15")
        monkeypatch.setenv("SCHEDULER_LOG_LEVEL", "DEBUG")

        config = SchedulerConfig.from_environment()

        assert config.database_url == "sqlite:///./elsewhere.db"
        assert config.timezone == "UTC"
        assert config.poll_seconds == 15
        assert config.log_level == "DEBUG"

    def test_validate_rejects_zero_poll(self):
        with pytest.raises(ValueError):
            SchedulerConfig(database_url="sqlite://", poll_seconds=0).validate()


@pytest.mark.scheduler
class TestReminderScheduler:

    def test_tick_processes_due_reminders(self, tmp_path):
        from sqlalchemy.orm import Session
        from api.models import User
        from scheduler.tick import REMINDER_JOB_ID, ReminderScheduler

        config = SchedulerConfig(database_url=f"sqlite:///{tmp_path / 'scheduler.db'}", timezone="UTC")
        notifier = RecordingNotifier()
        service = ReminderScheduler(config, notifier=notifier)
        try:
            assert service.scheduler.get_job(REMINDER_JOB_ID) is not None

            with Session(service.engine) as session:
                user = User(email="sched@example.com", name="Sched")
                session.add(user)
                session.flush()
                session.add(_reminder(user, utcnow() - timedelta(minutes=1), title="tick"))
                session.commit()

            report = service.tick()

            assert report.sent == 1
            assert notifier.sent == ["tick"]
            assert service.tick().processed == 0
        finally:
            service.engine.dispose()
