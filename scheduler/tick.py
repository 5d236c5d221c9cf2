#!/usr/bin/env python3
"""
Synexa - Reminder Scheduler Service
APScheduler process that periodically sends due reminders.

- Polls the reminder table every REMINDER_POLL_SECONDS
- Sends PENDING reminders whose time has come
- Creates the next occurrence of recurring reminders via the recurrence engine
- Handles timezone-aware recurrence with Europe/Paris default
"""

import os
import sys
import signal
import logging

# Add project root to path for imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.interval import IntervalTrigger

from api.models import Base
from scheduler.config import SchedulerConfig
from scheduler.reminders import ReminderNotifier, process_due_reminders

# Import observability components
from observability.logging import scheduler_logger, set_request_context, generate_request_id

logger = logging.getLogger(__name__)
structured_logger = scheduler_logger

REMINDER_JOB_ID = "process_due_reminders"


class ReminderScheduler:
    """APScheduler service sending due reminders."""

    def __init__(self, config: SchedulerConfig, notifier: ReminderNotifier = None):
        """Initialize scheduler service.

        Args:
            config: Service configuration
            notifier: Reminder delivery channel, logs only by default
        """
        config.validate()
        self.config = config
        self.notifier = notifier
        self.scheduler = None
        self.engine = None
        self.session_factory = None
        self._shutdown = False

        self._setup_database()
        self._setup_scheduler()

        # Set up signal handlers for graceful shutdown
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

    def _setup_database(self):
        """Set up database engine and session factory."""
        connect_args = {}
        if self.config.database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine = create_engine(
            self.config.database_url,
            pool_pre_ping=True,
            future=True,
            connect_args=connect_args
        )
        Base.metadata.create_all(self.engine)
        self.session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        logger.info("Database engine initialized")

    def _setup_scheduler(self):
        """Set up APScheduler with the reminder polling job."""
        job_defaults = {
            'coalesce': True,           # Combine missed executions
            'max_instances': 1,         # Prevent concurrent job instances
            'misfire_grace_time': self.config.misfire_grace_time
        }

        self.scheduler = BlockingScheduler(
            job_defaults=job_defaults,
            timezone=self.config.timezone
        )
        self.scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self.config.poll_seconds, timezone=self.config.timezone),
            id=REMINDER_JOB_ID,
            name="Send due reminders",
            replace_existing=True
        )

        logger.info(
            f"APScheduler initialized with timezone {self.config.timezone}, "
            f"polling every {self.config.poll_seconds}s"
        )

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        logger.info(f"Signal {signum} received, stopping reminder polling")
        self._shutdown = True
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=True)

    def tick(self):
        """One polling pass over due reminders."""
        if self._shutdown:
            return None

        set_request_context(request_id=generate_request_id())
        session = self.session_factory()
        try:
            report = process_due_reminders(
                session,
                notifier=self.notifier,
                tz_name=self.config.timezone
            )
        except Exception:
            session.rollback()
            structured_logger.exception("Reminder processing pass failed")
            raise
        finally:
            session.close()

        if report.processed:
            structured_logger.info(
                "Reminder processing pass finished",
                processed=report.processed,
                sent=report.sent,
                failed=report.failed,
                created=report.created,
                event_type="reminder_pass_completed"
            )
        return report

    def run(self):
        """Run the scheduler service."""
        try:
            logger.info("Starting Synexa reminder scheduler")

            # Catch up on reminders that became due while the service was down
            self.tick()

            logger.info("Starting APScheduler")
            self.scheduler.start()

        except KeyboardInterrupt:
            logger.info("Interrupted, stopping reminder scheduler")
        except Exception as e:
            logger.error(f"Reminder scheduler stopped on error: {e}")
            raise
        finally:
            if self.scheduler and self.scheduler.running:
                logger.info("Shutting down scheduler")
                self.scheduler.shutdown(wait=True)

            if self.engine:
                logger.info("Closing database connections")
                self.engine.dispose()


def main():
    """Entry point: python -m scheduler.tick"""
    config = SchedulerConfig.from_environment()
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=config.log_format,
        handlers=[logging.StreamHandler()]
    )

    try:
        logger.info(f"Using database URL: {config.database_url}")
        service = ReminderScheduler(config)
        service.run()

    except Exception as e:
        logger.error(f"Reminder scheduler exited: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
