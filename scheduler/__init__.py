"""
Synexa Scheduler Module

This module provides the APScheduler-based reminder service and the due
reminder processing it shares with the HTTP API.
"""

from .config import SchedulerConfig
from .tick import ReminderScheduler
from .reminders import (
    LogNotifier, ReminderNotifier, ReminderProcessingReport,
    next_reminder_time, process_due_reminders
)

__version__ = "1.0.0"

__all__ = [
    'SchedulerConfig',
    'ReminderScheduler',
    'LogNotifier',
    'ReminderNotifier',
    'ReminderProcessingReport',
    'next_reminder_time',
    'process_due_reminders',
]
