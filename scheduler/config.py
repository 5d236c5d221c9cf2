# scheduler/config.py
"""
Configuration for the reminder scheduler service.
"""

import os
from dataclasses import dataclass


@dataclass
class SchedulerConfig:
    """Configuration for the reminder scheduler process."""

    # Database connection
    database_url: str

    # Scheduling behavior
    timezone: str = "Europe/Paris"
    poll_seconds: int = 60
    misfire_grace_time: int = 30  # seconds

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_environment(cls) -> "SchedulerConfig":
        """Create configuration from environment variables."""
        return cls(
            database_url=os.environ.get("DATABASE_URL", "sqlite:///./synexa.db"),
            timezone=os.environ.get("TZ", "Europe/Paris"),
            poll_seconds=int(os.environ.get("REMINDER_POLL_SECONDS", "60")),
            log_level=os.environ.get("SCHEDULER_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        if self.poll_seconds < 1:
            raise ValueError(f"poll_seconds must be at least 1, got {self.poll_seconds}")
        if self.misfire_grace_time < 0:
            raise ValueError(f"misfire_grace_time must be non-negative, got {self.misfire_grace_time}")
