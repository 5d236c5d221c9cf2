"""
SQLAlchemy ORM models for Synexa.

Covers users, their devices, routines with ordered steps and run logs,
reminders with recurrence, and audit logging. Column types are kept
portable so the same schema runs on PostgreSQL and SQLite. Timestamps are
stored as naive UTC.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, ForeignKey, Text, JSON,
    BigInteger, Index, Enum as SQLEnum
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, the storage convention of every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TriggerType(str, enum.Enum):
    """How a routine gets started."""
    MANUAL = "MANUAL"
    SCHEDULE = "SCHEDULE"
    VOICE = "VOICE"
    LOCATION = "LOCATION"
    SENSOR = "SENSOR"


class ActionType(str, enum.Enum):
    """What a routine step does."""
    DEVICE_COMMAND = "DEVICE_COMMAND"
    NOTIFICATION = "NOTIFICATION"
    TASK_CREATE = "TASK_CREATE"
    MEDIA_PLAY = "MEDIA_PLAY"
    CUSTOM = "CUSTOM"


class ReminderStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class User(Base):
    """
    Account owning devices, routines and reminders.
    The API authenticates callers by user id.
    """
    __tablename__ = "user_account"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    devices = relationship("Device", back_populates="owner", cascade="all, delete-orphan")
    routines = relationship("Routine", back_populates="owner", cascade="all, delete-orphan")
    reminders = relationship("Reminder", back_populates="owner", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class Device(Base):
    """
    A controllable device reached through a provider connector.
    `metadata` holds provider-specific settings (for Hue: bridgeIp,
    username, hueId, isGroup).
    """
    __tablename__ = "device"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("user_account.id"), nullable=False)
    name = Column(Text, nullable=False)
    provider = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    device_metadata = Column("metadata", JSON, nullable=True)
    last_seen_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    owner = relationship("User", back_populates="devices")

    __table_args__ = (
        Index("ix_device_user_id", "user_id"),
    )

    def __repr__(self):
        return f"<Device(id={self.id}, provider='{self.provider}', name='{self.name}')>"


class Routine(Base):
    """
    Ordered list of steps executed together.
    Steps are replaced wholesale when the routine is edited.
    """
    __tablename__ = "routine"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("user_account.id"), nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    trigger_type = Column(SQLEnum(TriggerType), nullable=False, default=TriggerType.MANUAL)
    trigger_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    owner = relationship("User", back_populates="routines")
    steps = relationship(
        "RoutineStep",
        back_populates="routine",
        cascade="all, delete-orphan",
        order_by="RoutineStep.order",
    )
    logs = relationship("RoutineLog", back_populates="routine", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_routine_user_id", "user_id"),
    )

    def __repr__(self):
        return f"<Routine(id={self.id}, name='{self.name}', active={self.active})>"


class RoutineStep(Base):
    __tablename__ = "routine_step"

    id = Column(String(36), primary_key=True, default=_uuid)
    routine_id = Column(String(36), ForeignKey("routine.id"), nullable=False)
    order = Column(Integer, nullable=False)
    action_type = Column(SQLEnum(ActionType), nullable=False)
    payload = Column(JSON, nullable=True)
    device_id = Column(String(36), ForeignKey("device.id", ondelete="SET NULL"), nullable=True)
    delay_seconds = Column(Integer, nullable=True)

    routine = relationship("Routine", back_populates="steps")

    __table_args__ = (
        Index("ix_routine_step_routine_order", "routine_id", "order"),
    )

    def __repr__(self):
        return f"<RoutineStep(routine_id={self.routine_id}, order={self.order}, action_type={self.action_type})>"


class RoutineLog(Base):
    """
    One row per routine execution, dry runs included.
    `status` is the run summary (success, partial or failed).
    """
    __tablename__ = "routine_log"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    routine_id = Column(String(36), ForeignKey("routine.id"), nullable=False)
    status = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)
    executed_at = Column(DateTime, nullable=False, default=utcnow)

    routine = relationship("Routine", back_populates="logs")

    __table_args__ = (
        Index("ix_routine_log_routine_id", "routine_id"),
    )

    def __repr__(self):
        return f"<RoutineLog(routine_id={self.routine_id}, status='{self.status}')>"


class Reminder(Base):
    """
    A notification due at `scheduled_for`.
    Recurring reminders spawn their next occurrence once sent; every
    occurrence points at the first one through `parent_reminder_id`.
    """
    __tablename__ = "reminder"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("user_account.id"), nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text, nullable=True)
    scheduled_for = Column(DateTime, nullable=False)
    status = Column(SQLEnum(ReminderStatus), nullable=False, default=ReminderStatus.PENDING)
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurrence_rule = Column(Text, nullable=True)
    recurrence_end = Column(DateTime, nullable=True)
    parent_reminder_id = Column(String(36), ForeignKey("reminder.id"), nullable=True)
    sent_at = Column(DateTime, nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    owner = relationship("User", back_populates="reminders")

    __table_args__ = (
        Index("ix_reminder_status_scheduled_for", "status", "scheduled_for"),
    )

    def __repr__(self):
        return f"<Reminder(id={self.id}, title='{self.title}', status={self.status})>"


class AuditLog(Base):
    """
    Immutable audit trail for routine, device and reminder operations.
    """
    __tablename__ = "audit_log"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    actor_user_id = Column(String(36), ForeignKey("user_account.id"), nullable=True)
    action = Column(Text, nullable=False)
    subject_id = Column(String(36), nullable=True)
    details = Column(JSON, nullable=True)
    at = Column(DateTime, nullable=False, default=utcnow)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_user_id})>"
