# engine/store.py
"""
Persistence access for the routine engine.

The executor and dispatcher only see the RoutineStore protocol, so they can
run against the SQLAlchemy implementation below or an in-memory fake.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy.orm import Session

from api.models import Device, Routine, RoutineLog, RoutineStep, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutineRecord:
    id: str
    user_id: str
    name: str
    active: bool = True


@dataclass(frozen=True)
class StepRecord:
    order: int
    action_type: str
    payload: Optional[Dict[str, Any]] = None
    device_id: Optional[str] = None
    delay_seconds: Optional[int] = None


@dataclass(frozen=True)
class DeviceRecord:
    id: str
    user_id: str
    provider: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class RoutineStore(Protocol):
    """Everything the routine engine reads or writes."""

    def get_routine(self, routine_id: str, user_id: str) -> Optional[RoutineRecord]:
        ...

    def list_steps(self, routine_id: str) -> List[StepRecord]:
        ...

    def get_device(self, device_id: str, user_id: Optional[str] = None) -> Optional[DeviceRecord]:
        ...

    def touch_device(self, device_id: str, seen_at: Optional[datetime] = None) -> None:
        ...

    def record_run(self, routine_id: str, status: str, details: Dict[str, Any]) -> None:
        ...


class SqlRoutineStore:
    """RoutineStore on a SQLAlchemy session.

    Writes are flushed, not committed; the session owner decides when the
    unit of work ends.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_routine(self, routine_id: str, user_id: str) -> Optional[RoutineRecord]:
        routine = (
            self.session.query(Routine)
            .filter(Routine.id == routine_id, Routine.user_id == user_id)
            .first()
        )
        if routine is None:
            return None
        return RoutineRecord(id=routine.id, user_id=routine.user_id, name=routine.name, active=routine.active)

    def list_steps(self, routine_id: str) -> List[StepRecord]:
        rows = (
            self.session.query(RoutineStep)
            .filter(RoutineStep.routine_id == routine_id)
            .order_by(RoutineStep.order)
            .all()
        )
        return [
            StepRecord(
                order=row.order,
                action_type=row.action_type.value,
                payload=dict(row.payload) if row.payload else None,
                device_id=row.device_id,
                delay_seconds=row.delay_seconds,
            )
            for row in rows
        ]

    def get_device(self, device_id: str, user_id: Optional[str] = None) -> Optional[DeviceRecord]:
        query = self.session.query(Device).filter(Device.id == device_id)
        if user_id is not None:
            query = query.filter(Device.user_id == user_id)
        device = query.first()
        if device is None:
            return None
        return DeviceRecord(
            id=device.id,
            user_id=device.user_id,
            provider=device.provider,
            metadata=dict(device.device_metadata or {}),
        )

    def touch_device(self, device_id: str, seen_at: Optional[datetime] = None) -> None:
        device = self.session.get(Device, device_id)
        if device is None:
            logger.warning(f"Cannot update last_seen_at of missing device {device_id}")
            return
        device.last_seen_at = seen_at or utcnow()
        self.session.flush()

    def record_run(self, routine_id: str, status: str, details: Dict[str, Any]) -> None:
        self.session.add(RoutineLog(routine_id=routine_id, status=status, details=details))
        self.session.flush()
