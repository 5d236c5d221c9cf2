#!/usr/bin/env python3
"""
Pytest configuration for Synexa tests.

Provides a SQLite database shared by the API and scheduler tests, an
in-memory routine store and scripted connectors for engine unit tests.
"""

import os
import sys
import pytest
from datetime import datetime
from typing import Any, Dict, List, Optional

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Environment must be set before the API modules create their engine
TEST_DB_FILE = "test_synexa.db"
os.environ["DATABASE_URL"] = f"sqlite:///./{TEST_DB_FILE}"
os.environ.setdefault("TZ", "Europe/Paris")
os.environ.pop("CRON_SECRET", None)

from engine.registry import ConnectorRegistry, ConnectorTarget
from engine.store import DeviceRecord, RoutineRecord, StepRecord


class InMemoryRoutineStore:
    """RoutineStore backed by dicts, recording every write."""

    def __init__(self):
        self.routines: Dict[str, RoutineRecord] = {}
        self.steps: Dict[str, List[StepRecord]] = {}
        self.devices: Dict[str, DeviceRecord] = {}
        self.touched: List[str] = []
        self.runs: List[Dict[str, Any]] = []

    def add_routine(self, routine_id: str, user_id: str, steps: List[StepRecord], name: str = "Routine"):
        self.routines[routine_id] = RoutineRecord(id=routine_id, user_id=user_id, name=name)
        self.steps[routine_id] = list(steps)

    def add_device(self, device_id: str, user_id: str, provider: str, metadata: Optional[Dict[str, Any]] = None):
        self.devices[device_id] = DeviceRecord(
            id=device_id, user_id=user_id, provider=provider, metadata=metadata or {}
        )

    def get_routine(self, routine_id: str, user_id: str) -> Optional[RoutineRecord]:
        routine = self.routines.get(routine_id)
        if routine is None or routine.user_id != user_id:
            return None
        return routine

    def list_steps(self, routine_id: str) -> List[StepRecord]:
        return list(self.steps.get(routine_id, []))

    def get_device(self, device_id: str, user_id: Optional[str] = None) -> Optional[DeviceRecord]:
        device = self.devices.get(device_id)
        if device is None or (user_id is not None and device.user_id != user_id):
            return None
        return device

    def touch_device(self, device_id: str, seen_at: Optional[datetime] = None) -> None:
        self.touched.append(device_id)

    def record_run(self, routine_id: str, status: str, details: Dict[str, Any]) -> None:
        self.runs.append({"routine_id": routine_id, "status": status, "details": details})


class ScriptedConnector:
    """Connector whose send() returns or raises whatever the test scripted."""

    def __init__(self, provider: str = "hue", result: Any = True):
        self.provider = provider
        self.result = result
        self.calls: List[Dict[str, Any]] = []

    def target_from_metadata(self, metadata):
        metadata = metadata or {}
        return ConnectorTarget(
            bridge_address=metadata.get("bridgeIp"),
            credentials=metadata.get("username"),
            target_id=metadata.get("hueId"),
            group=bool(metadata.get("isGroup", False)),
        )

    def build_command(self, action, payload):
        return {"action": action, **(payload or {})}

    def send(self, bridge_address, credentials, target_id, command, *, group=False):
        self.calls.append({
            "bridge_address": bridge_address,
            "credentials": credentials,
            "target_id": target_id,
            "command": command,
            "group": group,
        })
        result = self.result(len(self.calls)) if callable(self.result) else self.result
        if isinstance(result, Exception):
            raise result
        return result


class RecordingSleep:
    """Async stand-in for asyncio.sleep that only records durations."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


HUE_METADATA = {"bridgeIp": "192.168.1.10", "username": "hue-user", "hueId": "3"}


@pytest.fixture
def memory_store():
    return InMemoryRoutineStore()


@pytest.fixture
def hue_connector():
    return ScriptedConnector("hue", result=True)


@pytest.fixture
def connector_registry(hue_connector):
    registry = ConnectorRegistry()
    registry.register("hue", hue_connector)
    return registry


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture(scope="session")
def db_engine():
    """Session-scoped SQLite schema shared with the API's engine."""
    from api.dependencies import engine
    from api.models import Base

    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()
    if os.path.exists(TEST_DB_FILE):
        os.remove(TEST_DB_FILE)


@pytest.fixture
def db_session(db_engine):
    """Session on a clean database; every table is emptied afterwards."""
    from api.dependencies import SessionLocal
    from api.models import Base

    session = SessionLocal()
    yield session
    session.rollback()
    session.close()
    with db_engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def test_user(db_session):
    from api.models import User

    user = User(email="ada@example.com", name="Ada")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def other_user(db_session):
    from api.models import User

    user = User(email="grace@example.com", name="Grace")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def auth_headers(test_user):
    return {"Authorization": f"Bearer {test_user.id}"}


@pytest.fixture
def client(db_session):
    from fastapi.testclient import TestClient
    from api.main import app

    with TestClient(app) as test_client:
        yield test_client
