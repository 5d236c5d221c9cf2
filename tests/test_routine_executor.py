#!/usr/bin/env python3
"""
Routine execution tests.

Runs routines against the in-memory store with scripted connectors, so the
ordering, delay and failure-isolation behaviour can be checked without a
database or a Hue bridge.
"""

import threading

import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import HUE_METADATA
from engine.dispatcher import DeviceDispatcher
from engine.errors import RoutineNotFoundError
from engine.executor import (
    RoutineExecutor, StepOutcome, compute_summary, normalize_steps,
    SUMMARY_FAILED, SUMMARY_PARTIAL, SUMMARY_SUCCESS
)
from engine.store import StepRecord


def _step(order, action_type="DEVICE_COMMAND", payload=None, device_id=None, delay_seconds=None):
    return StepRecord(
        order=order,
        action_type=action_type,
        payload=payload,
        device_id=device_id,
        delay_seconds=delay_seconds,
    )


@pytest.fixture
def executor(memory_store, connector_registry, recording_sleep):
    dispatcher = DeviceDispatcher(memory_store, connector_registry)
    return RoutineExecutor(memory_store, dispatcher, sleep=recording_sleep)


@pytest.mark.unit
class TestNormalizeSteps:

    def test_orders_are_sorted_and_reindexed(self):
        steps = normalize_steps([
            {"order": 5, "actionType": "A"},
            {"order": 1, "actionType": "B"},
            {"order": 1, "actionType": "C"},
            {"order": 3, "actionType": "D"},
        ])
        assert [s.action_type for s in steps] == ["B", "C", "D", "A"]
        assert [s.order for s in steps] == [0, 1, 2, 3]

    def test_steps_without_action_type_are_dropped(self):
        steps = normalize_steps([
            {"order": 0, "actionType": "A"},
            {"order": 1},
            {"order": 2, "actionType": ""},
            {"order": 3, "action_type": "D"},
        ])
        assert [s.action_type for s in steps] == ["A", "D"]
        assert [s.order for s in steps] == [0, 1]

    def test_missing_order_defaults_to_position(self):
        steps = normalize_steps([
            {"actionType": "first"},
            {"order": 0, "actionType": "zero"},
            {"actionType": "third"},
        ])
        assert [s.action_type for s in steps] == ["first", "zero", "third"]

    def test_snake_case_fields_are_accepted(self):
        [step] = normalize_steps([
            {"action_type": "DEVICE_COMMAND", "device_id": "lamp", "delay_seconds": 4, "payload": {"a": 1}}
        ])
        assert step.device_id == "lamp"
        assert step.delay_seconds == 4
        assert step.payload == {"a": 1}

    def test_empty_payload_and_device_become_none(self):
        [step] = normalize_steps([{"actionType": "X", "payload": {}, "deviceId": ""}])
        assert step.payload is None
        assert step.device_id is None


@pytest.mark.unit
class TestComputeSummary:

    @staticmethod
    def _outcomes(*statuses):
        return [StepOutcome(step_order=i, action_type="X", status=s) for i, s in enumerate(statuses)]

    def test_all_sent_is_success(self):
        assert compute_summary(self._outcomes("sent", "sent")) == SUMMARY_SUCCESS

    def test_empty_run_is_success(self):
        assert compute_summary([]) == SUMMARY_SUCCESS

    def test_error_with_some_sent_is_partial(self):
        assert compute_summary(self._outcomes("sent", "error")) == SUMMARY_PARTIAL

    def test_only_errors_is_failed(self):
        assert compute_summary(self._outcomes("error", "error")) == SUMMARY_FAILED

    def test_error_and_queued_without_sent_is_failed(self):
        assert compute_summary(self._outcomes("queued", "error")) == SUMMARY_FAILED

    def test_queued_is_partial(self):
        assert compute_summary(self._outcomes("sent", "queued")) == SUMMARY_PARTIAL
        assert compute_summary(self._outcomes("queued")) == SUMMARY_PARTIAL


@pytest.mark.pipeline
class TestExecuteRoutine:

    async def test_failure_does_not_stop_later_steps(self, executor, memory_store, hue_connector):
        hue_connector.result = lambda call: ConnectionError("bridge down") if call == 2 else True
        memory_store.add_device("lamp", "alice", "hue", HUE_METADATA)
        memory_store.add_routine("r1", "alice", [
            _step(0, payload={"action": "turn_on"}, device_id="lamp"),
            _step(1, payload={"action": "set_brightness", "brightness": 40}, device_id="lamp"),
            _step(2, payload={"action": "turn_off"}, device_id="lamp"),
        ])

        result = await executor.execute_routine("r1", "alice")

        assert [o.status for o in result.outcomes] == ["sent", "error", "sent"]
        assert result.outcomes[1].detail == "bridge down"
        assert result.summary == SUMMARY_PARTIAL
        assert len(hue_connector.calls) == 3
        assert [c["command"]["action"] for c in hue_connector.calls] == ["turn_on", "set_brightness", "turn_off"]

    async def test_steps_run_in_declared_order(self, executor, memory_store, hue_connector):
        memory_store.add_device("lamp", "alice", "hue", HUE_METADATA)
        memory_store.add_routine("r1", "alice", [
            _step(9, payload={"action": "last"}, device_id="lamp"),
            _step(2, payload={"action": "first"}, device_id="lamp"),
        ])

        result = await executor.execute_routine("r1", "alice")

        assert [c["command"]["action"] for c in hue_connector.calls] == ["first", "last"]
        assert [o.step_order for o in result.outcomes] == [0, 1]

    async def test_delays_are_awaited_before_their_step(self, executor, memory_store, recording_sleep):
        memory_store.add_device("lamp", "alice", "hue", HUE_METADATA)
        memory_store.add_routine("r1", "alice", [
            _step(0, device_id="lamp"),
            _step(1, device_id="lamp", delay_seconds=30),
            _step(2, device_id="lamp", delay_seconds=0),
            _step(3, device_id="lamp", delay_seconds=5),
        ])

        await executor.execute_routine("r1", "alice")

        assert recording_sleep.calls == [30, 5]

    async def test_dry_run_skips_delays_and_device_io(self, executor, memory_store, hue_connector, recording_sleep):
        memory_store.add_device("lamp", "alice", "hue", HUE_METADATA)
        memory_store.add_routine("r1", "alice", [
            _step(0, device_id="lamp", delay_seconds=60),
            _step(1, device_id="lamp"),
        ])

        result = await executor.execute_routine("r1", "alice", dry_run=True)

        assert result.dry_run is True
        assert [o.status for o in result.outcomes] == ["queued", "queued"]
        assert result.summary == SUMMARY_PARTIAL
        assert hue_connector.calls == []
        assert recording_sleep.calls == []
        assert memory_store.touched == []

    async def test_action_defaults_to_execute(self, executor, memory_store, hue_connector):
        memory_store.add_device("lamp", "alice", "hue", HUE_METADATA)
        memory_store.add_routine("r1", "alice", [_step(0, device_id="lamp")])

        await executor.execute_routine("r1", "alice")

        assert hue_connector.calls[0]["command"] == {"action": "execute"}

    async def test_device_command_without_device_is_error(self, executor, memory_store):
        memory_store.add_routine("r1", "alice", [_step(0, action_type="DEVICE_COMMAND")])

        result = await executor.execute_routine("r1", "alice")

        assert result.outcomes[0].status == "error"
        assert result.outcomes[0].detail == "deviceId is required"
        assert result.summary == SUMMARY_FAILED

    async def test_other_action_types_are_left_queued(self, executor, memory_store):
        memory_store.add_routine("r1", "alice", [_step(0, action_type="NOTIFICATION", payload={"text": "hi"})])

        result = await executor.execute_routine("r1", "alice")

        assert result.outcomes[0].status == "queued"
        assert "NOTIFICATION" in result.outcomes[0].detail

    async def test_device_of_another_user_is_error_outcome(self, executor, memory_store, hue_connector):
        memory_store.add_device("lamp", "bob", "hue", HUE_METADATA)
        memory_store.add_routine("r1", "alice", [_step(0, device_id="lamp")])

        result = await executor.execute_routine("r1", "alice")

        assert result.outcomes[0].status == "error"
        assert "not found" in result.outcomes[0].detail
        assert result.outcomes[0].device_id == "lamp"
        assert hue_connector.calls == []

    async def test_unknown_routine_raises(self, executor):
        with pytest.raises(RoutineNotFoundError):
            await executor.execute_routine("missing", "alice")

    async def test_routine_of_another_user_raises(self, executor, memory_store):
        memory_store.add_routine("r1", "alice", [])
        with pytest.raises(RoutineNotFoundError):
            await executor.execute_routine("r1", "bob")
        assert memory_store.runs == []

    async def test_run_is_recorded_with_outcomes(self, executor, memory_store):
        memory_store.add_device("lamp", "alice", "hue", HUE_METADATA)
        memory_store.add_routine("r1", "alice", [_step(0, device_id="lamp")])

        result = await executor.execute_routine("r1", "alice", metadata={"source": "voice"})

        assert memory_store.runs == [{
            "routine_id": "r1",
            "status": SUMMARY_SUCCESS,
            "details": {
                "dryRun": False,
                "outcomes": [{
                    "stepOrder": 0,
                    "actionType": "DEVICE_COMMAND",
                    "status": "sent",
                    "detail": None,
                    "deviceId": "lamp",
                    "provider": "hue",
                }],
                "metadata": {"source": "voice"},
            },
        }]
        assert memory_store.touched == ["lamp"]
        assert result.to_dict()["summary"] == SUMMARY_SUCCESS

    async def test_empty_routine_succeeds(self, executor, memory_store):
        memory_store.add_routine("r1", "alice", [])

        result = await executor.execute_routine("r1", "alice")

        assert result.outcomes == []
        assert result.summary == SUMMARY_SUCCESS

    async def test_connector_io_runs_off_the_event_loop_thread(self, executor, memory_store, hue_connector):
        loop_thread = threading.get_ident()
        send_threads = []

        def record_thread(call):
            send_threads.append(threading.get_ident())
            return True

        hue_connector.result = record_thread
        memory_store.add_device("lamp", "alice", "hue", HUE_METADATA)
        memory_store.add_routine("r1", "alice", [_step(0, payload={"action": "turn_on"}, device_id="lamp")])

        result = await executor.execute_routine("r1", "alice")

        assert result.summary == SUMMARY_SUCCESS
        assert len(send_threads) == 1
        assert send_threads[0] != loop_thread
