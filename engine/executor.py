# engine/executor.py
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from engine.dispatcher import (
    DeviceCommand, DeviceDispatcher, STATUS_ERROR, STATUS_QUEUED, STATUS_SENT
)
from engine.errors import RoutineNotFoundError
from engine.store import RoutineStore, StepRecord

# Import observability components
from observability.metrics import synexa_metrics
from observability.logging import (
    routine_logger, set_request_context, generate_run_id, generate_step_id,
    log_function_call
)

logger = logging.getLogger(__name__)
structured_logger = routine_logger

DEFAULT_ACTION = "execute"
DEVICE_COMMAND = "DEVICE_COMMAND"

SUMMARY_SUCCESS = "success"
SUMMARY_PARTIAL = "partial"
SUMMARY_FAILED = "failed"


@dataclass(frozen=True)
class NormalizedStep:
    order: int
    action_type: str
    payload: Optional[Dict[str, Any]] = None
    device_id: Optional[str] = None
    delay_seconds: Optional[int] = None


@dataclass
class StepOutcome:
    step_order: int
    action_type: str
    status: str
    detail: Optional[str] = None
    device_id: Optional[str] = None
    provider: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "stepOrder": self.step_order,
            "actionType": self.action_type,
            "status": self.status,
            "detail": self.detail,
        }
        if self.device_id is not None:
            data["deviceId"] = self.device_id
        if self.provider is not None:
            data["provider"] = self.provider
        return data


@dataclass
class RoutineExecutionResult:
    routine_id: str
    dry_run: bool
    outcomes: List[StepOutcome] = field(default_factory=list)
    summary: str = SUMMARY_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "routineId": self.routine_id,
            "dryRun": self.dry_run,
            "summary": self.summary,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


def _field(raw: Mapping[str, Any], camel: str, snake: str) -> Any:
    if camel in raw:
        return raw[camel]
    return raw.get(snake)


def normalize_steps(raw_steps: Iterable[Mapping[str, Any]]) -> List[NormalizedStep]:
    """
    Turn loosely-shaped step definitions into a dense, ordered step list.

    Steps without an action type are dropped. A missing order defaults to the
    step's position in the input; ties keep input order. The result is
    re-indexed 0..N-1.

    Args:
        raw_steps: Step mappings with camelCase or snake_case keys

    Returns:
        Steps sorted by their declared order and renumbered
    """
    indexed = []
    for position, raw in enumerate(raw_steps):
        action_type = _field(raw, "actionType", "action_type")
        if not action_type:
            logger.debug(f"Dropping step {position}: no action type")
            continue
        order = raw.get("order")
        indexed.append((
            order if order is not None else position,
            position,
            str(action_type),
            _field(raw, "payload", "payload"),
            _field(raw, "deviceId", "device_id"),
            _field(raw, "delaySeconds", "delay_seconds"),
        ))

    indexed.sort(key=lambda item: (item[0], item[1]))

    return [
        NormalizedStep(
            order=new_order,
            action_type=action_type,
            payload=payload or None,
            device_id=device_id or None,
            delay_seconds=delay_seconds,
        )
        for new_order, (_, _, action_type, payload, device_id, delay_seconds) in enumerate(indexed)
    ]


def compute_summary(outcomes: List[StepOutcome]) -> str:
    """
    Collapse step outcomes into a run status.

    success when every step was sent; failed when something errored and
    nothing was sent; partial otherwise (queued steps included).
    """
    if all(outcome.status == STATUS_SENT for outcome in outcomes):
        return SUMMARY_SUCCESS
    if any(outcome.status == STATUS_ERROR for outcome in outcomes):
        if any(outcome.status == STATUS_SENT for outcome in outcomes):
            return SUMMARY_PARTIAL
        return SUMMARY_FAILED
    return SUMMARY_PARTIAL


class RoutineExecutor:
    """
    Runs a routine's steps strictly in order.

    A failing step is recorded as an error outcome and never stops the steps
    after it. The sleep function is injectable so tests can observe delays
    without waiting.
    """

    def __init__(
        self,
        store: RoutineStore,
        dispatcher: DeviceDispatcher,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self._sleep = sleep

    @log_function_call(routine_logger, level=logging.INFO)
    async def execute_routine(
        self,
        routine_id: str,
        user_id: str,
        dry_run: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RoutineExecutionResult:
        """
        Execute every step of a routine owned by user_id.

        Steps are read once at the start; edits made while the run is in
        progress do not affect it.

        Args:
            routine_id: Routine to run
            user_id: Owner of the routine
            dry_run: Skip delays and device I/O, report what would happen
            metadata: Caller context stored with the run log

        Returns:
            RoutineExecutionResult with one outcome per step, in order

        Raises:
            RoutineNotFoundError: If the routine does not exist for this user
        """
        run_start = time.time()
        set_request_context(user_id=user_id, routine_id=routine_id, run_id=generate_run_id())

        routine = self.store.get_routine(routine_id, user_id)
        if routine is None:
            raise RoutineNotFoundError(f"Routine {routine_id} not found", resource_id=routine_id)

        steps = normalize_steps(self._step_dicts(self.store.list_steps(routine.id)))
        structured_logger.routine_started(
            routine_id=routine.id,
            user_id=user_id,
            step_count=len(steps),
            dry_run=dry_run,
        )

        result = RoutineExecutionResult(routine_id=routine.id, dry_run=dry_run)
        for step in steps:
            if step.delay_seconds and not dry_run:
                logger.info(f"Waiting {step.delay_seconds}s before step {step.order}")
                await self._sleep(step.delay_seconds)
            result.outcomes.append(await self._run_step(step, user_id, dry_run))

        result.summary = compute_summary(result.outcomes)
        self.store.record_run(
            routine.id,
            result.summary,
            {
                "dryRun": dry_run,
                "outcomes": [outcome.to_dict() for outcome in result.outcomes],
                "metadata": metadata,
            },
        )

        duration = time.time() - run_start
        synexa_metrics.record_routine_run(result.summary, dry_run, duration)
        structured_logger.routine_completed(
            routine_id=routine.id,
            summary=result.summary,
            duration_ms=duration * 1000,
            outcomes=self._status_counts(result.outcomes),
        )
        return result

    async def _run_step(self, step: NormalizedStep, user_id: str, dry_run: bool) -> StepOutcome:
        step_start = time.time()
        set_request_context(step_id=generate_step_id(step.order))

        outcome = StepOutcome(step_order=step.order, action_type=step.action_type, status=STATUS_QUEUED)
        try:
            if step.device_id:
                payload = step.payload or {}
                command = DeviceCommand(action=payload.get("action") or DEFAULT_ACTION, payload=payload)
                # connectors block on bridge I/O; keep the event loop free
                response = await asyncio.to_thread(
                    self.dispatcher.dispatch_device_command,
                    step.device_id, command, dry_run=dry_run, user_id=user_id,
                )
                outcome.status = response.status
                outcome.detail = response.detail
                outcome.device_id = response.device_id
                outcome.provider = response.provider
            elif step.action_type == DEVICE_COMMAND:
                outcome.status = STATUS_ERROR
                outcome.detail = "deviceId is required"
            else:
                outcome.detail = f"No handler for {step.action_type} steps; left queued"
        except Exception as e:
            logger.warning(f"Step {step.order} ({step.action_type}) failed: {e}")
            outcome.status = STATUS_ERROR
            outcome.detail = str(e)
            outcome.device_id = step.device_id

        duration = time.time() - step_start
        synexa_metrics.record_step_outcome(step.action_type, outcome.status, duration)
        structured_logger.step_completed(
            step_order=step.order,
            action_type=step.action_type,
            status=outcome.status,
            duration_ms=duration * 1000,
            detail=outcome.detail,
        )
        return outcome

    @staticmethod
    def _step_dicts(records: List[StepRecord]) -> List[Dict[str, Any]]:
        return [
            {
                "order": record.order,
                "actionType": record.action_type,
                "payload": record.payload,
                "deviceId": record.device_id,
                "delaySeconds": record.delay_seconds,
            }
            for record in records
        ]

    @staticmethod
    def _status_counts(outcomes: List[StepOutcome]) -> Dict[str, int]:
        counts = {STATUS_SENT: 0, STATUS_QUEUED: 0, STATUS_ERROR: 0}
        for outcome in outcomes:
            counts[outcome.status] = counts.get(outcome.status, 0) + 1
        return counts
