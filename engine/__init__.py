"""
Synexa Engine Module

This module provides the scheduling core, including:
- Recurrence rule parsing, formatting and next-occurrence computation
- Routine execution with per-step failure isolation
- Device command dispatch through provider connectors
"""

from .errors import (
    SynexaError, NotFoundError, RoutineNotFoundError, DeviceNotFoundError,
    RecurrenceFormatError, StepDispatchError, ConnectorConfigurationError
)
from .recurrence import (
    RecurrenceRule, RecurrenceType, RecurrenceStatus, RecurrenceOutcome,
    compute_next_occurrence, evaluate_next_occurrence, upcoming_occurrences,
    parse_rule, parse_rule_strict, format_rule
)
from .registry import ConnectorRegistry, ConnectorTarget, default_registry
from .dispatcher import DeviceCommand, DeviceCommandResponse, DeviceDispatcher
from .executor import (
    RoutineExecutor, RoutineExecutionResult, StepOutcome, normalize_steps, compute_summary
)
from .store import RoutineStore, SqlRoutineStore

__version__ = "1.0.0"

__all__ = [
    'SynexaError',
    'NotFoundError',
    'RoutineNotFoundError',
    'DeviceNotFoundError',
    'RecurrenceFormatError',
    'StepDispatchError',
    'ConnectorConfigurationError',
    'RecurrenceRule',
    'RecurrenceType',
    'RecurrenceStatus',
    'RecurrenceOutcome',
    'compute_next_occurrence',
    'evaluate_next_occurrence',
    'upcoming_occurrences',
    'parse_rule',
    'parse_rule_strict',
    'format_rule',
    'ConnectorRegistry',
    'ConnectorTarget',
    'default_registry',
    'DeviceCommand',
    'DeviceCommandResponse',
    'DeviceDispatcher',
    'RoutineExecutor',
    'RoutineExecutionResult',
    'StepOutcome',
    'normalize_steps',
    'compute_summary',
    'RoutineStore',
    'SqlRoutineStore',
]
