"""Exception hierarchy shared by the recurrence and routine engines."""

from typing import Optional


class SynexaError(Exception):
    """Base class for engine errors."""


class NotFoundError(SynexaError):
    """A routine or device does not exist or belongs to another user."""

    def __init__(self, message: str, resource_id: Optional[str] = None):
        self.resource_id = resource_id
        super().__init__(message)


class RoutineNotFoundError(NotFoundError):
    pass


class DeviceNotFoundError(NotFoundError):
    pass


class RecurrenceFormatError(SynexaError, ValueError):
    """A recurrence rule could not be parsed or violates its invariants."""


class StepDispatchError(SynexaError):
    """A routine step could not be dispatched."""

    def __init__(self, message: str, step_order: Optional[int] = None, cause: Optional[Exception] = None):
        self.step_order = step_order
        self.cause = cause
        super().__init__(message)


class ConnectorConfigurationError(StepDispatchError):
    """A connector is missing its bridge address, credentials or target id."""
