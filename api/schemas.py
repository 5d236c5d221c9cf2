"""
Pydantic schemas for API request/response models.

These schemas provide input validation, serialization, and automatic OpenAPI
documentation generation for the Synexa API. Field names are snake_case in
Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import ActionType, ReminderStatus, TriggerType


def _to_camel(name: str) -> str:
    head, *tail = name.split("_")
    return head + "".join(part.title() for part in tail)


class CamelModel(BaseModel):
    """Base schema accepting both camelCase aliases and field names."""

    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True)


# Request Schemas

class RoutineStepRequest(CamelModel):
    """
    One step of a routine definition.
    `order` defaults to the step's position; steps without an action type
    are rejected here, while the engine drops them when normalizing.
    """
    order: Optional[int] = Field(None, ge=0, description="Execution position; ties keep input order")
    action_type: ActionType = Field(..., description="What the step does")
    payload: Optional[Dict[str, Any]] = Field(None, description="Action parameters, e.g. {\"action\": \"turn_on\"}")
    device_id: Optional[str] = Field(None, description="Target device for device commands")
    delay_seconds: Optional[int] = Field(None, ge=0, le=86400, description="Wait before this step runs")


class RoutineCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200, description="Human-readable routine name")
    description: Optional[str] = Field(None, max_length=2000)
    active: bool = True
    trigger_type: TriggerType = Field(default=TriggerType.MANUAL, description="How the routine is started")
    trigger_data: Optional[Dict[str, Any]] = None
    steps: List[RoutineStepRequest] = Field(default_factory=list)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Good night",
            "description": "Dim the living room, then switch everything off",
            "triggerType": "MANUAL",
            "steps": [
                {"actionType": "DEVICE_COMMAND", "deviceId": "3f0c...", "payload": {"action": "set_brightness", "brightness": 20}},
                {"actionType": "DEVICE_COMMAND", "deviceId": "3f0c...", "payload": {"action": "turn_off"}, "delaySeconds": 600}
            ]
        }
    })


class RoutineUpdateRequest(CamelModel):
    """Partial update; `steps`, when given, replaces every existing step."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    active: Optional[bool] = None
    trigger_type: Optional[TriggerType] = None
    trigger_data: Optional[Dict[str, Any]] = None
    steps: Optional[List[RoutineStepRequest]] = None


class RoutineExecuteRequest(CamelModel):
    dry_run: bool = Field(default=False, description="Report what would happen without delays or device I/O")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Caller context stored with the run log")


class DeviceCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=200)
    provider: str = Field(..., min_length=1, max_length=50, description="Connector name, e.g. hue")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Provider settings (Hue: bridgeIp, username, hueId, isGroup)")

    @field_validator("provider")
    @classmethod
    def normalize_provider(cls, v):
        return v.strip().lower()


class DeviceCommandRequest(CamelModel):
    action: str = Field(..., min_length=1, max_length=100, description="Generic action, e.g. turn_on")
    payload: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(json_schema_extra={
        "example": {"action": "turn_on", "payload": {"brightness": 80, "color": "#ffaa00", "transitionTime": 2}}
    })


class RecurrenceParseRequest(CamelModel):
    rule: str = Field(..., description="Keyword, TYPE:interval or JSON rule")


class RecurrenceNextRequest(CamelModel):
    rule: str = Field(..., description="Keyword, TYPE:interval or JSON rule")
    base_date: datetime = Field(..., description="Anchor occurrence")
    limit: int = Field(default=1, ge=1, le=100, description="Number of occurrences to list")


class ReminderCreateRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: Optional[str] = Field(None, max_length=2000)
    scheduled_for: datetime
    recurrence_rule: Optional[str] = Field(None, description="Keyword, TYPE:interval or JSON rule")
    recurrence_end: Optional[datetime] = None


# Response Schemas

class RoutineStepResponse(CamelModel):
    order: int
    action_type: ActionType
    payload: Optional[Dict[str, Any]]
    device_id: Optional[str]
    delay_seconds: Optional[int]

    model_config = ConfigDict(from_attributes=True)


class RoutineResponse(CamelModel):
    """Schema for routine response data."""
    id: str
    user_id: str
    name: str
    description: Optional[str]
    active: bool
    trigger_type: TriggerType
    trigger_data: Optional[Dict[str, Any]]
    steps: List[RoutineStepResponse]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoutineListResponse(CamelModel):
    items: List[RoutineResponse]
    total: int
    limit: int
    offset: int
    has_more: bool


class StepOutcomeResponse(CamelModel):
    step_order: int
    action_type: str
    status: str
    detail: Optional[str] = None
    device_id: Optional[str] = None
    provider: Optional[str] = None


class RoutineExecutionResponse(CamelModel):
    """Result of a routine run: one outcome per step, in execution order."""
    routine_id: str
    dry_run: bool
    summary: str
    outcomes: List[StepOutcomeResponse]


class RoutineLogResponse(CamelModel):
    id: int
    routine_id: str
    status: str
    details: Optional[Dict[str, Any]]
    executed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DeviceResponse(CamelModel):
    id: str
    name: str
    provider: str
    metadata: Dict[str, Any]
    last_seen_at: Optional[datetime]
    created_at: datetime

    @classmethod
    def from_model(cls, device) -> "DeviceResponse":
        # Device.metadata is SQLAlchemy's MetaData, so from_attributes cannot map it
        return cls(
            id=device.id,
            name=device.name,
            provider=device.provider,
            metadata=device.device_metadata or {},
            last_seen_at=device.last_seen_at,
            created_at=device.created_at,
        )


class DeviceCommandResponseModel(CamelModel):
    device_id: str
    provider: str
    action: str
    payload: Dict[str, Any]
    status: str
    detail: Optional[str] = None


class DeviceCommandEnvelope(CamelModel):
    command: DeviceCommandResponseModel


class RecurrenceRuleResponse(CamelModel):
    type: str
    interval: Optional[int] = None
    days_of_week: Optional[List[int]] = None
    day_of_month: Optional[int] = None
    end_date: Optional[datetime] = None
    count: Optional[int] = None
    cron_expression: Optional[str] = None


class RecurrenceParseResponse(CamelModel):
    valid: bool
    rule: Optional[RecurrenceRuleResponse] = None
    formatted: Optional[str] = None


class RecurrenceNextResponse(CamelModel):
    status: str
    next_date: Optional[datetime] = None
    occurrences: List[datetime] = Field(default_factory=list)


class ReminderResponse(CamelModel):
    id: str
    title: str
    message: Optional[str]
    scheduled_for: datetime
    status: ReminderStatus
    is_recurring: bool
    recurrence_rule: Optional[str]
    recurrence_end: Optional[datetime]
    parent_reminder_id: Optional[str]
    sent_at: Optional[datetime]
    error: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class ReminderProcessResponse(CamelModel):
    processed: int
    sent: int
    failed: int
    created: int


# Utility Response Schemas

class OperationResponse(BaseModel):
    """Standard response for operations that don't return data."""
    success: bool
    message: str
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "success": True,
            "message": "Routine deleted successfully",
            "details": {"routine_id": "550e8400-e29b-41d4-a716-446655440000"}
        }
    })


class ErrorResponse(BaseModel):
    """Standard error response format."""
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "error": "RoutineNotFoundError",
            "message": "Routine 550e8400-e29b-41d4-a716-446655440000 not found",
            "details": None,
            "request_id": "req-1a2b3c4d",
            "timestamp": "2025-01-10T10:00:00Z"
        }
    })


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: datetime
    version: str
    database: bool
    connectors: List[str]

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "status": "healthy",
            "timestamp": "2025-01-10T10:00:00Z",
            "version": "1.0.0",
            "database": True,
            "connectors": ["hue"]
        }
    })
