"""
Routine management API routes.

Provides CRUD operations for routines, routine execution and run history.
All endpoints are scoped to the authenticated user and write audit log
entries for mutations and executions.
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from engine.executor import RoutineExecutor, normalize_steps
from ..models import ActionType, Routine, RoutineStep, RoutineLog, User, AuditLog
from ..schemas import (
    RoutineCreateRequest, RoutineUpdateRequest, RoutineResponse, RoutineListResponse,
    RoutineExecuteRequest, RoutineExecutionResponse, RoutineLogResponse,
    RoutineStepRequest, OperationResponse
)
from ..dependencies import get_db, get_current_user, get_executor

router = APIRouter(prefix="/routines", tags=["routines"])


def _build_steps(steps: List[RoutineStepRequest]) -> List[RoutineStep]:
    """Store steps in the order the executor will run them."""
    normalized = normalize_steps(
        step.model_dump(by_alias=True, mode="json") for step in steps
    )
    return [
        RoutineStep(
            order=step.order,
            action_type=ActionType(step.action_type),
            payload=step.payload,
            device_id=step.device_id,
            delay_seconds=step.delay_seconds,
        )
        for step in normalized
    ]


def _get_owned_routine(db: Session, routine_id: str, user: User) -> Routine:
    routine = (
        db.query(Routine)
        .filter(Routine.id == routine_id, Routine.user_id == user.id)
        .first()
    )
    if not routine:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Routine {routine_id} not found"
        )
    return routine


@router.post("", response_model=RoutineResponse, status_code=status.HTTP_201_CREATED)
async def create_routine(
    routine_request: RoutineCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> RoutineResponse:
    """
    Create a new routine with its steps.

    Steps are stored densely ordered; a missing order falls back to the
    step's position in the request.
    """
    routine = Routine(
        user_id=current_user.id,
        name=routine_request.name,
        description=routine_request.description,
        active=routine_request.active,
        trigger_type=routine_request.trigger_type,
        trigger_data=routine_request.trigger_data,
        steps=_build_steps(routine_request.steps),
    )

    try:
        db.add(routine)
        db.flush()
        db.add(AuditLog(
            actor_user_id=current_user.id,
            action="routine.created",
            subject_id=routine.id,
            details={"name": routine.name, "step_count": len(routine.steps)}
        ))
        db.commit()
        db.refresh(routine)
        return RoutineResponse.model_validate(routine)

    except IntegrityError as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to create routine: {str(e)}"
        )


@router.get("", response_model=RoutineListResponse)
async def list_routines(
    active: Optional[bool] = Query(None, description="Filter by active flag"),
    limit: int = Query(50, ge=1, le=200, description="Maximum number of routines to return"),
    offset: int = Query(0, ge=0, description="Number of routines to skip"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> RoutineListResponse:
    """List the current user's routines, newest first."""
    query = db.query(Routine).filter(Routine.user_id == current_user.id)
    if active is not None:
        query = query.filter(Routine.active == active)

    total = query.count()
    routines = query.order_by(Routine.created_at.desc()).offset(offset).limit(limit).all()

    return RoutineListResponse(
        items=[RoutineResponse.model_validate(routine) for routine in routines],
        total=total,
        limit=limit,
        offset=offset,
        has_more=(offset + len(routines)) < total
    )


@router.get("/{routine_id}", response_model=RoutineResponse)
async def get_routine(
    routine_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> RoutineResponse:
    return RoutineResponse.model_validate(_get_owned_routine(db, routine_id, current_user))


@router.patch("/{routine_id}", response_model=RoutineResponse)
async def update_routine(
    routine_id: str,
    routine_update: RoutineUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> RoutineResponse:
    """
    Update an existing routine.

    Only provided fields are updated. When `steps` is given, it replaces
    the routine's steps entirely.
    """
    routine = _get_owned_routine(db, routine_id, current_user)

    update_data = routine_update.model_dump(exclude_unset=True, exclude={"steps"})
    for field, value in update_data.items():
        setattr(routine, field, value)

    updated_fields = list(update_data.keys())
    if routine_update.steps is not None:
        routine.steps = _build_steps(routine_update.steps)
        updated_fields.append("steps")

    try:
        db.add(AuditLog(
            actor_user_id=current_user.id,
            action="routine.updated",
            subject_id=routine.id,
            details={"updated_fields": updated_fields}
        ))
        db.commit()
        db.refresh(routine)
        return RoutineResponse.model_validate(routine)

    except IntegrityError as e:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Failed to update routine: {str(e)}"
        )


@router.delete("/{routine_id}", response_model=OperationResponse)
async def delete_routine(
    routine_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> OperationResponse:
    routine = _get_owned_routine(db, routine_id, current_user)

    db.delete(routine)
    db.add(AuditLog(
        actor_user_id=current_user.id,
        action="routine.deleted",
        subject_id=routine_id,
        details={"name": routine.name}
    ))
    db.commit()

    return OperationResponse(
        success=True,
        message="Routine deleted successfully",
        details={"routine_id": routine_id}
    )


@router.post(
    "/{routine_id}/execute",
    response_model=RoutineExecutionResponse,
    status_code=status.HTTP_202_ACCEPTED
)
async def execute_routine(
    routine_id: str,
    execute_request: Optional[RoutineExecuteRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    executor: RoutineExecutor = Depends(get_executor)
) -> RoutineExecutionResponse:
    """
    Execute a routine now.

    Steps run in order and a failing step never stops the ones after it;
    each step reports sent, queued or error. With `dryRun`, delays and
    device I/O are skipped. An unknown routine yields 404.
    """
    execute_request = execute_request or RoutineExecuteRequest()

    result = await executor.execute_routine(
        routine_id,
        current_user.id,
        dry_run=execute_request.dry_run,
        metadata=execute_request.metadata,
    )

    db.add(AuditLog(
        actor_user_id=current_user.id,
        action="routine.executed",
        subject_id=routine_id,
        details={"dry_run": result.dry_run, "summary": result.summary}
    ))
    db.commit()

    return RoutineExecutionResponse(**result.to_dict())


@router.get("/{routine_id}/logs", response_model=List[RoutineLogResponse])
async def list_routine_logs(
    routine_id: str,
    limit: int = Query(20, ge=1, le=200, description="Maximum number of runs to return"),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> List[RoutineLogResponse]:
    """Most recent runs of a routine, newest first."""
    routine = _get_owned_routine(db, routine_id, current_user)
    logs = (
        db.query(RoutineLog)
        .filter(RoutineLog.routine_id == routine.id)
        .order_by(RoutineLog.executed_at.desc(), RoutineLog.id.desc())
        .limit(limit)
        .all()
    )
    return [RoutineLogResponse.model_validate(log) for log in logs]
