"""
Device API routes.

Registers devices for the authenticated user and sends them direct
commands through the device dispatcher.
"""

from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from engine.dispatcher import DeviceCommand, DeviceDispatcher
from ..models import Device, User, AuditLog
from ..schemas import (
    DeviceCreateRequest, DeviceResponse, DeviceCommandRequest, DeviceCommandEnvelope
)
from ..dependencies import get_db, get_current_user, get_dispatcher

router = APIRouter(prefix="/devices", tags=["devices"])


@router.post("", response_model=DeviceResponse, status_code=status.HTTP_201_CREATED)
async def create_device(
    device_request: DeviceCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> DeviceResponse:
    """
    Register a device.

    The provider name selects the connector used for commands; providers
    without a connector are accepted and their commands are queued.
    """
    device = Device(
        user_id=current_user.id,
        name=device_request.name,
        provider=device_request.provider,
        device_metadata=device_request.metadata,
    )
    db.add(device)
    db.flush()
    db.add(AuditLog(
        actor_user_id=current_user.id,
        action="device.created",
        subject_id=device.id,
        details={"name": device.name, "provider": device.provider}
    ))
    db.commit()
    db.refresh(device)
    return DeviceResponse.from_model(device)


@router.get("", response_model=List[DeviceResponse])
async def list_devices(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> List[DeviceResponse]:
    devices = (
        db.query(Device)
        .filter(Device.user_id == current_user.id)
        .order_by(Device.created_at.asc())
        .all()
    )
    return [DeviceResponse.from_model(device) for device in devices]


@router.post(
    "/{device_id}/command",
    response_model=DeviceCommandEnvelope,
    status_code=status.HTTP_202_ACCEPTED
)
async def send_device_command(
    device_id: str,
    command_request: DeviceCommandRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: DeviceDispatcher = Depends(get_dispatcher)
) -> DeviceCommandEnvelope:
    """
    Send a command to one of the user's devices.

    Connector failures come back as status "error" in the body; only a
    device that does not exist for this user yields 404.
    """
    response = dispatcher.dispatch_device_command(
        device_id,
        DeviceCommand(action=command_request.action, payload=command_request.payload),
        user_id=current_user.id,
    )

    db.add(AuditLog(
        actor_user_id=current_user.id,
        action="device.command",
        subject_id=device_id,
        details={"action": response.action, "status": response.status}
    ))
    db.commit()

    return DeviceCommandEnvelope(command=response.to_dict())
