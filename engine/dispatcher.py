# engine/dispatcher.py
"""
Routes device commands to the connector registered for the device's provider.

A command always comes back as a DeviceCommandResponse: connector failures
are reported as status "error", providers without a connector as "queued".
Only an unknown device raises.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from engine.errors import DeviceNotFoundError
from engine.registry import ConnectorRegistry
from engine.store import RoutineStore

from observability.logging import device_logger
from observability.metrics import synexa_metrics

logger = logging.getLogger(__name__)

STATUS_SENT = "sent"
STATUS_QUEUED = "queued"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class DeviceCommand:
    """Generic command addressed to a device, independent of its provider."""
    action: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeviceCommand":
        return cls(action=data["action"], payload=dict(data.get("payload") or {}))


@dataclass
class DeviceCommandResponse:
    device_id: str
    provider: str
    action: str
    payload: Dict[str, Any]
    status: str
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "deviceId": self.device_id,
            "provider": self.provider,
            "action": self.action,
            "payload": self.payload,
            "status": self.status,
        }
        if self.detail is not None:
            data["detail"] = self.detail
        return data


class DeviceDispatcher:
    """Dispatches commands to devices through a ConnectorRegistry."""

    def __init__(self, store: RoutineStore, registry: ConnectorRegistry):
        self.store = store
        self.registry = registry

    def dispatch_device_command(
        self,
        device_id: str,
        command: DeviceCommand,
        dry_run: bool = False,
        user_id: Optional[str] = None,
    ) -> DeviceCommandResponse:
        """
        Send one command to one device.

        Args:
            device_id: Target device
            command: Action and payload to send
            dry_run: Resolve device and connector without any bridge I/O
            user_id: When given, the device must belong to this user

        Returns:
            DeviceCommandResponse with status sent, queued or error

        Raises:
            DeviceNotFoundError: If the device does not exist (or is not owned)
        """
        device = self.store.get_device(device_id, user_id)
        if device is None:
            raise DeviceNotFoundError(f"Device {device_id} not found", resource_id=device_id)

        start = time.time()
        response = DeviceCommandResponse(
            device_id=device.id,
            provider=device.provider,
            action=command.action,
            payload=dict(command.payload),
            status=STATUS_QUEUED,
        )

        connector = self.registry.get(device.provider)
        if connector is None:
            response.detail = f"No connector implemented for provider {device.provider}"
        elif dry_run:
            response.detail = f"dry run: command not sent to {device.provider}"
        else:
            try:
                target = connector.target_from_metadata(device.metadata)
                hub_command = connector.build_command(command.action, command.payload)
                ok = connector.send(
                    target.bridge_address,
                    target.credentials,
                    target.target_id,
                    hub_command,
                    group=target.group,
                )
                # the device answered, even if it refused the command
                self.store.touch_device(device.id)
                response.status = STATUS_SENT if ok else STATUS_ERROR
                if not ok:
                    response.detail = f"{device.provider} connector rejected the command"
            except Exception as e:
                logger.warning(f"Command {command.action} to device {device.id} failed: {e}")
                response.status = STATUS_ERROR
                response.detail = str(e)

        synexa_metrics.record_device_command(device.provider.lower(), response.status)
        device_logger.device_command(
            device_id=device.id,
            provider=device.provider,
            action=command.action,
            status=response.status,
            duration_ms=(time.time() - start) * 1000,
            detail=response.detail,
        )
        return response
