from __future__ import annotations

from dataclasses import dataclass
from threading import RLock
from typing import Any, Dict, Mapping, Optional, Protocol


@dataclass(frozen=True)
class ConnectorTarget:
    """Where a connector sends a command, extracted from Device.metadata."""
    bridge_address: Optional[str]
    credentials: Optional[str]
    target_id: Optional[str]
    group: bool = False


class DeviceConnector(Protocol):
    """Provider-specific adapter turning a generic command into bridge I/O."""

    provider: str

    def target_from_metadata(self, metadata: Optional[Mapping[str, Any]]) -> ConnectorTarget:
        ...

    def build_command(self, action: str, payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        ...

    def send(
        self,
        bridge_address: Optional[str],
        credentials: Optional[str],
        target_id: Optional[str],
        command: Dict[str, Any],
        *,
        group: bool = False,
    ) -> bool:
        ...


class ConnectorRegistry:
    """Connectors keyed by provider name, matched case-insensitively.

    Supporting a new provider means registering one more connector; the
    dispatcher never branches on provider names.
    """

    def __init__(self) -> None:
        self._connectors: Dict[str, DeviceConnector] = {}
        self._lock = RLock()
        self._frozen = False

    @staticmethod
    def _key(provider: str) -> str:
        return provider.strip().lower()

    def register(self, provider: str, connector: DeviceConnector) -> None:
        key = self._key(provider)
        with self._lock:
            if self._frozen:
                raise RuntimeError("ConnectorRegistry is frozen; registration is closed")
            if key in self._connectors:
                raise ValueError(f"Connector already registered: {provider}")
            self._connectors[key] = connector

    def get(self, provider: str) -> Optional[DeviceConnector]:
        with self._lock:
            return self._connectors.get(self._key(provider))

    def providers(self) -> list[str]:
        with self._lock:
            return sorted(self._connectors)

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True


def default_registry() -> ConnectorRegistry:
    """Registry with every connector shipped in this package."""
    from engine.hue import HueConnector

    registry = ConnectorRegistry()
    registry.register(HueConnector.provider, HueConnector())
    return registry
