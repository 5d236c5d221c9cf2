"""
Philips Hue connector.

Translates generic device actions into Hue bridge light/group states and
sends them over the bridge's local REST API.
"""

import logging
import math
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, TypedDict

import httpx

from engine.errors import ConnectorConfigurationError, StepDispatchError
from engine.registry import ConnectorTarget

logger = logging.getLogger(__name__)

HUE_TIMEOUT_SECONDS = float(os.getenv("HUE_TIMEOUT_SECONDS", "5"))
DEFAULT_COLOR_TEMPERATURE_K = 4000

_HEX_COLOR = re.compile(r'^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$', re.IGNORECASE)


class HueCommand(TypedDict, total=False):
    on: bool
    bri: int               # 0-254
    hue: int               # 0-65535
    sat: int               # 0-254
    ct: int                # mired, 153-500
    xy: Tuple[float, float]
    transitiontime: int    # deciseconds


@dataclass(frozen=True)
class LightPayload:
    """Documented keys of a light action payload."""
    brightness: Optional[float] = None          # percent, 0-100
    color: Optional[str] = None                 # "#rrggbb"
    color_temperature: Optional[float] = None   # Kelvin, for turn_on
    temperature: Optional[float] = None         # Kelvin, for set_color_temperature
    transition_time: Optional[float] = None     # seconds

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "LightPayload":
        payload = payload or {}
        return cls(
            brightness=payload.get("brightness"),
            color=payload.get("color"),
            color_temperature=payload.get("colorTemperature"),
            temperature=payload.get("temperature"),
            transition_time=payload.get("transitionTime"),
        )


@dataclass(frozen=True)
class HueDeviceConfig:
    """Hue-specific keys of Device.metadata."""
    bridge_ip: Optional[str]
    username: Optional[str]
    hue_id: Optional[str]
    is_group: bool = False

    @classmethod
    def from_metadata(cls, metadata: Optional[Mapping[str, Any]]) -> "HueDeviceConfig":
        metadata = metadata or {}
        hue_id = metadata.get("hueId")
        return cls(
            bridge_ip=metadata.get("bridgeIp"),
            username=metadata.get("username"),
            hue_id=str(hue_id) if hue_id is not None else None,
            is_group=bool(metadata.get("isGroup", False)),
        )


def hex_to_rgb(value: str) -> Optional[Tuple[int, int, int]]:
    match = _HEX_COLOR.match(value)
    if not match:
        return None
    return tuple(int(part, 16) for part in match.groups())


def rgb_to_xy(rgb: Tuple[int, int, int]) -> Tuple[float, float]:
    """CIE 1931 chromaticity of an sRGB color."""
    def linear(channel: int) -> float:
        c = channel / 255
        return math.pow((c + 0.055) / 1.055, 2.4) if c > 0.04045 else c / 12.92

    r, g, b = (linear(c) for c in rgb)
    x_ = r * 0.4124 + g * 0.3576 + b * 0.1805
    y_ = r * 0.2126 + g * 0.7152 + b * 0.0722
    z_ = r * 0.0193 + g * 0.1192 + b * 0.9505
    total = x_ + y_ + z_
    if total == 0:
        return (0.0, 0.0)
    return (x_ / total, y_ / total)


def kelvin_to_mired(kelvin: float) -> int:
    return round(1_000_000 / kelvin)


def _percent_to_bri(percent: float) -> int:
    return round((percent / 100) * 254)


def _color_xy(color: Optional[str]) -> Optional[Tuple[float, float]]:
    if not color or not color.startswith("#"):
        return None
    rgb = hex_to_rgb(color)
    return rgb_to_xy(rgb) if rgb else None


def convert_to_hue_command(action: str, payload: Optional[Mapping[str, Any]] = None) -> HueCommand:
    """Map a generic {action, payload} pair onto Hue state fields.

    Unknown actions produce an empty state change (transition time aside).
    """
    light = LightPayload.from_mapping(payload)
    command: HueCommand = {}

    if action in ("turn_on", "on"):
        command["on"] = True
        if light.brightness:
            command["bri"] = _percent_to_bri(light.brightness)
        xy = _color_xy(light.color)
        if xy:
            command["xy"] = xy
        if light.color_temperature:
            command["ct"] = kelvin_to_mired(light.color_temperature)

    elif action in ("turn_off", "off"):
        command["on"] = False

    elif action == "set_brightness":
        command["on"] = True
        command["bri"] = _percent_to_bri(light.brightness or 0)

    elif action == "set_color":
        command["on"] = True
        xy = _color_xy(light.color)
        if xy:
            command["xy"] = xy

    elif action == "set_color_temperature":
        command["on"] = True
        command["ct"] = kelvin_to_mired(light.temperature or DEFAULT_COLOR_TEMPERATURE_K)

    if light.transition_time:
        command["transitiontime"] = round(light.transition_time * 10)

    return command


class HueConnector:
    """Connector for lights and groups behind a Hue bridge."""

    provider = "hue"

    def __init__(self, timeout: float = HUE_TIMEOUT_SECONDS, transport: Optional[httpx.BaseTransport] = None):
        self.timeout = timeout
        self._transport = transport

    def target_from_metadata(self, metadata: Optional[Mapping[str, Any]]) -> ConnectorTarget:
        config = HueDeviceConfig.from_metadata(metadata)
        return ConnectorTarget(
            bridge_address=config.bridge_ip,
            credentials=config.username,
            target_id=config.hue_id,
            group=config.is_group,
        )

    def build_command(self, action: str, payload: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        return dict(convert_to_hue_command(action, payload))

    def convert_to_hue_command(self, action: str, payload: Optional[Mapping[str, Any]] = None) -> HueCommand:
        return convert_to_hue_command(action, payload)

    def send(
        self,
        bridge_address: Optional[str],
        credentials: Optional[str],
        target_id: Optional[str],
        command: Dict[str, Any],
        *,
        group: bool = False,
    ) -> bool:
        """PUT a state change to the bridge.

        Returns:
            True when the bridge acknowledged the change

        Raises:
            ConnectorConfigurationError: missing bridge address, username or target
            StepDispatchError: the bridge answered with an error entry or is unreachable
        """
        if not (bridge_address and credentials and target_id):
            raise ConnectorConfigurationError("Incomplete Hue configuration for this device")

        if group:
            url = f"http://{bridge_address}/api/{credentials}/groups/{target_id}/action"
        else:
            url = f"http://{bridge_address}/api/{credentials}/lights/{target_id}/state"

        body = dict(command)
        if "xy" in body:
            body["xy"] = list(body["xy"])

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.put(url, json=body)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException:
            raise StepDispatchError(f"Hue bridge {bridge_address} timed out")
        except httpx.HTTPStatusError as e:
            raise StepDispatchError(f"Hue bridge returned HTTP {e.response.status_code}")
        except httpx.RequestError as e:
            raise StepDispatchError(f"Hue bridge {bridge_address} unreachable: {e}")

        first = data[0] if isinstance(data, list) and data else {}
        if isinstance(first, dict) and "error" in first:
            description = (first.get("error") or {}).get("description") or "Unknown Hue error"
            raise StepDispatchError(description)

        logger.debug(f"Hue bridge {bridge_address} accepted {body} for {target_id}")
        return isinstance(first, dict) and "success" in first
