#!/usr/bin/env python3
"""
Tests for the Philips Hue connector: command conversion and bridge I/O.
"""

import json
import pytest
import httpx

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from engine.errors import ConnectorConfigurationError, StepDispatchError
from engine.hue import (
    HueConnector, HueDeviceConfig, convert_to_hue_command, hex_to_rgb, kelvin_to_mired, rgb_to_xy
)


@pytest.mark.unit
class TestConvertToHueCommand:

    def test_turn_on_with_brightness(self):
        assert convert_to_hue_command("turn_on", {"brightness": 50}) == {"on": True, "bri": 127}

    def test_on_alias_without_payload(self):
        assert convert_to_hue_command("on") == {"on": True}

    def test_turn_on_with_color_and_temperature(self):
        command = convert_to_hue_command("turn_on", {"color": "#ff0000", "colorTemperature": 2700})
        assert command["on"] is True
        assert command["ct"] == 370
        x, y = command["xy"]
        assert x == pytest.approx(0.6401, abs=1e-3)
        assert y == pytest.approx(0.3300, abs=1e-3)

    def test_turn_off(self):
        assert convert_to_hue_command("turn_off", {"brightness": 80}) == {"on": False}
        assert convert_to_hue_command("off") == {"on": False}

    def test_set_brightness(self):
        assert convert_to_hue_command("set_brightness", {"brightness": 100}) == {"on": True, "bri": 254}
        assert convert_to_hue_command("set_brightness") == {"on": True, "bri": 0}

    def test_set_color_ignores_non_hex_values(self):
        assert convert_to_hue_command("set_color", {"color": "red"}) == {"on": True}

    def test_set_color_temperature_defaults_to_4000k(self):
        assert convert_to_hue_command("set_color_temperature") == {"on": True, "ct": 250}
        assert convert_to_hue_command("set_color_temperature", {"temperature": 6500}) == {"on": True, "ct": 154}

    def test_transition_time_in_deciseconds(self):
        assert convert_to_hue_command("turn_off", {"transitionTime": 1.5}) == {"on": False, "transitiontime": 15}

    def test_unknown_action_is_empty(self):
        assert convert_to_hue_command("dance") == {}


@pytest.mark.unit
class TestColorHelpers:

    def test_hex_to_rgb(self):
        assert hex_to_rgb("#00ff7f") == (0, 255, 127)
        assert hex_to_rgb("#zzz") is None

    def test_black_has_origin_chromaticity(self):
        assert rgb_to_xy((0, 0, 0)) == (0.0, 0.0)

    def test_kelvin_to_mired(self):
        assert kelvin_to_mired(4000) == 250


@pytest.mark.unit
class TestHueTarget:

    def test_target_from_metadata(self):
        target = HueConnector().target_from_metadata(
            {"bridgeIp": "10.0.0.2", "username": "u", "hueId": 4, "isGroup": True}
        )
        assert target.bridge_address == "10.0.0.2"
        assert target.credentials == "u"
        assert target.target_id == "4"
        assert target.group is True

    def test_missing_metadata_keys(self):
        config = HueDeviceConfig.from_metadata(None)
        assert config.bridge_ip is None and config.hue_id is None and config.is_group is False


def _connector(handler):
    return HueConnector(timeout=1.0, transport=httpx.MockTransport(handler))


@pytest.mark.unit
class TestHueSend:

    def test_light_state_put(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=[{"success": {"/lights/3/state/on": True}}])

        ok = _connector(handler).send("192.168.1.10", "hue-user", "3", {"on": True, "xy": (0.3, 0.4)})

        assert ok is True
        assert seen["method"] == "PUT"
        assert seen["url"] == "http://192.168.1.10/api/hue-user/lights/3/state"
        assert seen["body"] == {"on": True, "xy": [0.3, 0.4]}

    def test_group_action_put(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            return httpx.Response(200, json=[{"success": {"/groups/1/action/on": False}}])

        assert _connector(handler).send("bridge", "user", "1", {"on": False}, group=True) is True
        assert seen["url"] == "http://bridge/api/user/groups/1/action"

    def test_bridge_error_entry_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{"error": {"type": 1, "description": "unauthorized user"}}])

        with pytest.raises(StepDispatchError, match="unauthorized user"):
            _connector(handler).send("bridge", "user", "1", {"on": True})

    def test_response_without_success_is_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[])

        assert _connector(handler).send("bridge", "user", "1", {"on": True}) is False

    def test_http_error_status_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        with pytest.raises(StepDispatchError, match="503"):
            _connector(handler).send("bridge", "user", "1", {"on": True})

    def test_unreachable_bridge_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(StepDispatchError, match="unreachable"):
            _connector(handler).send("bridge", "user", "1", {"on": True})

    def test_timeout_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(StepDispatchError, match="timed out"):
            _connector(handler).send("bridge", "user", "1", {"on": True})

    @pytest.mark.parametrize("args", [
        (None, "user", "1"),
        ("bridge", None, "1"),
        ("bridge", "user", None),
    ])
    def test_incomplete_configuration_raises(self, args):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        with pytest.raises(ConnectorConfigurationError):
            _connector(handler).send(*args, {"on": True})
