"""
Unit tests for the device kind capability table.

CHANGELOG:
- 2026-10-17: Initial creation (STORY-009)

TODO:
- None
"""

import pytest
from energyhub.src.kinds import DEVICE_KINDS, device_path, kind_for
from energyhub.src.models import DeviceType


class TestDeviceKinds:
    def test_every_type_has_a_kind(self) -> None:
        assert set(DEVICE_KINDS) == set(DeviceType)

    @pytest.mark.parametrize(
        ("device_type", "expected"),
        [("ac", 24), ("geyser", 45), ("fan", 100), ("light", 100), ("smart-plug", None)],
    )
    def test_default_set_points(self, device_type: str, expected: float | None) -> None:
        assert kind_for(device_type).default_value == expected

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValueError):
            kind_for("toaster")

    def test_paths(self) -> None:
        kind = kind_for(DeviceType.FAN)
        assert device_path("d1") == "devices/d1"
        assert kind.toggle_path("d1") == "devices/d1/toggle"

    def test_off_toggle_action(self) -> None:
        updates = kind_for("light").toggle_updates(False, 5, 0)
        assert updates["toggle/history/5"]["action"] == "OFF"
        assert updates["toggle/toggleCount"] == 1
