"""Data models for Connector hub integration."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .const import (
    DEFAULT_DEVICE_MODEL,
    DEVICE_MODELS,
    DeviceOpCode,
    WirelessMode,
)

HUB_MAC_LENGTH = 12


class SplitComponent(StrEnum):
    """Half of a dual-motor (top-down/bottom-up) device."""

    NONE = "none"
    TOP_DOWN = "top_down"
    BOTTOM_UP = "bottom_up"

    @property
    def suffix(self) -> str:
        """Return the field-name suffix the hub uses for this half."""
        return _SPLIT_SUFFIXES[self]


_SPLIT_SUFFIXES = {
    SplitComponent.NONE: "",
    SplitComponent.TOP_DOWN: "_T",
    SplitComponent.BOTTOM_UP: "_B",
}


class Direction(StrEnum):
    """Movement direction of a window covering."""

    OPENING = "opening"
    CLOSING = "closing"
    STOPPED = "stopped"


class AckStatus(StrEnum):
    """Outcome of a request once network uncertainty has been resolved."""

    VALID = "valid"
    NO_RESPONSE = "no_response"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DeviceIdentity:
    """Identifies one independently controllable motor.

    Attributes:
        mac: Device MAC, the 12 hex digit hub MAC followed by a device index.
        device_type: Hub device type code.
        sub_type: Device model number, if known.
        split_component: Which half of a split device this identity drives.

    """

    mac: str
    device_type: str
    sub_type: int | None = field(default=None, compare=False)
    split_component: SplitComponent = SplitComponent.NONE

    @property
    def hub_mac(self) -> str:
        """Return the MAC of the hub this device is paired with."""
        return self.mac[:HUB_MAC_LENGTH]

    @property
    def unique_id(self) -> str:
        """Return a stable identifier distinguishing the halves of a device."""
        return f"{self.mac}{self.split_component.suffix}"

    @property
    def is_split(self) -> bool:
        """Return True if this identity is one half of a split device."""
        return self.split_component is not SplitComponent.NONE

    @property
    def model_name(self) -> str:
        """Return a human-readable model name."""
        return DEVICE_MODELS.get(self.sub_type, DEFAULT_DEVICE_MODEL)


@dataclass(frozen=True)
class HubSession:
    """Session details of a hub that answered a discovery probe."""

    hub_ip: str
    hub_mac: str
    session_token: str
    access_token: str | None
    fw_version: str | None = None


@dataclass(frozen=True, slots=True)
class DeviceState:
    """Snapshot of a device, in hub-native coordinates."""

    current_position: int | None = None
    operation: DeviceOpCode | None = None
    target_position: int | None = None
    battery_level: int | None = None
    wireless_mode: WirelessMode | None = None
    current_angle: int | None = None
    target_angle: int | None = None
    current_state: int | None = None
    charging_state: int | None = None
    voltage_mode: int | None = None
    rssi: int | None = None
    sub_type: int | None = None
    position_inferred: bool = False
    raw_state: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def binary_only(self) -> bool:
        """Return True if the motor only accepts open/close commands."""
        return self.wireless_mode is WirelessMode.UNI_DIRECTIONAL


@dataclass(frozen=True)
class NormalizedPositionState:
    """Consumer-facing position state, in canonical coordinates."""

    position: int
    target: int
    direction: Direction
