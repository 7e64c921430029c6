"""Normalization of raw device state reported by the hub.

Depending on the device class, the hub may report an explicit position, only
an open/closed operation code, or only the fields of one half of a split
device. This module folds those variants into a single DeviceState with the
current position filled in whenever it can be derived.
"""

from __future__ import annotations

import logging
from typing import Any

from .const import (
    HALF_OPEN_POSITION,
    MAX_POSITION,
    MIN_POSITION,
    DeviceOpCode,
    WirelessMode,
)
from .models import DeviceIdentity, DeviceState

_LOGGER = logging.getLogger(__name__)

# Canonical field name in the hub payload -> DeviceState attribute.
SPLIT_FIELDS = {
    "currentPosition": "current_position",
    "currentState": "current_state",
    "currentAngle": "current_angle",
    "targetPosition": "target_position",
    "targetAngle": "target_angle",
    "batteryLevel": "battery_level",
    "operation": "operation",
}

# Fields shared by both halves of a split device.
COMMON_FIELDS = {
    "wirelessMode": "wireless_mode",
    "chargingState": "charging_state",
    "voltageMode": "voltage_mode",
    "RSSI": "rssi",
    "type": "sub_type",
}


def _to_enum(enum_cls: type, value: Any) -> Any:
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        _LOGGER.debug("Unknown %s value: %s", enum_cls.__name__, value)
        return None


def _clamp(position: int) -> int:
    return max(MIN_POSITION, min(MAX_POSITION, int(position)))


def _binarize(position: int) -> int:
    return MAX_POSITION if position >= HALF_OPEN_POSITION else MIN_POSITION


def extract_fields(identity: DeviceIdentity, data: dict[str, Any]) -> dict[str, Any]:
    """Read the fields reported for an identity, under their canonical names.

    For a split device the per-half fields are read from their suffixed
    variants. Only fields present in the payload are returned.
    """
    suffix = identity.split_component.suffix
    fields: dict[str, Any] = {}

    for wire_name, attr in SPLIT_FIELDS.items():
        value = data.get(f"{wire_name}{suffix}")
        if value is not None:
            fields[attr] = value

    for wire_name, attr in COMMON_FIELDS.items():
        value = data.get(wire_name)
        if value is not None:
            fields[attr] = value

    enum_fields = (("operation", DeviceOpCode), ("wireless_mode", WirelessMode))
    for attr, enum_cls in enum_fields:
        if attr in fields:
            converted = _to_enum(enum_cls, fields.pop(attr))
            if converted is not None:
                fields[attr] = converted

    return fields


def normalize_device_state(
    identity: DeviceIdentity,
    payload: dict[str, Any],
    closed_value: int,
    last_state: DeviceState | None = None,
) -> DeviceState:
    """Produce a normalized snapshot from a ReadDeviceAck or WriteDeviceAck.

    Fields absent from this update are carried over from the last known
    state, so devices that report partial state each refresh keep a complete
    picture. A position that was inferred rather than reported is not carried
    over; it is derived again from the merged fields.

    Args:
        identity: Device the payload belongs to.
        payload: Raw reply from the hub; only its "data" section is read.
        closed_value: Hub-native position at which the device is closed.
        last_state: Previous snapshot for the same identity, if any.

    Returns:
        A new DeviceState; neither the payload nor last_state is modified.

    """
    data = payload.get("data") or {}

    merged: dict[str, Any] = {}
    if last_state is not None:
        merged = {
            attr: getattr(last_state, attr)
            for attr in (*SPLIT_FIELDS.values(), *COMMON_FIELDS.values())
            if getattr(last_state, attr) is not None
        }
        if last_state.position_inferred:
            merged.pop("current_position", None)

    merged.update(extract_fields(identity, data))

    binary_only = merged.get("wireless_mode") is WirelessMode.UNI_DIRECTIONAL

    reported = merged.get("current_position")
    if reported is not None:
        position, inferred = _clamp(reported), False
    else:
        position, inferred = _infer_position(merged, closed_value), True

    if position is None:
        _LOGGER.warning(
            "No position or operation reported by %s, assuming half open: %s",
            identity.unique_id,
            data,
        )
        position = HALF_OPEN_POSITION
    elif binary_only:
        position = _binarize(position)

    merged["current_position"] = position
    return DeviceState(**merged, position_inferred=inferred, raw_state=dict(data))


def _infer_position(fields: dict[str, Any], closed_value: int) -> int | None:
    """Derive a position for a device that did not report one."""
    operation = fields.get("operation")
    if operation == DeviceOpCode.CLOSE:
        return closed_value
    if operation == DeviceOpCode.OPEN:
        return MAX_POSITION - closed_value

    target = fields.get("target_position")
    if operation == DeviceOpCode.STOP and target is not None and target >= 0:
        return _clamp(target)

    return None
