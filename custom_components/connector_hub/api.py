"""API helpers for Connector hub systems.

This module provides the access token calculation, request construction,
reply classification, and a thin per-device client used to send commands
to a hub through the wire protocol client.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from Cryptodome.Cipher import AES

from .const import (
    ACK_TYPES,
    DEVICE_MODEL_TDBU,
    DEVICE_TYPES,
    LIMIT_STATES,
    LOW_BATTERY_PERCENT,
    OP_CODES,
    VOLTAGE_MODES,
    WIRELESS_MODES,
    DeviceOpCode,
    MessageType,
)
from .models import AckStatus, DeviceIdentity, DeviceState, SplitComponent

if TYPE_CHECKING:
    from .protocol import WireProtocolClient

_LOGGER = logging.getLogger(__name__)

AES_BLOCK_SIZE = 16
AES_KEY_SIZES = (16, 24, 32)

# AC motors report a fixed mains voltage instead of a battery voltage.
AC_MOTOR_VOLTAGE = 220.0


class ConnectorHubError(Exception):
    """Base exception for Connector hub errors."""


class ConnectorHubTokenError(ConnectorHubError):
    """Exception raised when an access token cannot be derived."""


class ConnectorHubConfigError(ConnectorHubError):
    """Exception raised for fatal configuration errors."""


def compute_access_token(connector_key: str, hub_token: str) -> str:
    """Derive the per-hub access token.

    The hub token is encrypted with AES in ECB mode, using the connector key
    as the cipher key. ECB requires block alignment, so the hub token must be
    exactly one block long.

    Args:
        connector_key: Shared secret shown in the vendor app.
        hub_token: Session token issued by the hub.

    Returns:
        Uppercase hex string of the encrypted token.

    Raises:
        ConnectorHubTokenError: If the key or token has an invalid length.

    """
    key_bytes = connector_key.encode("utf-8")
    token_bytes = hub_token.encode("utf-8")

    if len(key_bytes) not in AES_KEY_SIZES:
        error_msg = f"Connector key must be 16, 24 or 32 bytes, got {len(key_bytes)}"
        raise ConnectorHubTokenError(error_msg)
    if len(token_bytes) != AES_BLOCK_SIZE:
        error_msg = (
            f"Hub token must be exactly {AES_BLOCK_SIZE} bytes, got {len(token_bytes)}"
        )
        raise ConnectorHubTokenError(error_msg)

    cipher = AES.new(key_bytes, AES.MODE_ECB)
    return cipher.encrypt(token_bytes).hex().upper()


def make_msg_id() -> str:
    """Return a message ID made of the digits of the current UTC timestamp."""
    now = datetime.now(UTC)
    return f"{now:%Y%m%d%H%M%S}{now.microsecond // 1000:03d}"


def make_command_data(
    command: str | dict[str, Any], suffix: str = ""
) -> dict[str, Any]:
    """Build the data section of a WriteDevice request.

    Args:
        command: Either a named operation ("open", "close", "stop", "status")
            or a dictionary of fields to send as-is.
        suffix: Field suffix of the split half a named operation drives.

    Returns:
        Command dictionary.

    Raises:
        ValueError: If the named operation is unknown.

    """
    if isinstance(command, str):
        if command not in OP_CODES:
            error_msg = f"Unknown command: {command}"
            raise ValueError(error_msg)
        return {f"operation{suffix}": int(OP_CODES[command])}
    return dict(command)


def make_get_device_list_request() -> dict[str, Any]:
    """Create a GetDeviceList request."""
    return {"msgType": MessageType.GET_DEVICE_LIST.value, "msgID": make_msg_id()}


def make_read_device_request(identity: DeviceIdentity) -> dict[str, Any]:
    """Create a ReadDevice request.

    ReadDevice returns the position cached by the hub, which is only updated
    once a movement completes. It does not need an access token.
    """
    return {
        "msgType": MessageType.READ_DEVICE.value,
        "mac": identity.mac,
        "deviceType": identity.device_type,
        "msgID": make_msg_id(),
    }


def make_write_device_request(
    identity: DeviceIdentity,
    access_token: str,
    command: str | dict[str, Any],
) -> dict[str, Any]:
    """Create a WriteDevice request carrying the given command."""
    return {
        "msgType": MessageType.WRITE_DEVICE.value,
        "mac": identity.mac,
        "deviceType": identity.device_type,
        "accessToken": access_token,
        "msgID": make_msg_id(),
        "data": make_command_data(command, identity.split_component.suffix),
    }


def encode_message(message: dict[str, Any]) -> bytes:
    """Serialize a message for sending over the wire."""
    return json.dumps(message).encode("utf-8")


def decode_message(datagram: bytes) -> dict[str, Any] | None:
    """Parse a datagram received from the hub.

    Returns:
        The decoded message, or None if the datagram is not a JSON object.

    """
    try:
        message = json.loads(datagram.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        _LOGGER.debug("Discarding malformed datagram: %r", datagram)
        return None

    if not isinstance(message, dict):
        _LOGGER.debug("Discarding non-object message: %r", message)
        return None

    return message


def is_matching_reply(request: dict[str, Any], reply: dict[str, Any]) -> bool:
    """Check whether a reply answers the given request.

    The reply must be the Ack for the request's message type and, for
    device requests, must name the same device.
    """
    expected = ACK_TYPES.get(request.get("msgType"))
    if expected is None or reply.get("msgType") != expected:
        return False

    if "mac" not in request:
        return True

    return reply.get("mac") == request["mac"] and (
        reply.get("deviceType") == request.get("deviceType")
    )


def is_action_failed(ack: dict[str, Any]) -> bool:
    """Return True if the hub reports that the operation failed."""
    return bool(ack.get("actionResult"))


def classify_ack(ack: dict[str, Any] | None) -> AckStatus:
    """Resolve a reply into valid state, no response, or explicit rejection."""
    if ack is None:
        return AckStatus.NO_RESPONSE

    if is_action_failed(ack) or not isinstance(ack.get("data"), dict):
        return AckStatus.REJECTED

    return AckStatus.VALID


def identify_split_components(read_ack: dict[str, Any]) -> list[SplitComponent]:
    """Return the controllable halves reported by a ReadDeviceAck.

    A top-down/bottom-up device reports each half under suffixed field names;
    each half that reports an operation is a separate device. Any other
    device is a single, unsplit device.
    """
    data = read_ack.get("data") or {}
    if data.get("type") != DEVICE_MODEL_TDBU:
        return [SplitComponent.NONE]

    return [
        component
        for component in (SplitComponent.TOP_DOWN, SplitComponent.BOTTOM_UP)
        if data.get(f"operation{component.suffix}") is not None
    ]


def make_identities(read_ack: dict[str, Any]) -> list[DeviceIdentity]:
    """Build the device identities described by a ReadDeviceAck."""
    sub_type = (read_ack.get("data") or {}).get("type")
    return [
        DeviceIdentity(
            mac=read_ack["mac"],
            device_type=read_ack["deviceType"],
            sub_type=sub_type,
            split_component=component,
        )
        for component in identify_split_components(read_ack)
    ]


def battery_percent(battery_level: int | None) -> int | None:
    """Convert a raw battery level into a charge percentage.

    The hub reports the battery voltage multiplied by 100. The percentage
    depends on the pack, which is inferred from the voltage range.

    Returns:
        Charge percentage between 0 and 100, or None for AC motors.

    """
    if battery_level is None:
        return None

    voltage = battery_level / 100.0
    if voltage == AC_MOTOR_VOLTAGE:
        return None
    if voltage <= 0.0:
        return 0

    # (upper bound of range, empty voltage, full voltage) per pack size
    packs = (
        (9.4, 6.2, 8.4),
        (13.6, 10.4, 12.6),
        (19.0, 14.6, 16.8),
    )
    for upper, empty, full in packs:
        if voltage <= upper:
            percent = round((voltage - empty) * 100 / (full - empty))
            return max(0, min(100, percent))

    return 100


def is_low_battery(battery_level: int | None) -> bool:
    """Return True if the battery charge is at or below the low threshold."""
    percent = battery_percent(battery_level)
    return percent is not None and percent <= LOW_BATTERY_PERCENT


class ConnectorHubClient:
    """Command object bound to one device on one hub.

    The client builds requests for its device and sends them through the
    shared wire protocol client. Replies are returned as received, or None
    if the hub did not answer.
    """

    def __init__(
        self,
        protocol: WireProtocolClient,
        identity: DeviceIdentity,
        hub_ip: str,
        access_token: str | None,
    ) -> None:
        """Initialize the client.

        Args:
            protocol: Wire protocol client used to reach the hub.
            identity: Device this client controls.
            hub_ip: IP address of the hub the device is paired with.
            access_token: Access token for the hub, required for writes.

        """
        self._protocol = protocol
        self.identity = identity
        self.hub_ip = hub_ip
        self.access_token = access_token

    @staticmethod
    async def async_get_device_list(
        protocol: WireProtocolClient, hub_ip: str
    ) -> dict[str, Any] | None:
        """Ask a hub for the list of devices paired with it."""
        return await protocol.async_send(make_get_device_list_request(), hub_ip)

    async def async_read_device(self) -> dict[str, Any] | None:
        """Read the state of the device as cached by the hub."""
        request = make_read_device_request(self.identity)
        return await self._protocol.async_send(request, self.hub_ip)

    async def async_write_device(
        self, command: str | dict[str, Any]
    ) -> dict[str, Any] | None:
        """Send a command to the device.

        Raises:
            ConnectorHubTokenError: If no access token is available yet.

        """
        if not self.access_token:
            error_msg = f"No access token available for hub {self.hub_ip}"
            raise ConnectorHubTokenError(error_msg)

        request = make_write_device_request(self.identity, self.access_token, command)
        _LOGGER.debug(
            "Sending command to %s: %s", self.identity.unique_id, request["data"]
        )
        return await self._protocol.async_send(request, self.hub_ip)

    async def async_set_operation(
        self, operation: DeviceOpCode
    ) -> dict[str, Any] | None:
        """Send a discrete operation to the device."""
        return await self.async_write_device(
            {self._field("operation"): int(operation)}
        )

    async def async_set_target_position(self, position: int) -> dict[str, Any] | None:
        """Move the device to a hub-native position."""
        return await self.async_write_device({self._field("targetPosition"): position})

    async def async_set_target_angle(self, angle: int) -> dict[str, Any] | None:
        """Tilt the device to the given angle."""
        return await self.async_write_device({self._field("targetAngle"): angle})

    def _field(self, name: str) -> str:
        return f"{name}{self.identity.split_component.suffix}"


def describe_device(
    identity: DeviceIdentity, state: DeviceState | None
) -> dict[str, str]:
    """Return human-readable names for the model and status of a device."""
    info = {
        "model": identity.model_name,
        "device_type": DEVICE_TYPES.get(identity.device_type, identity.device_type),
    }
    if state is None:
        return info

    names = (
        ("wireless_mode", WIRELESS_MODES, state.wireless_mode),
        ("voltage_mode", VOLTAGE_MODES, state.voltage_mode),
        ("limit_state", LIMIT_STATES, state.current_state),
    )
    for key, table, value in names:
        if value is not None:
            info[key] = table.get(value, str(value))
    return info
