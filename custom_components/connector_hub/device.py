"""Per-device state tracking and command handling."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from . import api
from .const import DeviceOpCode
from .models import AckStatus, DeviceIdentity, DeviceState, NormalizedPositionState
from .normalizer import normalize_device_state
from .position import PositionMapper

if TYPE_CHECKING:
    from .api import ConnectorHubClient

_LOGGER = logging.getLogger(__name__)


class ConnectorDeviceHandler:
    """Owns the cached state and target of one device identity.

    Replies from the hub are classified before use: only valid replies are
    normalized and merged into the cached state. Rejected replies and
    missing replies leave the cache untouched.
    """

    def __init__(
        self, client: ConnectorHubClient, reverse_direction: bool = False
    ) -> None:
        """Initialize the handler.

        Args:
            client: Command object bound to the device.
            reverse_direction: User override flipping the closed endpoint.

        """
        self.client = client
        self.mapper = PositionMapper(client.identity, reverse_direction)
        self._state: DeviceState | None = None
        self._hub_target: int | None = None

    @property
    def identity(self) -> DeviceIdentity:
        """Return the identity of the device."""
        return self.client.identity

    @property
    def state(self) -> DeviceState | None:
        """Return the last known state, in hub-native coordinates."""
        return self._state

    @property
    def hub_target(self) -> int | None:
        """Return the last known target, in hub-native coordinates."""
        return self._hub_target

    @property
    def binary_only(self) -> bool:
        """Return True if the device only accepts open/close commands."""
        if self._state is None:
            return False
        return self._state.binary_only or self._state.position_inferred

    @property
    def normalized(self) -> NormalizedPositionState | None:
        """Return the consumer-facing position state, if known."""
        if self._state is None:
            return None
        return self.mapper.normalize(self._state, self._hub_target)

    @property
    def battery_percent(self) -> int | None:
        """Return the battery charge percentage, if the device reports one."""
        if self._state is None:
            return None
        return api.battery_percent(self._state.battery_level)

    @property
    def device_info(self) -> dict[str, str]:
        """Return human-readable names for the model and status of the device."""
        return api.describe_device(self.identity, self._state)

    @property
    def is_low_battery(self) -> bool:
        """Return True if the battery is low."""
        return self._state is not None and api.is_low_battery(self._state.battery_level)

    def update_session(self, hub_ip: str, access_token: str | None) -> None:
        """Point the device at a new hub address or access token."""
        if hub_ip != self.client.hub_ip:
            _LOGGER.info(
                "Device %s moved from %s to %s",
                self.identity.unique_id,
                self.client.hub_ip,
                hub_ip,
            )
        self.client.hub_ip = hub_ip
        self.client.access_token = access_token

    def apply_ack(self, ack: dict[str, Any], sync_target: bool = True) -> DeviceState:
        """Merge a valid reply into the cached state.

        The hub only reports a position once a movement has completed, so
        whenever a read observes a new position the target is moved to it.

        Args:
            ack: A reply already classified as valid.
            sync_target: Whether a changed position resets the target.

        Returns:
            The new cached state.

        """
        previous = self._state
        state = normalize_device_state(
            self.identity, ack, self.mapper.closed_value, last_state=previous
        )
        self._state = state

        position_changed = previous is None or (
            state.current_position != previous.current_position
        )
        if position_changed:
            _LOGGER.info(
                "Updating position of %s: %s",
                self.identity.unique_id,
                self.mapper.to_canonical(state.current_position),
            )
            if sync_target or self._hub_target is None:
                self._hub_target = state.current_position

        if previous is not None and state.battery_level != previous.battery_level:
            _LOGGER.info(
                "Updating battery of %s: %s%%",
                self.identity.unique_id,
                api.battery_percent(state.battery_level),
            )

        return state

    async def async_read_state(self) -> DeviceState | None:
        """Refresh the state of the device from the hub.

        Returns:
            The new state, or None if the hub did not answer or rejected the
            read.

        """
        ack = await self.client.async_read_device()
        status = api.classify_ack(ack)
        if status is not AckStatus.VALID:
            _LOGGER.warning(
                "Refresh of %s failed: %s", self.identity.unique_id, status
            )
            return None
        return self.apply_ack(ack)

    async def async_send_command(
        self, command: str | dict[str, Any]
    ) -> dict[str, Any] | None:
        """Send a command to the device.

        Raises:
            ConnectorHubTokenError: If no access token is available yet.

        """
        ack = await self.client.async_write_device(command)
        return self._handle_write_ack(command, ack)

    async def async_set_position(self, position: int) -> dict[str, Any] | None:
        """Move the device to a canonical position."""
        hub_target, command = self.mapper.make_target_command(
            position, self.binary_only
        )
        ack = await self.async_send_command(command)
        if api.classify_ack(ack) is AckStatus.VALID:
            self._hub_target = hub_target
        return ack

    async def async_open(self) -> dict[str, Any] | None:
        """Fully open the device."""
        return await self._async_send_operation(DeviceOpCode.OPEN)

    async def async_close(self) -> dict[str, Any] | None:
        """Fully close the device."""
        return await self._async_send_operation(DeviceOpCode.CLOSE)

    async def async_stop(self) -> dict[str, Any] | None:
        """Stop the device where it is."""
        return await self._async_send_operation(DeviceOpCode.STOP)

    async def async_set_target_angle(self, angle: int) -> dict[str, Any] | None:
        """Tilt the slats of the device."""
        ack = await self.client.async_set_target_angle(angle)
        return self._handle_write_ack({"targetAngle": angle}, ack)

    async def _async_send_operation(
        self, operation: DeviceOpCode
    ) -> dict[str, Any] | None:
        ack = await self.client.async_set_operation(operation)
        ack = self._handle_write_ack(operation.name.lower(), ack)
        if api.classify_ack(ack) is not AckStatus.VALID:
            return ack

        if operation == DeviceOpCode.STOP:
            if self._state is not None:
                self._hub_target = self._state.current_position
        else:
            self._hub_target = self.mapper.op_code_to_position(operation)
        return ack

    def _handle_write_ack(
        self, command: Any, ack: dict[str, Any] | None
    ) -> dict[str, Any] | None:
        status = api.classify_ack(ack)
        if status is AckStatus.NO_RESPONSE:
            _LOGGER.warning(
                "No response to command %s for %s", command, self.identity.unique_id
            )
        elif status is AckStatus.REJECTED:
            _LOGGER.warning(
                "Hub rejected command %s for %s: %s",
                command,
                self.identity.unique_id,
                ack.get("actionResult"),
            )
        else:
            self.apply_ack(ack, sync_target=False)
        return ack
