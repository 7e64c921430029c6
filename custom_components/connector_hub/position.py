"""Conversions between hub-native and canonical positions.

Hub positions run from 0 to 100, but which end means "closed" depends on the
device class: most motors report 100 when closed, while Wi-Fi curtains and
the top-down half of a split blind report 0. Canonical positions always use
100 for fully open and 0 for fully closed.
"""

from __future__ import annotations

from typing import Any

from .const import (
    HALF_OPEN_POSITION,
    MAX_POSITION,
    MIN_POSITION,
    DeviceOpCode,
    DeviceType,
)
from .models import (
    DeviceIdentity,
    DeviceState,
    Direction,
    NormalizedPositionState,
    SplitComponent,
)


def closed_value_for(identity: DeviceIdentity, reverse_direction: bool = False) -> int:
    """Return the hub-native position at which the device is fully closed."""
    closed_at_zero = (
        identity.device_type == DeviceType.WIFI_CURTAIN
        or identity.split_component is SplitComponent.TOP_DOWN
    )
    if closed_at_zero != reverse_direction:
        return MIN_POSITION
    return MAX_POSITION


class PositionMapper:
    """Maps positions and directions for one device."""

    def __init__(
        self, identity: DeviceIdentity, reverse_direction: bool = False
    ) -> None:
        """Initialize the mapper.

        Args:
            identity: Device whose coordinates are being mapped.
            reverse_direction: User override flipping the closed endpoint.

        """
        self.identity = identity
        self.closed_value = closed_value_for(identity, reverse_direction)

    def to_canonical(self, hub_pos: int) -> int:
        """Convert a hub-native position to the canonical scale."""
        if self.closed_value == MAX_POSITION:
            return MAX_POSITION - hub_pos
        return hub_pos

    def from_canonical(self, position: int) -> int:
        """Convert a canonical position to the hub-native scale."""
        return self.to_canonical(position)

    def position_to_op_code(self, hub_pos: int) -> DeviceOpCode:
        """Return the binary command nearest to a hub-native position."""
        if abs(self.closed_value - hub_pos) < HALF_OPEN_POSITION:
            return DeviceOpCode.CLOSE
        return DeviceOpCode.OPEN

    def op_code_to_position(self, op_code: DeviceOpCode) -> int:
        """Return the hub-native endpoint reached by a binary command."""
        if op_code == DeviceOpCode.CLOSE:
            return self.closed_value
        return MAX_POSITION - self.closed_value

    def get_direction(self, hub_pos: int, hub_target: int) -> Direction:
        """Infer the direction of travel from position and target.

        Both values are compared by their distance from the closed endpoint,
        so the same rule holds whichever end of the scale is closed.
        """
        target_offset = abs(self.closed_value - hub_target)
        pos_offset = abs(self.closed_value - hub_pos)
        if pos_offset < target_offset:
            return Direction.OPENING
        if pos_offset > target_offset:
            return Direction.CLOSING
        return Direction.STOPPED

    @staticmethod
    def binarize_target(hub_target: int) -> int:
        """Round a hub-native target to the nearest endpoint."""
        return MAX_POSITION if hub_target >= HALF_OPEN_POSITION else MIN_POSITION

    def make_target_command(
        self, target: int, binary_only: bool
    ) -> tuple[int, dict[str, Any]]:
        """Build the command that moves the device to a canonical target.

        Args:
            target: Canonical target position.
            binary_only: Whether the device only accepts open/close.

        Returns:
            Tuple of (hub-native target, command data).

        """
        hub_target = self.from_canonical(target)
        suffix = self.identity.split_component.suffix

        if binary_only:
            hub_target = self.binarize_target(hub_target)
            op_code = self.position_to_op_code(hub_target)
            return hub_target, {f"operation{suffix}": int(op_code)}

        return hub_target, {f"targetPosition{suffix}": hub_target}

    def normalize(
        self, state: DeviceState, hub_target: int | None
    ) -> NormalizedPositionState:
        """Build the consumer-facing state from a device snapshot.

        Args:
            state: Normalized device state, with current_position set.
            hub_target: Last known hub-native target, or None to use the
                current position.

        """
        hub_pos = state.current_position
        if hub_pos is None:
            hub_pos = HALF_OPEN_POSITION
        if hub_target is None:
            hub_target = hub_pos

        return NormalizedPositionState(
            position=self.to_canonical(hub_pos),
            target=self.to_canonical(hub_target),
            direction=self.get_direction(hub_pos, hub_target),
        )
