"""Coordinator for Connector hub integration."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .api import ConnectorHubTokenError, classify_ack
from .const import DEFAULT_REFRESH_INTERVAL, DOMAIN
from .models import AckStatus, NormalizedPositionState

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

    from .device import ConnectorDeviceHandler

_LOGGER = logging.getLogger(__name__)


class ConnectorDeviceCoordinator(DataUpdateCoordinator[NormalizedPositionState]):
    """Coordinator that polls the state of one device."""

    def __init__(
        self,
        hass: HomeAssistant,
        handler: ConnectorDeviceHandler,
        refresh_interval: int = DEFAULT_REFRESH_INTERVAL,
        config_entry: ConfigEntry | None = None,
    ) -> None:
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name=f"{DOMAIN}_{handler.identity.unique_id}",
            update_interval=timedelta(seconds=refresh_interval),
        )
        self.handler = handler
        self.data = handler.normalized

    async def _async_update_data(self) -> NormalizedPositionState:
        state = await self.handler.async_read_state()
        if state is None:
            unique_id = self.handler.identity.unique_id
            error_msg = f"No valid state received from {unique_id}"
            raise UpdateFailed(error_msg)

        normalized = self.handler.normalized
        _LOGGER.debug(
            "Polled %s: position=%s target=%s direction=%s",
            self.handler.identity.unique_id,
            normalized.position,
            normalized.target,
            normalized.direction,
        )
        return normalized

    async def async_set_position(self, position: int) -> bool:
        """Move the device and publish the new target.

        Returns:
            True if the hub accepted the command.

        Raises:
            UpdateFailed: If the hub has not issued an access token yet.

        """
        try:
            ack = await self.handler.async_set_position(position)
        except ConnectorHubTokenError as err:
            error_msg = f"Cannot command {self.handler.identity.unique_id}: {err}"
            raise UpdateFailed(error_msg) from err

        accepted = classify_ack(ack) is AckStatus.VALID
        if accepted:
            self.async_set_updated_data(self.handler.normalized)
        return accepted
