"""Bridges discovery events to per-device handlers and coordinators."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from homeassistant.helpers.dispatcher import async_dispatcher_send

from .api import ConnectorHubClient, ConnectorHubTokenError, compute_access_token
from .const import SIGNAL_DEVICE_ADDED, SIGNAL_DEVICE_REMOVED
from .coordinator import ConnectorDeviceCoordinator
from .device import ConnectorDeviceHandler

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.core import HomeAssistant

    from .config import ConnectorHubConfig
    from .discovery import HubSessionRegistry
    from .models import DeviceIdentity
    from .protocol import WireProtocolClient

_LOGGER = logging.getLogger(__name__)


class ConnectorHubManager:
    """Keeps one handler and coordinator per discovered device.

    The manager implements the callbacks the discovery scanner and the stale
    device detector report to. Devices are announced to the rest of Home
    Assistant through dispatcher signals.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        protocol: WireProtocolClient,
        registry: HubSessionRegistry,
        config: ConnectorHubConfig,
        config_entry: ConfigEntry | None = None,
    ) -> None:
        self.hass = hass
        self.config_entry = config_entry
        self._protocol = protocol
        self._registry = registry
        self._config = config

        self.coordinators: dict[DeviceIdentity, ConnectorDeviceCoordinator] = {}
        self.completed_rounds: set[str] = set()
        self._unsub_refresh: dict[DeviceIdentity, Callable[[], None]] = {}

    @property
    def handlers(self) -> dict[DeviceIdentity, ConnectorDeviceHandler]:
        """Return the handler of every registered device."""
        return {
            identity: coordinator.handler
            for identity, coordinator in self.coordinators.items()
        }

    def register_device(
        self,
        hub_ip: str,
        identity: DeviceIdentity,
        read_ack: dict[str, Any],
        hub_token: str,
    ) -> None:
        """Register a device found during discovery.

        A device that is already registered only has its hub address and
        access token refreshed.
        """
        access_token = self._access_token_for(hub_ip, identity, hub_token)

        coordinator = self.coordinators.get(identity)
        if coordinator is not None:
            coordinator.handler.update_session(hub_ip, access_token)
            return

        client = ConnectorHubClient(self._protocol, identity, hub_ip, access_token)
        handler = ConnectorDeviceHandler(client, self._config.is_reversed(identity))
        handler.apply_ack(read_ack)

        coordinator = ConnectorDeviceCoordinator(
            self.hass,
            handler,
            self._config.refresh_interval,
            config_entry=self.config_entry,
        )
        self.coordinators[identity] = coordinator
        # Polling only runs while the coordinator has listeners.
        self._unsub_refresh[identity] = coordinator.async_add_listener(lambda: None)

        _LOGGER.info(
            "Registered %s %s at hub %s: %s",
            identity.model_name,
            identity.unique_id,
            hub_ip,
            ", ".join(f"{key}={value}" for key, value in handler.device_info.items()),
        )
        async_dispatcher_send(self.hass, SIGNAL_DEVICE_ADDED, coordinator)

    def unregister_device(self, identity: DeviceIdentity) -> None:
        """Remove a device that is no longer reachable."""
        coordinator = self.coordinators.pop(identity, None)
        if coordinator is None:
            _LOGGER.debug("Ignoring removal of unknown device %s", identity.unique_id)
            return

        unsub = self._unsub_refresh.pop(identity, None)
        if unsub is not None:
            unsub()

        _LOGGER.info("Removed device %s", identity.unique_id)
        async_dispatcher_send(self.hass, SIGNAL_DEVICE_REMOVED, identity)

    def on_discovery_round_complete(self, address: str) -> None:
        """Record that a discovery round for an address has finished."""
        self.completed_rounds.add(address)
        _LOGGER.info(
            "Discovery round for %s complete, %d devices registered",
            address,
            len(self.coordinators),
        )

    def async_shutdown(self) -> None:
        """Stop polling every device."""
        for unsub in self._unsub_refresh.values():
            unsub()
        self._unsub_refresh.clear()
        self.coordinators.clear()

    def _access_token_for(
        self, hub_ip: str, identity: DeviceIdentity, hub_token: str
    ) -> str | None:
        session = self._registry.session_for_device(identity)
        if session is None:
            session = self._registry.get_by_ip(hub_ip)
        if session is not None and session.session_token == hub_token:
            return session.access_token

        try:
            return compute_access_token(self._config.connector_key, hub_token)
        except ConnectorHubTokenError as err:
            _LOGGER.error("Cannot derive access token for hub %s: %s", hub_ip, err)
            return None
