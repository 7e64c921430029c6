from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from .api import ConnectorHubConfigError
from .config import build_config
from .const import DOMAIN
from .discovery import DiscoveryScanner, HubSessionRegistry
from .hub import ConnectorHubManager
from .protocol import WireProtocolClient
from .stale import StaleDeviceDetector

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Setting up Connector hub integration for entry %s", entry.entry_id)

    try:
        config = build_config(entry.data)
    except ConnectorHubConfigError as err:
        _LOGGER.error("Invalid configuration for entry %s: %s", entry.entry_id, err)
        return False

    protocol = WireProtocolClient(config.max_retries, config.socket_timeout)
    registry = HubSessionRegistry(config.connector_key)
    manager = ConnectorHubManager(hass, protocol, registry, config, entry)

    stale_detector = StaleDeviceDetector(
        protocol, registry, manager.unregister_device, config.multicast_mode
    )
    scanner = DiscoveryScanner(
        protocol,
        registry,
        manager.register_device,
        hub_addresses=config.hub_ips,
        on_round_complete=manager.on_discovery_round_complete,
        stale_detector=stale_detector,
    )

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "config": config,
        "protocol": protocol,
        "registry": registry,
        "manager": manager,
        "scanner": scanner,
    }

    await scanner.async_start()
    _LOGGER.info(
        "Started discovery for entry %s on %s",
        entry.entry_id,
        ", ".join(scanner.probe_addresses),
    )
    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    _LOGGER.info("Unloading Connector hub integration for entry %s", entry.entry_id)

    entry_data = hass.data.get(DOMAIN, {}).pop(entry.entry_id, None)
    if entry_data is None:
        _LOGGER.warning("No data found for entry %s", entry.entry_id)
        return True

    await entry_data["scanner"].async_stop()
    entry_data["manager"].async_shutdown()
    _LOGGER.debug("Cleaned up data for entry %s", entry.entry_id)
    return True
