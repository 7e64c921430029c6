"""
Configuration flow for Connector hub integration.

This module handles the setup of the Connector hub integration through
Home Assistant's config flow system. The connector key is validated locally
and every configured hub is probed before the entry is created.
"""

import hashlib
import logging
from typing import Any

import voluptuous as vol
from homeassistant.config_entries import ConfigFlow, ConfigFlowResult

from .api import ConnectorHubClient, ConnectorHubConfigError
from .config import ConnectorHubConfig, build_config
from .const import (
    CONF_CONNECTOR_KEY,
    CONF_HUB_IPS,
    CONF_MAX_RETRIES,
    CONF_REFRESH_INTERVAL,
    CONF_REVERSE_DIRECTION,
    CONF_SOCKET_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REFRESH_INTERVAL,
    DEFAULT_SOCKET_TIMEOUT_MS,
    DOMAIN,
    ERROR_CANNOT_CONNECT,
    ERROR_INVALID_HOST,
    ERROR_INVALID_KEY,
    ERROR_INVALID_OPTIONS,
    ERROR_UNKNOWN,
)
from .protocol import WireProtocolClient

_LOGGER = logging.getLogger(__name__)


class ConnectorHubConfigFlow(ConfigFlow, domain=DOMAIN):
    """Handle configuration flow for Connector hub integration."""

    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        """
        Handle the initial step of the config flow.

        Args:
            user_input: User input data containing the connector key and an
                optional comma separated list of hub addresses.

        Returns:
            ConfigFlowResult indicating the next step or errors.

        """
        errors: dict[str, str] = {}

        if user_input is not None:
            try:
                config = build_config(user_input)
                unreachable = await self._async_probe_hubs(config)
            except ConnectorHubConfigError as err:
                _LOGGER.warning("Invalid configuration: %s", err)
                errors["base"] = self._config_error_code(user_input)
            except Exception:
                _LOGGER.exception(
                    "Unexpected error while validating hubs (%s)", ERROR_UNKNOWN
                )
                errors["base"] = ERROR_UNKNOWN
            else:
                if unreachable:
                    _LOGGER.warning(
                        "No reply from hubs (%s): %s",
                        ERROR_CANNOT_CONNECT,
                        ", ".join(unreachable),
                    )
                    errors["base"] = ERROR_CANNOT_CONNECT
                else:
                    key_id = hashlib.sha256(config.connector_key.encode()).hexdigest()
                    await self.async_set_unique_id(key_id)
                    self._abort_if_unique_id_configured()

                    return self.async_create_entry(
                        title=self._entry_title(config),
                        data={
                            CONF_CONNECTOR_KEY: config.connector_key,
                            CONF_HUB_IPS: list(config.hub_ips),
                            CONF_REVERSE_DIRECTION: sorted(config.reverse_direction),
                            CONF_MAX_RETRIES: config.max_retries,
                            CONF_SOCKET_TIMEOUT: config.socket_timeout,
                            CONF_REFRESH_INTERVAL: config.refresh_interval,
                        },
                    )

        return self.async_show_form(
            step_id="user",
            data_schema=vol.Schema(
                {
                    vol.Required(CONF_CONNECTOR_KEY): str,
                    vol.Optional(CONF_HUB_IPS, default=""): str,
                    vol.Optional(CONF_REVERSE_DIRECTION, default=""): str,
                    vol.Optional(CONF_MAX_RETRIES, default=DEFAULT_MAX_RETRIES): int,
                    vol.Optional(
                        CONF_SOCKET_TIMEOUT, default=DEFAULT_SOCKET_TIMEOUT_MS
                    ): int,
                    vol.Optional(
                        CONF_REFRESH_INTERVAL, default=DEFAULT_REFRESH_INTERVAL
                    ): int,
                }
            ),
            errors=errors,
        )

    async def _async_probe_hubs(self, config: ConnectorHubConfig) -> list[str]:
        """Send one GetDeviceList to each configured hub.

        Returns:
            Addresses of the hubs that did not answer.

        """
        protocol = WireProtocolClient(config.max_retries, config.socket_timeout)
        unreachable = []
        for hub_ip in config.hub_ips:
            ack = await ConnectorHubClient.async_get_device_list(protocol, hub_ip)
            if ack is None:
                unreachable.append(hub_ip)
            else:
                _LOGGER.info("Found hub %s at %s", ack.get("mac"), hub_ip)
        return unreachable

    @staticmethod
    def _config_error_code(user_input: dict[str, Any]) -> str:
        try:
            build_config({CONF_CONNECTOR_KEY: user_input.get(CONF_CONNECTOR_KEY)})
        except ConnectorHubConfigError:
            return ERROR_INVALID_KEY
        try:
            build_config(
                {
                    CONF_CONNECTOR_KEY: user_input.get(CONF_CONNECTOR_KEY),
                    CONF_HUB_IPS: user_input.get(CONF_HUB_IPS, []),
                }
            )
        except ConnectorHubConfigError:
            return ERROR_INVALID_HOST
        return ERROR_INVALID_OPTIONS

    @staticmethod
    def _entry_title(config: ConnectorHubConfig) -> str:
        if config.multicast_mode:
            return "Connector hub (multicast)"
        return f"Connector hub ({', '.join(config.hub_ips)})"
