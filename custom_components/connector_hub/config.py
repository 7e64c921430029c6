"""Configuration schema for Connector hub integration."""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import voluptuous as vol
from homeassistant.helpers import config_validation as cv

from .api import AES_KEY_SIZES, ConnectorHubConfigError
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
)
from .models import DeviceIdentity


def connector_key(value: Any) -> str:
    """Validate a connector key, which doubles as an AES key."""
    key = cv.string(value).strip()
    if len(key.encode("utf-8")) not in AES_KEY_SIZES:
        error_msg = "Connector key must be 16, 24 or 32 characters long"
        raise vol.Invalid(error_msg)
    return key


def comma_separated(value: Any) -> list[Any]:
    """Accept a list, or a comma separated string with blank entries dropped."""
    if isinstance(value, str):
        return [member.strip() for member in value.split(",") if member.strip()]
    return cv.ensure_list(value)


def ipv4_address(value: Any) -> str:
    """Validate a dotted IPv4 address."""
    address = cv.string(value).strip()
    try:
        ipaddress.IPv4Address(address)
    except ValueError as err:
        error_msg = f"Invalid IPv4 address: {address}"
        raise vol.Invalid(error_msg) from err
    return address


CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_CONNECTOR_KEY): connector_key,
        vol.Optional(CONF_HUB_IPS, default=[]): vol.All(
            comma_separated, [ipv4_address]
        ),
        vol.Optional(CONF_REVERSE_DIRECTION, default=[]): vol.All(
            comma_separated, [cv.string]
        ),
        vol.Optional(CONF_MAX_RETRIES, default=DEFAULT_MAX_RETRIES): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
        vol.Optional(CONF_SOCKET_TIMEOUT, default=DEFAULT_SOCKET_TIMEOUT_MS): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
        vol.Optional(CONF_REFRESH_INTERVAL, default=DEFAULT_REFRESH_INTERVAL): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
    },
    extra=vol.REMOVE_EXTRA,
)


@dataclass(frozen=True)
class ConnectorHubConfig:
    """Validated configuration of a Connector hub entry."""

    connector_key: str
    hub_ips: tuple[str, ...] = ()
    reverse_direction: frozenset[str] = frozenset()
    max_retries: int = DEFAULT_MAX_RETRIES
    socket_timeout: int = DEFAULT_SOCKET_TIMEOUT_MS
    refresh_interval: int = DEFAULT_REFRESH_INTERVAL

    @property
    def multicast_mode(self) -> bool:
        """Return True if hubs are to be found through multicast."""
        return not self.hub_ips

    def is_reversed(self, identity: DeviceIdentity) -> bool:
        """Return True if the user reversed the direction of a device.

        A bare MAC reverses every half of a split device; a unique ID
        reverses only the half it names.
        """
        return (
            identity.unique_id in self.reverse_direction
            or identity.mac in self.reverse_direction
        )


def build_config(data: Mapping[str, Any]) -> ConnectorHubConfig:
    """Validate raw entry data and build the configuration.

    Raises:
        ConnectorHubConfigError: If any value is missing or invalid.

    """
    try:
        validated = CONFIG_SCHEMA(dict(data))
    except vol.Invalid as err:
        error_msg = f"Invalid configuration: {err}"
        raise ConnectorHubConfigError(error_msg) from err

    return ConnectorHubConfig(
        connector_key=validated[CONF_CONNECTOR_KEY],
        hub_ips=tuple(dict.fromkeys(validated[CONF_HUB_IPS])),
        reverse_direction=frozenset(validated[CONF_REVERSE_DIRECTION]),
        max_retries=validated[CONF_MAX_RETRIES],
        socket_timeout=validated[CONF_SOCKET_TIMEOUT],
        refresh_interval=validated[CONF_REFRESH_INTERVAL],
    )
