"""Tests for the configuration schema."""

import pytest
from conftest import CONNECTOR_KEY, HUB_MAC

from custom_components.connector_hub.api import ConnectorHubConfigError
from custom_components.connector_hub.config import ConnectorHubConfig, build_config
from custom_components.connector_hub.const import (
    CONF_CONNECTOR_KEY,
    CONF_HUB_IPS,
    CONF_MAX_RETRIES,
    CONF_REFRESH_INTERVAL,
    CONF_REVERSE_DIRECTION,
    CONF_SOCKET_TIMEOUT,
    DeviceType,
)
from custom_components.connector_hub.models import DeviceIdentity, SplitComponent


class TestBuildConfig:
    """Tests for build_config."""

    def test_defaults(self) -> None:
        """Test that only the connector key is required."""
        config = build_config({CONF_CONNECTOR_KEY: CONNECTOR_KEY})
        assert config == ConnectorHubConfig(connector_key=CONNECTOR_KEY)
        assert config.max_retries == 3
        assert config.socket_timeout == 250
        assert config.refresh_interval == 5
        assert config.multicast_mode

    def test_comma_separated_hubs(self) -> None:
        """Test that hub addresses may be given as one string."""
        config = build_config(
            {
                CONF_CONNECTOR_KEY: CONNECTOR_KEY,
                CONF_HUB_IPS: " 192.168.1.50, 192.168.1.51,,192.168.1.50 ",
            }
        )
        assert config.hub_ips == ("192.168.1.50", "192.168.1.51")
        assert not config.multicast_mode

    def test_empty_hub_string_means_multicast(self) -> None:
        """Test that a blank hub field selects multicast discovery."""
        config = build_config({CONF_CONNECTOR_KEY: CONNECTOR_KEY, CONF_HUB_IPS: ""})
        assert config.hub_ips == ()

    def test_numeric_options(self) -> None:
        """Test that numeric options are coerced."""
        config = build_config(
            {
                CONF_CONNECTOR_KEY: CONNECTOR_KEY,
                CONF_MAX_RETRIES: "5",
                CONF_SOCKET_TIMEOUT: 500,
                CONF_REFRESH_INTERVAL: 10,
            }
        )
        assert (config.max_retries, config.socket_timeout, config.refresh_interval) == (
            5,
            500,
            10,
        )

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {CONF_CONNECTOR_KEY: "too-short"},
            {CONF_CONNECTOR_KEY: CONNECTOR_KEY, CONF_HUB_IPS: ["not-an-ip"]},
            {CONF_CONNECTOR_KEY: CONNECTOR_KEY, CONF_HUB_IPS: "192.168.1.300"},
            {CONF_CONNECTOR_KEY: CONNECTOR_KEY, CONF_MAX_RETRIES: 0},
            {CONF_CONNECTOR_KEY: CONNECTOR_KEY, CONF_SOCKET_TIMEOUT: "fast"},
        ],
    )
    def test_invalid_config(self, data: dict) -> None:
        """Test that invalid values raise ConnectorHubConfigError."""
        with pytest.raises(ConnectorHubConfigError, match="Invalid configuration"):
            build_config(data)


class TestReverseDirection:
    """Tests for ConnectorHubConfig.is_reversed."""

    def test_bare_mac_reverses_both_halves(self) -> None:
        """Test that a MAC reverses every half of a device."""
        mac = f"{HUB_MAC}0003"
        config = build_config(
            {CONF_CONNECTOR_KEY: CONNECTOR_KEY, CONF_REVERSE_DIRECTION: [mac]}
        )
        for component in (SplitComponent.TOP_DOWN, SplitComponent.BOTTOM_UP):
            identity = DeviceIdentity(
                mac, DeviceType.RADIO_MOTOR.value, split_component=component
            )
            assert config.is_reversed(identity)

    def test_unique_id_reverses_one_half(self) -> None:
        """Test that a unique ID reverses only the named half."""
        mac = f"{HUB_MAC}0003"
        config = build_config(
            {CONF_CONNECTOR_KEY: CONNECTOR_KEY, CONF_REVERSE_DIRECTION: f"{mac}_T"}
        )
        top = DeviceIdentity(
            mac, DeviceType.RADIO_MOTOR.value, split_component=SplitComponent.TOP_DOWN
        )
        bottom = DeviceIdentity(
            mac, DeviceType.RADIO_MOTOR.value, split_component=SplitComponent.BOTTOM_UP
        )
        assert config.is_reversed(top)
        assert not config.is_reversed(bottom)
