"""Tests for the Connector hub manager."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from unittest.mock import Mock, patch

import pytest
from conftest import ACCESS_TOKEN, CONNECTOR_KEY, HUB_IP, HUB_MAC, HUB_TOKEN, make_ack

from custom_components.connector_hub.config import ConnectorHubConfig
from custom_components.connector_hub.const import (
    SIGNAL_DEVICE_ADDED,
    SIGNAL_DEVICE_REMOVED,
)
from custom_components.connector_hub.discovery import HubSessionRegistry
from custom_components.connector_hub.hub import ConnectorHubManager
from custom_components.connector_hub.models import DeviceIdentity

OTHER_TOKEN = "0011223344556677"


@pytest.fixture
def mock_hass() -> Mock:
    """Create a mock Home Assistant instance."""
    return Mock()


@pytest.fixture
def registry() -> HubSessionRegistry:
    """Create a registry that knows the test hub."""
    registry = HubSessionRegistry(CONNECTOR_KEY)
    registry.update(HUB_IP, HUB_MAC, HUB_TOKEN)
    return registry


@pytest.fixture
def mock_dispatcher() -> Iterator[Mock]:
    """Patch the dispatcher used by the manager."""
    with patch(
        "custom_components.connector_hub.hub.async_dispatcher_send"
    ) as mock_send:
        yield mock_send


@pytest.fixture
def mock_coordinator_cls() -> Iterator[Mock]:
    """Patch the coordinator class so no Home Assistant timers are used."""
    with patch(
        "custom_components.connector_hub.hub.ConnectorDeviceCoordinator"
    ) as coordinator_cls:
        coordinator_cls.side_effect = lambda hass, handler, *args, **kwargs: Mock(
            handler=handler, async_add_listener=Mock(return_value=Mock())
        )
        yield coordinator_cls


@pytest.fixture
def manager(
    mock_hass: Mock,
    mock_protocol: Mock,
    registry: HubSessionRegistry,
    mock_dispatcher: Mock,
    mock_coordinator_cls: Mock,
) -> ConnectorHubManager:
    """Create a manager."""
    config = ConnectorHubConfig(connector_key=CONNECTOR_KEY, refresh_interval=7)
    return ConnectorHubManager(mock_hass, mock_protocol, registry, config)


def read_ack(identity: DeviceIdentity, position: int = 40) -> dict:
    """Build a ReadDeviceAck for an identity."""
    return make_ack(
        "ReadDeviceAck",
        identity.mac,
        identity.device_type,
        data={"type": 1, "currentPosition": position, "wirelessMode": 1},
    )


class TestConnectorHubManager:
    """Tests for ConnectorHubManager."""

    def test_register_creates_coordinator(
        self,
        manager: ConnectorHubManager,
        mock_hass: Mock,
        mock_dispatcher: Mock,
        mock_coordinator_cls: Mock,
        blind_identity: DeviceIdentity,
    ) -> None:
        """Test that registering a device starts polling and announces it."""
        manager.register_device(HUB_IP, blind_identity, read_ack(blind_identity), HUB_TOKEN)

        coordinator = manager.coordinators[blind_identity]
        handler = manager.handlers[blind_identity]
        assert handler.client.hub_ip == HUB_IP
        assert handler.client.access_token == ACCESS_TOKEN
        assert handler.state.current_position == 40
        assert mock_coordinator_cls.call_args.args[2] == 7
        coordinator.async_add_listener.assert_called_once()
        mock_dispatcher.assert_called_once_with(
            mock_hass, SIGNAL_DEVICE_ADDED, coordinator
        )

    def test_register_logs_device_description(
        self,
        manager: ConnectorHubManager,
        blind_identity: DeviceIdentity,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that registration names the model, type and radio mode."""
        caplog.set_level(logging.INFO)
        manager.register_device(HUB_IP, blind_identity, read_ack(blind_identity), HUB_TOKEN)

        assert manager.handlers[blind_identity].device_info["device_type"] == (
            "433MHz Radio Motor"
        )
        assert "device_type=433MHz Radio Motor" in caplog.text
        assert "wireless_mode=Bi-Directional" in caplog.text

    def test_register_again_updates_session(
        self,
        manager: ConnectorHubManager,
        mock_dispatcher: Mock,
        blind_identity: DeviceIdentity,
    ) -> None:
        """Test that a known device only has its hub details refreshed."""
        manager.register_device(HUB_IP, blind_identity, read_ack(blind_identity), HUB_TOKEN)
        handler = manager.handlers[blind_identity]

        manager.register_device(
            "192.168.1.99", blind_identity, read_ack(blind_identity), OTHER_TOKEN
        )

        assert manager.handlers[blind_identity] is handler
        assert handler.client.hub_ip == "192.168.1.99"
        assert handler.client.access_token not in (None, ACCESS_TOKEN)
        assert mock_dispatcher.call_count == 1

    def test_reverse_direction_is_applied(
        self,
        mock_hass: Mock,
        mock_protocol: Mock,
        registry: HubSessionRegistry,
        mock_dispatcher: Mock,
        mock_coordinator_cls: Mock,
        blind_identity: DeviceIdentity,
    ) -> None:
        """Test that configured devices get a reversed mapper."""
        config = ConnectorHubConfig(
            connector_key=CONNECTOR_KEY,
            reverse_direction=frozenset({blind_identity.mac}),
        )
        manager = ConnectorHubManager(mock_hass, mock_protocol, registry, config)

        manager.register_device(HUB_IP, blind_identity, read_ack(blind_identity), HUB_TOKEN)

        assert manager.handlers[blind_identity].mapper.closed_value == 0

    def test_unregister_removes_device(
        self,
        manager: ConnectorHubManager,
        mock_hass: Mock,
        mock_dispatcher: Mock,
        blind_identity: DeviceIdentity,
    ) -> None:
        """Test that removing a device stops polling and announces it."""
        manager.register_device(HUB_IP, blind_identity, read_ack(blind_identity), HUB_TOKEN)
        coordinator = manager.coordinators[blind_identity]
        unsub = coordinator.async_add_listener.return_value

        manager.unregister_device(blind_identity)

        assert blind_identity not in manager.coordinators
        unsub.assert_called_once()
        mock_dispatcher.assert_called_with(
            mock_hass, SIGNAL_DEVICE_REMOVED, blind_identity
        )

    def test_unregister_unknown_device(
        self,
        manager: ConnectorHubManager,
        mock_dispatcher: Mock,
        blind_identity: DeviceIdentity,
    ) -> None:
        """Test that removing an unknown device is ignored."""
        manager.unregister_device(blind_identity)
        mock_dispatcher.assert_not_called()

    def test_round_complete(self, manager: ConnectorHubManager) -> None:
        """Test that completed rounds are recorded."""
        manager.on_discovery_round_complete(HUB_IP)
        assert manager.completed_rounds == {HUB_IP}

    def test_shutdown(
        self, manager: ConnectorHubManager, blind_identity: DeviceIdentity
    ) -> None:
        """Test that shutdown stops polling every device."""
        manager.register_device(HUB_IP, blind_identity, read_ack(blind_identity), HUB_TOKEN)
        unsub = manager.coordinators[blind_identity].async_add_listener.return_value

        manager.async_shutdown()

        unsub.assert_called_once()
        assert manager.coordinators == {}
