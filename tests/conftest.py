"""Pytest configuration and fixtures for Connector hub tests."""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import AsyncMock, Mock, patch

import pytest

from custom_components.connector_hub.const import DeviceType
from custom_components.connector_hub.models import DeviceIdentity
from custom_components.connector_hub.protocol import WireProtocolClient

HUB_MAC = "a1b2c3d4e5f6"
HUB_IP = "192.168.1.50"
CONNECTOR_KEY = "0123456789abcdef"
HUB_TOKEN = "fedcba9876543210"
ACCESS_TOKEN = "0B4BD671F6707F09B838C3D6CA1C6A3D"

Responder = Callable[[dict[str, Any], str], list[tuple[Any, str]]]


class FakeDatagramTransport:
    """Transport that hands every sent request to the fake network."""

    def __init__(self, network: FakeHubNetwork, protocol: asyncio.DatagramProtocol) -> None:
        self._network = network
        self._protocol = protocol
        self.sent: list[tuple[dict[str, Any], tuple[str, int]]] = []
        self.closed = False

    def sendto(self, data: bytes, addr: tuple[str, int]) -> None:
        request = json.loads(data)
        self.sent.append((request, addr))
        self._network.requests.append((request, addr[0]))

        loop = asyncio.get_running_loop()
        for reply, source_ip in self._network.responder(request, addr[0]):
            datagram = reply if isinstance(reply, bytes) else json.dumps(reply).encode()
            loop.call_soon(self._protocol.datagram_received, datagram, (source_ip, addr[1]))

    def close(self) -> None:
        self.closed = True


class FakeHubNetwork:
    """Stands in for the UDP network by replacing create_datagram_endpoint."""

    def __init__(self) -> None:
        self.transports: list[FakeDatagramTransport] = []
        self.requests: list[tuple[dict[str, Any], str]] = []
        self.responder: Responder = lambda request, target_ip: []

    async def create_datagram_endpoint(
        self, protocol_factory: Callable[[], asyncio.DatagramProtocol], **kwargs: Any
    ) -> tuple[FakeDatagramTransport, asyncio.DatagramProtocol]:
        protocol = protocol_factory()
        transport = FakeDatagramTransport(self, protocol)
        self.transports.append(transport)
        protocol.connection_made(transport)
        return transport, protocol

    @contextlib.contextmanager
    def installed(self) -> Iterator[FakeHubNetwork]:
        """Route the running loop's datagram endpoints through this network."""
        loop = asyncio.get_running_loop()
        with patch.object(loop, "create_datagram_endpoint", self.create_datagram_endpoint):
            yield self


def make_ack(
    msg_type: str,
    mac: str,
    device_type: str,
    data: dict[str, Any] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    """Build a hub reply for a device request."""
    ack: dict[str, Any] = {
        "msgType": msg_type,
        "mac": mac,
        "deviceType": device_type,
        "msgID": "20240101120000000",
        **extra,
    }
    if data is not None:
        ack["data"] = data
    return ack


def make_device_list_ack(
    devices: list[tuple[str, str]],
    hub_mac: str = HUB_MAC,
    token: str = HUB_TOKEN,
) -> dict[str, Any]:
    """Build a GetDeviceListAck listing the hub itself and its devices."""
    return {
        "msgType": "GetDeviceListAck",
        "mac": hub_mac,
        "deviceType": DeviceType.WIFI_BRIDGE.value,
        "fwVersion": "A1.0.0_B0.1.2",
        "ProtocolVersion": "0.9",
        "token": token,
        "data": [
            {"mac": hub_mac, "deviceType": DeviceType.WIFI_BRIDGE.value},
            *({"mac": mac, "deviceType": device_type} for mac, device_type in devices),
        ],
    }


@pytest.fixture
def fake_network() -> FakeHubNetwork:
    """Fixture providing a fake UDP network with no hubs answering."""
    return FakeHubNetwork()


@pytest.fixture
def wire_client() -> WireProtocolClient:
    """Fixture providing a wire client with a short timeout."""
    return WireProtocolClient(max_retries=3, socket_timeout_ms=20)


@pytest.fixture
def mock_protocol() -> Mock:
    """Fixture providing a mocked wire protocol client."""
    protocol = Mock(spec=WireProtocolClient)
    protocol.async_send = AsyncMock(return_value=None)
    protocol.async_send_multicast = AsyncMock(return_value=[])
    return protocol


@pytest.fixture
def blind_identity() -> DeviceIdentity:
    """Fixture providing a radio roller blind closed at 100."""
    return DeviceIdentity(mac=f"{HUB_MAC}0001", device_type=DeviceType.RADIO_MOTOR.value)


@pytest.fixture
def curtain_identity() -> DeviceIdentity:
    """Fixture providing a Wi-Fi curtain closed at 0."""
    return DeviceIdentity(mac=f"{HUB_MAC}0002", device_type=DeviceType.WIFI_CURTAIN.value)
