"""Discovery of Connector hubs and the devices paired with them.

A discovery round broadcasts GetDeviceList requests toward a hub address
(or the multicast group when no hubs are configured), reads every device
listed in the replies, and hands each one to the consumer. Rounds repeat on
a fixed interval so that newly paired devices are picked up and devices
that disappeared are detected.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from .api import (
    ConnectorHubTokenError,
    classify_ack,
    compute_access_token,
    make_get_device_list_request,
    make_identities,
    make_read_device_request,
)
from .const import (
    DISCOVERY_DURATION,
    DISCOVERY_FREQUENCY,
    DISCOVERY_INTERVAL,
    HUB_DEVICE_TYPES,
    MULTICAST_IP,
)
from .models import AckStatus, DeviceIdentity, HubSession

if TYPE_CHECKING:
    from .protocol import HubReply, WireProtocolClient
    from .stale import StaleDeviceDetector

_LOGGER = logging.getLogger(__name__)

RegisterDeviceCallback = Callable[[str, DeviceIdentity, dict[str, Any], str], None]
RoundCompleteCallback = Callable[[str], None]


class HubSessionRegistry:
    """Sessions of every hub seen during discovery, keyed by hub MAC.

    Entries are added or replaced, never removed. A session is replaced
    whenever the hub reports a new address or rotates its session token, and
    the access token is derived again in the latter case.
    """

    def __init__(self, connector_key: str) -> None:
        """Initialize the registry.

        Args:
            connector_key: Shared secret used to derive access tokens.

        """
        self._connector_key = connector_key
        self._sessions: dict[str, HubSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, hub_mac: object) -> bool:
        return hub_mac in self._sessions

    @property
    def sessions(self) -> list[HubSession]:
        """Return all known hub sessions."""
        return list(self._sessions.values())

    def update(
        self,
        hub_ip: str,
        hub_mac: str,
        session_token: str,
        fw_version: str | None = None,
    ) -> HubSession:
        """Record the session reported by a GetDeviceListAck.

        Returns:
            The current session for the hub.

        """
        existing = self._sessions.get(hub_mac)
        if (
            existing is not None
            and existing.session_token == session_token
            and existing.hub_ip == hub_ip
        ):
            return existing

        if existing is not None and existing.session_token == session_token:
            access_token = existing.access_token
        else:
            if existing is not None:
                _LOGGER.warning("Hub %s issued a new session token", hub_mac)
            access_token = self._derive_access_token(hub_mac, session_token)

        session = HubSession(
            hub_ip=hub_ip,
            hub_mac=hub_mac,
            session_token=session_token,
            access_token=access_token,
            fw_version=fw_version,
        )
        self._sessions[hub_mac] = session
        _LOGGER.debug("Recorded session for hub %s at %s", hub_mac, hub_ip)
        return session

    def get(self, hub_mac: str) -> HubSession | None:
        """Return the session for a hub MAC, if known."""
        return self._sessions.get(hub_mac)

    def get_by_ip(self, hub_ip: str) -> HubSession | None:
        """Return the session for a hub address, if known."""
        for session in self._sessions.values():
            if session.hub_ip == hub_ip:
                return session
        return None

    def session_for_device(self, identity: DeviceIdentity) -> HubSession | None:
        """Return the session of the hub a device is paired with."""
        return self._sessions.get(identity.hub_mac)

    def _derive_access_token(self, hub_mac: str, session_token: str) -> str | None:
        try:
            return compute_access_token(self._connector_key, session_token)
        except ConnectorHubTokenError as err:
            _LOGGER.error("Cannot derive access token for hub %s: %s", hub_mac, err)
            return None


class DiscoveryState(StrEnum):
    """States of a discovery round."""

    IDLE = "idle"
    PROBING = "probing"
    COLLECTING = "collecting"
    COMPLETE = "complete"


@dataclass
class DiscoveryRound:
    """Progress of one discovery round for a hub address."""

    address: str
    state: DiscoveryState = DiscoveryState.IDLE
    started_at: float = 0.0
    device_list_received: bool = False
    hub_ips: set[str] = field(default_factory=set)
    read_macs: set[str] = field(default_factory=set)
    registered: set[DeviceIdentity] = field(default_factory=set)


class DiscoveryScanner:
    """Runs periodic discovery rounds for each configured hub address."""

    def __init__(
        self,
        protocol: WireProtocolClient,
        registry: HubSessionRegistry,
        register_device: RegisterDeviceCallback,
        *,
        hub_addresses: Iterable[str] | None = None,
        on_round_complete: RoundCompleteCallback | None = None,
        stale_detector: StaleDeviceDetector | None = None,
        discovery_frequency: float = DISCOVERY_FREQUENCY,
        discovery_duration: float = DISCOVERY_DURATION,
        discovery_interval: float = DISCOVERY_INTERVAL,
    ) -> None:
        """Initialize the scanner.

        Args:
            protocol: Wire protocol client used for all requests.
            registry: Registry receiving the hub sessions.
            register_device: Called with (hub_ip, identity, read_ack, hub_token)
                for every device read during a round.
            hub_addresses: Hub IPs to probe; empty means multicast discovery.
            on_round_complete: Called with the address when a round ends.
            stale_detector: Checks known devices a round did not confirm.
            discovery_frequency: Seconds between GetDeviceList probes.
            discovery_duration: Seconds each round lasts.
            discovery_interval: Seconds between the end of a round and the
                start of the next.

        """
        self._protocol = protocol
        self._registry = registry
        self._register_device = register_device
        self._on_round_complete = on_round_complete
        self._stale_detector = stale_detector
        self._frequency = discovery_frequency
        self._duration = discovery_duration
        self._interval = discovery_interval

        self.hub_addresses = list(hub_addresses or [])
        self._known_devices: dict[DeviceIdentity, str] = {}
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def multicast_mode(self) -> bool:
        """Return True if hubs are found through the multicast group."""
        return not self.hub_addresses

    @property
    def probe_addresses(self) -> list[str]:
        """Return the addresses discovery probes are sent to."""
        return self.hub_addresses or [MULTICAST_IP]

    @property
    def known_devices(self) -> dict[DeviceIdentity, str]:
        """Return the devices registered so far, with their hub IPs."""
        return dict(self._known_devices)

    @property
    def running(self) -> bool:
        """Return True while discovery tasks are active."""
        return any(not task.done() for task in self._tasks)

    async def async_start(self) -> None:
        """Start a discovery loop for every probe address."""
        if self.running:
            _LOGGER.debug("Discovery already running")
            return

        self._tasks = [
            asyncio.create_task(
                self._async_discovery_loop(address),
                name=f"connector_hub_discovery_{address}",
            )
            for address in self.probe_addresses
        ]

    async def async_stop(self) -> None:
        """Stop all discovery loops."""
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks = []

    def forget_device(self, identity: DeviceIdentity) -> None:
        """Stop tracking a device that has been removed."""
        self._known_devices.pop(identity, None)

    async def _async_discovery_loop(self, address: str) -> None:
        while True:
            try:
                await self.async_run_round(address)
            except asyncio.CancelledError:
                raise
            except Exception:
                _LOGGER.exception("Unexpected error during discovery for %s", address)
            await asyncio.sleep(self._interval)

    async def async_run_round(self, address: str) -> DiscoveryRound:
        """Run one complete discovery round for an address.

        Probes are sent until the round duration has elapsed. If no hub has
        answered by then, the timer restarts and probing continues.
        """
        loop = asyncio.get_running_loop()
        round_ = DiscoveryRound(address=address)
        round_.state = DiscoveryState.PROBING
        round_.started_at = loop.time()
        _LOGGER.debug("Starting discovery for hub: %s", address)

        while True:
            replies = await self._protocol.async_send_multicast(
                make_get_device_list_request(),
                address,
                self._frequency,
                max_retries=1,
            )
            for reply in replies:
                await self._async_handle_device_list(round_, reply)

            if loop.time() - round_.started_at < self._duration:
                continue

            if not round_.device_list_received:
                _LOGGER.warning(
                    "Device discovery failed to reach hub %s, retrying", address
                )
                round_.started_at = loop.time()
                continue

            break

        round_.state = DiscoveryState.COMPLETE
        _LOGGER.debug(
            "Finished discovery for hub %s: %d devices",
            address,
            len(round_.registered),
        )

        if self._on_round_complete is not None:
            self._safe_call(self._on_round_complete, address)

        await self._async_remove_stale_devices(round_)
        return round_

    async def _async_handle_device_list(
        self, round_: DiscoveryRound, reply: HubReply
    ) -> None:
        ack = reply.payload
        hub_ip = reply.source_ip
        hub_mac = ack.get("mac")
        token = ack.get("token")

        if not hub_mac or not token:
            _LOGGER.warning("Ignoring device list without hub details from %s", hub_ip)
            return

        self._registry.update(hub_ip, hub_mac, token, ack.get("fwVersion"))
        round_.device_list_received = True
        round_.hub_ips.add(hub_ip)
        round_.state = DiscoveryState.COLLECTING

        for device_info in ack.get("data") or []:
            mac = device_info.get("mac")
            device_type = device_info.get("deviceType")
            if not mac or device_type in HUB_DEVICE_TYPES:
                continue
            if mac in round_.read_macs:
                continue

            round_.read_macs.add(mac)
            registered = await self._async_read_and_register(
                round_, hub_ip, mac, device_type, token
            )
            if not registered:
                # Allow a later device list in this round to retry the read.
                round_.read_macs.discard(mac)

    async def _async_read_and_register(
        self,
        round_: DiscoveryRound,
        hub_ip: str,
        mac: str,
        device_type: str,
        token: str,
    ) -> bool:
        identity = DeviceIdentity(mac=mac, device_type=device_type)
        read_ack = await self._protocol.async_send(
            make_read_device_request(identity), hub_ip
        )

        status = classify_ack(read_ack)
        if status is not AckStatus.VALID:
            _LOGGER.warning(
                "Failed to read device %s during discovery: %s", mac, status
            )
            return False

        for identity in make_identities(read_ack):
            if identity in round_.registered:
                continue
            round_.registered.add(identity)
            self._known_devices[identity] = hub_ip
            self._safe_call(self._register_device, hub_ip, identity, read_ack, token)

        return True

    async def _async_remove_stale_devices(self, round_: DiscoveryRound) -> None:
        if self._stale_detector is None:
            return

        candidates = {
            identity: hub_ip
            for identity, hub_ip in self._known_devices.items()
            if identity not in round_.registered
            and (self.multicast_mode or hub_ip == round_.address)
        }
        if not candidates:
            return

        _LOGGER.debug("Checking %d devices missed by discovery", len(candidates))
        removed = await self._stale_detector.async_check_devices(candidates)
        for identity in removed:
            self.forget_device(identity)

    @staticmethod
    def _safe_call(callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            _LOGGER.exception("Error in discovery callback")
