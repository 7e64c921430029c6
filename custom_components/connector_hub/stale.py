"""Detection of devices that are no longer reachable through their hub."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

from .api import is_action_failed, make_read_device_request
from .models import DeviceIdentity

if TYPE_CHECKING:
    from .discovery import HubSessionRegistry
    from .protocol import WireProtocolClient

_LOGGER = logging.getLogger(__name__)

UnregisterDeviceCallback = Callable[[DeviceIdentity], None]


class StaleDeviceDetector:
    """Verifies devices a discovery round did not confirm.

    A device missing from a round is read directly from its hub. If the hub
    does not answer, or answers that the read failed, the device is reported
    to the consumer as removed.
    """

    def __init__(
        self,
        protocol: WireProtocolClient,
        registry: HubSessionRegistry,
        unregister_device: UnregisterDeviceCallback,
        multicast_mode: bool,
    ) -> None:
        """Initialize the detector.

        Args:
            protocol: Wire protocol client used for the verification reads.
            registry: Registry used to look up the hub of each device.
            unregister_device: Called with the identity of a removed device.
            multicast_mode: Whether hubs are found through multicast.

        """
        self._protocol = protocol
        self._registry = registry
        self._unregister_device = unregister_device
        self._multicast_mode = multicast_mode

    def resolve_hub_ip(
        self, identity: DeviceIdentity, last_hub_ip: str | None
    ) -> str | None:
        """Return the address to verify a device at, or None to skip it.

        In multicast mode only hubs answering discovery are trusted, so a
        device whose hub has no session is left alone.
        """
        session = self._registry.session_for_device(identity)
        if session is not None:
            return session.hub_ip
        if self._multicast_mode:
            return None
        return last_hub_ip

    async def async_verify(
        self, identity: DeviceIdentity, last_hub_ip: str | None = None
    ) -> bool:
        """Verify a single device.

        Returns:
            True if the device was found to be gone and was unregistered.

        """
        removed = await self.async_check_devices({identity: last_hub_ip})
        return identity in removed

    async def async_check_devices(
        self, devices: Mapping[DeviceIdentity, str | None]
    ) -> list[DeviceIdentity]:
        """Verify devices and unregister the ones that are gone.

        Both halves of a split device are verified with a single read.

        Args:
            devices: Devices to verify, with the hub IP they were last seen at.

        Returns:
            Identities that were unregistered.

        """
        by_device: dict[tuple[str, str], list[DeviceIdentity]] = {}
        hub_ips: dict[tuple[str, str], str] = {}
        for identity, last_hub_ip in devices.items():
            hub_ip = self.resolve_hub_ip(identity, last_hub_ip)
            if hub_ip is None:
                _LOGGER.debug(
                    "Skipping check for %s, hub address unknown", identity.unique_id
                )
                continue
            key = (identity.mac, identity.device_type)
            by_device.setdefault(key, []).append(identity)
            hub_ips[key] = hub_ip

        removed: list[DeviceIdentity] = []
        for key, identities in by_device.items():
            mac, device_type = key
            request = make_read_device_request(
                DeviceIdentity(mac=mac, device_type=device_type)
            )
            ack = await self._protocol.async_send(request, hub_ips[key])
            if ack is not None and not is_action_failed(ack):
                continue

            _LOGGER.info("Device %s no longer reachable, removing", mac)
            for identity in identities:
                try:
                    self._unregister_device(identity)
                except Exception:
                    _LOGGER.exception("Error unregistering %s", identity.unique_id)
                removed.append(identity)

        return removed
