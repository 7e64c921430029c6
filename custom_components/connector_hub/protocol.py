"""UDP transport for the Connector hub JSON protocol.

Every attempt to deliver a request opens its own datagram endpoint, so a
late reply to an abandoned attempt can never be mistaken for the answer to
a later one.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import socket
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from .api import decode_message, encode_message, is_matching_reply
from .const import DEFAULT_MAX_RETRIES, DEFAULT_SOCKET_TIMEOUT_MS, UDP_PORT

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class HubReply:
    """A reply received from a hub, with the address it came from."""

    payload: dict[str, Any]
    source_ip: str


class _HubReplyProtocol(asyncio.DatagramProtocol):
    """Decodes datagrams and forwards the valid ones."""

    def __init__(self, on_message: Callable[[dict[str, Any], str], None]) -> None:
        self._on_message = on_message

    def datagram_received(self, data: bytes, addr: tuple[str | Any, int]) -> None:
        message = decode_message(data)
        if message is not None:
            self._on_message(message, addr[0])

    def error_received(self, exc: Exception) -> None:
        _LOGGER.debug("Socket error while waiting for hub reply: %s", exc)


class WireProtocolClient:
    """Sends JSON requests to hubs and waits for their replies.

    Network failures are never raised to the caller: once every attempt has
    timed out, the request resolves to "no response".
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        socket_timeout_ms: int = DEFAULT_SOCKET_TIMEOUT_MS,
        port: int = UDP_PORT,
    ) -> None:
        """Initialize the client.

        Args:
            max_retries: Number of attempts made for each request.
            socket_timeout_ms: How long each attempt waits for a reply.
            port: UDP port the hubs listen on.

        """
        self.max_retries = max_retries
        self.socket_timeout = socket_timeout_ms / 1000.0
        self.port = port

    async def async_send(
        self, request: dict[str, Any], hub_ip: str
    ) -> dict[str, Any] | None:
        """Send a request and return the first valid reply.

        Args:
            request: Request message.
            hub_ip: Address of the hub.

        Returns:
            The reply message, or None if no valid reply arrived.

        """
        for attempt in range(1, self.max_retries + 1):
            replies = await self._async_attempt(request, hub_ip, None)
            if replies:
                return replies[0].payload
            _LOGGER.debug(
                "No reply from %s to %s on attempt %d of %d",
                hub_ip,
                request.get("msgType"),
                attempt,
                self.max_retries,
            )

        _LOGGER.warning(
            "No response from %s to %s after %d attempts",
            hub_ip,
            request.get("msgType"),
            self.max_retries,
        )
        return None

    async def async_send_multicast(
        self,
        request: dict[str, Any],
        target_ip: str,
        collect_window: float,
        max_retries: int | None = None,
    ) -> list[HubReply]:
        """Send a request and collect every valid reply within a time window.

        Args:
            request: Request message.
            target_ip: Hub address or multicast group.
            collect_window: Seconds to keep collecting replies per attempt.
            max_retries: Overrides the configured number of attempts.

        Returns:
            All valid replies of the first attempt that received any.

        """
        attempts = self.max_retries if max_retries is None else max_retries
        for attempt in range(1, attempts + 1):
            replies = await self._async_attempt(request, target_ip, collect_window)
            if replies:
                return replies
            _LOGGER.debug(
                "No replies from %s to %s on attempt %d of %d",
                target_ip,
                request.get("msgType"),
                attempt,
                attempts,
            )
        return []

    async def _async_attempt(
        self,
        request: dict[str, Any],
        target_ip: str,
        collect_window: float | None,
    ) -> list[HubReply]:
        """Make a single attempt on a fresh socket.

        When collect_window is None the attempt ends at the first valid
        reply; otherwise it collects replies until the window closes.
        """
        loop = asyncio.get_running_loop()
        replies: list[HubReply] = []
        first_reply: asyncio.Future[None] = loop.create_future()

        def on_message(message: dict[str, Any], source_ip: str) -> None:
            if not is_matching_reply(request, message):
                _LOGGER.debug(
                    "Ignoring unexpected %s from %s", message.get("msgType"), source_ip
                )
                return
            replies.append(HubReply(payload=message, source_ip=source_ip))
            if not first_reply.done():
                first_reply.set_result(None)

        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _HubReplyProtocol(on_message),
                local_addr=("0.0.0.0", 0),  # noqa: S104
                family=socket.AF_INET,
            )
        except OSError as err:
            _LOGGER.error("Failed to open socket for %s: %s", target_ip, err)
            return []

        try:
            transport.sendto(encode_message(request), (target_ip, self.port))
            if collect_window is None:
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(first_reply, self.socket_timeout)
            else:
                await asyncio.sleep(collect_window)
        except OSError as err:
            _LOGGER.error("Network error sending to %s: %s", target_ip, err)
        finally:
            transport.close()

        return replies
