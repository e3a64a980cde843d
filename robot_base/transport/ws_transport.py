"""
WebSocket session to a robot endpoint (e.g. ws://192.168.1.10:8439).

One binary WebSocket message carries exactly one protocol frame.
"""

from __future__ import annotations

import logging
import socket
from typing import Optional

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI, WebSocketException

from robot_base.core.errors import ConnectError, ReceiveError, SendError
from robot_base.core.settings import SessionSettings

from .base_transport import BaseSession

logger = logging.getLogger(__name__)


class WebSocketSession(BaseSession):
    """BaseSession over the `websockets` asyncio client."""

    def __init__(
        self,
        endpoint: str,
        open_timeout_s: float = 5.0,
        receive_timeout_s: Optional[float] = 2.0,
        close_timeout_s: float = 2.0,
        tcp_nodelay: bool = True,
    ) -> None:
        super().__init__(endpoint, receive_timeout_s=receive_timeout_s)
        self.open_timeout_s = open_timeout_s
        self.close_timeout_s = close_timeout_s
        self.tcp_nodelay = tcp_nodelay
        self._ws = None

    @classmethod
    def from_settings(cls, endpoint: str, settings: SessionSettings) -> "WebSocketSession":
        return cls(
            endpoint,
            open_timeout_s=settings.open_timeout_s,
            receive_timeout_s=settings.receive_timeout_s,
            close_timeout_s=settings.close_timeout_s,
            tcp_nodelay=settings.tcp_nodelay,
        )

    async def _open(self) -> None:
        logger.info("Connecting to %s ...", self.endpoint)
        try:
            self._ws = await websockets.connect(
                self.endpoint,
                open_timeout=self.open_timeout_s,
                close_timeout=self.close_timeout_s,
                ping_interval=None,   # keepalive off: traffic is strictly send/receive
                max_queue=None,
            )
        except InvalidURI as e:
            raise ConnectError(f"invalid endpoint {self.endpoint!r}: {e}") from e
        except InvalidHandshake as e:
            raise ConnectError(f"handshake with {self.endpoint} failed: {e}") from e

        if self.tcp_nodelay:
            self._set_nodelay()
        logger.info("Connected to %s", self.endpoint)

    def _set_nodelay(self) -> None:
        transport = getattr(self._ws, "transport", None)
        sock = transport.get_extra_info("socket") if transport is not None else None
        if sock is None or sock.family not in (socket.AF_INET, socket.AF_INET6):
            return
        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as e:
            logger.debug("TCP_NODELAY not applied: %r", e)

    async def _send_bytes(self, data: bytes) -> None:
        try:
            await self._ws.send(data)
        except (ConnectionClosed, WebSocketException, OSError) as e:
            raise SendError(f"send to {self.endpoint} failed: {e}") from e

    async def _recv_bytes(self) -> bytes:
        try:
            msg = await self._ws.recv()
        except (ConnectionClosed, WebSocketException, OSError) as e:
            raise ReceiveError(f"receive from {self.endpoint} failed: {e}") from e

        if isinstance(msg, str):
            raise ReceiveError(f"expected a binary frame, got text ({len(msg)} chars)")
        return bytes(msg)

    async def _close(self) -> None:
        if self._ws is not None:
            ws, self._ws = self._ws, None
            await ws.close()


async def connect(endpoint: str, settings: Optional[SessionSettings] = None) -> WebSocketSession:
    """Open a session to `endpoint`; raises ConnectError."""
    session = WebSocketSession.from_settings(endpoint, settings or SessionSettings())
    await session.connect()
    return session
