from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional

from robot_base.core.errors import ConnectError, ReceiveError, SendError

logger = logging.getLogger(__name__)


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    CLOSED = "closed"


class BaseSession(ABC):
    """
    Base class for one connection to a robot endpoint. Handles:
      - the connection state machine
      - receive timeouts
      - idempotent close
      - frame/byte counters
    Subclasses implement:
      - _open()
      - _send_bytes()
      - _recv_bytes()
      - _close()

    Errors are reported to the caller, never retried here.
    """

    def __init__(self, endpoint: str, receive_timeout_s: Optional[float] = 2.0) -> None:
        self.endpoint = endpoint
        self.receive_timeout_s = receive_timeout_s
        self._state = SessionState.DISCONNECTED
        self._broken = False

        self.frames_sent = 0
        self.bytes_sent = 0
        self.frames_received = 0
        self.bytes_received = 0
        self.close_calls = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is SessionState.CONNECTED and not self._broken

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            logger.info("[%s] %s -> %s", self.endpoint, self._state.value, state.value)
            self._state = state

    # ---------- Lifecycle ----------

    async def connect(self) -> "BaseSession":
        if self._state is not SessionState.DISCONNECTED:
            raise RuntimeError(f"connect() called in state {self._state.value}")

        self._set_state(SessionState.CONNECTING)
        try:
            await self._open()
        except ConnectError:
            self._set_state(SessionState.CLOSED)
            raise
        except (OSError, asyncio.TimeoutError) as e:
            self._set_state(SessionState.CLOSED)
            raise ConnectError(f"cannot connect to {self.endpoint}: {e}") from e

        self._set_state(SessionState.CONNECTED)
        return self

    async def close(self) -> None:
        """Close the session. Safe to call any number of times."""
        self.close_calls += 1
        if self._state in (SessionState.CLOSING, SessionState.CLOSED):
            return
        if self._state is SessionState.DISCONNECTED:
            self._set_state(SessionState.CLOSED)
            return

        self._set_state(SessionState.CLOSING)
        try:
            await self._close()
        except Exception as e:
            # the socket is gone either way
            logger.warning("[%s] error while closing: %r", self.endpoint, e)
        finally:
            self._set_state(SessionState.CLOSED)

    # ---------- Data path ----------

    async def send(self, frame: bytes) -> None:
        if not self.is_open:
            raise SendError(f"send on {self._state.value} session to {self.endpoint}")
        try:
            await self._send_bytes(frame)
        except SendError:
            self._broken = True
            raise
        self.frames_sent += 1
        self.bytes_sent += len(frame)

    async def receive(self, timeout_s: Optional[float] = None) -> bytes:
        """Block until one frame arrives or the timeout elapses."""
        if not self.is_open:
            raise ReceiveError(f"receive on {self._state.value} session to {self.endpoint}")

        timeout = self.receive_timeout_s if timeout_s is None else timeout_s
        try:
            frame = await asyncio.wait_for(self._recv_bytes(), timeout)
        except asyncio.TimeoutError as e:
            raise ReceiveError(f"no frame from {self.endpoint} within {timeout}s") from e
        except ReceiveError:
            self._broken = True
            raise

        self.frames_received += 1
        self.bytes_received += len(frame)
        return frame

    def stats(self) -> dict:
        return {
            "state": self._state.value,
            "frames_sent": self.frames_sent,
            "bytes_sent": self.bytes_sent,
            "frames_received": self.frames_received,
            "bytes_received": self.bytes_received,
        }

    @abstractmethod
    async def _open(self) -> None:
        ...

    @abstractmethod
    async def _send_bytes(self, data: bytes) -> None:
        ...

    @abstractmethod
    async def _recv_bytes(self) -> bytes:
        ...

    @abstractmethod
    async def _close(self) -> None:
        ...
