# robot_base/core/errors.py

from __future__ import annotations

from typing import Any


class RobotBaseError(Exception):
    """Root of every error raised by robot_base."""


class ConnectError(RobotBaseError, ConnectionError):
    """Endpoint unreachable, refused, or the WebSocket handshake failed."""


class SendError(RobotBaseError):
    """Write failed on a closed or broken session."""


class ReceiveError(RobotBaseError):
    """Read failed: timeout, peer closed, or unexpected message kind."""


class DecodeError(RobotBaseError):
    """Malformed or truncated frame."""


class OutOfOrderTelemetry(RobotBaseError):
    """
    A status arrived with a timestamp older than the last accepted one.

    Not fatal: the control loop logs it and keeps going.
    """

    def __init__(self, last_ts_us: int, ts_us: int, message: Any = None) -> None:
        super().__init__(f"telemetry timestamp went backwards: {ts_us} < {last_ts_us}")
        self.last_ts_us = last_ts_us
        self.ts_us = ts_us
        self.message = message


__all__ = [
    "RobotBaseError",
    "ConnectError",
    "SendError",
    "ReceiveError",
    "DecodeError",
    "OutOfOrderTelemetry",
]
