# telemetry/models.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class OdometrySnapshot:
    ts_us: int
    x: float = 0.0          # m
    y: float = 0.0          # m
    heading: float = 0.0    # rad
    speed_x: float = 0.0    # m/s
    speed_y: float = 0.0    # m/s
    speed_z: float = 0.0    # rad/s


@dataclass(frozen=True)
class BaseStatus:
    session_id: int
    protocol_major_version: int
    session_holder: int
    api_control_initialized: bool
    ack_seq: int
    ts_us: int
    odometry: Optional[OdometrySnapshot] = None
    parking_stop_detail: Optional[str] = None


@dataclass(frozen=True)
class LogMessage:
    level: int
    text: str


@dataclass(frozen=True)
class UnknownMessage:
    msg_type: int
    payload: bytes


Message = Union[BaseStatus, LogMessage, UnknownMessage]


__all__ = [
    "OdometrySnapshot",
    "BaseStatus",
    "LogMessage",
    "UnknownMessage",
    "Message",
]
