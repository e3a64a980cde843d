# telemetry/binary_builder.py
"""
Robot-side encoders for uplink frames.

The host never sends these; they exist so the simulator and the tests can
produce exactly what binary_parser expects.
"""
from __future__ import annotations

from robot_base.core import protocol
from robot_base.core.messages import MsgType

from .binary_parser import (
    DETAIL_LEN,
    FLAG_API_CONTROL_INITIALIZED,
    FLAG_HAS_ODOMETRY,
    FLAG_PARKING_STOP,
    LOG_HDR,
    ODOMETRY,
    STATUS_HDR,
)
from .models import BaseStatus, LogMessage


def build_base_status(status: BaseStatus) -> bytes:
    """Payload only (no envelope)."""
    flags = 0
    if status.api_control_initialized:
        flags |= FLAG_API_CONTROL_INITIALIZED
    if status.odometry is not None:
        flags |= FLAG_HAS_ODOMETRY
    if status.parking_stop_detail is not None:
        flags |= FLAG_PARKING_STOP

    out = bytearray()
    out += STATUS_HDR.pack(
        status.session_id,
        status.protocol_major_version,
        status.session_holder,
        flags,
        status.ack_seq,
        status.ts_us,
    )
    if status.odometry is not None:
        o = status.odometry
        out += ODOMETRY.pack(o.x, o.y, o.heading, o.speed_x, o.speed_y, o.speed_z)
    if status.parking_stop_detail is not None:
        detail = status.parking_stop_detail.encode("utf-8")
        out += DETAIL_LEN.pack(len(detail))
        out += detail
    return bytes(out)


def build_log(msg: LogMessage) -> bytes:
    return LOG_HDR.pack(msg.level) + msg.text.encode("utf-8")


def encode_base_status(status: BaseStatus) -> bytes:
    return protocol.encode(MsgType.BASE_STATUS, build_base_status(status))


def encode_log(msg: LogMessage) -> bytes:
    return protocol.encode(MsgType.LOG, build_log(msg))


__all__ = ["build_base_status", "build_log", "encode_base_status", "encode_log"]
