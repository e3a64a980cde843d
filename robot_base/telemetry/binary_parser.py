# telemetry/binary_parser.py
from __future__ import annotations

import logging
import struct
from typing import Optional

from robot_base.core import protocol
from robot_base.core.errors import DecodeError, OutOfOrderTelemetry
from robot_base.core.messages import ControlState, MsgType

from .models import BaseStatus, LogMessage, Message, OdometrySnapshot, UnknownMessage

logger = logging.getLogger(__name__)

# BASE_STATUS header (LE):
# u32 session_id, u8 protocol_major_version, u32 session_holder,
# u8 flags, u32 ack_seq, u64 ts_us
STATUS_HDR = struct.Struct("<IBIBIQ")

# x, y, heading, speed_x, speed_y, speed_z
ODOMETRY = struct.Struct("<6f")

DETAIL_LEN = struct.Struct("<H")
LOG_HDR = struct.Struct("<B")

FLAG_API_CONTROL_INITIALIZED = 0x01
FLAG_HAS_ODOMETRY            = 0x02
FLAG_PARKING_STOP            = 0x04


def _utf8(raw: bytes, what: str) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodeError(f"{what} is not valid UTF-8") from e


def parse_base_status(payload: bytes) -> BaseStatus:
    """
    Parse a BASE_STATUS payload.
    Format (LE):
      u32 session_id
      u8  protocol_major_version
      u32 session_holder
      u8  flags  (0x01 initialized, 0x02 odometry follows, 0x04 parking detail follows)
      u32 ack_seq
      u64 ts_us
      [6 x f32 odometry]
      [u16 n, n bytes utf-8 parking-stop detail]
    """
    if len(payload) < STATUS_HDR.size:
        raise DecodeError(f"short status header: {len(payload)} < {STATUS_HDR.size}")

    session_id, version, holder, flags, ack_seq, ts_us = STATUS_HDR.unpack_from(payload, 0)
    off = STATUS_HDR.size

    odometry = None
    if flags & FLAG_HAS_ODOMETRY:
        if off + ODOMETRY.size > len(payload):
            raise DecodeError("short odometry section")
        x, y, heading, speed_x, speed_y, speed_z = ODOMETRY.unpack_from(payload, off)
        off += ODOMETRY.size
        odometry = OdometrySnapshot(
            ts_us=int(ts_us),
            x=x,
            y=y,
            heading=heading,
            speed_x=speed_x,
            speed_y=speed_y,
            speed_z=speed_z,
        )

    detail = None
    if flags & FLAG_PARKING_STOP:
        if off + DETAIL_LEN.size > len(payload):
            raise DecodeError("short parking-stop header")
        (n,) = DETAIL_LEN.unpack_from(payload, off)
        off += DETAIL_LEN.size
        if off + n > len(payload):
            raise DecodeError(f"short parking-stop detail: need {n}, have {len(payload) - off}")
        detail = _utf8(payload[off : off + n], "parking-stop detail")
        off += n

    if off != len(payload):
        raise DecodeError(f"{len(payload) - off} unexpected trailing bytes in status")

    return BaseStatus(
        session_id=int(session_id),
        protocol_major_version=int(version),
        session_holder=int(holder),
        api_control_initialized=bool(flags & FLAG_API_CONTROL_INITIALIZED),
        ack_seq=int(ack_seq),
        ts_us=int(ts_us),
        odometry=odometry,
        parking_stop_detail=detail,
    )


def parse_log(payload: bytes) -> LogMessage:
    if len(payload) < LOG_HDR.size:
        raise DecodeError("empty log payload")
    (level,) = LOG_HDR.unpack_from(payload, 0)
    return LogMessage(level=int(level), text=_utf8(payload[LOG_HDR.size :], "log text"))


def decode_frame(frame: bytes) -> Message:
    """Decode one WebSocket frame into exactly one message variant."""
    msg_type, payload = protocol.decode(frame)

    if msg_type == MsgType.BASE_STATUS:
        return parse_base_status(payload)
    if msg_type == MsgType.LOG:
        return parse_log(payload)
    return UnknownMessage(msg_type=msg_type, payload=payload)


def control_state_of(status: BaseStatus) -> ControlState:
    if not status.api_control_initialized:
        return ControlState.UNINITIALIZED
    if status.parking_stop_detail is None and status.session_holder == status.session_id:
        return ControlState.CAN_MOVE
    return ControlState.INITIALIZED_BUT_NOT_HOLD


class TelemetryDecoder:
    """
    Per-session decoder.

    Remembers the timestamp of the last accepted status so that a status
    older than it is surfaced as OutOfOrderTelemetry instead of being
    silently accepted. Equal timestamps are fine.
    """

    def __init__(self) -> None:
        self._last_ts_us: Optional[int] = None
        self.accepted = 0
        self.out_of_order = 0

    @property
    def last_ts_us(self) -> Optional[int]:
        return self._last_ts_us

    def decode(self, frame: bytes) -> Message:
        msg = decode_frame(frame)
        if isinstance(msg, BaseStatus):
            if self._last_ts_us is not None and msg.ts_us < self._last_ts_us:
                self.out_of_order += 1
                raise OutOfOrderTelemetry(self._last_ts_us, msg.ts_us, msg)
            self._last_ts_us = msg.ts_us
            self.accepted += 1
        return msg

    def reset(self) -> None:
        self._last_ts_us = None
