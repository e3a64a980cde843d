# command/binary_commands.py
"""
Binary command encoder for the base API.

Every downlink command carries a u32 sequence number so the robot can echo
the last one it processed (BaseStatus.ack_seq). All multi-byte values are
little-endian.

Example:
    from robot_base.command.binary_commands import MotionCommand, SequenceCounter, encode_move

    seq = SequenceCounter()
    frame = encode_move(MotionCommand(speed_x=0.1, speed_y=0.0, speed_z=0.5, seq=seq.next()))
    await session.send(frame)
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from robot_base.core import protocol
from robot_base.core.errors import DecodeError
from robot_base.core.messages import MsgType, ReportFrequency

_SEQ_U8 = struct.Struct("<IB")       # seq, u8 value
_MOVE = struct.Struct("<Ifff")       # seq, speed_x, speed_y, speed_z

_MAX_SEQ = 0xFFFFFFFF


@dataclass(frozen=True)
class MotionCommand:
    """Desired base velocity: linear x/y in m/s, angular z in rad/s."""
    speed_x: float
    speed_y: float
    speed_z: float
    seq: int


class SequenceCounter:
    """Strictly increasing per-session sequence numbers: 1, 2, 3, ..."""

    def __init__(self) -> None:
        self._seq = 0

    @property
    def last(self) -> int:
        return self._seq

    def next(self) -> int:
        if self._seq >= _MAX_SEQ:
            raise OverflowError("command sequence exhausted for this session")
        self._seq += 1
        return self._seq


def _check_seq(seq: int) -> None:
    if not 0 <= seq <= _MAX_SEQ:
        raise ValueError(f"seq out of range: {seq}")


def encode_move(cmd: MotionCommand) -> bytes:
    """SIMPLE_MOVE: seq(u32) + speed_x(f32) + speed_y(f32) + speed_z(f32)."""
    _check_seq(cmd.seq)
    payload = _MOVE.pack(cmd.seq, cmd.speed_x, cmd.speed_y, cmd.speed_z)
    return protocol.encode(MsgType.SIMPLE_MOVE, payload)


def encode_api_control(seq: int, enable: bool) -> bytes:
    """API_CONTROL_INITIALIZE: seq(u32) + enable(u8)."""
    _check_seq(seq)
    return protocol.encode(MsgType.API_CONTROL_INITIALIZE, _SEQ_U8.pack(seq, 1 if enable else 0))


def encode_initialize(seq: int) -> bytes:
    return encode_api_control(seq, True)


def encode_deinitialize(seq: int) -> bytes:
    return encode_api_control(seq, False)


def encode_set_report_frequency(seq: int, frequency: ReportFrequency) -> bytes:
    """SET_REPORT_FREQUENCY: seq(u32) + frequency(u8)."""
    _check_seq(seq)
    return protocol.encode(MsgType.SET_REPORT_FREQUENCY, _SEQ_U8.pack(seq, int(frequency)))


def decode_command(frame: bytes):
    """
    Inverse of the encoders above, used by the simulator.

    Returns (msg_type, seq, fields) where fields is a tuple of the remaining
    payload values.
    """
    msg_type, payload = protocol.decode(frame)
    try:
        if msg_type == MsgType.SIMPLE_MOVE:
            seq, sx, sy, sz = _MOVE.unpack(payload)
            return MsgType.SIMPLE_MOVE, seq, (sx, sy, sz)
        if msg_type in (MsgType.API_CONTROL_INITIALIZE, MsgType.SET_REPORT_FREQUENCY):
            seq, value = _SEQ_U8.unpack(payload)
            return MsgType(msg_type), seq, (value,)
    except struct.error as e:
        raise DecodeError(f"bad command payload for msg_type 0x{msg_type:02X}") from e
    raise ValueError(f"not a command frame: msg_type 0x{msg_type:02X}")


__all__ = [
    "MotionCommand",
    "SequenceCounter",
    "encode_move",
    "encode_api_control",
    "encode_initialize",
    "encode_deinitialize",
    "encode_set_report_frequency",
    "decode_command",
]
