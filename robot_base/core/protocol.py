# robot_base/core/protocol.py

from __future__ import annotations

from typing import Tuple

from .errors import DecodeError

HEADER = 0xAA

_MAX_LEN = 65535  # 16-bit length

# HEADER + len_hi + len_lo + msg_type + checksum
MIN_FRAME_LEN = 1 + 2 + 1 + 1


def checksum(length: int, msg_type: int, payload: bytes) -> int:
    return (length + msg_type + sum(payload)) & 0xFF


def encode(msg_type: int, payload: bytes = b"") -> bytes:
    """
    Encode one WebSocket message body as:
        [HEADER][len_hi][len_lo][msg_type][payload...][checksum]

    where:
        length   = 1 + len(payload)  # msg_type + payload
        checksum = (length + msg_type + sum(payload)) & 0xFF
    """
    if not 0 <= msg_type <= 0xFF:
        raise ValueError(f"Invalid message type: {msg_type}")

    length = 1 + len(payload)
    if length > _MAX_LEN:
        raise ValueError(f"Invalid frame length: {length}")

    frame = bytearray()
    frame.append(HEADER)
    frame.append((length >> 8) & 0xFF)
    frame.append(length & 0xFF)
    frame.append(msg_type)
    frame.extend(payload)
    frame.append(checksum(length, msg_type, payload))
    return bytes(frame)


def decode(frame: bytes) -> Tuple[int, bytes]:
    """
    Decode exactly one frame and return (msg_type, payload).

    A WebSocket message carries exactly one frame, so unlike a byte stream
    there is nothing to resync on: any mismatch raises DecodeError.
    """
    n = len(frame)
    if n < MIN_FRAME_LEN:
        raise DecodeError(f"truncated frame: {n} bytes")

    if frame[0] != HEADER:
        raise DecodeError(f"bad header byte 0x{frame[0]:02X}")

    length = (frame[1] << 8) | frame[2]
    if length < 1:
        raise DecodeError("zero-length body")

    # HEADER(1) + len_hi(1) + len_lo(1) + body(length) + checksum(1)
    expected = 1 + 2 + length + 1
    if n < expected:
        raise DecodeError(f"truncated frame: have {n} bytes, need {expected}")
    if n > expected:
        raise DecodeError(f"trailing bytes after frame: have {n}, expected {expected}")

    msg_type = frame[3]
    payload = bytes(frame[4 : 3 + length])

    recv_checksum = frame[3 + length]
    if checksum(length, msg_type, payload) != recv_checksum:
        raise DecodeError(f"checksum mismatch on msg_type 0x{msg_type:02X}")

    return msg_type, payload
