from .models import BaseStatus, LogMessage, Message, OdometrySnapshot, UnknownMessage
from .binary_parser import TelemetryDecoder, control_state_of, decode_frame

__all__ = [
    "BaseStatus",
    "LogMessage",
    "Message",
    "OdometrySnapshot",
    "UnknownMessage",
    "TelemetryDecoder",
    "control_state_of",
    "decode_frame",
]
