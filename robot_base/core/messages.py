from enum import Enum, IntEnum


class MsgType(IntEnum):
    # host -> robot
    SET_REPORT_FREQUENCY   = 0x30
    API_CONTROL_INITIALIZE = 0x31
    SIMPLE_MOVE            = 0x32

    # robot -> host
    BASE_STATUS            = 0x40
    LOG                    = 0x41


class ReportFrequency(IntEnum):
    RF_10HZ  = 1
    RF_20HZ  = 2
    RF_50HZ  = 3
    RF_100HZ = 4


class ControlState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED_BUT_NOT_HOLD = "initialized_but_not_hold"
    CAN_MOVE = "can_move"


ACCEPTABLE_PROTOCOL_MAJOR_VERSION = 1
