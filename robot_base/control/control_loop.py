# robot_base/control/control_loop.py
r"""
Control loop for one base session.

    IDLE -> CONNECTING -> RUNNING -> DEINITIALIZING -> CLOSED
                 \            \            \
                  +------------+------------+--> ERRORED

Every command is one strict exchange: send a frame, then block until the
robot answers with a BASE_STATUS. Nothing is pipelined, so sequence numbers
and the telemetry that acknowledges them are handled in send order.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from robot_base.command.binary_commands import (
    MotionCommand,
    SequenceCounter,
    encode_deinitialize,
    encode_initialize,
    encode_move,
    encode_set_report_frequency,
)
from robot_base.core.errors import (
    DecodeError,
    OutOfOrderTelemetry,
    ReceiveError,
    RobotBaseError,
    SendError,
)
from robot_base.core.event_bus import EventBus
from robot_base.core.messages import ACCEPTABLE_PROTOCOL_MAJOR_VERSION, ControlState
from robot_base.core.settings import ControlSettings, SessionSettings, TargetSpeed
from robot_base.telemetry.binary_parser import TelemetryDecoder, control_state_of
from robot_base.telemetry.models import BaseStatus, LogMessage, OdometrySnapshot, UnknownMessage
from robot_base.transport.base_transport import BaseSession
from robot_base.transport.ws_transport import connect as ws_connect

logger = logging.getLogger(__name__)

Connector = Callable[[str], Awaitable[BaseSession]]
Sleeper = Callable[[float], Awaitable[None]]


class LoopState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    RUNNING = "running"
    DEINITIALIZING = "deinitializing"
    CLOSED = "closed"
    ERRORED = "errored"


@dataclass
class LoopResult:
    state: LoopState
    commands_sent: int
    snapshots_received: int
    out_of_order: int
    deinit_acknowledged: bool
    last_snapshot: Optional[OdometrySnapshot]
    error: Optional[BaseException] = None


def tick_count(duration_s: float, tick_interval_s: float) -> int:
    """floor(duration / tick), tolerant of float noise (10 / 0.1 -> 100)."""
    if tick_interval_s <= 0:
        raise ValueError("tick_interval_s must be > 0")
    if duration_s <= 0:
        return 0
    return int(math.floor(duration_s / tick_interval_s + 1e-9))


class ControlLoop:
    """
    Drives one session for a bounded duration, then deinitializes and closes.

    The loop owns the session exclusively. Fatal errors (SendError,
    ReceiveError, DecodeError, ConnectError) end the run in ERRORED and are
    re-raised after the session is closed. Any other exception also ends the
    run in ERRORED; if API control was taken, a deinitialize is attempted
    before the close. OutOfOrderTelemetry is logged and published; the loop
    continues.

    Bus topics:
        loop.state, command.sent, telemetry.status, telemetry.odometry,
        telemetry.out_of_order, telemetry.unknown, robot.log, control.state,
        base.emergency_stop, protocol.version_mismatch
    """

    def __init__(
        self,
        endpoint: str,
        settings: Optional[ControlSettings] = None,
        *,
        connect: Optional[Connector] = None,
        session_settings: Optional[SessionSettings] = None,
        bus: Optional[EventBus] = None,
        stop_event: Optional[asyncio.Event] = None,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        self.endpoint = endpoint
        self.settings = settings or ControlSettings()
        self.bus = bus or EventBus()

        self._session_settings = session_settings or SessionSettings()
        self._connect = connect or self._default_connect
        self._stop = stop_event or asyncio.Event()
        self._sleep = sleep or self._sleep_until_stop

        self._state = LoopState.IDLE
        self._session: Optional[BaseSession] = None
        self._seq = SequenceCounter()
        self._decoder = TelemetryDecoder()

        self._control_state: Optional[ControlState] = None
        self._emergency_stop = False
        self._version_warned = False

        self.commands_sent = 0
        self.snapshots_received = 0
        self.out_of_order = 0
        self.deinit_sent = 0
        self._holds_control = False
        self.deinit_acknowledged = False
        self.last_snapshot: Optional[OdometrySnapshot] = None
        self.error: Optional[BaseException] = None

    # ---------- Public API ----------

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def control_state(self) -> Optional[ControlState]:
        return self._control_state

    @property
    def target(self) -> TargetSpeed:
        return self.settings.target

    def request_stop(self) -> None:
        """Leave RUNNING after the exchange in flight completes."""
        self._stop.set()

    def result(self) -> LoopResult:
        return LoopResult(
            state=self._state,
            commands_sent=self.commands_sent,
            snapshots_received=self.snapshots_received,
            out_of_order=self.out_of_order,
            deinit_acknowledged=self.deinit_acknowledged,
            last_snapshot=self.last_snapshot,
            error=self.error,
        )

    async def run(self) -> LoopResult:
        if self._state is not LoopState.IDLE:
            raise RuntimeError(f"run() called in state {self._state.value}")

        self._set_state(LoopState.CONNECTING)
        try:
            session = await self._connect(self.endpoint)
        except (Exception, asyncio.CancelledError) as e:
            self._fail(e)
            raise

        self._session = session
        try:
            self._set_state(LoopState.RUNNING)
            await self._initialize(session)
            await self._run_ticks(session)

            self._set_state(LoopState.DEINITIALIZING)
            await self._deinitialize(session)
        except (SendError, ReceiveError, DecodeError) as e:
            self._fail(e)
            raise
        except asyncio.CancelledError as e:
            logger.warning("Control loop cancelled in state %s", self._state.value)
            self._fail(e)
            raise
        except Exception as e:
            logger.exception("Unexpected error in state %s", self._state.value)
            self._fail(e)
            await self._release_control(session)
            raise
        finally:
            await self._close_session(session)

        self._set_state(LoopState.CLOSED)
        return self.result()

    # ---------- State ----------

    def _set_state(self, state: LoopState) -> None:
        if state is self._state:
            return
        logger.info("loop %s -> %s", self._state.value, state.value)
        self._state = state
        self.bus.publish("loop.state", state)

    def _fail(self, error: BaseException) -> None:
        self.error = error
        if not isinstance(error, asyncio.CancelledError):
            logger.error("Control loop failed in %s: %s", self._state.value, error)
        self._set_state(LoopState.ERRORED)

    async def _close_session(self, session: BaseSession) -> None:
        try:
            await session.close()
        except Exception:
            logger.exception("Failed to close session to %s", self.endpoint)

    async def _release_control(self, session: BaseSession) -> None:
        """Best-effort deinitialize after an unexpected failure; keeps the original error."""
        if not self._holds_control or self.deinit_sent or not session.is_open:
            return
        try:
            await self._deinitialize(session)
        except RobotBaseError as e:
            logger.warning("Could not release API control: %s", e)

    # ---------- Phases ----------

    async def _initialize(self, session: BaseSession) -> None:
        frequency = self.settings.frequency
        seq = self._seq.next()
        await self._exchange(session, encode_set_report_frequency(seq, frequency), "set_report_frequency", seq)
        seq = self._seq.next()
        self._holds_control = True
        await self._exchange(session, encode_initialize(seq), "initialize", seq)

    async def _run_ticks(self, session: BaseSession) -> None:
        ticks = tick_count(self.settings.duration_s, self.settings.tick_interval_s)
        logger.info(
            "Running %d ticks every %.3fs (target x=%.3f y=%.3f z=%.3f)",
            ticks, self.settings.tick_interval_s,
            self.target.speed_x, self.target.speed_y, self.target.speed_z,
        )

        for i in range(ticks):
            if self._stop.is_set():
                logger.info("Stop requested after %d of %d ticks", i, ticks)
                return

            cmd = MotionCommand(
                speed_x=self.target.speed_x,
                speed_y=self.target.speed_y,
                speed_z=self.target.speed_z,
                seq=self._seq.next(),
            )
            await self._exchange(session, encode_move(cmd), "move", cmd.seq, command=cmd)
            self.commands_sent += 1

            await self._sleep(self.settings.tick_interval_s)

    async def _deinitialize(self, session: BaseSession) -> None:
        seq = self._seq.next()
        self.deinit_sent += 1
        await self._send(session, encode_deinitialize(seq), "deinitialize", seq)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.deinit_timeout_s
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning("No deinitialize acknowledgment within %.2fs", self.settings.deinit_timeout_s)
                return
            try:
                status = await self._receive_status(session, timeout_s=remaining)
            except ReceiveError:
                if session.is_open:
                    logger.warning("No deinitialize acknowledgment within %.2fs", self.settings.deinit_timeout_s)
                    return
                raise

            if status is not None and (not status.api_control_initialized or status.ack_seq >= seq):
                self.deinit_acknowledged = True
                logger.info("Deinitialize acknowledged (ack_seq=%d)", status.ack_seq)
                return

    # ---------- Exchanges ----------

    async def _send(
        self,
        session: BaseSession,
        frame: bytes,
        kind: str,
        seq: int,
        command: Optional[MotionCommand] = None,
    ) -> None:
        await session.send(frame)
        self.bus.publish("command.sent", {"kind": kind, "seq": seq, "command": command})

    async def _exchange(
        self,
        session: BaseSession,
        frame: bytes,
        kind: str,
        seq: int,
        command: Optional[MotionCommand] = None,
    ) -> None:
        await self._send(session, frame, kind, seq, command)
        status = await self._receive_status(session)
        if status is not None and status.ack_seq < seq:
            logger.debug("status ack_seq=%d predates %s seq=%d", status.ack_seq, kind, seq)

    async def _receive_status(self, session: BaseSession, timeout_s: Optional[float] = None) -> Optional[BaseStatus]:
        """
        Receive until a BASE_STATUS arrives.

        Returns None when that status was out of order: it still answers the
        exchange but does not touch the loop's state.
        """
        while True:
            frame = await session.receive(timeout_s)
            try:
                msg = self._decoder.decode(frame)
            except OutOfOrderTelemetry as e:
                self.out_of_order += 1
                logger.warning("Out-of-order telemetry dropped: %s", e)
                self.bus.publish(
                    "telemetry.out_of_order",
                    {"last_ts_us": e.last_ts_us, "ts_us": e.ts_us, "status": e.message},
                )
                return None

            if isinstance(msg, BaseStatus):
                self._handle_status(msg)
                return msg
            if isinstance(msg, LogMessage):
                logger.info("robot log [%d]: %s", msg.level, msg.text)
                self.bus.publish("robot.log", msg)
            elif isinstance(msg, UnknownMessage):
                logger.debug("Skipping unknown message type 0x%02X (%d bytes)", msg.msg_type, len(msg.payload))
                self.bus.publish("telemetry.unknown", msg)

    def _handle_status(self, status: BaseStatus) -> None:
        self.bus.publish("telemetry.status", status)

        if status.protocol_major_version != ACCEPTABLE_PROTOCOL_MAJOR_VERSION and not self._version_warned:
            self._version_warned = True
            logger.warning(
                "Protocol version mismatch: robot speaks %d, expected %d",
                status.protocol_major_version, ACCEPTABLE_PROTOCOL_MAJOR_VERSION,
            )
            self.bus.publish("protocol.version_mismatch", status.protocol_major_version)

        emergency = status.parking_stop_detail is not None
        if emergency and not self._emergency_stop:
            logger.warning("Emergency stop: %s", status.parking_stop_detail)
            self.bus.publish("base.emergency_stop", status.parking_stop_detail)
        elif self._emergency_stop and not emergency:
            logger.info("Emergency stop cleared")
        self._emergency_stop = emergency

        control = control_state_of(status)
        if control is not self._control_state:
            if control is ControlState.INITIALIZED_BUT_NOT_HOLD:
                logger.warning("Control in hands of another session (holder=%d)", status.session_holder)
            self._control_state = control
            self.bus.publish("control.state", control)

        if status.odometry is not None:
            self.last_snapshot = status.odometry
            self.snapshots_received += 1
            self.bus.publish("telemetry.odometry", status.odometry)

    # ---------- Defaults ----------

    async def _default_connect(self, endpoint: str) -> BaseSession:
        return await ws_connect(endpoint, self._session_settings)

    async def _sleep_until_stop(self, delay_s: float) -> None:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay_s)
        except asyncio.TimeoutError:
            pass
