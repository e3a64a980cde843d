# robot_base/research/simulation.py
"""
Simulated robot base speaking the base protocol over WebSocket.

Example:
    base = SimulatedBase()
    server = await serve_simulated_base(base, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    ...
    server.close()
    await server.wait_closed()
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np
import websockets

from robot_base.command.binary_commands import decode_command
from robot_base.core.errors import DecodeError
from robot_base.core.messages import ACCEPTABLE_PROTOCOL_MAJOR_VERSION, MsgType, ReportFrequency
from robot_base.telemetry.binary_builder import encode_base_status, encode_log
from robot_base.telemetry.models import BaseStatus, LogMessage, OdometrySnapshot

logger = logging.getLogger(__name__)

LOG_WARN = 2
LOG_ERROR = 3


@dataclass
class BaseLimits:
    max_linear_vel: float = 1.0    # m/s, per axis
    max_angular_vel: float = 2.0   # rad/s


class SimulatedBase:
    """
    Holonomic base: body-frame velocity (speed_x, speed_y, speed_z) integrated
    into a world pose (x, y, heading).

    Every command frame is answered with exactly one BASE_STATUS whose
    ack_seq is the command's sequence number.
    """

    def __init__(
        self,
        limits: Optional[BaseLimits] = None,
        protocol_major_version: int = ACCEPTABLE_PROTOCOL_MAJOR_VERSION,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limits = limits or BaseLimits()
        self.protocol_major_version = protocol_major_version
        self._clock = clock

        self.pose = np.zeros(3)           # x, y, heading
        self.velocity = np.zeros(3)       # speed_x, speed_y, speed_z (body frame)

        self.api_control_initialized = False
        self.session_holder = 0
        self.parking_stop_detail: Optional[str] = None
        self.report_frequency = ReportFrequency.RF_10HZ

        self._t0 = clock()
        self._last_step = self._t0
        self._last_ts_us = 0
        self._next_session_id = 1
        self._last_ack: Dict[int, int] = {}

        self.commands: List[tuple] = []   # (session_id, msg_type, seq, fields)

    # ---------- Sessions ----------

    def open_session(self) -> int:
        session_id = self._next_session_id
        self._next_session_id += 1
        self._last_ack[session_id] = 0
        return session_id

    def close_session(self, session_id: int) -> None:
        self._last_ack.pop(session_id, None)
        if self.session_holder == session_id:
            self.session_holder = 0
            self.api_control_initialized = False
            self.velocity[:] = 0.0

    # ---------- Physics ----------

    def step(self, dt: float) -> None:
        if dt <= 0:
            return
        heading = self.pose[2]
        c, s = math.cos(heading), math.sin(heading)
        rot = np.array([[c, -s], [s, c]])
        self.pose[:2] += rot @ self.velocity[:2] * dt
        self.pose[2] = math.atan2(
            math.sin(heading + self.velocity[2] * dt),
            math.cos(heading + self.velocity[2] * dt),
        )

    def _advance(self) -> int:
        now = self._clock()
        self.step(now - self._last_step)
        self._last_step = now
        ts_us = max(self._last_ts_us, int((now - self._t0) * 1e6))
        self._last_ts_us = ts_us
        return ts_us

    def set_velocity(self, speed_x: float, speed_y: float, speed_z: float) -> None:
        lin = self.limits.max_linear_vel
        ang = self.limits.max_angular_vel
        self.velocity[:] = (
            np.clip(speed_x, -lin, lin),
            np.clip(speed_y, -lin, lin),
            np.clip(speed_z, -ang, ang),
        )

    # ---------- Protocol ----------

    def status(self, session_id: int) -> BaseStatus:
        ts_us = self._advance()
        return BaseStatus(
            session_id=session_id,
            protocol_major_version=self.protocol_major_version,
            session_holder=self.session_holder,
            api_control_initialized=self.api_control_initialized,
            ack_seq=self._last_ack.get(session_id, 0),
            ts_us=ts_us,
            odometry=OdometrySnapshot(
                ts_us=ts_us,
                x=float(self.pose[0]),
                y=float(self.pose[1]),
                heading=float(self.pose[2]),
                speed_x=float(self.velocity[0]),
                speed_y=float(self.velocity[1]),
                speed_z=float(self.velocity[2]),
            ),
            parking_stop_detail=self.parking_stop_detail,
        )

    def handle_frame(self, session_id: int, frame: bytes) -> List[bytes]:
        """Apply one command frame; return the frames to send back."""
        try:
            msg_type, seq, fields = decode_command(frame)
        except (DecodeError, ValueError) as e:
            logger.warning("sim: rejected frame from session %d: %s", session_id, e)
            return [encode_log(LogMessage(level=LOG_ERROR, text=f"rejected frame: {e}"))]

        self.commands.append((session_id, msg_type, seq, fields))
        # bring the pose up to date before the command takes effect
        self._advance()

        if msg_type == MsgType.SET_REPORT_FREQUENCY:
            try:
                self.report_frequency = ReportFrequency(fields[0])
            except ValueError:
                return self._ack(session_id, seq, LogMessage(LOG_WARN, f"unknown report frequency {fields[0]}"))

        elif msg_type == MsgType.API_CONTROL_INITIALIZE:
            if fields[0]:
                self.api_control_initialized = True
                self.session_holder = session_id
            elif self.session_holder == session_id:
                self.api_control_initialized = False
                self.session_holder = 0
                self.velocity[:] = 0.0

        elif msg_type == MsgType.SIMPLE_MOVE:
            can_move = (
                self.api_control_initialized
                and self.session_holder == session_id
                and self.parking_stop_detail is None
            )
            if can_move:
                self.set_velocity(*fields)
            else:
                return self._ack(session_id, seq, LogMessage(LOG_WARN, "move ignored: session does not hold control"))

        return self._ack(session_id, seq)

    def _ack(self, session_id: int, seq: int, log: Optional[LogMessage] = None) -> List[bytes]:
        self._last_ack[session_id] = max(self._last_ack.get(session_id, 0), seq)
        out = []
        if log is not None:
            out.append(encode_log(log))
        out.append(encode_base_status(self.status(session_id)))
        return out


async def serve_simulated_base(base: SimulatedBase, host: str = "127.0.0.1", port: int = 8439):
    """Start a WebSocket server for `base`; returns the websockets server."""

    async def handler(ws) -> None:
        session_id = base.open_session()
        logger.info("sim: session %d connected", session_id)
        try:
            async for message in ws:
                if isinstance(message, str):
                    await ws.send(encode_log(LogMessage(LOG_ERROR, "text frames are not supported")))
                    continue
                for out in base.handle_frame(session_id, bytes(message)):
                    await ws.send(out)
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            base.close_session(session_id)
            logger.info("sim: session %d closed", session_id)

    return await websockets.serve(handler, host, port)
