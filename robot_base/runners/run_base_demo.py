# robot_base/runners/run_base_demo.py
"""
Rotate the base for a fixed duration, printing odometry, then release it.

Usage:
    python -m robot_base.runners.run_base_demo ws://localhost:8439
    python -m robot_base.runners.run_base_demo ws://192.168.1.10:8439 --duration 5 --speed-z 0.3
    python -m robot_base.runners.run_base_demo ws://127.0.0.1:8439 --profile sim --record
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
import time
from typing import Optional, Sequence

import yaml

from robot_base.control.control_loop import ControlLoop
from robot_base.core.errors import RobotBaseError
from robot_base.core.event_bus import EventBus
from robot_base.core.settings import HostSettings
from robot_base.logger.logger import LogBundle, Logger
from robot_base.research.recording import RecordingEventBus, recording_connector
from robot_base.telemetry.models import OdometrySnapshot
from robot_base.transport.ws_transport import connect as ws_connect

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Drive a robot base over its WebSocket API.")
    p.add_argument("url", help="WebSocket URL to connect to (e.g. ws://localhost:8439)")
    p.add_argument("--profile", default="default", help="config profile under robot_base/config")
    p.add_argument("--config", default=None, help="explicit YAML config file (overrides --profile)")
    p.add_argument("--duration", type=float, default=None, help="run duration in seconds")
    p.add_argument("--tick", type=float, default=None, help="control tick interval in seconds")
    p.add_argument("--speed-x", type=float, default=None, help="forward speed (m/s)")
    p.add_argument("--speed-y", type=float, default=None, help="lateral speed (m/s)")
    p.add_argument("--speed-z", type=float, default=None, help="angular speed (rad/s)")
    p.add_argument("--log-dir", default=None)
    p.add_argument("--record", action="store_true", help="record bus events and frames to JSONL")
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def load_settings(args: argparse.Namespace) -> HostSettings:
    settings = HostSettings.from_file(args.config) if args.config else HostSettings.load(args.profile)

    control = settings.control
    if args.duration is not None:
        control.duration_s = args.duration
    if args.tick is not None:
        if args.tick <= 0:
            raise ValueError("--tick must be > 0")
        control.tick_interval_s = args.tick
    if args.speed_x is not None:
        control.target.speed_x = args.speed_x
    if args.speed_y is not None:
        control.target.speed_y = args.speed_y
    if args.speed_z is not None:
        control.target.speed_z = args.speed_z
    control.target.validate()
    if args.log_dir is not None:
        settings.logging.log_dir = args.log_dir
    if args.record:
        settings.logging.record_jsonl = True
    if args.verbose:
        settings.logging.level = "DEBUG"
    return settings


def format_snapshot(snap: OdometrySnapshot) -> str:
    return (
        f"t={snap.ts_us / 1e6:9.3f}s  "
        f"pos=({snap.x:+.3f}, {snap.y:+.3f}) m  heading={snap.heading:+.3f} rad  "
        f"vel=({snap.speed_x:+.3f}, {snap.speed_y:+.3f}) m/s  omega={snap.speed_z:+.3f} rad/s"
    )


def install_signal_handlers(loop: asyncio.AbstractEventLoop, control: ControlLoop) -> None:
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, control.request_stop)
        except (NotImplementedError, RuntimeError):
            # Windows: fall back to KeyboardInterrupt
            pass


async def run(settings: HostSettings, url: str) -> int:
    log_cfg = settings.logging
    stamp = time.strftime("%Y%m%d_%H%M%S")

    bundle: Optional[LogBundle] = None
    text_log: Optional[Logger] = None
    bus = EventBus()

    async def connector(endpoint: str):
        return await ws_connect(endpoint, settings.session)

    if log_cfg.record_jsonl:
        bundle = LogBundle.from_settings(log_cfg, name=f"base_demo_{stamp}")
        bus = RecordingEventBus(bus, bundle)
        connector = recording_connector(connector, bundle)
    else:
        text_log = Logger.from_settings(log_cfg, "base_demo.log")

    log = logging.getLogger("robot_base.runners")

    bus.subscribe("telemetry.odometry", lambda snap: print(format_snapshot(snap)))
    bus.subscribe("control.state", lambda st: print(f"[control] {st.value}"))
    bus.subscribe("base.emergency_stop", lambda detail: print(f"[control] EMERGENCY STOP: {detail}"))
    bus.subscribe("robot.log", lambda msg: print(f"[robot] {msg.text}"))

    control = ControlLoop(url, settings.control, connect=connector, bus=bus)
    install_signal_handlers(asyncio.get_running_loop(), control)

    try:
        result = await control.run()
        log.info(
            "Done: %d commands, %d snapshots, %d out-of-order, deinit %s",
            result.commands_sent, result.snapshots_received, result.out_of_order,
            "acknowledged" if result.deinit_acknowledged else "not acknowledged",
        )
        return EXIT_OK
    except RobotBaseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except Exception as e:
        log.exception("Control loop crashed")
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        return EXIT_ERROR
    finally:
        if bundle is not None:
            bundle.close()
        if text_log is not None:
            text_log.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings(args)
    except (OSError, ValueError, KeyError, TypeError, yaml.YAMLError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        return asyncio.run(run(settings, args.url))
    except KeyboardInterrupt:
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
