import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from robot_base.core.settings import ControlSettings, TargetSpeed
from robot_base.telemetry.binary_builder import encode_base_status
from robot_base.telemetry.models import BaseStatus, OdometrySnapshot


@dataclass
class PublishedEvent:
    topic: str
    data: Any


class CapturingBus:
    """
    EventBus stand-in: publish(topic, data) is recorded, then dispatched.
    Useful for asserting what got published and in which order.
    """
    def __init__(self) -> None:
        self.events: list[PublishedEvent] = []
        self.subscribers: dict[str, list[Callable[[Any], None]]] = {}

    def subscribe(self, topic: str, handler: Callable[[Any], None]) -> None:
        self.subscribers.setdefault(topic, []).append(handler)

    def unsubscribe(self, topic: str, handler: Callable[[Any], None]) -> None:
        handlers = self.subscribers.get(topic, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish(self, topic: str, data: Any) -> None:
        self.events.append(PublishedEvent(topic, data))
        for h in self.subscribers.get(topic, []):
            h(data)

    def topics(self) -> list[str]:
        return [e.topic for e in self.events]

    def data(self, topic: str) -> list[Any]:
        return [e.data for e in self.events if e.topic == topic]

    def last(self, topic: str) -> Optional[PublishedEvent]:
        for e in reversed(self.events):
            if e.topic == topic:
                return e
        return None


def make_status(
    ts_us: int = 1_000,
    *,
    session_id: int = 1,
    version: int = 1,
    holder: int = 1,
    initialized: bool = True,
    ack_seq: int = 0,
    odometry: bool = True,
    parking_stop_detail: Optional[str] = None,
) -> BaseStatus:
    odo = None
    if odometry:
        # float32-exact values so a round trip compares equal
        odo = OdometrySnapshot(ts_us=ts_us, x=1.0, y=-0.5, heading=0.25, speed_x=0.5, speed_y=0.0, speed_z=0.5)
    return BaseStatus(
        session_id=session_id,
        protocol_major_version=version,
        session_holder=holder,
        api_control_initialized=initialized,
        ack_seq=ack_seq,
        ts_us=ts_us,
        odometry=odo,
        parking_stop_detail=parking_stop_detail,
    )


def status_frame(ts_us: int = 1_000, **kwargs: Any) -> bytes:
    return encode_base_status(make_status(ts_us, **kwargs))


def fast_settings(duration_s: float = 1.0, tick_interval_s: float = 0.5, **kwargs: Any) -> ControlSettings:
    settings = ControlSettings(
        duration_s=duration_s,
        tick_interval_s=tick_interval_s,
        deinit_timeout_s=kwargs.pop("deinit_timeout_s", 0.2),
        target=kwargs.pop("target", TargetSpeed(speed_x=0.0, speed_y=0.0, speed_z=0.5)),
    )
    for k, v in kwargs.items():
        setattr(settings, k, v)
    return settings


def connector_for(session):
    """Connector that hands out one pre-built session."""
    async def _connect(endpoint: str):
        await session.connect()
        return session
    return _connect


async def no_sleep(delay_s: float) -> None:
    return None


def read_jsonl(path) -> list[dict]:
    lines = Path(path).read_text(encoding="utf-8").strip().splitlines()
    return [json.loads(line) for line in lines]
