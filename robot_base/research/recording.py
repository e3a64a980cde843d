# robot_base/research/recording.py
from __future__ import annotations

from typing import Any, Callable, Optional

from robot_base.core.event_bus import EventBus
from robot_base.logger.logger import LogBundle
from robot_base.transport.base_transport import BaseSession


class RecordingEventBus:
    """Wraps EventBus; records publish()."""
    def __init__(self, inner_bus: EventBus, bundle: LogBundle):
        self._bus = inner_bus
        self._bundle = bundle

    def subscribe(self, topic: str, handler: Callable[[Any], None]):
        return self._bus.subscribe(topic, handler)

    def unsubscribe(self, topic: str, handler: Callable[[Any], None]):
        return self._bus.unsubscribe(topic, handler)

    def publish(self, topic: str, data: Any):
        self._bundle.events.write(
            "bus.publish",
            topic=topic,
            data=data,
        )
        return self._bus.publish(topic, data)


class RecordingSession:
    """
    Wraps a connected BaseSession; records tx/rx frames and close.
    Exposes the same surface the control loop uses.
    """
    def __init__(self, inner: BaseSession, bundle: LogBundle):
        self._s = inner
        self._bundle = bundle

    @property
    def endpoint(self) -> str:
        return self._s.endpoint

    @property
    def state(self):
        return self._s.state

    @property
    def is_open(self) -> bool:
        return self._s.is_open

    async def send(self, frame: bytes) -> None:
        self._bundle.events.write("session.tx", n=len(frame), frame=frame)
        await self._s.send(frame)

    async def receive(self, timeout_s: Optional[float] = None) -> bytes:
        try:
            frame = await self._s.receive(timeout_s)
        except Exception as e:
            self._bundle.events.write("session.rx_error", error=e)
            raise
        self._bundle.events.write("session.rx", n=len(frame), frame=frame)
        return frame

    async def close(self) -> None:
        self._bundle.events.write("session.close", endpoint=self._s.endpoint, stats=self._s.stats())
        await self._s.close()

    def stats(self) -> dict:
        return self._s.stats()


def recording_connector(connect: Callable[[str], Any], bundle: LogBundle):
    """Wrap a connector so every session it opens is recorded."""
    async def _connect(endpoint: str) -> RecordingSession:
        bundle.events.write("session.connect", endpoint=endpoint)
        try:
            session = await connect(endpoint)
        except Exception as e:
            bundle.events.write("session.connect_error", endpoint=endpoint, error=e)
            raise
        return RecordingSession(session, bundle)
    return _connect
