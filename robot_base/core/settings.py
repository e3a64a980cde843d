# robot_base/core/settings.py

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar, Union

import yaml

from .messages import ReportFrequency

# largest value a little-endian f32 speed field can carry
_F32_MAX = 3.4028234663852886e38

T = TypeVar("T")

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


@dataclass
class SessionSettings:
    open_timeout_s: float = 5.0
    receive_timeout_s: float = 2.0
    close_timeout_s: float = 2.0
    tcp_nodelay: bool = True


@dataclass
class TargetSpeed:
    speed_x: float = 0.0   # m/s
    speed_y: float = 0.0   # m/s
    speed_z: float = 0.5   # rad/s

    def validate(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"target.{f.name} must be a number, got {value!r}")
            if not math.isfinite(value) or abs(value) > _F32_MAX:
                raise ValueError(f"target.{f.name} out of range: {value!r}")


@dataclass
class ControlSettings:
    duration_s: float = 10.0
    tick_interval_s: float = 0.5
    deinit_timeout_s: float = 1.0
    report_frequency: str = "RF_50HZ"
    target: TargetSpeed = field(default_factory=TargetSpeed)

    @property
    def frequency(self) -> ReportFrequency:
        return ReportFrequency[self.report_frequency]


@dataclass
class LoggingSettings:
    log_dir: str = "logs"
    level: str = "INFO"
    console: bool = True
    record_jsonl: bool = False


def _build(cls: Type[T], data: Optional[Dict[str, Any]], section: str) -> T:
    data = dict(data or {})
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {sorted(unknown)}")
    return cls(**data)


@dataclass
class HostSettings:
    session: SessionSettings = field(default_factory=SessionSettings)
    control: ControlSettings = field(default_factory=ControlSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "HostSettings":
        data = dict(data or {})
        unknown = set(data) - {"session", "control", "logging"}
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")

        control_raw = dict(data.get("control") or {})
        target = _build(TargetSpeed, control_raw.pop("target", None), "control.target")
        control = _build(ControlSettings, control_raw, "control")
        control.target = target

        # fail early on a typo'd frequency name
        if control.report_frequency not in ReportFrequency.__members__:
            raise ValueError(f"Unknown report_frequency: {control.report_frequency!r}")
        if control.tick_interval_s <= 0:
            raise ValueError("control.tick_interval_s must be > 0")
        if control.duration_s < 0:
            raise ValueError("control.duration_s must be >= 0")
        control.target.validate()

        return cls(
            session=_build(SessionSettings, data.get("session"), "session"),
            control=control,
            logging=_build(LoggingSettings, data.get("logging"), "logging"),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "HostSettings":
        with open(path, "r") as f:
            return cls.from_dict(yaml.safe_load(f))

    @classmethod
    def load(cls, profile: str = "default") -> "HostSettings":
        return cls.from_file(CONFIG_DIR / f"robot_profile_{profile}.yaml")
