# robot_base/logger/logger.py
"""
Text logging and the JSONL flight recorder.

Modules log through logging.getLogger(__name__); attaching a Logger to
PACKAGE_LOGGER routes all of them to one rotating file (and the console).
"""
from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, is_dataclass
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from robot_base.core.settings import LoggingSettings

PACKAGE_LOGGER = "robot_base"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# frames longer than this are recorded as a hex prefix
FRAME_HEX_LIMIT = 64


def level_from_name(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


class DedupFilter(logging.Filter):
    """
    Drop a record that repeats the previous message of the same logger and
    level. With cooldown_s > 0 the repeat gets through again once the
    cooldown has passed.
    """

    def __init__(self, cooldown_s: float = 0.0) -> None:
        super().__init__()
        self.cooldown_s = float(cooldown_s)
        self.suppressed = 0
        self._lock = threading.Lock()
        self._seen: Dict[Tuple[str, int], Tuple[str, float]] = {}

    def filter(self, record: logging.LogRecord) -> bool:
        key = (record.name, record.levelno)
        text = record.getMessage()
        now = time.monotonic()

        with self._lock:
            prev = self._seen.get(key)
            if prev is not None and prev[0] == text:
                if self.cooldown_s <= 0.0 or now - prev[1] < self.cooldown_s:
                    self.suppressed += 1
                    return False
            self._seen[key] = (text, now)
        return True


class Logger:
    """
    Attach a rotating file handler (and optionally a console handler) to a
    logger, the whole package by default. close() detaches exactly the
    handlers added here and restores the logger's level and propagation.
    """

    def __init__(
        self,
        log_file: str,
        logger_name: str = PACKAGE_LOGGER,
        log_dir: str = "logs",
        level: int = logging.INFO,
        console: bool = False,
        propagate: bool = False,
        max_bytes: int = 5_000_000,
        backup_count: int = 5,
        dedup_cooldown_s: float = 0.0,
    ) -> None:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        self.path = str(Path(log_dir) / log_file)

        self._logger = logging.getLogger(logger_name)
        self._saved = (self._logger.level, self._logger.propagate)
        self._handlers: List[logging.Handler] = []

        self._logger.setLevel(level)
        self._logger.propagate = propagate

        self._attach(
            RotatingFileHandler(self.path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"),
            level,
            dedup_cooldown_s,
        )
        if console:
            self._attach(logging.StreamHandler(), level, dedup_cooldown_s)

        self._logger.debug("%s logging to %s", logger_name, self.path)

    @classmethod
    def from_settings(cls, settings: LoggingSettings, log_file: str, **kwargs: Any) -> "Logger":
        return cls(
            log_file,
            log_dir=settings.log_dir,
            level=level_from_name(settings.level),
            console=settings.console,
            **kwargs,
        )

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def _attach(self, handler: logging.Handler, level: int, dedup_cooldown_s: float) -> None:
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        # each handler keeps its own dedup state
        handler.addFilter(DedupFilter(dedup_cooldown_s))
        self._logger.addHandler(handler)
        self._handlers.append(handler)

    def close(self) -> None:
        for handler in self._handlers:
            self._logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()
        level, propagate = self._saved
        self._logger.setLevel(level)
        self._logger.propagate = propagate


def frame_summary(frame: bytes) -> Dict[str, Any]:
    if len(frame) <= FRAME_HEX_LIMIT:
        return {"bytes_len": len(frame), "hex": frame.hex()}
    return {"bytes_len": len(frame), "hex_prefix": frame[:FRAME_HEX_LIMIT].hex()}


def to_jsonable(obj: Any) -> Any:
    """Turn bus payloads (dataclasses, enums, frames, errors) into plain JSON values."""
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return to_jsonable(asdict(obj))
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    if isinstance(obj, (bytes, bytearray)):
        return frame_summary(bytes(obj))
    if isinstance(obj, BaseException):
        return repr(obj)
    if isinstance(obj, Path):
        return str(obj)
    return obj


class JsonlLogger:
    """
    Append-only JSONL event log, one object per line:
        {"ts_ns": ..., "event": "...", <fields>}
    Line-buffered so a crashed run still leaves every row written so far.
    Writes after close() are dropped.
    """

    def __init__(self, path: Union[str, Path], mkdirs: bool = True) -> None:
        self.path = Path(path)
        if mkdirs:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self.rows = 0
        self._lock = threading.Lock()
        self._fh = self.path.open("a", buffering=1, encoding="utf-8")

    @property
    def closed(self) -> bool:
        return self._fh.closed

    def write(self, event: str, **fields: Any) -> None:
        record = {"ts_ns": time.time_ns(), "event": event}
        record.update(to_jsonable(fields))
        line = json.dumps(record, ensure_ascii=False, default=repr)
        with self._lock:
            if self._fh.closed:
                return
            self._fh.write(line + "\n")
            self.rows += 1

    def close(self) -> None:
        with self._lock:
            self._fh.close()

    def __enter__(self) -> "JsonlLogger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class LogBundle:
    """Text log and JSONL event log of one recorded run: <log_dir>/<name>.log and <name>.jsonl."""

    def __init__(
        self,
        name: str,
        log_dir: str = "logs",
        level: int = logging.INFO,
        console: bool = False,
        logger_name: str = PACKAGE_LOGGER,
        dedup_cooldown_s: float = 0.0,
    ) -> None:
        self.name = name
        self.text = Logger(
            f"{name}.log",
            logger_name=logger_name,
            log_dir=log_dir,
            level=level,
            console=console,
            dedup_cooldown_s=dedup_cooldown_s,
        )
        self.events = JsonlLogger(Path(log_dir) / f"{name}.jsonl")

    @classmethod
    def from_settings(cls, settings: LoggingSettings, name: str, **kwargs: Any) -> "LogBundle":
        return cls(
            name,
            log_dir=settings.log_dir,
            level=level_from_name(settings.level),
            console=settings.console,
            **kwargs,
        )

    def close(self) -> None:
        self.events.close()
        self.text.close()
