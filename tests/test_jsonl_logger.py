import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from robot_base.core.settings import LoggingSettings
from robot_base.logger.logger import DedupFilter, JsonlLogger, LogBundle, Logger, level_from_name


class Color(Enum):
    RED = "red"


@dataclass
class Point:
    x: float
    y: float


def test_jsonl_logger_writes_valid_json_lines(tmp_path: Path):
    p = tmp_path / "session.jsonl"
    logger = JsonlLogger(str(p))
    logger.write("hello", a=1, b={"x": 2}, c=[1, 2, 3])
    logger.write("bytes_test", blob=b"\x01\x02\x03\x04")
    logger.close()

    lines = p.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2

    for line in lines:
        obj = json.loads(line)
        assert "ts_ns" in obj
        assert "event" in obj

    obj2 = json.loads(lines[1])
    assert obj2["event"] == "bytes_test"
    assert obj2["blob"] == {"bytes_len": 4, "hex": "01020304"}


def test_normalizes_dataclasses_enums_paths_and_errors(tmp_path: Path):
    p = tmp_path / "norm.jsonl"
    with JsonlLogger(str(p)) as logger:
        logger.write(
            "mixed",
            point=Point(1.0, 2.0),
            color=Color.RED,
            where=Path("a") / "b",
            error=ValueError("bad"),
            big=bytes(100),
        )

    obj = json.loads(p.read_text(encoding="utf-8"))
    assert obj["point"] == {"x": 1.0, "y": 2.0}
    assert obj["color"] == "red"
    assert obj["where"] == str(Path("a") / "b")
    assert obj["error"] == "ValueError('bad')"
    assert obj["big"]["bytes_len"] == 100
    assert len(obj["big"]["hex_prefix"]) == 128


def test_write_after_close_is_ignored(tmp_path: Path):
    p = tmp_path / "closed.jsonl"
    logger = JsonlLogger(str(p))
    logger.close()
    logger.write("late", x=1)
    logger.close()
    assert p.read_text(encoding="utf-8") == ""


def test_creates_parent_dirs(tmp_path: Path):
    p = tmp_path / "deep" / "er" / "x.jsonl"
    JsonlLogger(str(p)).close()
    assert p.exists()


def test_text_logger_writes_file_and_restores_propagate(tmp_path: Path):
    name = "robot_base.test_text_logger"
    before = logging.getLogger(name).propagate

    log = Logger(log_file="text.log", logger_name=name, log_dir=str(tmp_path))
    log.logger.info("hello %s", "base")
    assert logging.getLogger(name).propagate is False
    log.close()

    assert "hello base" in (tmp_path / "text.log").read_text()
    assert logging.getLogger(name).handlers == []
    assert logging.getLogger(name).propagate is before


def test_dedup_filter_drops_repeats():
    f = DedupFilter()
    rec = logging.LogRecord("robot_base", logging.WARNING, __file__, 1, "same", None, None)
    other = logging.LogRecord("robot_base", logging.WARNING, __file__, 1, "different", None, None)

    assert f.filter(rec) is True
    assert f.filter(rec) is False
    assert f.filter(other) is True
    assert f.filter(rec) is True


def test_log_bundle_creates_both_files(tmp_path: Path):
    bundle = LogBundle(name="run", log_dir=str(tmp_path), logger_name="robot_base.test_bundle")
    bundle.text.logger.info("started")
    bundle.events.write("tick", n=1)
    bundle.close()

    assert "started" in (tmp_path / "run.log").read_text()
    row = json.loads((tmp_path / "run.jsonl").read_text(encoding="utf-8"))
    assert row["event"] == "tick"
    assert row["n"] == 1


def test_dedup_filter_cooldown_lets_repeat_through():
    f = DedupFilter(cooldown_s=0.01)
    rec = logging.LogRecord("robot_base", logging.INFO, __file__, 1, "tick", None, None)

    assert f.filter(rec) is True
    assert f.filter(rec) is False
    assert f.suppressed == 1


def test_level_from_name():
    assert level_from_name("debug") == logging.DEBUG
    assert level_from_name("WARNING") == logging.WARNING
    assert level_from_name("nonsense") == logging.INFO


def test_bundle_from_settings(tmp_path: Path):
    settings = LoggingSettings(log_dir=str(tmp_path / "runs"), level="DEBUG", console=False)
    bundle = LogBundle.from_settings(settings, name="demo", logger_name="robot_base.test_from_settings")
    try:
        assert bundle.text.logger.level == logging.DEBUG
        assert Path(bundle.text.path) == tmp_path / "runs" / "demo.log"
        assert bundle.events.path == tmp_path / "runs" / "demo.jsonl"
    finally:
        bundle.close()
    assert bundle.events.closed
