# tests/test_settings.py

import pytest

from robot_base.core.messages import ReportFrequency
from robot_base.core.settings import HostSettings, TargetSpeed


def test_defaults_without_config():
    s = HostSettings.from_dict(None)

    assert s.control.duration_s == 10.0
    assert s.control.tick_interval_s == 0.5
    assert s.control.frequency is ReportFrequency.RF_50HZ
    assert s.control.target.speed_z == 0.5
    assert s.session.receive_timeout_s == 2.0
    assert s.logging.record_jsonl is False


def test_default_profile_matches_defaults():
    s = HostSettings.load("default")
    assert s == HostSettings.from_dict({})


def test_sim_profile_overrides():
    s = HostSettings.load("sim")

    assert s.control.duration_s == 3.0
    assert s.control.tick_interval_s == 0.1
    assert s.control.target.speed_x == 0.1
    assert s.control.target.speed_z == 0.5
    assert s.session.receive_timeout_s == 1.0
    assert s.logging.record_jsonl is True
    # untouched keys keep their defaults
    assert s.session.tcp_nodelay is True


def test_from_file(tmp_path):
    p = tmp_path / "robot.yaml"
    p.write_text(
        "control:\n"
        "  duration_s: 2\n"
        "  report_frequency: RF_10HZ\n"
        "  target:\n"
        "    speed_y: -0.2\n",
        encoding="utf-8",
    )
    s = HostSettings.from_file(p)

    assert s.control.duration_s == 2
    assert s.control.frequency is ReportFrequency.RF_10HZ
    assert s.control.target.speed_y == -0.2
    assert s.control.target.speed_z == 0.5


def test_missing_profile_raises():
    with pytest.raises(OSError):
        HostSettings.load("does_not_exist")


@pytest.mark.parametrize("data", [
    {"bogus": {}},
    {"control": {"durations": 1}},
    {"control": {"target": {"speed_w": 1}}},
    {"session": {"timeout": 1}},
    {"control": {"report_frequency": "RF_1000HZ"}},
    {"control": {"tick_interval_s": 0}},
    {"control": {"duration_s": -1}},
    {"control": {"target": {"speed_z": "fast"}}},
    {"control": {"target": {"speed_z": 1e39}}},
    {"control": {"target": {"speed_x": float("nan")}}},
    {"control": {"target": {"speed_y": float("inf")}}},
    {"control": {"target": {"speed_x": True}}},
])
def test_invalid_config_rejected(data):
    with pytest.raises(ValueError):
        HostSettings.from_dict(data)


def test_target_speed_accepts_integers_and_negative_values():
    TargetSpeed(speed_x=1, speed_y=-0.25, speed_z=-3.0).validate()
