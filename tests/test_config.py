"""Tests for config loading and runtime thresholds."""
import pytest
import yaml
from unittest.mock import patch

from config import load_config, _deep_merge, MIN_INTERVAL_SECONDS
from config.thresholds import ThresholdConfig, InvalidThresholdError, DEFAULT_THRESHOLDS


# ── Thresholds ──────────────────────────────────────────

def test_defaults():
    t = ThresholdConfig()
    assert t.get("error_rate_threshold") == 5
    assert t.get("slow_api_critical") == 3000
    assert set(t.valid_keys) == set(DEFAULT_THRESHOLDS)


def test_update_returns_current():
    t = ThresholdConfig()
    current = t.update({"error_rate_threshold": 7.5})
    assert current["error_rate_threshold"] == 7.5
    assert current["error_rate_critical"] == 10


def test_snapshot_is_a_copy():
    t = ThresholdConfig()
    snap = t.snapshot()
    snap["error_rate_threshold"] = 99
    assert t.get("error_rate_threshold") == 5


def test_unknown_keys_rejected_atomically():
    t = ThresholdConfig()
    with pytest.raises(InvalidThresholdError) as exc:
        t.update({"error_rate_threshold": 1, "bogus": 2, "also_bogus": 3})
    assert exc.value.invalid_keys == ["also_bogus", "bogus"]
    assert "bogus" in str(exc.value)
    assert t.get("error_rate_threshold") == 5


@pytest.mark.parametrize("value", ["10", None, True, [1], float("nan"), float("inf"), float("-inf")])
def test_non_numeric_rejected(value):
    t = ThresholdConfig()
    with pytest.raises(InvalidThresholdError) as exc:
        t.update({"slow_api_threshold": value})
    assert exc.value.invalid_keys == ["slow_api_threshold"]


def test_overrides_in_constructor():
    assert ThresholdConfig({"revenue_min_baseline": 50}).get("revenue_min_baseline") == 50


# ── load_config ─────────────────────────────────────────

def test_load_default_config():
    config = load_config()
    assert config["monitor"]["interval_seconds"] == 60
    assert config["alerts"]["history_size"] == 1000
    assert config["alerts"]["notify_on_resolve"] is True
    assert config["thresholds"] == DEFAULT_THRESHOLDS


def test_user_file_merges(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"monitor": {"interval_seconds": 30}, "thresholds": {"error_rate_threshold": 3}}))
    config = load_config(path)
    assert config["monitor"]["interval_seconds"] == 30
    assert config["monitor"]["provider_timeout_seconds"] == 10
    assert config["thresholds"]["error_rate_threshold"] == 3
    assert config["thresholds"]["error_rate_critical"] == 10


def test_env_overrides():
    with patch.dict("os.environ", {"OPSWATCH_INTERVAL": "120", "OPSWATCH_LOGS_DIR": "/var/log/app"}):
        config = load_config()
    assert config["monitor"]["interval_seconds"] == 120
    assert config["providers"]["logs"]["path"] == "/var/log/app"


def test_interval_below_minimum_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"monitor": {"interval_seconds": MIN_INTERVAL_SECONDS - 1}}))
    with pytest.raises(ValueError, match="interval_seconds"):
        load_config(path)


def test_unknown_threshold_in_file_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump({"thresholds": {"made_up": 1}}))
    with pytest.raises(ValueError, match="made_up"):
        load_config(path)


def test_deep_merge_does_not_mutate():
    base = {"a": {"b": 1, "c": 2}}
    merged = _deep_merge(base, {"a": {"b": 5}})
    assert merged == {"a": {"b": 5, "c": 2}}
    assert base["a"]["b"] == 1
