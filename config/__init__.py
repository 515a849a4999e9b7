"""Configuration management."""
import os
import yaml
from pathlib import Path

from config.thresholds import DEFAULT_THRESHOLDS

_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"
DEFAULT_RULES_PATH = Path(__file__).parent / "alert_rules.yaml"

MIN_INTERVAL_SECONDS = 5


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides."""
    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    # Environment variable overrides
    env_map = {
        "OPSWATCH_INTERVAL": ("monitor", "interval_seconds"),
        "OPSWATCH_LOG_LEVEL": ("logging", "level"),
        "OPSWATCH_DB_PATH": ("database", "path"),
        "OPSWATCH_SLACK_WEBHOOK_URL": ("slack", "webhook_url"),
        "OPSWATCH_ALERT_EMAIL": ("email", "to_address"),
        "OPSWATCH_LOGS_DIR": ("providers", "logs", "path"),
    }
    for env_key, config_path in env_map.items():
        val = os.environ.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            try:
                d[config_path[-1]] = int(val)
            except ValueError:
                d[config_path[-1]] = val

    _validate_config(config)
    return config


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    """Reject configurations the scheduler could not run with."""
    required_sections = ["monitor", "alerts", "thresholds", "notifications", "providers"]
    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    if config["monitor"]["interval_seconds"] < MIN_INTERVAL_SECONDS:
        raise ValueError(f"interval_seconds must be >= {MIN_INTERVAL_SECONDS} seconds")

    if config["alerts"]["history_size"] < 1:
        raise ValueError("history_size must be >= 1")

    unknown = set(config["thresholds"]) - set(DEFAULT_THRESHOLDS)
    if unknown:
        raise ValueError(f"Unknown threshold keys: {', '.join(sorted(unknown))}")
