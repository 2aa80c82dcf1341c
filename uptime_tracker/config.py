"""
YAML configuration loader.

Reads config.yaml and produces typed TargetConfig / TrackerSettings objects.
Falls back to sensible defaults if the config file is missing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Tuple

import yaml

from uptime_tracker import notifier
from uptime_tracker.models import TargetConfig, TrackerSettings

# Default path: config.yaml next to the project root
_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"

PROBE_METHODS = ("tcp", "http", "simulated")


class ConfigError(ValueError):
    """Raised when the configuration holds an unusable value."""


def _validate(target: TargetConfig, settings: TrackerSettings) -> None:
    if target.method not in PROBE_METHODS:
        raise ConfigError(f"target.method must be one of {PROBE_METHODS}, got {target.method!r}")
    if target.fallback is not None and target.fallback not in PROBE_METHODS:
        raise ConfigError(f"target.fallback must be one of {PROBE_METHODS}, got {target.fallback!r}")
    if not 1 <= target.port <= 65535:
        raise ConfigError(f"target.port out of range: {target.port}")
    if target.timeout <= 0:
        raise ConfigError("target.timeout must be positive")
    if target.poll_interval <= 0:
        raise ConfigError("target.poll_interval must be positive")
    if not 1 <= settings.server_port <= 65535:
        raise ConfigError(f"settings.server_port out of range: {settings.server_port}")


def _section(raw: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = raw.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def load_config(
    path: str | Path | None = None,
) -> Tuple[TargetConfig, TrackerSettings]:
    """
    Load and parse the YAML configuration file.

    Returns:
        A tuple of (TargetConfig, TrackerSettings).

    Raises:
        ConfigError: If a value is present but invalid.
    """
    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    if not config_path.exists():
        notifier.print_warning(f"Config file not found at {config_path}, using defaults.")
        return TargetConfig(), TrackerSettings()

    with open(config_path, "r") as fh:
        raw = yaml.safe_load(fh) or {}

    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path} must contain a mapping")

    defaults = TargetConfig()
    entry = _section(raw, "target")
    try:
        target = TargetConfig(
            name=str(entry.get("name", defaults.name)),
            host=str(entry.get("host", defaults.host)),
            port=int(entry.get("port", defaults.port)),
            method=str(entry.get("method", defaults.method)).lower(),
            path=str(entry.get("path", defaults.path)),
            url=entry.get("url"),
            fallback=str(entry["fallback"]).lower() if entry.get("fallback") else None,
            poll_interval=int(entry.get("poll_interval", defaults.poll_interval)),
            timeout=float(entry.get("timeout", defaults.timeout)),
        )

        # Parse global settings
        raw_settings = _section(raw, "settings")
        base = TrackerSettings()
        settings = TrackerSettings(
            log_level=str(raw_settings.get("log_level", base.log_level)).upper(),
            state_file=raw_settings.get("state_file", base.state_file),
            max_retries=int(raw_settings.get("max_retries", base.max_retries)),
            base_backoff=int(raw_settings.get("base_backoff", base.base_backoff)),
            server_port=int(raw_settings.get("server_port", base.server_port)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value in {config_path}: {exc}") from exc

    _validate(target, settings)
    return target, settings
