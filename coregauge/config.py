"""Configuration loading for coregauge.

Loads settings from TOML config files with sensible defaults, then lets
command-line flags override individual keys.
Search order: explicit --config path → ~/.config/coregauge/config.toml → defaults only.
"""

from __future__ import annotations

import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from coregauge.errors import ConfigError

DEFAULT_CONFIG: dict[str, Any] = {
    "debug": False,
    "width": 5,
    "sim_core_count": 0,
    "interval": 1.0,
    "borders": "all",
    "display_temperature": False,
    "max_provider_failures": 5,
    "sensors": {
        "cputin": "",
        "systin": "",
    },
}

BORDER_STYLES = ("all", "none", "bottom-left")

_DEFAULT_PATH = Path.home() / ".config" / "coregauge" / "config.toml"


@dataclass(frozen=True)
class DashboardConfig:
    """Validated settings for one dashboard run."""

    debug: bool = False
    width: int = 5  # minimum gauges per row
    sim_core_count: int = 0  # 0 = use the detected count
    interval: float = 1.0  # input poll timeout, seconds
    borders: str = "all"
    display_temperature: bool = False
    max_provider_failures: int = 5
    cputin: str = ""  # sensor label filters, not read by the dashboard yet
    systin: str = ""


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Merge overlay into base. Nested dicts are merged at the first level only."""
    merged = dict(base)
    for key, value in overlay.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Load configuration, merging user TOML over defaults.

    Args:
        path: Explicit config file path (from --config). If None, tries the
              default location ~/.config/coregauge/config.toml.

    Returns:
        Merged configuration dict.

    Raises:
        ConfigError: If an explicit path doesn't exist or can't be parsed.
    """
    if path is not None:
        if not path.is_file():
            raise ConfigError(f"config file not found: {path}")
        try:
            user_config = tomllib.loads(path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"invalid TOML in {path}: {e}") from e
        return _deep_merge(DEFAULT_CONFIG, user_config)

    # Try default location silently
    if _DEFAULT_PATH.is_file():
        try:
            user_config = tomllib.loads(_DEFAULT_PATH.read_text(encoding="utf-8"))
            return _deep_merge(DEFAULT_CONFIG, user_config)
        except tomllib.TOMLDecodeError:
            print(
                f"coregauge: warning: ignoring invalid TOML in {_DEFAULT_PATH}",
                file=sys.stderr,
            )

    return dict(DEFAULT_CONFIG)


def apply_overrides(config: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Overlay command-line values onto a loaded config.

    Keys whose value is None were not given on the command line and leave the
    loaded value alone. ``cputin`` and ``systin`` land in the ``sensors`` table.
    """
    merged = dict(config)
    sensors = dict(merged.get("sensors", {}))
    for key, value in overrides.items():
        if value is None:
            continue
        if key in ("cputin", "systin"):
            sensors[key] = value
        else:
            merged[key] = value
    merged["sensors"] = sensors
    return merged


def _require_int(config: dict[str, Any], key: str, minimum: int) -> int:
    value = config.get(key, DEFAULT_CONFIG[key])
    # bool is an int subclass; `width = true` is a mistake, not 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def _require_bool(config: dict[str, Any], key: str) -> bool:
    value = config.get(key, DEFAULT_CONFIG[key])
    if not isinstance(value, bool):
        raise ConfigError(f"{key} must be true or false, got {value!r}")
    return value


def build_config(config: dict[str, Any]) -> DashboardConfig:
    """Validate a merged config mapping and freeze it into a DashboardConfig.

    Raises:
        ConfigError: On the first missing, mistyped or out-of-range value.
    """
    interval = config.get("interval", DEFAULT_CONFIG["interval"])
    if isinstance(interval, bool) or not isinstance(interval, (int, float)):
        raise ConfigError(f"interval must be a number, got {interval!r}")
    if interval <= 0:
        raise ConfigError(f"interval must be > 0, got {interval}")

    borders = config.get("borders", DEFAULT_CONFIG["borders"])
    if borders not in BORDER_STYLES:
        raise ConfigError(
            f"borders must be one of {', '.join(BORDER_STYLES)}, got {borders!r}"
        )

    sensors = config.get("sensors", {})
    if not isinstance(sensors, dict):
        raise ConfigError(f"sensors must be a table, got {sensors!r}")
    labels: dict[str, str] = {}
    for key in ("cputin", "systin"):
        label = sensors.get(key, "")
        if not isinstance(label, str):
            raise ConfigError(f"sensors.{key} must be a string, got {label!r}")
        labels[key] = label

    return DashboardConfig(
        debug=_require_bool(config, "debug"),
        width=_require_int(config, "width", 1),
        sim_core_count=_require_int(config, "sim_core_count", 0),
        interval=float(interval),
        borders=borders,
        display_temperature=_require_bool(config, "display_temperature"),
        max_provider_failures=_require_int(config, "max_provider_failures", 1),
        cputin=labels["cputin"],
        systin=labels["systin"],
    )


def dump_default_config() -> str:
    """Return the default configuration as a TOML string."""
    lines = [
        "# coregauge configuration",
        "# Place this file at ~/.config/coregauge/config.toml",
        "",
        f"debug = {str(DEFAULT_CONFIG['debug']).lower()}",
        f"width = {DEFAULT_CONFIG['width']}",
        f"sim_core_count = {DEFAULT_CONFIG['sim_core_count']}",
        f"interval = {DEFAULT_CONFIG['interval']}",
        f'borders = "{DEFAULT_CONFIG["borders"]}"',
        f"display_temperature = {str(DEFAULT_CONFIG['display_temperature']).lower()}",
        f"max_provider_failures = {DEFAULT_CONFIG['max_provider_failures']}",
        "",
        "[sensors]",
    ]
    for key, label in DEFAULT_CONFIG["sensors"].items():
        lines.append(f'{key} = "{label}"')

    return "\n".join(lines) + "\n"
