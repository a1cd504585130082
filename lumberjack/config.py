#!/usr/bin/env python3
"""
Configuration loader for Lumberjack.

Reads `settings.conf` from the XDG config home and returns the tunables used by
the tail controller and the UI: backend region/profile, poll cadence, buffer
cap, dedup window and the failure threshold that stops a tail.

Precedence:
1) $XDG_CONFIG_HOME/lumberjack/settings.conf, else ~/.config/lumberjack/settings.conf
2) Built-in defaults for any missing or malformed option
"""
from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Optional

APP_NAME = "lumberjack"
SECTION = "lumberjack"

DEFAULT_SETTINGS_TEMPLATE = (
    "[lumberjack]\n"
    "region = eu-west-1\n"
    "profile =\n"
    "poll_interval_seconds = 2\n"
    "buffer_cap = 20000\n"
    "seen_window = 50000\n"
    "max_consecutive_failures = 5\n"
    "default_lookback_minutes = 15\n"
    "status_timeout_seconds = 2\n"
)

POLL_INTERVAL_MIN = 0.25
POLL_INTERVAL_MAX = 60.0
BUFFER_CAP_MIN = 100
BUFFER_CAP_MAX = 500_000
FAILURES_MIN = 1
FAILURES_MAX = 100


@dataclass
class LumberjackConfig:
    region: str = "eu-west-1"
    profile: str = ""
    poll_interval: float = 2.0
    buffer_cap: int = 20_000
    seen_window: int = 50_000
    max_consecutive_failures: int = 5
    default_lookback: timedelta = timedelta(minutes=15)
    status_timeout: float = 2.0


def get_xdg_config_home() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg).expanduser()
    return Path.home() / ".config"


def get_config_dir() -> Path:
    return get_xdg_config_home() / APP_NAME


def get_config_file() -> Optional[Path]:
    """Return the settings file, creating it with defaults on first run."""

    target = get_config_dir() / "settings.conf"
    if target.exists():
        return target
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(DEFAULT_SETTINGS_TEMPLATE, encoding="utf-8")
    except OSError:
        return None
    return target


def load_config(path: Optional[Path] = None) -> LumberjackConfig:
    config = configparser.ConfigParser()
    if path is None:
        path = get_config_file()
    if path:
        try:
            config.read(path, encoding="utf-8")
        except configparser.Error:
            config = configparser.ConfigParser()
    section = config[SECTION] if SECTION in config else None
    defaults = LumberjackConfig()

    def _get_str(option: str, default: str) -> str:
        if section is None:
            return default
        return section.get(option, default).strip()

    def _get_int(option: str, default: int) -> int:
        if section is None:
            return default
        try:
            return section.getint(option, default)
        except ValueError:
            return default

    def _get_float(option: str, default: float) -> float:
        if section is None:
            return default
        try:
            return section.getfloat(option, default)
        except ValueError:
            return default

    def _clamp(value, *, minimum, maximum):
        return max(minimum, min(value, maximum))

    buffer_cap = _clamp(
        _get_int("buffer_cap", defaults.buffer_cap),
        minimum=BUFFER_CAP_MIN,
        maximum=BUFFER_CAP_MAX,
    )
    return LumberjackConfig(
        region=_get_str("region", defaults.region) or defaults.region,
        profile=_get_str("profile", defaults.profile),
        poll_interval=_clamp(
            _get_float("poll_interval_seconds", defaults.poll_interval),
            minimum=POLL_INTERVAL_MIN,
            maximum=POLL_INTERVAL_MAX,
        ),
        buffer_cap=buffer_cap,
        seen_window=max(buffer_cap, _get_int("seen_window", defaults.seen_window)),
        max_consecutive_failures=_clamp(
            _get_int("max_consecutive_failures", defaults.max_consecutive_failures),
            minimum=FAILURES_MIN,
            maximum=FAILURES_MAX,
        ),
        default_lookback=timedelta(
            minutes=max(1, _get_int("default_lookback_minutes", 15))
        ),
        status_timeout=max(0.5, _get_float("status_timeout_seconds", defaults.status_timeout)),
    )
