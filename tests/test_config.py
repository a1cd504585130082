from datetime import timedelta
from pathlib import Path

import pytest

from lumberjack.config import (
    DEFAULT_SETTINGS_TEMPLATE,
    LumberjackConfig,
    get_config_file,
    load_config,
)


def test_first_run_writes_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))

    path = get_config_file()

    assert path == tmp_path / "lumberjack" / "settings.conf"
    assert path.read_text(encoding="utf-8") == DEFAULT_SETTINGS_TEMPLATE
    assert load_config(path) == LumberjackConfig()


def test_values_are_read_and_clamped(tmp_path: Path) -> None:
    path = tmp_path / "settings.conf"
    path.write_text(
        "[lumberjack]\n"
        "region = us-east-1\n"
        "profile = staging\n"
        "poll_interval_seconds = 0.01\n"
        "buffer_cap = 10\n"
        "seen_window = 5\n"
        "max_consecutive_failures = 1000\n"
        "default_lookback_minutes = 60\n",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.region == "us-east-1"
    assert config.profile == "staging"
    assert config.poll_interval == 0.25
    assert config.buffer_cap == 100
    assert config.seen_window == 100
    assert config.max_consecutive_failures == 100
    assert config.default_lookback == timedelta(hours=1)


def test_malformed_values_fall_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.conf"
    path.write_text(
        "[lumberjack]\nregion =\npoll_interval_seconds = fast\nbuffer_cap = lots\n",
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.region == "eu-west-1"
    assert config.poll_interval == 2.0
    assert config.buffer_cap == 20_000


def test_unparsable_file_uses_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.conf"
    path.write_text("region = nowhere\n", encoding="utf-8")

    assert load_config(path) == LumberjackConfig()
