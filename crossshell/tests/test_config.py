from __future__ import annotations

import json
from pathlib import Path

from crossshell.config import ShellConfig, default_home
from crossshell.safety import DEFAULT_BLOCK_PATTERNS, DEFAULT_CONFIRMATION_NAMES


def _write(home: Path, payload) -> None:
    home.mkdir(parents=True, exist_ok=True)
    text = payload if isinstance(payload, str) else json.dumps(payload)
    (home / "config.json").write_text(text, encoding="utf-8")


def test_defaults_without_config_file(tmp_path: Path) -> None:
    config = ShellConfig.load(tmp_path, environ={})
    assert config.safety.block_patterns == DEFAULT_BLOCK_PATTERNS
    assert config.safety.confirmation_names == DEFAULT_CONFIRMATION_NAMES
    assert config.safety.dry_run is False
    assert config.run_timeout is None
    assert config.log_level == "WARNING"
    assert config.alias_path == tmp_path / "aliases"
    assert config.sessions_dir == tmp_path / "sessions"


def test_values_from_config_file(tmp_path: Path) -> None:
    _write(
        tmp_path,
        {
            "safety": {
                "require_confirmation": ["move"],
                "dangerous_patterns": ["drop table"],
                "dry_run": True,
            },
            "run_timeout_seconds": 30,
            "log_level": "debug",
        },
    )
    config = ShellConfig.load(tmp_path, environ={})
    assert config.safety.confirmation_names == ("move",)
    assert config.safety.block_patterns == ("drop table",)
    assert config.safety.dry_run is True
    assert config.run_timeout == 30.0
    assert config.log_level == "DEBUG"


def test_environment_overrides_file(tmp_path: Path) -> None:
    _write(tmp_path, {"safety": {"dry_run": True}, "run_timeout_seconds": 30})
    config = ShellConfig.load(
        tmp_path,
        environ={
            "CROSSSHELL_DRY_RUN": "off",
            "CROSSSHELL_RUN_TIMEOUT": "2.5",
            "CROSSSHELL_LOG_LEVEL": "info",
        },
    )
    assert config.safety.dry_run is False
    assert config.run_timeout == 2.5
    assert config.log_level == "INFO"


def test_invalid_timeouts_are_ignored(tmp_path: Path) -> None:
    _write(tmp_path, {"run_timeout_seconds": -1})
    config = ShellConfig.load(tmp_path, environ={"CROSSSHELL_RUN_TIMEOUT": "soon"})
    assert config.run_timeout is None


def test_unreadable_config_falls_back_to_defaults(tmp_path: Path) -> None:
    _write(tmp_path, "{not json")
    config = ShellConfig.load(tmp_path, environ={})
    assert config.safety.block_patterns == DEFAULT_BLOCK_PATTERNS

    _write(tmp_path, "[1, 2]")
    assert ShellConfig.load(tmp_path, environ={}).run_timeout is None


def test_home_from_environment(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("CROSSSHELL_HOME", str(tmp_path / "custom"))
    assert default_home() == tmp_path / "custom"
    monkeypatch.delenv("CROSSSHELL_HOME")
    assert default_home() == Path.home() / ".crossshell"
