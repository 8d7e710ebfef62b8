"""Session configuration loaded once before the first command runs."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from crossshell.safety import DEFAULT_BLOCK_PATTERNS, DEFAULT_CONFIRMATION_NAMES, SafetyRules

logger = logging.getLogger("crossshell.config")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def default_home() -> Path:
    env_home = os.environ.get("CROSSSHELL_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".crossshell"


def _string_tuple(value: Any, fallback: tuple) -> tuple:
    if not isinstance(value, list):
        return fallback
    return tuple(str(item) for item in value if str(item))


@dataclass(frozen=True)
class ShellConfig:
    home: Path
    safety: SafetyRules = field(default_factory=SafetyRules)
    run_timeout: Optional[float] = None
    log_level: str = "WARNING"

    @property
    def config_path(self) -> Path:
        return self.home / "config.json"

    @property
    def alias_path(self) -> Path:
        return self.home / "aliases"

    @property
    def history_path(self) -> Path:
        return self.home / "history"

    @property
    def sessions_dir(self) -> Path:
        return self.home / "sessions"

    @classmethod
    def load(
        cls,
        home: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ShellConfig":
        """Read ``config.json`` under *home* and apply environment overrides."""

        home = (home or default_home()).expanduser()
        env = os.environ if environ is None else environ
        payload = _read_payload(home / "config.json")

        safety_payload = payload.get("safety")
        if not isinstance(safety_payload, dict):
            safety_payload = {}
        dry_run = bool(safety_payload.get("dry_run", False))
        env_dry_run = env.get("CROSSSHELL_DRY_RUN")
        if env_dry_run:
            lowered = env_dry_run.strip().lower()
            if lowered in _TRUE_VALUES:
                dry_run = True
            elif lowered in _FALSE_VALUES:
                dry_run = False
        safety = SafetyRules(
            block_patterns=_string_tuple(
                safety_payload.get("dangerous_patterns"), DEFAULT_BLOCK_PATTERNS
            ),
            confirmation_names=_string_tuple(
                safety_payload.get("require_confirmation"), DEFAULT_CONFIRMATION_NAMES
            ),
            dry_run=dry_run,
        )

        run_timeout = _positive_float(payload.get("run_timeout_seconds"))
        env_timeout = env.get("CROSSSHELL_RUN_TIMEOUT")
        if env_timeout:
            parsed = _positive_float(env_timeout)
            if parsed is not None:
                run_timeout = parsed

        log_level = str(env.get("CROSSSHELL_LOG_LEVEL") or payload.get("log_level") or "WARNING").upper()
        return cls(home=home, safety=safety, run_timeout=run_timeout, log_level=log_level)


def _read_payload(path: Path) -> Dict[str, Any]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    if not isinstance(payload, dict):
        logger.warning("Ignoring config %s: expected a JSON object", path)
        return {}
    return payload


def _positive_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed > 0 else None


__all__ = ["ShellConfig", "default_home"]
