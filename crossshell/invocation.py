"""Invocation and outcome types passed between the shell stages."""

from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


def now_utc() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


def isoformat_utc(dt: _dt.datetime) -> str:
    return dt.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class Invocation:
    """A command name and its arguments.

    ``stdin`` carries the previous pipeline stage's output and is only ever
    attached by the pipeline executor. ``typed_name`` keeps the synonym the
    user wrote (``rm``) once ``name`` has been mapped to ``delete_file``.
    """

    name: str
    args: Tuple[str, ...] = ()
    stdin: Optional[str] = None
    typed_name: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))

    @classmethod
    def noop(cls) -> "Invocation":
        return cls(name="")

    @property
    def is_noop(self) -> bool:
        return not self.name

    def joined(self) -> str:
        return " ".join((self.name, *self.args))

    def spellings(self) -> Tuple[str, ...]:
        """Joined text under the canonical name and, if different, the typed one."""

        if self.typed_name and self.typed_name != self.name:
            return (self.joined(), " ".join((self.typed_name, *self.args)))
        return (self.joined(),)


@dataclass
class Outcome:
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    audit: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


__all__ = ["Invocation", "Outcome", "isoformat_utc", "now_utc"]
