"""Safety rules applied to resolved invocations before they are dispatched."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from crossshell.errors import BlockedError
from crossshell.invocation import Invocation, Outcome

logger = logging.getLogger("crossshell.safety")

DEFAULT_BLOCK_PATTERNS: Tuple[str, ...] = (
    "rm -rf /",
    "format c:",
    "sudo rm",
    "del /s",
    "delete_dir -r /",
)

DEFAULT_CONFIRMATION_NAMES: Tuple[str, ...] = (
    "delete_file",
    "delete_dir",
    "rm",
    "rmdir",
    "del",
    "format",
    "sudo",
)

# Commands whose arguments name another program to execute.
COMPOSITE_COMMANDS = frozenset({"run"})


@dataclass(frozen=True)
class SafetyRules:
    block_patterns: Tuple[str, ...] = DEFAULT_BLOCK_PATTERNS
    confirmation_names: Tuple[str, ...] = DEFAULT_CONFIRMATION_NAMES
    dry_run: bool = False


class VerdictKind(enum.Enum):
    ALLOWED = "allowed"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class ValidationVerdict:
    kind: VerdictKind
    reason: str = ""

    @classmethod
    def allowed(cls) -> "ValidationVerdict":
        return cls(VerdictKind.ALLOWED)

    @classmethod
    def requires_confirmation(cls, reason: str) -> "ValidationVerdict":
        return cls(VerdictKind.REQUIRES_CONFIRMATION, reason)

    @classmethod
    def blocked(cls, reason: str) -> "ValidationVerdict":
        return cls(VerdictKind.BLOCKED, reason)

    @property
    def is_allowed(self) -> bool:
        return self.kind is VerdictKind.ALLOWED

    @property
    def is_blocked(self) -> bool:
        return self.kind is VerdictKind.BLOCKED


def validate(invocation: Invocation, rules: SafetyRules) -> ValidationVerdict:
    """Classify *invocation* against *rules* without side effects.

    Both the canonical name and the synonym the user typed are checked, so
    rules written as ``rm -rf /`` still catch ``delete_file``.
    """

    texts = [text.lower() for text in invocation.spellings()]
    for pattern in rules.block_patterns:
        if pattern and any(pattern.lower() in text for text in texts):
            return ValidationVerdict.blocked(f"matches dangerous pattern '{pattern}'")

    confirm = {name.lower() for name in rules.confirmation_names if name}
    name = invocation.name.lower()
    typed = (invocation.typed_name or invocation.name).lower()
    if name in confirm or typed in confirm:
        return ValidationVerdict.requires_confirmation(f"'{invocation.name}' is destructive")
    if name in COMPOSITE_COMMANDS:
        for arg in invocation.args:
            if arg.lower() in confirm:
                return ValidationVerdict.requires_confirmation(
                    f"'{invocation.name}' would execute '{arg}'"
                )
    return ValidationVerdict.allowed()


ConfirmCallback = Callable[[Invocation, str], bool]


class SafetyGate:
    """Decide whether a batch of invocations may run.

    Every invocation is validated before anything is confirmed or executed, so
    one blocked pipeline stage stops the whole pipeline.
    """

    def __init__(self, rules: SafetyRules, confirm: Optional[ConfirmCallback] = None) -> None:
        self.rules = rules
        self._confirm = confirm

    def authorize(self, invocations: Sequence[Invocation]) -> Optional[Outcome]:
        """Return ``None`` to proceed, or a describe-only outcome in dry-run mode.

        Raises :class:`BlockedError` for blocked or declined invocations.
        """

        verdicts = [(inv, validate(inv, self.rules)) for inv in invocations]
        for inv, verdict in verdicts:
            if verdict.is_blocked:
                logger.warning("Blocked %r: %s", inv.joined(), verdict.reason)
                prefix = "[dry-run] " if self.rules.dry_run else ""
                raise BlockedError(f"{prefix}Blocked '{inv.joined()}': {verdict.reason}")

        pending = [(inv, verdict) for inv, verdict in verdicts if not verdict.is_allowed]
        if not pending:
            return None

        if self.rules.dry_run:
            lines: List[str] = []
            for inv, verdict in verdicts:
                note = f" ({verdict.reason})" if verdict.reason else ""
                lines.append(f"[dry-run] would execute: {inv.joined()}{note}")
            return Outcome(
                stdout="\n".join(lines) + "\n",
                audit={"dry_run": True},
            )

        for inv, verdict in pending:
            if self._confirm is None or not self._confirm(inv, verdict.reason):
                logger.warning("Declined %r", inv.joined())
                raise BlockedError(f"Declined '{inv.joined()}'")
        return None


__all__ = [
    "COMPOSITE_COMMANDS",
    "DEFAULT_BLOCK_PATTERNS",
    "DEFAULT_CONFIRMATION_NAMES",
    "SafetyGate",
    "SafetyRules",
    "ValidationVerdict",
    "VerdictKind",
    "validate",
]
