"""Error taxonomy shared by the parser, resolver, gate and dispatcher."""

from __future__ import annotations

import enum


class ErrorKind(enum.Enum):
    MALFORMED_INPUT = "malformed_input"
    UNKNOWN_COMMAND = "unknown_command"
    ALIAS_CYCLE = "alias_cycle"
    INVALID_ARGUMENTS = "invalid_arguments"
    BLOCKED = "blocked"
    OS_FAILURE = "os_failure"


class ShellError(RuntimeError):
    """Raised when an invocation cannot be carried out.

    Every subclass pins an :class:`ErrorKind` and the exit code reported to
    the user. None of them are fatal to the interactive session.
    """

    kind: ErrorKind = ErrorKind.OS_FAILURE
    exit_code: int = 1


class MalformedInputError(ShellError):
    """Raised when a command line cannot be tokenised."""

    kind = ErrorKind.MALFORMED_INPUT
    exit_code = 2


class UnknownCommandError(ShellError):
    """Raised when a name matches neither a built-in nor an alias."""

    kind = ErrorKind.UNKNOWN_COMMAND
    exit_code = 127


class AliasCycleError(ShellError):
    """Raised when alias expansion does not settle within the depth bound."""

    kind = ErrorKind.ALIAS_CYCLE
    exit_code = 1


class InvalidArgumentsError(ShellError):
    """Raised before any side effect when arguments do not fit a command."""

    kind = ErrorKind.INVALID_ARGUMENTS
    exit_code = 2


class BlockedError(ShellError):
    """Raised when the safety gate refuses to execute an invocation."""

    kind = ErrorKind.BLOCKED
    exit_code = 126


class OsFailureError(ShellError):
    """Raised when the underlying filesystem or process call failed."""

    kind = ErrorKind.OS_FAILURE
    exit_code = 1


__all__ = [
    "AliasCycleError",
    "BlockedError",
    "ErrorKind",
    "InvalidArgumentsError",
    "MalformedInputError",
    "OsFailureError",
    "ShellError",
    "UnknownCommandError",
]
