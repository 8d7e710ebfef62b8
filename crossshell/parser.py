"""Tokenise raw command lines into :class:`Invocation` objects."""

from __future__ import annotations

import shlex
from typing import List

from crossshell.errors import MalformedInputError
from crossshell.invocation import Invocation


def tokenize(line: str, *, escapes: bool = True) -> List[str]:
    """Split *line* on whitespace, keeping quoted spans as single tokens.

    Quotes are stripped from the resulting tokens. With ``escapes`` disabled a
    backslash is an ordinary character, which keeps Windows paths intact.
    """

    lexer = shlex.shlex(line, posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    if not escapes:
        lexer.escape = ""
    try:
        return list(lexer)
    except ValueError as exc:
        raise MalformedInputError(f"Malformed input: {exc}") from exc


def parse(line: str, *, escapes: bool = True) -> Invocation:
    if not line.strip():
        return Invocation.noop()
    tokens = tokenize(line, escapes=escapes)
    if not tokens:
        return Invocation.noop()
    if not tokens[0]:
        raise MalformedInputError("Malformed input: empty command name")
    return Invocation(name=tokens[0], args=tuple(tokens[1:]))


__all__ = ["parse", "tokenize"]
