"""User-defined aliases: storage, definition rules and expansion."""

from __future__ import annotations

import logging
import shlex
import threading
from pathlib import Path
from typing import AbstractSet, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from crossshell.errors import AliasCycleError, InvalidArgumentsError, OsFailureError
from crossshell.invocation import Invocation
from crossshell.parser import parse

MAX_ALIAS_DEPTH = 16

# Characters str.splitlines() breaks on; they would split a stored alias.
_LINE_BREAKS = frozenset("\n\r\v\f\x1c\x1d\x1e\x85\u2028\u2029")

logger = logging.getLogger("crossshell.aliases")


class AliasStore:
    """Persist aliases as ``name=command`` lines in a plain text file."""

    HEADER = "# crossshell aliases"

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise OsFailureError(f"Failed to read aliases from {self._path}: {exc}") from exc

        entries: Dict[str, str] = {}
        for number, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            name, sep, command_line = line.partition("=")
            name = name.strip()
            command_line = command_line.strip()
            if not sep or not name or not command_line:
                logger.warning("Skipping malformed alias on line %d of %s", number, self._path)
                continue
            entries[name] = command_line
        return entries

    def save(self, entries: Mapping[str, str]) -> None:
        lines = [self.HEADER] + [f"{name}={entries[name]}" for name in sorted(entries)]
        try:
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                self._path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except OSError as exc:
            raise OsFailureError(f"Failed to write aliases to {self._path}: {exc}") from exc


class AliasTable:
    """Mapping from alias name to the command line it expands to.

    Mutations go through :meth:`define` and :meth:`remove`; when a store is
    attached every mutation is flushed to it before the table changes.
    """

    def __init__(
        self,
        entries: Optional[Mapping[str, str]] = None,
        *,
        store: Optional[AliasStore] = None,
        escapes: bool = True,
    ) -> None:
        self._entries: Dict[str, str] = dict(entries or {})
        self._store = store
        self._escapes = escapes

    @classmethod
    def from_store(cls, store: AliasStore, *, escapes: bool = True) -> "AliasTable":
        return cls(store.load(), store=store, escapes=escapes)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._entries))

    def get(self, name: str) -> Optional[str]:
        return self._entries.get(name)

    def items(self) -> List[Tuple[str, str]]:
        return sorted(self._entries.items())

    def template(self, name: str) -> Invocation:
        return parse(self._entries[name], escapes=self._escapes)

    def define(
        self,
        name: str,
        tokens: Sequence[str],
        builtins: AbstractSet[str] = frozenset(),
    ) -> str:
        """Bind *name* to *tokens* and return the stored command line."""

        if not name:
            raise InvalidArgumentsError("Alias name must not be empty")
        if any(ch.isspace() or ch == "=" for ch in name):
            raise InvalidArgumentsError(f"Invalid alias name: {name!r}")
        if name in builtins:
            raise InvalidArgumentsError(f"Cannot alias built-in command: {name}")
        if not tokens or not tokens[0]:
            raise InvalidArgumentsError("Alias requires a command")
        if any(ch in _LINE_BREAKS or ch == "\x00" for token in tokens for ch in token):
            raise InvalidArgumentsError(f"Alias '{name}' must fit on one line")
        if tokens[0] == name:
            raise AliasCycleError(f"Alias '{name}' cannot expand to itself")

        command_line = shlex.join(tokens)
        updated = dict(self._entries)
        updated[name] = command_line
        self._commit(updated)
        logger.info("Defined alias %s=%s", name, command_line)
        return command_line

    def remove(self, name: str) -> bool:
        if name not in self._entries:
            return False
        updated = dict(self._entries)
        del updated[name]
        self._commit(updated)
        logger.info("Removed alias %s", name)
        return True

    def _commit(self, entries: Dict[str, str]) -> None:
        if self._store is not None:
            self._store.save(entries)
        self._entries = entries


def resolve(
    invocation: Invocation,
    table: AliasTable,
    builtins: AbstractSet[str] = frozenset(),
) -> Invocation:
    """Expand *invocation* through *table* until its head is not an alias.

    Alias arguments come first, followed by the caller's arguments. A chain
    longer than :data:`MAX_ALIAS_DEPTH` raises :class:`AliasCycleError`.
    """

    current = invocation
    chain = [invocation.name]
    while current.name not in builtins and current.name in table:
        if len(chain) > MAX_ALIAS_DEPTH:
            raise AliasCycleError(
                f"Alias expansion exceeded depth {MAX_ALIAS_DEPTH}: {' -> '.join(chain[:4])} -> ..."
            )
        template = table.template(current.name)
        if template.is_noop:
            raise InvalidArgumentsError(f"Alias '{current.name}' expands to nothing")
        current = Invocation(
            name=template.name,
            args=template.args + current.args,
            stdin=invocation.stdin,
        )
        chain.append(current.name)
    if len(chain) > 1:
        logger.debug("Resolved %s", " -> ".join(chain))
    return current


__all__ = ["AliasStore", "AliasTable", "MAX_ALIAS_DEPTH", "resolve"]
