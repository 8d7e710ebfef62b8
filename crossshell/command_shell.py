#!/usr/bin/env python3
"""Interactive cross-platform command shell with aliases, pipelines and safety checks."""

from __future__ import annotations

import argparse
import dataclasses
import errno
import json
import logging
import os
import shlex
import shutil
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple

try:
    import readline
except ImportError:  # Windows without a readline module: plain input() still works.
    readline = None

from crossshell.aliases import AliasStore, AliasTable, resolve
from crossshell.backend import PlatformBackend, select_backend
from crossshell.config import ShellConfig
from crossshell.errors import (
    InvalidArgumentsError,
    OsFailureError,
    ShellError,
    UnknownCommandError,
)
from crossshell.invocation import Invocation, Outcome, isoformat_utc, now_utc
from crossshell.parser import parse
from crossshell.pipeline import PipelineExecutor
from crossshell.safety import ConfirmCallback, SafetyGate

PROGRAM_NAME = "crossshell"
EXIT_WORDS = ("exit", "quit")

# ---------------------------------------------------------------------------
# Command definitions and registry
# ---------------------------------------------------------------------------


Handler = Callable[["ShellSession", Invocation], Outcome]


@dataclass
class Command:
    name: str
    summary: str
    usage: str
    handler: Handler
    synonyms: Tuple[str, ...] = ()
    min_args: int = 0
    max_args: Optional[int] = None
    filters_input: bool = False

    def check_arity(self, args: Sequence[str]) -> None:
        count = len(args)
        if count < self.min_args or (self.max_args is not None and count > self.max_args):
            raise InvalidArgumentsError(f"Usage: {self.usage}")


class CommandRegistry:
    def __init__(self) -> None:
        self._commands: Dict[str, Command] = {}
        self._lookup: Dict[str, Command] = {}

    def register(self, command: Command) -> None:
        for name in (command.name, *command.synonyms):
            if name in self._lookup:
                raise ValueError(f"Duplicate command name: {name}")
        self._commands[command.name] = command
        for name in (command.name, *command.synonyms):
            self._lookup[name] = command

    def get(self, name: str) -> Optional[Command]:
        return self._lookup.get(name)

    def names(self) -> List[str]:
        return sorted(self._commands.keys())

    def all_names(self) -> FrozenSet[str]:
        return frozenset(self._lookup)

    def is_filter(self, name: str) -> bool:
        command = self._lookup.get(name)
        return bool(command and command.filters_input)


def command(name: str, summary: str, usage: str, **kwargs: Any) -> Callable[[Handler], Handler]:
    def decorator(func: Handler) -> Handler:
        func.__command_definition__ = Command(
            name=name,
            summary=summary,
            usage=usage,
            handler=func,
            synonyms=tuple(kwargs.pop("synonyms", ())),
            min_args=kwargs.pop("min_args", 0),
            max_args=kwargs.pop("max_args", None),
            filters_input=kwargs.pop("filters_input", False),
        )
        return func

    return decorator


def builtin_registry() -> CommandRegistry:
    """Collect every command defined in this module."""

    registry = CommandRegistry()
    for obj in list(globals().values()):
        if callable(obj) and hasattr(obj, "__command_definition__"):
            registry.register(obj.__command_definition__)
    return registry


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class TranscriptLogger:
    def __init__(self, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)
        timestamp = now_utc().strftime("%Y%m%dT%H%M%S%fZ")
        self._path = self._root / f"session-{timestamp}.jsonl"
        self._file = self._path.open("a", encoding="utf-8")

    @property
    def path(self) -> Path:
        return self._path

    def log(self, payload: Dict[str, Any]) -> None:
        self._file.write(json.dumps(payload, ensure_ascii=False) + "\n")
        self._file.flush()

    def close(self) -> None:
        self._file.close()


class ShellSession:
    """Owns the alias table, safety gate and working directory of one shell."""

    def __init__(
        self,
        config: ShellConfig,
        *,
        backend: Optional[PlatformBackend] = None,
        confirm: Optional[ConfirmCallback] = None,
        cwd: Optional[Path] = None,
    ) -> None:
        self.config = config
        self.backend = backend or select_backend(timeout=config.run_timeout)
        self.cwd = (cwd or Path.cwd()).resolve()
        self.registry = builtin_registry()
        self.aliases = AliasTable.from_store(
            AliasStore(config.alias_path),
            escapes=self.backend.escapes,
        )
        self.gate = SafetyGate(config.safety, confirm)
        self.pipeline = PipelineExecutor(self.dispatch, self.gate, self.registry.is_filter)
        self.logger = logging.getLogger("crossshell.shell")
        self.transcript: Optional[TranscriptLogger] = None
        try:
            self.transcript = TranscriptLogger(config.sessions_dir)
        except OSError as exc:
            self.logger.warning("Session transcript disabled: %s", exc)

    @property
    def builtin_names(self) -> FrozenSet[str]:
        return self.registry.all_names()

    # -------------------- resolution --------------------------
    def parse(self, line: str) -> Invocation:
        return parse(line, escapes=self.backend.escapes)

    def resolve(self, invocation: Invocation) -> Invocation:
        """Expand aliases and map built-in synonyms to canonical names."""

        resolved = resolve(invocation, self.aliases, self.builtin_names)
        command = self.registry.get(resolved.name)
        if command is not None and command.name != resolved.name:
            resolved = dataclasses.replace(resolved, name=command.name, typed_name=resolved.name)
        return resolved

    # -------------------- execution ---------------------------
    def dispatch(self, invocation: Invocation) -> Outcome:
        if invocation.is_noop:
            return Outcome()
        command = self.registry.get(invocation.name)
        if command is None:
            raise UnknownCommandError(
                f"Unknown command: {invocation.name}. Use 'help' to see available commands"
            )
        command.check_arity(invocation.args)
        self.logger.info("Dispatching %s %s", command.name, list(invocation.args))
        try:
            result = command.handler(self, invocation)
        except OSError as exc:
            raise OsFailureError(f"{command.name}: {exc}") from exc
        result.audit.setdefault("command", command.name)
        result.audit.setdefault("args", list(invocation.args))
        result.audit.setdefault("exit_code", result.exit_code)
        result.audit.setdefault("timestamp", isoformat_utc(now_utc()))
        return result

    def execute(self, invocation: Invocation) -> Outcome:
        resolved = self.resolve(invocation)
        if resolved.is_noop:
            return Outcome()
        preview = self.gate.authorize([resolved])
        if preview is not None:
            return preview
        return self.dispatch(resolved)

    def run_pipeline(self, lines: Sequence[str]) -> Outcome:
        stages = [self.resolve(self.parse(line)) for line in lines]
        for stage in stages:
            if stage.name == "pipe":
                raise InvalidArgumentsError("Pipelines cannot be nested")
        return self.pipeline.run(stages)

    def run_line(self, line: str) -> Outcome:
        return self._guarded(line, lambda: self.execute(self.parse(line)))

    def run_argv(self, argv: Sequence[str]) -> Outcome:
        """Execute arguments already split by the calling OS shell."""

        if not argv:
            return Outcome()
        invocation = Invocation(name=argv[0], args=tuple(argv[1:]))

        def action() -> Outcome:
            if invocation.is_noop:
                raise UnknownCommandError("Unknown command: ''")
            return self.execute(invocation)

        return self._guarded(shlex.join(argv), action)

    def _guarded(self, line: str, action: Callable[[], Outcome]) -> Outcome:
        try:
            outcome = action()
        except ShellError as exc:
            self.logger.debug("%s failed: %s", line, exc)
            outcome = Outcome(
                stderr=f"Error: {exc}\n",
                exit_code=exc.exit_code,
                audit={"error": exc.kind.value},
            )
        self._audit(line, outcome)
        return outcome

    def _audit(self, line: str, outcome: Outcome) -> None:
        payload = {
            "ts": isoformat_utc(now_utc()),
            "cwd": str(self.cwd),
            "line": line,
            **outcome.audit,
            "exit_code": outcome.exit_code,
            "stdout": outcome.stdout,
            "stderr": outcome.stderr,
        }
        if self.transcript is not None:
            self.transcript.log(payload)

    # -------------------- utilities ---------------------------
    def resolve_path(self, raw: str) -> Path:
        target = Path(raw).expanduser()
        return target if target.is_absolute() else self.cwd / target

    def change_directory(self, raw: str) -> Outcome:
        resolved = self.resolve_path(raw).resolve()
        if not resolved.is_dir():
            raise OsFailureError(f"No such directory: {raw}")
        self.cwd = resolved
        return Outcome(stdout=str(self.cwd) + "\n")

    def close(self) -> None:
        if self.transcript is not None:
            self.transcript.close()


# ---------------------------------------------------------------------------
# Built-in command implementations
# ---------------------------------------------------------------------------


def _split_flag(args: Sequence[str], flag: str) -> Tuple[bool, List[str]]:
    if args and args[0] == flag:
        return True, list(args[1:])
    return False, list(args)


def _text(value: str) -> str:
    if not value:
        return ""
    return value if value.endswith("\n") else value + "\n"


def _reason(exc: OSError) -> str:
    return exc.strerror or str(exc)


def _bulk(
    shell: ShellSession,
    targets: Sequence[str],
    action: Callable[[Path], None],
    verb: str,
    label: str,
) -> Outcome:
    """Apply *action* to every target, collecting failures instead of stopping."""

    done: List[str] = []
    failed: List[str] = []
    errors: List[str] = []
    for raw in targets:
        try:
            action(shell.resolve_path(raw))
        except OSError as exc:
            failed.append(raw)
            errors.append(f"{label}: {raw}: {_reason(exc)}")
            continue
        done.append(raw)
    stdout = "".join(f"{verb} {raw}\n" for raw in done)
    stderr = "".join(line + "\n" for line in errors)
    return Outcome(
        stdout=stdout,
        stderr=stderr,
        exit_code=1 if failed else 0,
        audit={"succeeded": done, "failed": failed},
    )


# -------------------- filesystem commands -------------------


@command(
    name="make_dir",
    summary="Create a directory",
    usage="make_dir [-p] <directory>",
    synonyms=("mkdir",),
    min_args=1,
    max_args=2,
)
def make_dir(shell: ShellSession, invocation: Invocation) -> Outcome:
    parents, rest = _split_flag(invocation.args, "-p")
    if len(rest) != 1:
        raise InvalidArgumentsError("Usage: make_dir [-p] <directory>")
    target = shell.resolve_path(rest[0])
    target.mkdir(parents=parents, exist_ok=parents)
    return Outcome(stdout=f"Created {rest[0]}\n")


def _create_file(path: Path) -> None:
    if path.is_dir():
        raise IsADirectoryError(errno.EISDIR, "Is a directory", str(path))
    path.touch(exist_ok=True)


@command(
    name="create_file",
    summary="Create one or more empty files",
    usage="create_file <file>...",
    synonyms=("touch",),
    min_args=1,
)
def create_file(shell: ShellSession, invocation: Invocation) -> Outcome:
    return _bulk(shell, invocation.args, _create_file, "Created", "create_file")


@command(
    name="copy",
    summary="Copy a file or directory",
    usage="copy <src> <dst>",
    synonyms=("cp",),
    min_args=2,
    max_args=2,
)
def copy(shell: ShellSession, invocation: Invocation) -> Outcome:
    src_raw, dst_raw = invocation.args
    src = shell.resolve_path(src_raw)
    dst = shell.resolve_path(dst_raw)
    if not src.exists():
        raise OsFailureError(f"copy: {src_raw}: No such file or directory")
    if src.is_dir():
        shutil.copytree(src, dst)
    else:
        shutil.copy2(src, dst)
    return Outcome(stdout=f"Copied {src_raw} -> {dst_raw}\n")


@command(
    name="move",
    summary="Move or rename a file or directory",
    usage="move <src> <dst>",
    synonyms=("mv",),
    min_args=2,
    max_args=2,
)
def move(shell: ShellSession, invocation: Invocation) -> Outcome:
    src_raw, dst_raw = invocation.args
    src = shell.resolve_path(src_raw)
    if not src.exists() and not src.is_symlink():
        raise OsFailureError(f"move: {src_raw}: No such file or directory")
    shutil.move(str(src), str(shell.resolve_path(dst_raw)))
    return Outcome(stdout=f"Moved {src_raw} -> {dst_raw}\n")


def _delete_file(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        raise IsADirectoryError(errno.EISDIR, "Is a directory", str(path))
    path.unlink()


@command(
    name="delete_file",
    summary="Delete one or more files",
    usage="delete_file <file>...",
    synonyms=("rm",),
    min_args=1,
)
def delete_file(shell: ShellSession, invocation: Invocation) -> Outcome:
    return _bulk(shell, invocation.args, _delete_file, "Removed", "delete_file")


@command(
    name="delete_dir",
    summary="Delete a directory",
    usage="delete_dir [-r] <directory>",
    synonyms=("rmdir",),
    min_args=1,
    max_args=2,
)
def delete_dir(shell: ShellSession, invocation: Invocation) -> Outcome:
    recursive, rest = _split_flag(invocation.args, "-r")
    if len(rest) != 1:
        raise InvalidArgumentsError("Usage: delete_dir [-r] <directory>")
    target = shell.resolve_path(rest[0])
    if not target.is_dir():
        raise OsFailureError(f"delete_dir: {rest[0]}: Not a directory")
    if recursive:
        shutil.rmtree(target)
    else:
        target.rmdir()
    return Outcome(stdout=f"Removed {rest[0]}\n")


@command(
    name="change_dir",
    summary="Change the current directory",
    usage="change_dir <directory>",
    synonyms=("cd",),
    min_args=1,
    max_args=1,
)
def change_dir(shell: ShellSession, invocation: Invocation) -> Outcome:
    return shell.change_directory(invocation.args[0])


@command(
    name="list",
    summary="List directory contents",
    usage="list [directory]",
    synonyms=("ls",),
    max_args=1,
)
def list_dir(shell: ShellSession, invocation: Invocation) -> Outcome:
    raw = invocation.args[0] if invocation.args else "."
    target = shell.resolve_path(raw)
    if not target.exists():
        raise OsFailureError(f"list: {raw}: No such file or directory")
    return Outcome(stdout=_text(shell.backend.format_listing(target)))


@command(
    name="where_am_i",
    summary="Show the current directory",
    usage="where_am_i",
    synonyms=("pwd",),
    max_args=0,
)
def where_am_i(shell: ShellSession, _: Invocation) -> Outcome:
    return Outcome(stdout=str(shell.cwd) + "\n")


@command(
    name="show",
    summary="Display the contents of a file",
    usage="show <file>",
    synonyms=("cat",),
    min_args=1,
    max_args=1,
)
def show(shell: ShellSession, invocation: Invocation) -> Outcome:
    target = shell.resolve_path(invocation.args[0])
    return Outcome(stdout=_text(target.read_text(encoding="utf-8", errors="replace")))


@command(
    name="find",
    summary="Find files whose name contains a pattern",
    usage="find <pattern> [directory]",
    min_args=1,
    max_args=2,
)
def find(shell: ShellSession, invocation: Invocation) -> Outcome:
    pattern = invocation.args[0]
    raw = invocation.args[1] if len(invocation.args) > 1 else "."
    root = shell.resolve_path(raw)
    if not root.is_dir():
        raise OsFailureError(f"find: {raw}: No such directory")
    return Outcome(stdout=_text(shell.backend.search_files(pattern, root)))


@command(
    name="compress",
    summary="Create a zip archive",
    usage="compress <src> <dst>",
    synonyms=("zip",),
    min_args=2,
    max_args=2,
)
def compress(shell: ShellSession, invocation: Invocation) -> Outcome:
    src_raw, dst_raw = invocation.args
    src = shell.resolve_path(src_raw)
    if not src.exists():
        raise OsFailureError(f"compress: {src_raw}: No such file or directory")
    return shell.backend.compress(src.resolve(), shell.resolve_path(dst_raw).resolve())


# -------------------- process and text commands -------------


@command(
    name="run",
    summary="Run a system command",
    usage="run <program> [args...]",
    synonyms=("exec",),
    min_args=1,
)
def run(shell: ShellSession, invocation: Invocation) -> Outcome:
    program, *args = invocation.args
    return shell.backend.invoke_shell(program, args, cwd=shell.cwd)


@command(
    name="grep",
    summary="Keep lines containing a pattern",
    usage="grep <pattern> [file...]",
    min_args=1,
    filters_input=True,
)
def grep(shell: ShellSession, invocation: Invocation) -> Outcome:
    pattern, *files = invocation.args
    if files and invocation.stdin is not None:
        raise InvalidArgumentsError("grep reads piped input or files, not both")
    if files:
        text = "".join(
            _text(shell.resolve_path(raw).read_text(encoding="utf-8", errors="replace"))
            for raw in files
        )
    elif invocation.stdin is not None:
        text = invocation.stdin
    else:
        raise InvalidArgumentsError("grep needs piped input or at least one file")
    matches = [line for line in text.splitlines() if pattern in line]
    return Outcome(stdout="".join(line + "\n" for line in matches))


@command(
    name="pipe",
    summary="Filter one command's output through the next",
    usage="pipe 'cmd1' 'cmd2' ...",
    min_args=2,
)
def pipe(shell: ShellSession, invocation: Invocation) -> Outcome:
    return shell.run_pipeline(invocation.args)


# -------------------- aliases and help ----------------------


@command(
    name="alias",
    summary="Create or list aliases",
    usage="alias [name command...]",
)
def alias(shell: ShellSession, invocation: Invocation) -> Outcome:
    if not invocation.args:
        entries = shell.aliases.items()
        if not entries:
            return Outcome(stdout="No aliases defined.\n")
        lines = ["Defined aliases:"] + [f"  {name} = '{value}'" for name, value in entries]
        return Outcome(stdout="\n".join(lines) + "\n")
    if len(invocation.args) < 2:
        raise InvalidArgumentsError("Usage: alias <name> <command> [args...]")
    name, *tokens = invocation.args
    stored = shell.aliases.define(name, tokens, shell.builtin_names)
    return Outcome(stdout=f"Alias '{name}' created for '{stored}'\n")


@command(
    name="unalias",
    summary="Remove an alias",
    usage="unalias <name>",
    min_args=1,
    max_args=1,
)
def unalias(shell: ShellSession, invocation: Invocation) -> Outcome:
    name = invocation.args[0]
    if shell.aliases.remove(name):
        return Outcome(stdout=f"Alias '{name}' removed\n")
    return Outcome(stdout=f"No such alias: {name}\n")


@command(
    name="help",
    summary="Show available commands",
    usage="help [command]",
    max_args=1,
)
def help_command(shell: ShellSession, invocation: Invocation) -> Outcome:
    if invocation.args:
        name = invocation.args[0]
        target = shell.registry.get(name)
        if target is None:
            stored = shell.aliases.get(name)
            if stored is None:
                raise UnknownCommandError(f"Unknown command: {name}")
            return Outcome(stdout=f"{name}: alias for '{stored}'\n")
        body = f"{target.name}\n{'-' * len(target.name)}\n{target.summary}\nUsage: {target.usage}\n"
        if target.synonyms:
            body += f"Also: {', '.join(target.synonyms)}\n"
        return Outcome(stdout=body)

    lines = ["Cross-platform shell - available commands:"]
    for name in shell.registry.names():
        entry = shell.registry.get(name)
        lines.append(f"  {entry.usage:32s} {entry.summary}")
    lines.append("")
    lines.append("Traditional names (mkdir, ls, rm, ...) also work.")
    lines.append(f"Current OS: {shell.backend.os_label}")
    return Outcome(stdout="\n".join(lines) + "\n")


# ---------------------------------------------------------------------------
# Interactive collaborators
# ---------------------------------------------------------------------------


def prompt_confirmation(invocation: Invocation, reason: str) -> bool:
    if not sys.stdin.isatty():
        print(
            f"Confirmation required for '{invocation.joined()}' ({reason}); declined without a terminal",
            file=sys.stderr,
        )
        return False
    try:
        answer = input(f"{reason}. Execute '{invocation.joined()}'? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def emit(outcome: Outcome) -> None:
    if outcome.stdout:
        print(outcome.stdout, end="")
    if outcome.stderr:
        print(outcome.stderr, end="", file=sys.stderr)


class Completer:
    def __init__(self, session: ShellSession) -> None:
        self.session = session

    def candidates(self, buffer: str, text: str) -> List[str]:
        if " " not in buffer.lstrip():
            names = set(self.session.builtin_names) | set(self.session.aliases) | set(EXIT_WORDS)
            return sorted(name for name in names if name.startswith(text))
        directory, prefix = os.path.split(text)
        options = []
        try:
            for entry in self.session.resolve_path(directory or ".").iterdir():
                if entry.name.startswith(prefix):
                    name = entry.name + (os.sep if entry.is_dir() else "")
                    options.append(os.path.join(directory, name) if directory else name)
        except OSError:
            return []
        return sorted(options)

    def complete(self, text: str, state: int) -> Optional[str]:
        options = self.candidates(readline.get_line_buffer(), text)
        if state < len(options):
            return options[state]
        return None


class Shell:
    def __init__(self, config: ShellConfig) -> None:
        self.session = ShellSession(config, confirm=prompt_confirmation)
        self.history_path = config.history_path
        if readline is not None:
            self.completer = Completer(self.session)
            readline.set_completer(self.completer.complete)
            readline.set_completer_delims(" \t\n'\"")
            readline.parse_and_bind("tab: complete")
            try:
                readline.read_history_file(str(self.history_path))
            except FileNotFoundError:
                pass
            except OSError as exc:
                self.session.logger.warning("Could not read history: %s", exc)

    def prompt(self) -> str:
        return f"{self.session.cwd}> "

    def run(self) -> None:
        print(f"{PROGRAM_NAME} interactive mode - {self.session.backend.os_label}")
        print("Type 'help' for a list of commands or 'exit' to quit.")
        try:
            while True:
                try:
                    line = input(self.prompt())
                except EOFError:
                    print()
                    break
                except KeyboardInterrupt:
                    print()
                    continue
                line = line.strip()
                if not line:
                    continue
                if line in EXIT_WORDS:
                    print("Goodbye!")
                    break
                emit(self.session.run_line(line))
        finally:
            if readline is not None:
                try:
                    self.history_path.parent.mkdir(parents=True, exist_ok=True)
                    readline.write_history_file(str(self.history_path))
                except OSError as exc:
                    self.session.logger.warning("Could not save history: %s", exc)
            self.session.close()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: Optional[Sequence[str]] = None) -> int:
    args_list = list(sys.argv[1:] if argv is None else argv)
    parser = argparse.ArgumentParser(prog=PROGRAM_NAME, add_help=True)
    parser.add_argument("--home", type=Path, help="Directory holding config, aliases and history")
    parser.add_argument("--dry-run", action="store_true", help="Describe destructive commands instead of running them")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command to execute non-interactively")
    parsed = parser.parse_args(args_list)

    config = ShellConfig.load(parsed.home)
    if parsed.dry_run:
        config = dataclasses.replace(
            config,
            safety=dataclasses.replace(config.safety, dry_run=True),
        )
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.WARNING),
        format="[%(asctime)s] %(levelname)s: %(message)s",
    )

    if not parsed.command or parsed.command == ["interactive"]:
        Shell(config).run()
        return 0

    session = ShellSession(config, confirm=prompt_confirmation)
    try:
        result = session.run_argv(parsed.command)
    finally:
        session.close()
    emit(result)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
