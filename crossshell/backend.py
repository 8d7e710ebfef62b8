"""Per-OS strategies for listing, running, searching and compressing."""

from __future__ import annotations

import abc
import logging
import platform
import signal
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from crossshell.errors import OsFailureError
from crossshell.invocation import Outcome

logger = logging.getLogger("crossshell.backend")

EXIT_TIMEOUT = 124
EXIT_INTERRUPTED = 130


def _normalize_process_output(value: str) -> str:
    if not value:
        return ""
    return value if value.endswith("\n") else value + "\n"


class PlatformBackend(abc.ABC):
    """Native mechanisms for one OS family.

    A backend is chosen once per process by :func:`select_backend`; commands
    only talk to this interface and never branch on the OS themselves.
    """

    name = "generic"
    # Whether the parser should treat backslash as an escape character.
    escapes = True

    def __init__(self, system: str, *, timeout: Optional[float] = None) -> None:
        self.system = system
        self.timeout = timeout

    @property
    def os_label(self) -> str:
        return {"Darwin": "macOS"}.get(self.system, self.system or "Unknown OS")

    # ------------------------------------------------------------------
    @abc.abstractmethod
    def format_listing(self, directory: Path) -> str:
        ...

    @abc.abstractmethod
    def invoke_shell(self, command: str, args: Sequence[str], cwd: Optional[Path] = None) -> Outcome:
        ...

    @abc.abstractmethod
    def search_files(self, pattern: str, directory: Path) -> str:
        ...

    @abc.abstractmethod
    def compress(self, source: Path, destination: Path) -> Outcome:
        ...

    # ------------------------------------------------------------------
    @abc.abstractmethod
    def _interrupt(self, process: subprocess.Popen) -> None:
        ...

    def _spawn(self, argv: List[str], cwd: Optional[Path] = None) -> Outcome:
        logger.debug("Spawning %s (cwd=%s)", argv, cwd)
        try:
            process = subprocess.Popen(
                argv,
                cwd=str(cwd) if cwd is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            raise OsFailureError(f"Failed to start {argv[0]}: {exc}") from exc

        timed_out = False
        interrupted = False
        try:
            stdout, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            process.kill()
            stdout, stderr = process.communicate()
        except KeyboardInterrupt:
            interrupted = True
            self._interrupt(process)
            stdout, stderr = process.communicate()

        stdout = _normalize_process_output(stdout or "")
        stderr = _normalize_process_output(stderr or "")
        status = process.returncode if process.returncode is not None else 0
        audit = {"argv": list(argv), "returncode": status}
        if timed_out:
            status = EXIT_TIMEOUT
            stderr += f"{argv[0]} timed out after {self.timeout:g}s\n"
            audit["timed_out"] = True
        elif interrupted:
            status = EXIT_INTERRUPTED
            stderr += f"{argv[0]} interrupted\n"
            audit["interrupted"] = True
        return Outcome(stdout=stdout, stderr=stderr, exit_code=status, audit=audit)

    def _capture(self, argv: List[str], *, partial_ok: bool = False) -> str:
        outcome = self._spawn(argv)
        if outcome.exit_code == 0:
            return outcome.stdout
        if partial_ok and outcome.stdout and outcome.exit_code not in (EXIT_TIMEOUT, EXIT_INTERRUPTED):
            logger.warning("%s reported errors: %s", argv[0], outcome.stderr.strip())
            return outcome.stdout
        message = outcome.stderr.strip() or f"{argv[0]} exited with status {outcome.exit_code}"
        raise OsFailureError(message)


class PosixBackend(PlatformBackend):
    name = "posix"

    def format_listing(self, directory: Path) -> str:
        return self._capture(["ls", "-la", str(directory)])

    def invoke_shell(self, command: str, args: Sequence[str], cwd: Optional[Path] = None) -> Outcome:
        return self._spawn([command, *args], cwd=cwd)

    def search_files(self, pattern: str, directory: Path) -> str:
        return self._capture(
            ["find", str(directory), "-type", "f", "-name", f"*{pattern}*"],
            partial_ok=True,
        )

    def compress(self, source: Path, destination: Path) -> Outcome:
        # Run from the parent so archive members are stored relative to it.
        return self._spawn(["zip", "-r", str(destination), source.name], cwd=source.parent)

    def _interrupt(self, process: subprocess.Popen) -> None:
        try:
            process.send_signal(signal.SIGINT)
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.terminate()
            try:
                process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                process.kill()
        except ProcessLookupError:
            pass


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class WindowsBackend(PlatformBackend):
    name = "windows"
    escapes = False

    def _powershell(self, script: str) -> List[str]:
        return ["powershell", "-NoProfile", "-NonInteractive", "-Command", script]

    def format_listing(self, directory: Path) -> str:
        script = (
            f"Get-ChildItem -LiteralPath {_ps_quote(str(directory))} "
            "| Format-Table -Property Mode, Name"
        )
        return self._capture(self._powershell(script))

    def invoke_shell(self, command: str, args: Sequence[str], cwd: Optional[Path] = None) -> Outcome:
        return self._spawn(["cmd", "/C", command, *args], cwd=cwd)

    def search_files(self, pattern: str, directory: Path) -> str:
        script = (
            f"Get-ChildItem -LiteralPath {_ps_quote(str(directory))} -Recurse -File "
            f"| Where-Object {{ $_.Name -like {_ps_quote('*' + pattern + '*')} }} "
            "| Select-Object -ExpandProperty FullName"
        )
        return self._capture(self._powershell(script), partial_ok=True)

    def compress(self, source: Path, destination: Path) -> Outcome:
        script = (
            f"Compress-Archive -LiteralPath {_ps_quote(str(source))} "
            f"-DestinationPath {_ps_quote(str(destination))} -Force"
        )
        return self._spawn(self._powershell(script))

    def _interrupt(self, process: subprocess.Popen) -> None:
        process.terminate()
        try:
            process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            process.kill()


def select_backend(system: Optional[str] = None, *, timeout: Optional[float] = None) -> PlatformBackend:
    """Pick the backend for *system* (defaults to the running OS)."""

    detected = system if system is not None else platform.system()
    if detected == "Windows":
        backend: PlatformBackend = WindowsBackend(detected, timeout=timeout)
    else:
        backend = PosixBackend(detected, timeout=timeout)
    logger.debug("Selected %s backend for %s", backend.name, backend.os_label)
    return backend


__all__ = [
    "EXIT_INTERRUPTED",
    "EXIT_TIMEOUT",
    "PlatformBackend",
    "PosixBackend",
    "WindowsBackend",
    "select_backend",
]
