from __future__ import annotations

import shutil
import sys
import zipfile
from pathlib import Path
from typing import List

import pytest

from crossshell.backend import (
    EXIT_TIMEOUT,
    PosixBackend,
    WindowsBackend,
    _ps_quote,
    select_backend,
)
from crossshell.errors import OsFailureError
from crossshell.invocation import Outcome

posix_only = pytest.mark.skipif(sys.platform.startswith("win"), reason="POSIX backend only")


def test_select_backend_by_system() -> None:
    windows = select_backend("Windows")
    assert isinstance(windows, WindowsBackend)
    assert windows.escapes is False
    assert windows.os_label == "Windows"

    linux = select_backend("Linux", timeout=3)
    assert isinstance(linux, PosixBackend)
    assert linux.escapes is True
    assert linux.timeout == 3

    assert select_backend("Darwin").os_label == "macOS"


def test_powershell_quoting_doubles_single_quotes() -> None:
    assert _ps_quote("it's") == "'it''s'"


def test_windows_backend_builds_native_commands(monkeypatch: pytest.MonkeyPatch) -> None:
    backend = WindowsBackend("Windows")
    calls: List[List[str]] = []

    def fake_spawn(argv: List[str], cwd=None) -> Outcome:
        calls.append(argv)
        return Outcome(stdout="ok\n")

    monkeypatch.setattr(backend, "_spawn", fake_spawn)

    backend.invoke_shell("dir", ["/b"], cwd=Path("."))
    assert calls[-1] == ["cmd", "/C", "dir", "/b"]

    assert backend.search_files("report", Path("C:/data")) == "ok\n"
    assert calls[-1][:4] == ["powershell", "-NoProfile", "-NonInteractive", "-Command"]
    assert "'*report*'" in calls[-1][4]

    backend.compress(Path("C:/data"), Path("C:/out.zip"))
    assert "Compress-Archive" in calls[-1][4]
    assert "-Force" in calls[-1][4]


@posix_only
def test_posix_search_files(tmp_path: Path) -> None:
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "monthly-report.txt").write_text("x", encoding="utf-8")
    (tmp_path / "other.txt").write_text("x", encoding="utf-8")
    found = PosixBackend("Linux").search_files("report", tmp_path)
    assert found.splitlines() == [str(tmp_path / "sub" / "monthly-report.txt")]


@posix_only
def test_posix_listing_of_missing_directory_fails(tmp_path: Path) -> None:
    with pytest.raises(OsFailureError):
        PosixBackend("Linux").format_listing(tmp_path / "missing")


@posix_only
def test_run_times_out(tmp_path: Path) -> None:
    backend = PosixBackend("Linux", timeout=0.5)
    result = backend.invoke_shell("sleep", ["5"], cwd=tmp_path)
    assert result.exit_code == EXIT_TIMEOUT
    assert "timed out" in result.stderr
    assert result.audit["timed_out"] is True


@posix_only
def test_missing_program_is_an_os_failure(tmp_path: Path) -> None:
    with pytest.raises(OsFailureError):
        PosixBackend("Linux").invoke_shell("no-such-program-for-tests", [], cwd=tmp_path)


@posix_only
@pytest.mark.skipif(shutil.which("zip") is None, reason="zip not installed")
def test_posix_compress_directory(tmp_path: Path) -> None:
    source = tmp_path / "project"
    source.mkdir()
    (source / "readme.txt").write_text("hello", encoding="utf-8")
    archive = tmp_path / "out" / "project.zip"
    archive.parent.mkdir()

    result = PosixBackend("Linux").compress(source, archive)

    assert result.exit_code == 0
    with zipfile.ZipFile(archive) as bundle:
        assert "project/readme.txt" in bundle.namelist()
