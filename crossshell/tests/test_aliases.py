from __future__ import annotations

from pathlib import Path

import pytest

from crossshell.aliases import MAX_ALIAS_DEPTH, AliasStore, AliasTable, resolve
from crossshell.errors import AliasCycleError, ErrorKind, InvalidArgumentsError
from crossshell.invocation import Invocation

BUILTINS = frozenset({"list", "run", "delete_file", "grep"})


def test_non_alias_is_returned_unchanged() -> None:
    table = AliasTable({"ll": "list -la"})
    invocation = Invocation("run", ("echo", "hi"))
    assert resolve(invocation, table, BUILTINS) is invocation


def test_alias_arguments_precede_user_arguments() -> None:
    table = AliasTable({"greet": "run echo hello"})
    resolved = resolve(Invocation("greet", ("world",)), table, BUILTINS)
    assert resolved == Invocation("run", ("echo", "hello", "world"))


def test_aliases_may_reference_other_aliases() -> None:
    table = AliasTable({"say": "run echo", "hi": "say hello"})
    resolved = resolve(Invocation("hi", ("there",)), table, BUILTINS)
    assert resolved.name == "run"
    assert resolved.args == ("echo", "hello", "there")
    assert resolved.name not in table


def test_two_alias_cycle_is_detected() -> None:
    table = AliasTable()
    table.define("a", ["b"], BUILTINS)
    table.define("b", ["a"], BUILTINS)
    with pytest.raises(AliasCycleError) as excinfo:
        resolve(Invocation("a"), table, BUILTINS)
    assert excinfo.value.kind is ErrorKind.ALIAS_CYCLE


def test_chain_at_depth_bound_resolves() -> None:
    entries = {f"a{i}": f"a{i + 1}" for i in range(MAX_ALIAS_DEPTH - 1)}
    entries[f"a{MAX_ALIAS_DEPTH - 1}"] = "list"
    table = AliasTable(entries)
    assert resolve(Invocation("a0"), table, BUILTINS).name == "list"

    entries = {f"a{i}": f"a{i + 1}" for i in range(MAX_ALIAS_DEPTH)}
    entries[f"a{MAX_ALIAS_DEPTH}"] = "list"
    with pytest.raises(AliasCycleError):
        resolve(Invocation("a0"), AliasTable(entries), BUILTINS)


def test_define_rejects_self_reference() -> None:
    table = AliasTable()
    with pytest.raises(AliasCycleError):
        table.define("loop", ["loop", "-x"], BUILTINS)
    assert "loop" not in table


def test_define_rejects_builtin_names() -> None:
    table = AliasTable()
    with pytest.raises(InvalidArgumentsError):
        table.define("list", ["run", "ls"], BUILTINS)


def test_define_keeps_quoted_arguments() -> None:
    table = AliasTable()
    stored = table.define("note", ["run", "echo", "two words"], BUILTINS)
    assert stored == "run echo 'two words'"
    assert table.template("note").args == ("echo", "two words")


def test_definitions_are_persisted(tmp_path: Path) -> None:
    store = AliasStore(tmp_path / "aliases")
    table = AliasTable.from_store(store)
    table.define("ll", ["list", "-la"], BUILTINS)
    table.define("logs", ["grep", "ERROR"], BUILTINS)

    text = store.path.read_text(encoding="utf-8")
    assert text.splitlines()[0] == AliasStore.HEADER
    assert "ll=list -la" in text

    reloaded = AliasTable.from_store(store)
    assert reloaded.items() == [("ll", "list -la"), ("logs", "grep ERROR")]

    assert reloaded.remove("ll") is True
    assert reloaded.remove("ll") is False
    assert AliasTable.from_store(store).items() == [("logs", "grep ERROR")]


def test_store_skips_malformed_lines(tmp_path: Path) -> None:
    path = tmp_path / "aliases"
    path.write_text("# comment\n\nll=list -la\nbroken line\n=nothing\nempty=\n", encoding="utf-8")
    assert AliasStore(path).load() == {"ll": "list -la"}


def test_missing_store_is_empty(tmp_path: Path) -> None:
    assert AliasStore(tmp_path / "missing").load() == {}


def test_define_rejects_line_breaks(tmp_path: Path) -> None:
    store = AliasStore(tmp_path / "aliases")
    table = AliasTable.from_store(store)
    for value in ("line\nbreak", "carriage\rreturn", "para\u2029graph"):
        with pytest.raises(InvalidArgumentsError):
            table.define("multi", ["run", "echo", value], BUILTINS)
    assert "multi" not in table
    assert not store.path.exists()
