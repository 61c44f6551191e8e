"""Tests for the durable prompt template library."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from chatdock.services.prompt_store import PromptStore


def test_empty_store(tmp_path: Path) -> None:
    store = PromptStore(tmp_path / "prompts.json")

    assert store.list_names() == ()
    assert store.get("missing") is None
    assert len(store) == 0
    assert not (tmp_path / "prompts.json").exists()


def test_set_get_and_persist_in_insertion_order(tmp_path: Path) -> None:
    path = tmp_path / "prompts.json"
    store = PromptStore(path)

    store.set("Reviewer", "Review this")
    store.set("Translator", "Translate this")
    store.set("Reviewer", "Review carefully")

    reloaded = PromptStore(path)
    assert reloaded.list_names() == ("Reviewer", "Translator")
    assert reloaded.get("Reviewer") == "Review carefully"
    assert reloaded.items() == (("Reviewer", "Review carefully"), ("Translator", "Translate this"))
    assert json.loads(path.read_text(encoding="utf-8"))["version"] == 1


def test_names_are_case_sensitive(tmp_path: Path) -> None:
    store = PromptStore(tmp_path / "prompts.json")
    store.set("reviewer", "lower")
    store.set("Reviewer", "upper")

    assert store.get("reviewer") == "lower"
    assert store.get("Reviewer") == "upper"
    assert "REVIEWER" not in store


def test_delete(tmp_path: Path) -> None:
    path = tmp_path / "prompts.json"
    store = PromptStore(path)
    store.set("A", "a")

    assert store.delete("A") is True
    assert store.delete("A") is False
    assert PromptStore(path).list_names() == ()


@pytest.mark.parametrize("name", ["", "   "])
def test_blank_names_are_rejected(tmp_path: Path, name: str) -> None:
    with pytest.raises(ValueError):
        PromptStore(tmp_path / "prompts.json").set(name, "content")


def test_corrupt_file_is_treated_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "prompts.json"
    path.write_text("{oops", encoding="utf-8")

    store = PromptStore(path)

    assert store.list_names() == ()
    store.set("A", "a")
    assert PromptStore(path).get("A") == "a"


def test_non_string_entries_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"version": 1, "prompts": {"ok": "fine", "bad": 3}}), encoding="utf-8")

    assert list(PromptStore(path)) == ["ok"]
