from __future__ import annotations

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from lumberjack.errors import PersistenceError
from lumberjack.filters import compose_query, translate
from lumberjack.models import FieldTerm, FilterSpec
from lumberjack.storage import SavedFilterStore


def _spec() -> FilterSpec:
    return FilterSpec(
        start="-1h",
        end="",
        raw_pattern="ERROR",
        field_terms=(FieldTerm("routing_id", 1364, "number"), FieldTerm("task", "batch", "string")),
    )


def test_save_then_get(tmp_path: Path) -> None:
    store = SavedFilterStore(tmp_path / "filters.json")

    store.save("x", _spec(), group="/aws/lambda/api")

    assert store.get("x") == _spec()
    assert store.get_preset("x").group == "/aws/lambda/api"
    assert store.list() == ["x"]


def test_delete_then_get_is_not_found(tmp_path: Path) -> None:
    store = SavedFilterStore(tmp_path / "filters.json")
    store.save("x", _spec())

    store.delete("x")

    with pytest.raises(KeyError):
        store.get("x")
    assert "x" not in store


def test_delete_unknown_name_raises(tmp_path: Path) -> None:
    store = SavedFilterStore(tmp_path / "filters.json")

    with pytest.raises(KeyError):
        store.delete("missing")


def test_names_are_case_sensitive_and_overwrite(tmp_path: Path) -> None:
    store = SavedFilterStore(tmp_path / "filters.json")
    store.save("prod", FilterSpec(raw_pattern="a"))
    store.save("Prod", FilterSpec(raw_pattern="b"))
    store.save("prod", FilterSpec(raw_pattern="c"))

    assert store.list() == ["prod", "Prod"]
    assert store.get("prod").raw_pattern == "c"


def test_persisted_layout_reloads_equivalent_query(tmp_path: Path) -> None:
    path = tmp_path / "filters.json"
    SavedFilterStore(path).save("x", _spec(), group="g")

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data == {
        "x": {
            "group": "g",
            "start": "-1h",
            "end": "",
            "query": 'routing_id=1364 task="batch" ERROR',
        }
    }

    reloaded = SavedFilterStore(path)
    reloaded.load()
    assert compose_query(reloaded.get("x")) == compose_query(_spec())


def test_missing_file_loads_empty(tmp_path: Path) -> None:
    store = SavedFilterStore(tmp_path / "nested" / "filters.json")

    assert store.load() == []


def test_interrupted_write_leaves_store_readable(tmp_path: Path) -> None:
    path = tmp_path / "filters.json"
    leftover = tmp_path / ".filters.json.abc123.tmp"
    leftover.write_text('{"half": {"query": "rout', encoding="utf-8")

    store = SavedFilterStore(path)

    assert store.load() == []
    assert store.list() == []
    store.save("after", FilterSpec(raw_pattern="ok"))
    assert SavedFilterStore(path).load() == ["after"]


def test_corrupt_file_raises_persistence_error(tmp_path: Path) -> None:
    path = tmp_path / "filters.json"
    path.write_text("not json", encoding="utf-8")

    with pytest.raises(PersistenceError) as excinfo:
        SavedFilterStore(path).load()

    assert excinfo.value.path == path


def test_non_object_file_raises_persistence_error(tmp_path: Path) -> None:
    path = tmp_path / "filters.json"
    path.write_text("[1, 2]", encoding="utf-8")

    with pytest.raises(PersistenceError):
        SavedFilterStore(path).load()


def test_failed_write_keeps_memory_and_file(tmp_path: Path) -> None:
    path = tmp_path / "filters.json"
    store = SavedFilterStore(path)
    store.save("first", FilterSpec(raw_pattern="one"))
    before = path.read_text(encoding="utf-8")

    with patch("lumberjack.storage.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(PersistenceError):
            store.save("second", FilterSpec(raw_pattern="two"))

    assert store.list() == ["first", "second"]
    assert path.read_text(encoding="utf-8") == before
    assert [p.name for p in tmp_path.iterdir()] == ["filters.json"]


def test_memory_only_names_survive_next_write(tmp_path: Path) -> None:
    path = tmp_path / "filters.json"
    store = SavedFilterStore(path)
    with patch("lumberjack.storage.os.replace", side_effect=OSError("disk full")):
        with pytest.raises(PersistenceError):
            store.save("pending", FilterSpec(raw_pattern="p"))

    store.save("next", FilterSpec(raw_pattern="n"))

    assert sorted(SavedFilterStore(path).load()) == ["next", "pending"]


def test_native_pattern_round_trips(tmp_path: Path) -> None:
    path = tmp_path / "filters.json"
    native = translate('{ $.status >= 500 }')
    SavedFilterStore(path).save("5xx", native)

    reloaded = SavedFilterStore(path)
    reloaded.load()

    assert reloaded.get("5xx") == native
    assert os.path.exists(path)
