from __future__ import annotations

from pathlib import Path
from typing import Callable, List

import pytest

from model_audit.exceptions import NotFoundError, RepositoryError
from model_audit.infrastructure.record_store import AUDITS, MODELS, InMemoryRecordStore, JsonFileRecordStore
from model_audit.services import IRecordStore


class TickingTime:
    """Clock returning strictly increasing timestamps."""

    def __init__(self) -> None:
        self._tick = 0

    def now_iso(self) -> str:
        self._tick += 1
        return f"2024-01-01T00:00:{self._tick:02d}.000Z"


def _memory(_: Path) -> IRecordStore:
    return InMemoryRecordStore(TickingTime())


def _json(tmp_path: Path) -> IRecordStore:
    return JsonFileRecordStore(tmp_path / "records", time_service=TickingTime())


StoreFactory = Callable[[Path], IRecordStore]
FACTORIES: List[StoreFactory] = [_memory, _json]


@pytest.fixture(params=FACTORIES, ids=["memory", "json"])
def store(request: pytest.FixtureRequest, tmp_path: Path) -> IRecordStore:
    return request.param(tmp_path)


def test_create_assigns_id_and_timestamp(store: IRecordStore) -> None:
    record = store.create(MODELS, {"name": "m"})

    assert record["id"]
    assert record["created_at"] == "2024-01-01T00:00:01.000Z"
    assert store.get(MODELS, record["id"]) == record


def test_explicit_id_is_kept_and_duplicates_rejected(store: IRecordStore) -> None:
    store.create(AUDITS, {"id": "run-1", "status": "running"})

    with pytest.raises(RepositoryError):
        store.create(AUDITS, {"id": "run-1"})


def test_update_merges_and_keeps_id(store: IRecordStore) -> None:
    created = store.create(AUDITS, {"id": "run-1", "status": "running", "model_id": "m"})

    updated = store.update(AUDITS, "run-1", {"status": "completed", "id": "other"})

    assert updated["id"] == "run-1"
    assert updated["status"] == "completed"
    assert updated["model_id"] == "m"
    assert updated["created_at"] == created["created_at"]
    assert store.get(AUDITS, "run-1") == updated


def test_update_missing_record(store: IRecordStore) -> None:
    with pytest.raises(NotFoundError):
        store.update(AUDITS, "absent", {"status": "failed"})


def test_find_filters_newest_first(store: IRecordStore) -> None:
    store.create(AUDITS, {"id": "a", "model_id": "m1", "status": "completed"})
    store.create(AUDITS, {"id": "b", "model_id": "m2", "status": "completed"})
    store.create(AUDITS, {"id": "c", "model_id": "m1", "status": "failed"})

    assert [r["id"] for r in store.find(AUDITS)] == ["c", "b", "a"]
    assert [r["id"] for r in store.find(AUDITS, model_id="m1")] == ["c", "a"]
    assert [r["id"] for r in store.find(AUDITS, model_id="m1", status="completed")] == ["a"]
    assert store.count(AUDITS, model_id="m1") == 2
    assert store.count(MODELS) == 0
    assert store.get(AUDITS, "zzz") is None


def test_returned_records_are_copies(store: IRecordStore) -> None:
    record = store.create(AUDITS, {"id": "a", "results": {"censorship": []}})
    record["results"]["censorship"].append("mutated")

    fetched = store.get(AUDITS, "a")
    assert fetched is not None
    assert fetched["results"] == {"censorship": []}


def test_equal_timestamps_keep_insert_order_reversed() -> None:
    class FrozenTime:
        def now_iso(self) -> str:
            return "2024-01-01T00:00:00.000Z"

    store = InMemoryRecordStore(FrozenTime())
    for record_id in ("x", "y", "z"):
        store.create(AUDITS, {"id": record_id})

    assert [r["id"] for r in store.find(AUDITS)] == ["z", "y", "x"]


def test_json_store_persists_across_instances(tmp_path: Path) -> None:
    base = tmp_path / "records"
    JsonFileRecordStore(base).create(MODELS, {"id": "m1", "name": "alpha"})

    reopened = JsonFileRecordStore(base)

    assert (base / "models" / "m1.json").exists()
    assert reopened.get(MODELS, "m1")["name"] == "alpha"  # type: ignore[index]


@pytest.mark.parametrize("record_id", ["../escape", "a/b", ".hidden", ""])
def test_json_store_rejects_unsafe_ids(tmp_path: Path, record_id: str) -> None:
    with pytest.raises(RepositoryError):
        JsonFileRecordStore(tmp_path).get(AUDITS, record_id)


def test_json_store_reports_corrupt_records(tmp_path: Path) -> None:
    store = JsonFileRecordStore(tmp_path)
    (tmp_path / "audits").mkdir()
    (tmp_path / "audits" / "bad.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "audits" / "list.json").write_text("[]", encoding="utf-8")

    with pytest.raises(RepositoryError):
        store.get(AUDITS, "bad")
    with pytest.raises(RepositoryError, match="not a JSON object"):
        store.get(AUDITS, "list")
