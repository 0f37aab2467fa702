"""Contract tests shared by every storage adapter."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from durable_tasks.instance import TaskInstance, TaskStatus, utc_now
from durable_tasks.storage import JsonFileStorage, StorageAdapter


class Account:
    accounts: dict[str, Account] = {}

    def __init__(self, id: str) -> None:
        self.id = id
        Account.accounts[id] = self

    @classmethod
    def find(cls, id: str) -> Account:
        return cls.accounts[id]


def _task(task_type: str = "report", **fields) -> TaskInstance:
    return TaskInstance(type=task_type, current_state="start", **fields)


def test_save_assigns_id_and_updated_at(storage: StorageAdapter) -> None:
    task = _task()
    created = task.updated_at

    saved = storage.save(task)

    assert saved is task
    assert task.id is not None
    assert task.updated_at >= created


def test_save_keeps_existing_id(storage: StorageAdapter) -> None:
    task = storage.save(_task())
    task_id = task.id

    task.current_state = "next"
    storage.save(task)

    assert task.id == task_id
    assert storage.find(task_id).current_state == "next"


def test_find_unknown_returns_none(storage: StorageAdapter) -> None:
    assert storage.find("does-not-exist") is None


def test_find_returns_a_fresh_instance(storage: StorageAdapter) -> None:
    task = storage.save(_task(attributes={"tags": ["a"]}))

    found = storage.find(task.id)
    found.attributes["tags"].append("b")

    assert found is not task
    assert storage.find(task.id).attributes == {"tags": ["a"]}


def test_sleeping_tasks(storage: StorageAdapter) -> None:
    now = utc_now()
    due = storage.save(_task(status=TaskStatus.WAITING, wake_at=now - timedelta(seconds=1)))
    storage.save(_task(status=TaskStatus.WAITING, wake_at=now + timedelta(hours=1)))
    storage.save(_task(status=TaskStatus.ACTIVE, wake_at=now - timedelta(seconds=1)))
    other = storage.save(
        _task("audit", status=TaskStatus.WAITING, wake_at=now - timedelta(seconds=1))
    )

    assert sorted(t.id for t in storage.sleeping_tasks()) == sorted([due.id, other.id])
    assert [t.id for t in storage.sleeping_tasks("report")] == [due.id]


def test_sub_tasks_of(storage: StorageAdapter) -> None:
    parent = storage.save(_task())
    first = storage.save(_task(parent_task_id=parent.id))
    second = storage.save(_task(parent_task_id=parent.id))
    storage.save(_task(parent_task_id=first.id))

    children = storage.sub_tasks_of(parent)

    assert sorted(t.id for t in children) == sorted([first.id, second.id])


def test_delete_old(storage: StorageAdapter) -> None:
    now = utc_now()
    old = storage.save(_task(delete_at=now - timedelta(days=1)))
    old_audit = storage.save(_task("audit", delete_at=now - timedelta(days=1)))
    recent = storage.save(_task(delete_at=now + timedelta(days=1)))

    assert storage.delete_old("report", before=now) == 1
    assert storage.find(old.id) is None
    assert storage.find(old_audit.id) is not None

    assert storage.delete_old(before=now) == 1
    assert storage.find(old_audit.id) is None
    assert storage.find(recent.id) is not None


def test_model_references(storage: StorageAdapter) -> None:
    account = Account("acc-1")

    ref = storage.serialise_model_ref(account)

    assert ref == {"id": "acc-1", "type": f"{Account.__module__}:Account"}
    assert storage.deserialise_model_ref(ref, ref["type"]) is account


def test_model_reference_needs_a_finder(storage: StorageAdapter) -> None:
    with pytest.raises(TypeError, match="no find"):
        storage.deserialise_model_ref({"id": 1, "type": "pathlib:PurePath"}, "pathlib:PurePath")


def test_json_storage_writes_snapshots(json_storage: JsonFileStorage) -> None:
    task = json_storage.save(_task(attributes={"count": 3}))

    data = json.loads(json_storage.path.read_text(encoding="utf-8"))

    assert data[task.id]["type"] == "report"
    assert data[task.id]["status"] == "active"
    assert data[task.id]["attributes"] == {"count": 3}


def test_json_storage_treats_invalid_file_as_empty(tmp_path: Path) -> None:
    path = tmp_path / "tasks.json"
    path.write_text("{not json", encoding="utf-8")
    storage = JsonFileStorage(path)

    assert storage.find("anything") is None
    task = storage.save(_task())
    assert storage.find(task.id) is not None


def test_json_storage_survives_a_new_adapter(json_storage: JsonFileStorage) -> None:
    task = json_storage.save(_task(status=TaskStatus.WAITING, wake_at=utc_now()))

    reopened = JsonFileStorage(json_storage.path)

    assert reopened.find(task.id).to_snapshot() == task.to_snapshot()


def test_json_storage_replaces_the_file_atomically(json_storage: JsonFileStorage) -> None:
    first = json_storage.save(_task())
    tmp = json_storage.path.with_name(f"{json_storage.path.name}.tmp")
    # Leftover of a write that never completed.
    tmp.write_text('{"half": ', encoding="utf-8")

    assert JsonFileStorage(json_storage.path).find(first.id) is not None

    second = json_storage.save(_task())

    assert not tmp.exists()
    assert json_storage.find(first.id) is not None
    assert json_storage.find(second.id) is not None
