"""Snapshot file: save, load, and the fallbacks around both."""

import json
from pathlib import Path

from database import Database, SnapshotFile, open_database
from schemas import Task, User


def _sample() -> Database:
    db = Database()
    db.insert_task(Task(id=1, name="buy milk", completed=False))
    db.insert_task(Task(id=2, name="walk dog", completed=True))
    db.insert_user(User(id=10, username="alice", password="p1"))
    return db


def test_save_then_load_restores_both_collections(tmp_path: Path):
    snapshot = SnapshotFile(tmp_path / "database.json")
    db = _sample()

    assert snapshot.save(db) is True
    restored = snapshot.load()

    assert restored is not None
    assert restored.tasks == db.tasks
    assert restored.users == db.users


def test_snapshot_layout_is_keyed_by_id(tmp_path: Path):
    snapshot = SnapshotFile(tmp_path / "database.json")
    snapshot.save(_sample())

    data = json.loads(snapshot.path.read_text(encoding="utf-8"))

    assert set(data) == {"tasks", "users"}
    assert data["tasks"]["2"] == {"id": 2, "name": "walk dog", "completed": True}
    assert data["users"]["10"] == {"id": 10, "username": "alice", "password": "p1"}


def test_save_overwrites_whole_file(tmp_path: Path):
    snapshot = SnapshotFile(tmp_path / "database.json")
    db = _sample()
    snapshot.save(db)

    db.delete_task(1)
    db.delete_task(2)
    snapshot.save(db)

    restored = snapshot.load()
    assert restored.tasks == {}
    assert not (tmp_path / "database.json.tmp").exists()


def test_load_missing_file_returns_none(tmp_path: Path):
    assert SnapshotFile(tmp_path / "nope.json").load() is None


def test_load_corrupt_json_returns_none(tmp_path: Path):
    path = tmp_path / "database.json"
    path.write_text("{not json", encoding="utf-8")

    assert SnapshotFile(path).load() is None


def test_load_wrong_shape_returns_none(tmp_path: Path):
    path = tmp_path / "database.json"
    path.write_text(json.dumps({"tasks": {"1": {"id": 1, "name": "x"}}}), encoding="utf-8")

    assert SnapshotFile(path).load() is None


def test_load_rejects_key_that_disagrees_with_id(tmp_path: Path):
    path = tmp_path / "database.json"
    path.write_text(
        json.dumps({"tasks": {"1": {"id": 2, "name": "x", "completed": False}}, "users": {}}),
        encoding="utf-8",
    )

    assert SnapshotFile(path).load() is None


def test_save_failure_returns_false_and_logs(tmp_path: Path, caplog):
    # A directory in the way makes the final rename fail
    target = tmp_path / "database.json"
    target.mkdir()

    ok = SnapshotFile(target).save(_sample())

    assert ok is False
    assert "Failed to save database snapshot" in caplog.text
    assert not (tmp_path / "database.json.tmp").exists()


def test_open_database_falls_back_to_empty(tmp_path: Path):
    path = tmp_path / "database.json"
    path.write_text("garbage", encoding="utf-8")

    locked = open_database(path)

    with locked.read() as db:
        assert db.tasks == {}
        assert db.users == {}


def test_open_database_restores_previous_state(tmp_path: Path):
    path = tmp_path / "database.json"
    SnapshotFile(path).save(_sample())

    locked = open_database(path)

    with locked.read() as db:
        assert db.get_task(2) == Task(id=2, name="walk dog", completed=True)
        assert db.find_user_by_username("alice").id == 10
