import threading

import pytest

from db.database import Database
from db.models import Task


def test_save_and_get_task_roundtrip(db):
    db.save_task(Task(id="t1", name="Example", type="webpage", url="https://example.com"))

    task = db.get_task("t1")
    assert task.status == "pending"
    assert task.is_recording is False

    doc = task.to_document()
    assert doc["id"] == "t1"
    assert doc["audioFile"] is None
    assert doc["isRecording"] is False


def test_task_accepts_camel_case_documents(db):
    task = Task(**{"id": "t2", "type": "live", "isRecording": True, "audioFile": "t2.webm"})
    db.save_task(task)
    stored = db.get_task("t2")
    assert stored.is_recording is True
    assert stored.audio_file == "t2.webm"


def test_get_missing_task_returns_none(db):
    assert db.get_task("nope") is None


def test_update_task_fields(db):
    db.save_task(Task(id="t1", type="live"))
    updated = db.update_task("t1", status="processing", is_recording=True)
    assert updated.status == "processing"
    assert updated.is_recording is True


def test_update_task_rejects_unknown_fields(db):
    db.save_task(Task(id="t1", type="live"))
    with pytest.raises(ValueError, match="Unknown task fields"):
        db.update_task("t1", colour="red")


def test_list_and_delete_tasks(db):
    db.save_task(Task(id="a", type="webpage"))
    db.save_task(Task(id="b", type="live"))
    assert {t.id for t in db.list_tasks()} == {"a", "b"}

    assert db.delete_task("a") is True
    assert db.delete_task("a") is False
    assert [t.id for t in db.list_tasks()] == ["b"]


def test_config_documents(tmp_path):
    database = Database(tmp_path / "cfg.db")
    assert database.get_config("oss") is None
    database.set_config("oss", {"region": "oss-cn-hangzhou", "bucket": "b"})
    assert database.get_config("oss") == {"region": "oss-cn-hangzhou", "bucket": "b"}


def test_concurrent_field_updates_on_one_task_are_all_kept(db):
    db.save_task(Task(id="t1", type="webpage"))

    def write(field, value):
        for _ in range(20):
            db.update_task("t1", **{field: value})

    threads = [
        threading.Thread(target=write, args=("content", "the content")),
        threading.Thread(target=write, args=("summary", "the summary")),
        threading.Thread(target=write, args=("status", "processing")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    task = db.get_task("t1")
    assert task.content == "the content"
    assert task.summary == "the summary"
    assert task.status == "processing"
