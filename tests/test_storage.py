"""Tests for the record stores and job store."""

import pytest

from nexora.models import ConflictError, EbookLength, JobStatus, NotFoundError
from nexora.storage import (
    InMemoryRecordStore,
    JsonFileRecordStore,
    create_record_store,
)


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryRecordStore()
    return JsonFileRecordStore(tmp_path)


def test_insert_and_get(store):
    row = store.insert("things", {"id": "a", "name": "first"})

    assert row["revision"] == 0
    assert store.get("things", "a")["name"] == "first"
    assert store.get("things", "missing") is None


def test_insert_duplicate_id_conflicts(store):
    store.insert("things", {"id": "a"})
    with pytest.raises(ConflictError):
        store.insert("things", {"id": "a"})


def test_update_bumps_revision(store):
    store.insert("things", {"id": "a", "n": 1})

    updated = store.update("things", "a", {"n": 2})

    assert updated["n"] == 2
    assert updated["revision"] == 1


def test_update_with_stale_revision_conflicts(store):
    store.insert("things", {"id": "a", "n": 1})
    store.update("things", "a", {"n": 2})

    with pytest.raises(ConflictError):
        store.update("things", "a", {"n": 3}, expected_revision=0)
    assert store.get("things", "a")["n"] == 2


def test_update_missing_row(store):
    with pytest.raises(NotFoundError):
        store.update("things", "ghost", {"n": 1})


def test_select_and_upsert(store):
    store.insert("subs", {"id": "s1", "user_id": "u1", "status": "active"})
    store.insert("subs", {"id": "s2", "user_id": "u2", "status": "active"})

    store.upsert("subs", {"id": "new", "user_id": "u1", "status": "cancelled"}, key="user_id")

    assert len(store.select("subs")) == 2
    assert store.select("subs", user_id="u1")[0]["status"] == "cancelled"
    assert store.select("subs", user_id="u1")[0]["id"] == "s1"


def test_returned_rows_are_copies(store):
    store.insert("things", {"id": "a", "tags": ["x"]})

    store.get("things", "a")["tags"].append("y")

    assert store.get("things", "a")["tags"] == ["x"]


def test_json_store_rejects_path_ids(tmp_path):
    store = JsonFileRecordStore(tmp_path)
    with pytest.raises(NotFoundError):
        store.get("things", "../escape")


def test_create_record_store(tmp_path):
    assert isinstance(create_record_store("memory://"), InMemoryRecordStore)
    assert isinstance(create_record_store(str(tmp_path)), JsonFileRecordStore)


def test_job_store_round_trip(job_store):
    job = job_store.create("focus", "calm", EbookLength.LONG, user_id="u1")

    updated = job_store.update(
        job.id,
        {"content_parts": {0: "text"}, "progress": 1, "status": JobStatus.WRITING},
    )

    assert updated.content_parts == {0: "text"}
    assert updated.status == JobStatus.WRITING
    assert updated.revision == 1
    assert updated.updated_at >= job.created_at
    assert job_store.get(job.id).length == EbookLength.LONG


def test_job_store_missing_job(job_store):
    with pytest.raises(NotFoundError):
        job_store.get("nope")
