"""Storage and persistence utilities for jobs and product records."""

import copy
import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Any

from .config import ensure_directories, get_data_paths
from .models import (
    ConflictError,
    EbookJob,
    EbookLength,
    JobStatus,
    NotFoundError,
    utcnow,
)

logger = logging.getLogger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


class RecordStore:
    """Row store keyed by table name and row id.

    Every row carries a ``revision`` counter owned by the store. ``update`` is
    atomic for a single row; passing ``expected_revision`` turns it into a
    compare-and-set.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()

    # Backend hooks
    def _read(self, table: str, row_id: str) -> dict | None:
        raise NotImplementedError

    def _write(self, table: str, row: dict) -> None:
        raise NotImplementedError

    def _rows(self, table: str) -> list[dict]:
        raise NotImplementedError

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(row)
        row.setdefault("id", new_id())
        row["revision"] = 0
        with self._lock:
            if self._read(table, row["id"]) is not None:
                raise ConflictError(f"{table} row {row['id']} already exists")
            self._write(table, row)
        return copy.deepcopy(row)

    def get(self, table: str, row_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._read(table, row_id)
        return copy.deepcopy(row) if row is not None else None

    def update(
        self,
        table: str,
        row_id: str,
        fields: dict[str, Any],
        expected_revision: int | None = None,
    ) -> dict[str, Any]:
        with self._lock:
            row = self._read(table, row_id)
            if row is None:
                raise NotFoundError(f"{table} row {row_id} not found")
            if expected_revision is not None and row.get("revision", 0) != expected_revision:
                raise ConflictError(
                    f"{table} row {row_id} changed (revision {row.get('revision')} != {expected_revision})"
                )
            row.update(copy.deepcopy(fields))
            row["revision"] = row.get("revision", 0) + 1
            self._write(table, row)
        return copy.deepcopy(row)

    def upsert(self, table: str, row: dict[str, Any], key: str) -> dict[str, Any]:
        """Insert ``row`` or merge it into the first row sharing ``key``."""
        with self._lock:
            existing = self.select(table, **{key: row[key]})
            if existing:
                fields = {k: v for k, v in row.items() if k != "id"}
                return self.update(table, existing[0]["id"], fields)
            return self.insert(table, row)

    def select(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        with self._lock:
            rows = self._rows(table)
        return [
            copy.deepcopy(r)
            for r in rows
            if all(r.get(k) == v for k, v in filters.items())
        ]

    def ping(self) -> bool:
        return True


class InMemoryRecordStore(RecordStore):
    """Record store held in process memory (tests, CLI dry runs)."""

    def __init__(self) -> None:
        super().__init__()
        self._tables: dict[str, dict[str, dict]] = {}

    def _read(self, table: str, row_id: str) -> dict | None:
        return self._tables.get(table, {}).get(row_id)

    def _write(self, table: str, row: dict) -> None:
        self._tables.setdefault(table, {})[row["id"]] = row

    def _rows(self, table: str) -> list[dict]:
        return list(self._tables.get(table, {}).values())


class JsonFileRecordStore(RecordStore):
    """Record store persisting one JSON file per row under ``<base>/tables/<table>/``."""

    def __init__(self, base_dir: str | Path) -> None:
        super().__init__()
        self.base_dir = Path(base_dir)
        ensure_directories(self.base_dir)
        self.tables_dir = get_data_paths(self.base_dir)["tables"]

    def _path(self, table: str, row_id: str) -> Path:
        if "/" in row_id or "\\" in row_id or row_id.startswith("."):
            raise NotFoundError(f"Invalid row id: {row_id}")
        return self.tables_dir / table / f"{row_id}.json"

    def _read(self, table: str, row_id: str) -> dict | None:
        path = self._path(table, row_id)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, table: str, row: dict) -> None:
        path = self._path(table, row["id"])
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(row, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)

    def _rows(self, table: str) -> list[dict]:
        table_dir = self.tables_dir / table
        if not table_dir.exists():
            return []
        rows = []
        for path in sorted(table_dir.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    rows.append(json.load(f))
            except (json.JSONDecodeError, ValueError) as e:
                logger.error(f"Skipping unreadable row {path}: {e}")
        return rows

    def ping(self) -> bool:
        return self.tables_dir.is_dir() and os.access(self.tables_dir, os.W_OK)


def create_record_store(database_url: str | None) -> RecordStore:
    """Build the record store named by ``database_url``.

    ``memory://`` selects the in-memory store; anything else is a directory.
    """
    if not database_url or database_url.startswith("memory://"):
        return InMemoryRecordStore()
    return JsonFileRecordStore(database_url)


class JobStore:
    """Create, read and partial-update operations on ebook jobs."""

    table = "ebook_jobs"

    def __init__(self, records: RecordStore):
        self.records = records

    def create(
        self,
        topic: str,
        tone: str,
        length: EbookLength | str,
        user_id: str | None = None,
    ) -> EbookJob:
        job = EbookJob(
            id=new_id(),
            user_id=user_id,
            topic=topic,
            tone=tone,
            length=EbookLength(length),
            status=JobStatus.PENDING,
        )
        row = self.records.insert(self.table, job.model_dump(mode="json"))
        logger.info(f"Created job {job.id} for topic {topic!r}")
        return EbookJob(**row)

    def get(self, job_id: str) -> EbookJob:
        row = self.records.get(self.table, job_id)
        if row is None:
            raise NotFoundError(f"Job {job_id} not found")
        return EbookJob(**row)

    def update(
        self,
        job_id: str,
        fields: dict[str, Any],
        expected_revision: int | None = None,
    ) -> EbookJob:
        """Merge ``fields`` into the job and refresh ``updated_at``."""
        payload = EbookJob.model_construct(**fields).model_dump(
            mode="json", include=set(fields)
        )
        payload["updated_at"] = utcnow().isoformat()
        row = self.records.update(
            self.table, job_id, payload, expected_revision=expected_revision
        )
        return EbookJob(**row)
