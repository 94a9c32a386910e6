from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Generator, List, Optional

from .models import TaskEntity
from .repositories import (
    CreateInput,
    MergeResult,
    Repository,
    UpdateInput,
    coerce_create,
    coerce_update,
    new_task_id,
    remote_wins,
)
from .utils import format_timestamp, parse_timestamp, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Cols:
    table: str = "tasks"
    id: str = "id"
    title: str = "title"
    description: str = "description"
    completed: str = "completed"
    created_at: str = "created_at"
    updated_at: str = "updated_at"
    deleted: str = "deleted"


_COLS = _Cols()


class SQLiteRepository(Repository):
    """
    SQLite record store implementing the Repository interface.

    Timestamps are stored as fixed-width UTC text ('YYYY-MM-DDTHH:MM:SS.ffffffZ')
    so ORDER BY on the column matches chronological order. Every merge runs in
    its own BEGIN IMMEDIATE transaction, which keeps concurrent writers on the
    same file from losing updates.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._lock = RLock()
        self._init_db()
        logger.info("SQLiteRepository ready db=%s", db_path)

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.title} TEXT NOT NULL,
                    {_COLS.description} TEXT NOT NULL DEFAULT '',
                    {_COLS.completed} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.updated_at} TEXT NOT NULL,
                    {_COLS.deleted} INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_deleted ON {_COLS.table}({_COLS.deleted})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_updated_at ON {_COLS.table}({_COLS.updated_at})"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> TaskEntity:
        return {
            "id": str(row[_COLS.id]),
            "title": str(row[_COLS.title]),
            "description": row[_COLS.description] or "",
            "completed": bool(row[_COLS.completed]),
            "created_at": parse_timestamp(row[_COLS.created_at]),
            "updated_at": parse_timestamp(row[_COLS.updated_at]),
            "deleted": bool(row[_COLS.deleted]),
        }

    def _fetch(self, conn: sqlite3.Connection, task_id: str) -> Optional[TaskEntity]:
        row = conn.execute(f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (task_id,)).fetchone()
        return self._row_to_entity(row) if row else None

    def _write(self, conn: sqlite3.Connection, task: TaskEntity) -> None:
        # Whole-record upsert.
        conn.execute(
            f"""
            INSERT OR REPLACE INTO {_COLS.table} ({_COLS.id}, {_COLS.title}, {_COLS.description},
                {_COLS.completed}, {_COLS.created_at}, {_COLS.updated_at}, {_COLS.deleted})
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task["id"],
                task["title"],
                task["description"] or "",
                1 if task["completed"] else 0,
                format_timestamp(task["created_at"]),
                format_timestamp(task["updated_at"]),
                1 if task["deleted"] else 0,
            ),
        )

    def list(self, include_deleted: bool = False) -> List[TaskEntity]:
        where_sql = "" if include_deleted else f"WHERE {_COLS.deleted} = 0"
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_COLS.table}
                {where_sql}
                ORDER BY {_COLS.updated_at} DESC, {_COLS.id} DESC
                """
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def get(self, task_id: str) -> Optional[TaskEntity]:
        with self._conn() as conn:
            task = self._fetch(conn, task_id)
            if task is None or task["deleted"]:
                return None
            return task

    def create(self, data: CreateInput) -> TaskEntity:
        payload = coerce_create(data)
        now = utc_now()
        entity: TaskEntity = {
            "id": new_task_id(),
            "title": payload.title,
            "description": payload.description or "",
            "completed": payload.completed,
            "created_at": now,
            "updated_at": now,
            "deleted": False,
        }
        with self._lock, self._conn() as conn:
            self._write(conn, entity)
            created = self._fetch(conn, entity["id"])
            assert created is not None
            return created

    def local_update(
        self, task_id: str, data: UpdateInput, updated_at: Optional[datetime] = None
    ) -> Optional[TaskEntity]:
        patch = coerce_update(data)
        with self._lock, self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            current = self._fetch(conn, task_id)
            if current is None or current["deleted"]:
                return None

            updated = current.copy()
            if patch.title is not None:
                updated["title"] = patch.title
            if patch.description is not None:
                updated["description"] = patch.description
            if patch.completed is not None:
                updated["completed"] = patch.completed
            updated["updated_at"] = updated_at or utc_now()
            self._write(conn, updated)

            row = self._fetch(conn, task_id)
            assert row is not None
            return row

    def local_delete(self, task_id: str) -> Optional[TaskEntity]:
        with self._lock, self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            current = self._fetch(conn, task_id)
            if current is None or current["deleted"]:
                return None
            tombstone = current.copy()
            tombstone["deleted"] = True
            tombstone["updated_at"] = utc_now()
            self._write(conn, tombstone)
            logger.debug("Tombstoned task id=%s", task_id)
            return self._fetch(conn, task_id)

    def apply_remote(self, task: TaskEntity) -> MergeResult:
        with self._lock, self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE")
            existing = self._fetch(conn, task["id"])
            if existing is not None and not remote_wins(task, existing):
                return MergeResult(applied=False, resulting=existing)
            self._write(conn, task)
            stored = self._fetch(conn, task["id"])
            assert stored is not None
            return MergeResult(applied=True, resulting=stored)
