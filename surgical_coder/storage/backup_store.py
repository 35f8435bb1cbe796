"""
Backup stores — append-only snapshots of a project's file set.

A backup is written before every mutation so that any change set, and any
rollback, can itself be undone.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS project_backups (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id    TEXT NOT NULL,
    user_id       TEXT NOT NULL,
    backup_data   TEXT NOT NULL,
    reason        TEXT,
    file_count    INTEGER DEFAULT 0,
    created_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_backups_project ON project_backups(project_id);
"""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class BackupRecord:
    """Full copy of a project's files at one point in time."""

    project_id: str
    user_id: str
    backup_data: dict[str, str] = field(default_factory=dict)
    reason: str = ""
    file_count: int = 0
    created_at: str = ""
    id: Optional[str] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BackupStore(ABC):
    """Insert-and-read store of :class:`BackupRecord` objects."""

    @abstractmethod
    def insert(self, record: BackupRecord) -> str:
        """Persist *record* and return its id."""

    @abstractmethod
    def get(self, backup_id: str) -> Optional[BackupRecord]:
        """Return the backup with *backup_id*, or None."""

    @abstractmethod
    def list(self, project_id: str, limit: int = 20) -> list[BackupRecord]:
        """Most recent backups of *project_id*, newest first."""


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class InMemoryBackupStore(BackupStore):

    def __init__(self) -> None:
        self._records: list[BackupRecord] = []

    def insert(self, record: BackupRecord) -> str:
        stored = replace(
            record,
            id=uuid.uuid4().hex,
            backup_data=dict(record.backup_data),
            created_at=record.created_at or _now(),
        )
        self._records.append(stored)
        return stored.id

    def get(self, backup_id: str) -> Optional[BackupRecord]:
        for record in self._records:
            if record.id == backup_id:
                return replace(record, backup_data=dict(record.backup_data))
        return None

    def list(self, project_id: str, limit: int = 20) -> list[BackupRecord]:
        matching = [r for r in self._records if r.project_id == project_id]
        return list(reversed(matching))[:limit]


# ---------------------------------------------------------------------------
# SQLite store
# ---------------------------------------------------------------------------

class SQLiteBackupStore(BackupStore):
    """
    SQLite-backed backup table.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Created if absent.
    retention:
        Keep at most this many backups per project; older rows are pruned
        on insert.  ``None`` keeps everything.
    """

    def __init__(self, db_path: str, retention: Optional[int] = None) -> None:
        self._db_path = db_path
        self.retention = retention
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self._init_db()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _connect(self):
        """Yield a connected SQLite connection with WAL mode."""
        conn = sqlite3.connect(self._db_path, timeout=10)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.executescript(_SCHEMA)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> BackupRecord:
        return BackupRecord(
            id=str(row["id"]),
            project_id=row["project_id"],
            user_id=row["user_id"],
            backup_data=json.loads(row["backup_data"]),
            reason=row["reason"] or "",
            file_count=row["file_count"] or 0,
            created_at=row["created_at"],
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def insert(self, record: BackupRecord) -> str:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO project_backups
                    (project_id, user_id, backup_data, reason, file_count, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.project_id,
                    record.user_id,
                    json.dumps(record.backup_data),
                    record.reason,
                    record.file_count,
                    record.created_at or _now(),
                ),
            )
            backup_id = cur.lastrowid
            if self.retention is not None:
                self._prune(conn, record.project_id, self.retention)
        logger.debug("[Backup] Stored backup %s for %s", backup_id, record.project_id)
        return str(backup_id)

    @staticmethod
    def _prune(conn: sqlite3.Connection, project_id: str, keep: int) -> None:
        cur = conn.execute(
            """
            DELETE FROM project_backups
            WHERE project_id = ?
              AND id NOT IN (
                  SELECT id FROM project_backups
                  WHERE project_id = ?
                  ORDER BY id DESC
                  LIMIT ?
              )
            """,
            (project_id, project_id, max(keep, 1)),
        )
        if cur.rowcount:
            logger.info("[Backup] Pruned %d old backups for %s", cur.rowcount, project_id)

    def get(self, backup_id: str) -> Optional[BackupRecord]:
        try:
            key = int(backup_id)
        except (TypeError, ValueError):
            return None
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM project_backups WHERE id = ?", (key,),
            ).fetchone()
        return self._row_to_record(row) if row else None

    def list(self, project_id: str, limit: int = 20) -> list[BackupRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM project_backups
                WHERE project_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (project_id, limit),
            ).fetchall()
        return [self._row_to_record(r) for r in rows]
