"""
Project file stores — the persistent side of a ``ProjectFileSet``.

Every store hands out snapshots carrying a version stamp.  Passing that
stamp back to ``apply_changes`` turns a write against a stale base into a
:class:`StaleSnapshotError` instead of a silent lost update.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence

from ..errors import ApplyError, StaleSnapshotError

logger = logging.getLogger(__name__)

_SKIP_DIRS = {"node_modules", "__pycache__", "dist", "build"}


@dataclass
class FileChange:
    """Delta for one path between two snapshots."""
    path: str
    old_content: str
    new_content: str
    change_type: str  # "create" | "update" | "delete"


@dataclass(frozen=True)
class ProjectSnapshot:
    files: dict[str, str] = field(default_factory=dict)
    version: str = ""


@dataclass
class ChangeRecord:
    """Provenance of one written change."""
    path: str
    change_type: str
    reason: str
    conversation_id: Optional[str] = None
    timestamp: str = ""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class FileStore(ABC):
    """Read/write access to one project's files."""

    @abstractmethod
    def snapshot(self) -> ProjectSnapshot:
        """Return the current file set and its version stamp."""

    def capture_project_state(self) -> dict[str, str]:
        return dict(self.snapshot().files)

    @abstractmethod
    def apply_changes(
        self,
        changes: Sequence[FileChange],
        reason: str,
        conversation_id: Optional[str] = None,
        expected_version: Optional[str] = None,
    ) -> None:
        """Write *changes* as one logical operation.

        Raises
        ------
        StaleSnapshotError
            *expected_version* no longer matches the stored version.
        ApplyError
            The write failed; the store is left as it was before the call.
        """

    @abstractmethod
    def history(self) -> list[ChangeRecord]:
        """Change records in write order."""

    def _check_version(self, expected_version: Optional[str]) -> None:
        if expected_version is None:
            return
        current = self.snapshot().version
        if current != expected_version:
            raise StaleSnapshotError(
                f"Project changed since snapshot {expected_version[:12]} "
                f"(now {current[:12]}); re-read and retry"
            )


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class InMemoryFileStore(FileStore):
    """Dict-backed store; the version is a write counter."""

    def __init__(self, files: Optional[dict[str, str]] = None) -> None:
        self._files: dict[str, str] = dict(files or {})
        self._version = 0
        self._history: list[ChangeRecord] = []

    def snapshot(self) -> ProjectSnapshot:
        return ProjectSnapshot(files=dict(self._files), version=str(self._version))

    def apply_changes(self, changes, reason, conversation_id=None,
                      expected_version=None) -> None:
        self._check_version(expected_version)

        updated = dict(self._files)
        for change in changes:
            if change.change_type == "delete":
                updated.pop(change.path, None)
            else:
                updated[change.path] = change.new_content

        self._files = updated
        self._version += 1
        stamp = _now()
        self._history.extend(
            ChangeRecord(c.path, c.change_type, reason, conversation_id, stamp)
            for c in changes
        )
        logger.debug("[Store] Applied %d changes in memory (%s)", len(changes), reason)

    def history(self) -> list[ChangeRecord]:
        return list(self._history)


# ---------------------------------------------------------------------------
# Directory store
# ---------------------------------------------------------------------------

class DirectoryFileStore(FileStore):
    """A project directory on disk.

    Paths are POSIX-style and relative to *root*.  Hidden directories and
    build/dependency folders are not part of the file set.  Change
    provenance is appended to ``<root>/<state_dir>/file_changes.jsonl``.
    """

    def __init__(self, root: str, state_dir: str = ".surgical") -> None:
        self.root = os.path.abspath(root)
        self._history_path = os.path.join(self.root, state_dir, "file_changes.jsonl")

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def snapshot(self) -> ProjectSnapshot:
        files: dict[str, str] = {}
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(
                d for d in dirnames
                if not d.startswith(".") and d not in _SKIP_DIRS
            )
            for name in sorted(filenames):
                if name.startswith("."):
                    continue
                full = os.path.join(dirpath, name)
                rel = os.path.relpath(full, self.root).replace(os.sep, "/")
                try:
                    with open(full, "r", encoding="utf-8", errors="replace",
                              newline="") as f:
                        files[rel] = f.read()
                except OSError as exc:
                    logger.warning("[Store] Cannot read %s: %s", rel, exc)
        return ProjectSnapshot(files=files, version=self._compute_version(files))

    @staticmethod
    def _compute_version(files: dict[str, str]) -> str:
        digest = hashlib.sha256()
        for path in sorted(files):
            digest.update(path.encode("utf-8"))
            digest.update(b"\0")
            digest.update(files[path].encode("utf-8"))
            digest.update(b"\0")
        return digest.hexdigest()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def apply_changes(self, changes, reason, conversation_id=None,
                      expected_version=None) -> None:
        self._check_version(expected_version)

        # path -> previous content (None if the file did not exist)
        originals: dict[str, Optional[str]] = {}
        try:
            for change in changes:
                abs_path = self._resolve(change.path)
                originals[change.path] = self._read_or_none(abs_path)
                if change.change_type == "delete":
                    if os.path.exists(abs_path):
                        os.remove(abs_path)
                else:
                    self._safe_write(abs_path, change.new_content)
        except (OSError, ApplyError) as exc:
            logger.error(
                "[Store] Write failed, rolling back %d files: %s",
                len(originals), exc,
            )
            self._restore(originals)
            if isinstance(exc, ApplyError):
                raise
            raise ApplyError(f"Write failed: {exc}") from exc

        self._record_history(changes, reason, conversation_id)
        logger.info("[Store] Wrote %d changes to %s (%s)", len(changes), self.root, reason)

    def _record_history(self, changes, reason, conversation_id) -> None:
        stamp = _now()
        try:
            os.makedirs(os.path.dirname(self._history_path), exist_ok=True)
            with open(self._history_path, "a", encoding="utf-8") as f:
                for change in changes:
                    f.write(json.dumps({
                        "path": change.path,
                        "change_type": change.change_type,
                        "reason": reason,
                        "conversation_id": conversation_id,
                        "timestamp": stamp,
                    }) + "\n")
        except OSError as exc:
            logger.warning("[Store] Failed to record change history: %s", exc)

    def history(self) -> list[ChangeRecord]:
        if not os.path.isfile(self._history_path):
            return []
        records: list[ChangeRecord] = []
        with open(self._history_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    e = json.loads(line)
                except json.JSONDecodeError:
                    continue
                records.append(ChangeRecord(
                    path=e.get("path", ""),
                    change_type=e.get("change_type", ""),
                    reason=e.get("reason", ""),
                    conversation_id=e.get("conversation_id"),
                    timestamp=e.get("timestamp", ""),
                ))
        return records

    def _resolve(self, rel_path: str) -> str:
        """Map a project path to an absolute path inside the root."""
        abs_path = os.path.abspath(os.path.join(self.root, rel_path))
        if os.path.isabs(rel_path) or not abs_path.startswith(self.root + os.sep):
            raise ApplyError(f"Path escapes project root: {rel_path}")
        return abs_path

    @staticmethod
    def _read_or_none(abs_path: str) -> Optional[str]:
        if not os.path.isfile(abs_path):
            return None
        with open(abs_path, "r", encoding="utf-8", errors="replace", newline="") as f:
            return f.read()

    def _restore(self, originals: dict[str, Optional[str]]) -> None:
        for rel_path, content in originals.items():
            abs_path = os.path.join(self.root, rel_path)
            try:
                if content is None:
                    if os.path.exists(abs_path):
                        os.remove(abs_path)
                else:
                    self._safe_write(abs_path, content)
            except OSError as exc:
                logger.error("[Store] Rollback failed for %s: %s", rel_path, exc)

    @staticmethod
    def _safe_write(abs_path: str, content: str) -> None:
        """Write via temp file + rename."""
        os.makedirs(os.path.dirname(abs_path), exist_ok=True)
        tmp_path = abs_path + ".surgical_tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            if os.path.exists(abs_path):
                shutil.move(tmp_path, abs_path)
            else:
                os.rename(tmp_path, abs_path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
