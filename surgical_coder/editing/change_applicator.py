"""
Change applicator — snapshot, back up, diff, validate, write and log a
change set against one project, with rollback to any earlier backup.

Multi-file change sets are all-or-nothing: a syntax failure in any file
aborts the whole batch before anything is written, and the store writes
the batch as one logical operation.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..errors import ApplyError, RollbackError, ValidationError
from ..storage.backup_store import BackupRecord, BackupStore
from ..storage.file_store import FileChange, FileStore, ProjectSnapshot
from .metrics import log_learning_event
from .response_parser import LineEdit
from .surgical_editor import SurgicalEditor
from .syntax import DEFAULT_CODE_EXTENSIONS, check_file, is_code_file

logger = logging.getLogger(__name__)

PRE_ROLLBACK_REASON = "Pre-rollback snapshot"
ROLLBACK_REASON = "Rollback to backup"


@dataclass
class ApplyResult:
    """Outcome of one apply call."""
    success: bool = False
    error: str = ""
    applied_files: list[str] = field(default_factory=list)
    backup_id: Optional[str] = None
    changes: list[FileChange] = field(default_factory=list)


def determine_changes(
    current: dict[str, str],
    new: dict[str, str],
    prune_missing: bool = False,
) -> list[FileChange]:
    """Classify every path of *new* against *current*.

    * absent from *current* → ``create``
    * empty content over an existing file → ``delete``
    * different content → ``update``
    * identical content → no change

    With *prune_missing*, *new* is an exact file set (a backup being
    restored): paths in *current* that are absent from *new* are deleted,
    and empty content is kept as an empty file rather than a deletion.
    """
    changes: list[FileChange] = []

    for path, content in new.items():
        if path not in current:
            changes.append(FileChange(path, "", content, "create"))
        elif content == "" and current[path] != "" and not prune_missing:
            changes.append(FileChange(path, current[path], "", "delete"))
        elif current[path] != content:
            changes.append(FileChange(path, current[path], content, "update"))

    if prune_missing:
        for path, content in current.items():
            if path not in new:
                changes.append(FileChange(path, content, "", "delete"))

    return changes


class ChangeApplicator:
    """Apply change sets for one project and one user.

    Parameters
    ----------
    file_store:
        Where the project's files live.
    backup_store:
        Where pre-change snapshots are recorded.
    project_id, user_id:
        Stamped onto every backup and learning event.
    config:
        Optional :class:`~surgical_coder.config.Config`; supplies the code
        extensions and syntax-check mode.
    event_log_path:
        JSONL file for learning events; ``None`` disables event logging.
    """

    def __init__(
        self,
        file_store: FileStore,
        backup_store: BackupStore,
        project_id: str,
        user_id: str,
        *,
        config=None,
        event_log_path: Optional[str] = None,
    ) -> None:
        self.file_store = file_store
        self.backup_store = backup_store
        self.project_id = project_id
        self.user_id = user_id
        self.event_log_path = event_log_path
        self.editor = SurgicalEditor()

        if config is not None:
            self.code_extensions = tuple(config.CODE_EXTENSIONS)
            self.syntax_check = config.SYNTAX_CHECK
        else:
            self.code_extensions = DEFAULT_CODE_EXTENSIONS
            self.syntax_check = "brackets"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def determine_changes(
        self,
        current: dict[str, str],
        new: dict[str, str],
        prune_missing: bool = False,
    ) -> list[FileChange]:
        return determine_changes(current, new, prune_missing)

    def apply_changes(
        self,
        new_files: dict[str, str],
        reason: str,
        conversation_id: Optional[str] = None,
    ) -> ApplyResult:
        """Apply full-file contents in *new_files* to the project."""
        try:
            snapshot = self._snapshot()
        except ApplyError as exc:
            return ApplyResult(success=False, error=str(exc))
        return self._apply(snapshot, new_files, reason, conversation_id)

    def apply_edits(
        self,
        edits: Sequence[LineEdit],
        reason: str,
        conversation_id: Optional[str] = None,
    ) -> ApplyResult:
        """Apply surgical edits to the project.

        Edits are checked against the snapshot first; range and overlap
        problems are reported as a failed result without touching anything.
        """
        try:
            snapshot = self._snapshot()
        except ApplyError as exc:
            return ApplyResult(success=False, error=str(exc))

        problems = self.editor.validate_edits(edits, snapshot.files)
        if problems:
            logger.warning("[Applicator] Edit validation failed: %s", "; ".join(problems))
            return ApplyResult(
                success=False,
                error="Edit validation failed:\n" + "\n".join(problems),
            )

        try:
            updated = self.editor.apply_edits(snapshot.files, edits)
        except ValidationError as exc:
            logger.warning("[Applicator] Could not apply edits: %s", exc)
            return ApplyResult(success=False, error=str(exc))

        touched = {e.file for e in edits}
        new_files = {path: updated[path] for path in touched if path in updated}
        return self._apply(snapshot, new_files, reason, conversation_id)

    def rollback(self, backup_id: str) -> bool:
        """Restore the project to the state recorded in *backup_id*.

        The live state is backed up first, so a rollback can itself be
        rolled back.  Returns False (and logs) on any failure.
        """
        try:
            record = self._load_backup(backup_id)
            if record is None:
                raise RollbackError(f"Backup not found: {backup_id}")
            if record.project_id != self.project_id:
                raise RollbackError(
                    f"Backup {backup_id} belongs to project {record.project_id}"
                )

            snapshot = self._snapshot()
            self._backup(snapshot, PRE_ROLLBACK_REASON)

            changes = determine_changes(
                snapshot.files, record.backup_data, prune_missing=True,
            )
            if changes:
                self.file_store.apply_changes(
                    changes, ROLLBACK_REASON, expected_version=snapshot.version,
                )
        except (RollbackError, ApplyError, OSError) as exc:
            logger.error("[Applicator] Rollback to %s failed: %s", backup_id, exc)
            return False

        logger.info(
            "[Applicator] Rolled back %s to backup %s (%d changes)",
            self.project_id, backup_id, len(changes),
        )
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(
        self,
        snapshot: ProjectSnapshot,
        new_files: dict[str, str],
        reason: str,
        conversation_id: Optional[str],
    ) -> ApplyResult:
        try:
            backup_id = self._backup(snapshot, reason)
        except (ApplyError, OSError) as exc:
            logger.error("[Applicator] Backup failed, aborting: %s", exc)
            return ApplyResult(success=False, error=f"Backup failed: {exc}")

        changes = determine_changes(snapshot.files, new_files)
        if not changes:
            logger.info("[Applicator] No changes to apply (%s)", reason)
            return ApplyResult(success=True, backup_id=backup_id)

        syntax_problems = self._validate_syntax(changes)
        if syntax_problems:
            logger.warning(
                "[Applicator] Syntax validation failed for %d files",
                len(syntax_problems),
            )
            return ApplyResult(
                success=False,
                error="Syntax validation failed:\n" + "\n".join(syntax_problems),
                backup_id=backup_id,
                changes=changes,
            )

        try:
            self.file_store.apply_changes(
                changes, reason, conversation_id,
                expected_version=snapshot.version,
            )
        except (ApplyError, OSError) as exc:
            logger.error("[Applicator] Write failed: %s", exc)
            return ApplyResult(
                success=False,
                error=f"Failed to apply changes: {exc}",
                backup_id=backup_id,
                changes=changes,
            )

        self._log_event(changes, reason, conversation_id)
        applied = [c.path for c in changes]
        logger.info("[Applicator] Applied %d changes (%s)", len(applied), reason)
        return ApplyResult(
            success=True,
            applied_files=applied,
            backup_id=backup_id,
            changes=changes,
        )

    def _snapshot(self) -> ProjectSnapshot:
        try:
            return self.file_store.snapshot()
        except Exception as exc:
            logger.error("[Applicator] Cannot read project %s: %s", self.project_id, exc)
            raise ApplyError(f"Failed to read project: {exc}") from exc

    def _load_backup(self, backup_id: str) -> Optional[BackupRecord]:
        try:
            return self.backup_store.get(backup_id)
        except Exception as exc:
            raise RollbackError(f"could not load backup {backup_id}: {exc}") from exc

    def _backup(self, snapshot: ProjectSnapshot, reason: str) -> str:
        record = BackupRecord(
            project_id=self.project_id,
            user_id=self.user_id,
            backup_data=dict(snapshot.files),
            reason=reason,
            file_count=len(snapshot.files),
        )
        try:
            return self.backup_store.insert(record)
        except Exception as exc:
            raise ApplyError(f"could not store backup: {exc}") from exc

    def _validate_syntax(self, changes: list[FileChange]) -> list[str]:
        if self.syntax_check == "off":
            return []
        problems: list[str] = []
        for change in changes:
            if change.change_type == "delete":
                continue
            if not is_code_file(change.path, self.code_extensions):
                continue
            issues = check_file(change.path, change.new_content, self.syntax_check)
            if issues:
                problems.append(f"{change.path}: {', '.join(issues)}")
        return problems

    def _log_event(
        self,
        changes: list[FileChange],
        reason: str,
        conversation_id: Optional[str],
    ) -> None:
        if not self.event_log_path:
            return
        log_learning_event(
            {
                "project_id": self.project_id,
                "user_id": self.user_id,
                "event_type": "code_change",
                "success": True,
                "conversation_id": conversation_id,
                "context": {
                    "reason": reason,
                    "files_changed": len(changes),
                    "change_types": dict(Counter(c.change_type for c in changes)),
                },
            },
            self.event_log_path,
        )
