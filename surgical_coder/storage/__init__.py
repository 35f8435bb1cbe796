"""Project file stores and backup stores."""

from .file_store import (
    FileStore, InMemoryFileStore, DirectoryFileStore,
    FileChange, ProjectSnapshot, ChangeRecord,
)
from .backup_store import (
    BackupStore, InMemoryBackupStore, SQLiteBackupStore, BackupRecord,
)

__all__ = [
    "FileStore", "InMemoryFileStore", "DirectoryFileStore",
    "FileChange", "ProjectSnapshot", "ChangeRecord",
    "BackupStore", "InMemoryBackupStore", "SQLiteBackupStore", "BackupRecord",
]
