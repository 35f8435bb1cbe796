"""
surgical_coder — apply LLM-generated code changes safely.

Public API for library usage::

    from surgical_coder import ChangeApplicator, InMemoryFileStore, InMemoryBackupStore

    applicator = ChangeApplicator(
        InMemoryFileStore(), InMemoryBackupStore(), project_id="demo", user_id="me",
    )
    result = applicator.apply_changes({"index.html": "<html></html>"}, "Initial page")
    print(result.success, result.applied_files)
"""

from .editing import (
    ResponseParser, SurgicalEditor, ChangeApplicator, ApplyResult, LineEdit,
    ParsedAIResponse, SurgicalResponse,
)
from .storage import (
    InMemoryFileStore, DirectoryFileStore, InMemoryBackupStore, SQLiteBackupStore,
)
from .handler import SurgicalEditHandler, HandlerResult

__all__ = [
    "ResponseParser", "SurgicalEditor", "ChangeApplicator", "ApplyResult", "LineEdit",
    "ParsedAIResponse", "SurgicalResponse",
    "InMemoryFileStore", "DirectoryFileStore", "InMemoryBackupStore", "SQLiteBackupStore",
    "SurgicalEditHandler", "HandlerResult",
]
