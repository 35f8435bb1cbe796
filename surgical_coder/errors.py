"""
Error taxonomy for the edit pipeline.

Parse and validation errors are raised to the caller.  Apply-time errors
are converted into an :class:`~surgical_coder.editing.change_applicator.ApplyResult`
by the applicator, and rollback errors never leave ``rollback()``.
"""

from __future__ import annotations

from typing import Optional


class EditPipelineError(Exception):
    """Base class for all edit pipeline failures."""


class ParseError(EditPipelineError):
    """Raw LLM text could not be decoded into any structured shape."""

    def __init__(
        self,
        message: str,
        attempt_errors: Optional[list[Exception]] = None,
        input_length: int = 0,
    ) -> None:
        self.attempt_errors = list(attempt_errors or [])
        self.input_length = input_length
        details = "; ".join(
            f"attempt {i + 1}: {exc}" for i, exc in enumerate(self.attempt_errors)
        )
        full = f"{message} (input length {input_length})"
        if details:
            full = f"{full} [{details}]"
        super().__init__(full)


class ValidationError(EditPipelineError):
    """Decoded but schema-invalid input."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        edit_index: Optional[int] = None,
    ) -> None:
        self.field = field
        self.edit_index = edit_index
        super().__init__(message)


class PlaceholderError(ValidationError):
    """Generated file content contains a truncation marker."""

    def __init__(self, file_path: str, marker: str = "") -> None:
        self.file_path = file_path
        self.marker = marker
        super().__init__(
            f"File {file_path} contains incomplete code with placeholders "
            f"({marker!r}). Complete file content is required.",
            field="files",
        )


class EditRangeError(ValidationError):
    """A line reference lies outside the target file."""


class MissingFileError(ValidationError):
    """A non-create edit targets a file that does not exist."""


class OverlappingEditsError(ValidationError):
    """Two edits in one file touch the same lines."""


class ApplyError(EditPipelineError):
    """Writing to the file store failed after validation passed."""


class StaleSnapshotError(ApplyError):
    """The store changed after the snapshot this change was diffed against."""


class RollbackError(EditPipelineError):
    """A backup could not be found or restored."""
