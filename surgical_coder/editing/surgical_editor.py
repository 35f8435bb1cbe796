"""
Surgical editor — applies line-addressed edits to an in-memory file set.

All line numbers in a batch refer to the file *before* the batch.  Edits
for one file are applied bottom-up (highest reference line first) so an
applied edit never shifts lines that a pending edit still points at.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Iterable, Sequence

from ..errors import EditRangeError, MissingFileError, OverlappingEditsError
from .response_parser import LineEdit

logger = logging.getLogger(__name__)

_PREVIEW_HEAD_LINES = 10


def count_lines(content: str) -> int:
    """Number of lines as seen by line-addressed edits (``split("\\n")``)."""
    return len(content.split("\n"))


class SurgicalEditor:
    """Apply, pre-flight and summarize surgical edits."""

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    def apply_edits(
        self,
        current_files: dict[str, str],
        edits: Sequence[LineEdit],
    ) -> dict[str, str]:
        """Return a new file set with *edits* applied.

        *current_files* is never mutated.  Every edit group (all edits for
        one file) is computed completely before it is stored, so a failing
        group never leaves a half-edited file behind.

        Raises
        ------
        MissingFileError
            A non-create edit targets a file that does not exist.
        EditRangeError
            A line reference lies outside the file.
        OverlappingEditsError
            Two edits of one file touch the same lines.
        """
        updated = dict(current_files)

        for file_path, file_edits in self._group_by_file(edits).items():
            has_create = any(e.action == "create" for e in file_edits)
            if file_path not in updated and not has_create:
                raise MissingFileError(
                    f"File not found: {file_path}. "
                    f"Cannot apply edits to non-existent file.",
                    field="file",
                )

            base = self._base_content(updated.get(file_path, ""), file_edits)
            overlaps = self._find_overlaps(file_edits)
            if overlaps:
                raise OverlappingEditsError(
                    f"Overlapping edits in {file_path}: {'; '.join(overlaps)}",
                    field="edits",
                )

            result = updated.get(file_path, "")
            for edit in self._sort_for_application(file_edits):
                result = self._apply_single_edit(result, edit)

            updated[file_path] = result
            logger.debug(
                "[Surgical] Applied %d edits to %s (%d -> %d lines)",
                len(file_edits), file_path,
                count_lines(base), count_lines(result),
            )

        return updated

    @staticmethod
    def _group_by_file(edits: Iterable[LineEdit]) -> "OrderedDict[str, list[LineEdit]]":
        grouped: OrderedDict[str, list[LineEdit]] = OrderedDict()
        for edit in edits:
            grouped.setdefault(edit.file, []).append(edit)
        return grouped

    @staticmethod
    def _sort_for_application(edits: list[LineEdit]) -> list[LineEdit]:
        """Creates first (in supplied order), then everything else bottom-up.

        Ties (several inserts at one point) are applied in reverse supplied
        order so the inserted blocks end up in supplied order.
        """
        creates = [e for e in edits if e.action == "create"]
        others = sorted(
            ((i, e) for i, e in enumerate(edits) if e.action != "create"),
            key=lambda pair: (pair[1].reference_line, pair[0]),
            reverse=True,
        )
        return creates + [e for _, e in others]

    @staticmethod
    def _base_content(current: str, edits: list[LineEdit]) -> str:
        """Content that line numbers of non-create edits refer to."""
        creates = [e for e in edits if e.action == "create"]
        return creates[-1].content if creates else current

    def _apply_single_edit(self, content: str, edit: LineEdit) -> str:
        lines = content.split("\n")

        if edit.action == "create":
            return edit.content

        if edit.action in ("replace", "delete"):
            self._check_range(edit, len(lines))
            before = lines[:edit.start_line - 1]
            after = lines[edit.end_line:]
            middle = edit.content.split("\n") if edit.action == "replace" else []
            return "\n".join(before + middle + after)

        if edit.action == "insert":
            self._check_insert_point(edit, len(lines))
            pos = edit.insert_after_line
            return "\n".join(lines[:pos] + edit.content.split("\n") + lines[pos:])

        raise ValueError(f"Unknown edit action: {edit.action}")

    @staticmethod
    def _check_range(edit: LineEdit, line_count: int) -> None:
        start, end = edit.start_line, edit.end_line
        if start is None or end is None:
            raise EditRangeError(
                f"startLine and endLine required for {edit.action} action in {edit.file}",
                field="startLine",
            )
        if start < 1 or start > line_count:
            raise EditRangeError(
                f"Invalid startLine {start} for {edit.file} with {line_count} lines",
                field="startLine",
            )
        if end < start or end > line_count:
            raise EditRangeError(
                f"Invalid endLine {end} for {edit.file} "
                f"(must be >= {start} and <= {line_count})",
                field="endLine",
            )

    @staticmethod
    def _check_insert_point(edit: LineEdit, line_count: int) -> None:
        pos = edit.insert_after_line
        if pos is None:
            raise EditRangeError(
                f"insertAfterLine required for insert action in {edit.file}",
                field="insertAfterLine",
            )
        if pos < 0 or pos > line_count:
            raise EditRangeError(
                f"Invalid insertAfterLine {pos} for {edit.file} with {line_count} lines",
                field="insertAfterLine",
            )

    @staticmethod
    def _find_overlaps(edits: list[LineEdit]) -> list[str]:
        """Describe every pair of edits in one file that touch the same lines."""
        ranges = [
            e for e in edits
            if e.action in ("replace", "delete")
            and e.start_line is not None and e.end_line is not None
        ]
        inserts = [
            e for e in edits
            if e.action == "insert" and e.insert_after_line is not None
        ]
        problems: list[str] = []

        for i, a in enumerate(ranges):
            for b in ranges[i + 1:]:
                if a.start_line <= b.end_line and b.start_line <= a.end_line:
                    problems.append(
                        f"{a.action} {a.line_label} overlaps {b.action} {b.line_label}"
                    )

        # An insertion point strictly inside a range has no defined position
        for ins in inserts:
            for rng in ranges:
                if rng.start_line <= ins.insert_after_line < rng.end_line:
                    problems.append(
                        f"insert {ins.line_label} falls inside {rng.action} {rng.line_label}"
                    )

        return problems

    # ------------------------------------------------------------------
    # Pre-flight
    # ------------------------------------------------------------------

    def validate_edits(
        self,
        edits: Sequence[LineEdit],
        current_files: dict[str, str],
    ) -> list[str]:
        """Return human-readable problems with *edits*; never raises."""
        errors: list[str] = []
        grouped = self._group_by_file(edits)

        for file_path, file_edits in grouped.items():
            has_create = any(e.action == "create" for e in file_edits)
            exists = file_path in current_files or has_create
            base = self._base_content(current_files.get(file_path, ""), file_edits)
            line_count = count_lines(base)

            for edit in file_edits:
                if edit.action == "create":
                    continue
                if not exists:
                    errors.append(
                        f"File {file_path} does not exist. "
                        f"Cannot apply {edit.action} action."
                    )
                    continue

                if edit.action in ("replace", "delete"):
                    if edit.start_line is None or edit.end_line is None:
                        errors.append(
                            f"{file_path}: {edit.action} action requires startLine and endLine"
                        )
                        continue
                    if edit.start_line < 1:
                        errors.append(
                            f"{file_path}: invalid startLine {edit.start_line} (must be >= 1)"
                        )
                    if edit.end_line < edit.start_line:
                        errors.append(
                            f"{file_path}: invalid endLine {edit.end_line} "
                            f"(must be >= startLine {edit.start_line})"
                        )
                    if edit.start_line > line_count:
                        errors.append(
                            f"{file_path}: startLine {edit.start_line} exceeds "
                            f"file length ({line_count} lines)"
                        )
                    if edit.end_line > line_count:
                        errors.append(
                            f"{file_path}: endLine {edit.end_line} exceeds "
                            f"file length ({line_count} lines)"
                        )

                elif edit.action == "insert":
                    if edit.insert_after_line is None:
                        errors.append(f"{file_path}: insert action requires insertAfterLine")
                        continue
                    if edit.insert_after_line < 0:
                        errors.append(
                            f"{file_path}: invalid insertAfterLine "
                            f"{edit.insert_after_line} (must be >= 0)"
                        )
                    if edit.insert_after_line > line_count:
                        errors.append(
                            f"{file_path}: insertAfterLine {edit.insert_after_line} "
                            f"exceeds file length ({line_count} lines)"
                        )

            if exists:
                errors.extend(
                    f"{file_path}: {problem}" for problem in self._find_overlaps(file_edits)
                )

        return errors

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def generate_diff_summary(self, edits: Sequence[LineEdit]) -> str:
        """Grouped listing of edits: file, action, lines, description."""
        summary: list[str] = []
        for file_path, file_edits in self._group_by_file(edits).items():
            summary.append(f"\n**{file_path}**")
            for edit in file_edits:
                summary.append(
                    f"  - {edit.action.upper()} {edit.line_label}: {edit.description}"
                )
        return "\n".join(summary)

    def generate_before_after_preview(
        self,
        edits: Sequence[LineEdit],
        current_files: dict[str, str],
    ) -> str:
        """Markdown preview of what each edit removes and adds."""
        previews: list[str] = []

        for file_path, file_edits in self._group_by_file(edits).items():
            previews.append(f"\n### {file_path}")
            lines = current_files.get(file_path, "").split("\n")

            for edit in file_edits:
                if edit.action == "create":
                    new_lines = edit.content.split("\n")
                    previews.append(f"\n**Created new file** ({len(new_lines)} lines)")
                    previews.append("```")
                    previews.extend(new_lines[:_PREVIEW_HEAD_LINES])
                    if len(new_lines) > _PREVIEW_HEAD_LINES:
                        previews.append(
                            f"... ({len(new_lines) - _PREVIEW_HEAD_LINES} more lines)"
                        )
                    previews.append("```")
                elif edit.action == "replace":
                    old_lines = lines[edit.start_line - 1:edit.end_line]
                    previews.append(f"\n**Lines {edit.start_line}-{edit.end_line}:**")
                    previews.append("```diff")
                    previews.extend(f"- {line}" for line in old_lines)
                    previews.extend(f"+ {line}" for line in edit.content.split("\n"))
                    previews.append("```")
                elif edit.action == "insert":
                    previews.append(f"\n**Inserted after line {edit.insert_after_line}:**")
                    previews.append("```")
                    previews.append(edit.content)
                    previews.append("```")
                elif edit.action == "delete":
                    previews.append(
                        f"\n**Deleted lines {edit.start_line}-{edit.end_line}**"
                    )

        return "\n".join(previews)
