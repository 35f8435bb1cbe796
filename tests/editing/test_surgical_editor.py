"""Tests for the SurgicalEditor."""

import pytest

from surgical_coder.editing.response_parser import LineEdit
from surgical_coder.editing.surgical_editor import SurgicalEditor, count_lines
from surgical_coder.errors import EditRangeError, MissingFileError, OverlappingEditsError

SAMPLE = "a\nb\nc\nd\ne"


def replace(start, end, content, file="f.ts"):
    return LineEdit(file=file, action="replace", description="r",
                    content=content, start_line=start, end_line=end)


def insert(after, content, file="f.ts"):
    return LineEdit(file=file, action="insert", description="i",
                    content=content, insert_after_line=after)


def delete(start, end, file="f.ts"):
    return LineEdit(file=file, action="delete", description="d",
                    start_line=start, end_line=end)


def create(content, file="f.ts"):
    return LineEdit(file=file, action="create", description="c", content=content)


@pytest.fixture
def editor():
    return SurgicalEditor()


class TestLineCount:
    def test_trailing_newline_counts_as_line(self):
        assert count_lines("a\nb\n") == 3

    def test_empty_file_has_one_line(self):
        assert count_lines("") == 1


class TestApplyEdits:
    def test_line_numbers_refer_to_original_file(self, editor):
        edits = [replace(2, 3, "X"), insert(4, "Y"), delete(5, 5)]
        result = editor.apply_edits({"f.ts": SAMPLE}, edits)
        assert result["f.ts"] == "a\nX\nd\nY"

    def test_supplied_order_does_not_matter(self, editor):
        edits = [delete(5, 5), replace(2, 3, "X"), insert(4, "Y")]
        result = editor.apply_edits({"f.ts": SAMPLE}, edits)
        assert result["f.ts"] == "a\nX\nd\nY"

    def test_inserts_at_same_point_keep_supplied_order(self, editor):
        result = editor.apply_edits({"f.ts": SAMPLE}, [insert(1, "P"), insert(1, "Q")])
        assert result["f.ts"] == "a\nP\nQ\nb\nc\nd\ne"

    def test_insert_at_start_and_end(self, editor):
        result = editor.apply_edits({"f.ts": SAMPLE}, [insert(0, "top"), insert(5, "end")])
        assert result["f.ts"] == "top\na\nb\nc\nd\ne\nend"

    def test_insert_right_after_replaced_range(self, editor):
        result = editor.apply_edits({"f.ts": SAMPLE}, [replace(2, 3, "X"), insert(3, "Y")])
        assert result["f.ts"] == "a\nX\nY\nd\ne"

    def test_multiline_replace(self, editor):
        result = editor.apply_edits({"f.ts": SAMPLE}, [replace(1, 1, "1\n2\n3")])
        assert result["f.ts"] == "1\n2\n3\nb\nc\nd\ne"

    def test_delete_whole_file_content(self, editor):
        result = editor.apply_edits({"f.ts": SAMPLE}, [delete(1, 5)])
        assert result["f.ts"] == ""

    def test_create_then_edit_new_file(self, editor):
        result = editor.apply_edits({}, [create("1\n2\n3", "new.ts"), insert(3, "4", "new.ts")])
        assert result["new.ts"] == "1\n2\n3\n4"

    def test_untouched_files_pass_through_and_input_is_not_mutated(self, editor):
        current = {"f.ts": SAMPLE, "other.ts": "keep"}
        result = editor.apply_edits(current, [replace(1, 1, "A")])

        assert result["other.ts"] == "keep"
        assert current == {"f.ts": SAMPLE, "other.ts": "keep"}

    def test_trailing_newline_preserved(self, editor):
        result = editor.apply_edits({"f.ts": "a\nb\n"}, [replace(1, 1, "A")])
        assert result["f.ts"] == "A\nb\n"


class TestApplyEditsRejects:
    def test_missing_file(self, editor):
        with pytest.raises(MissingFileError) as exc_info:
            editor.apply_edits({}, [replace(1, 1, "x", "ghost.ts")])
        assert "ghost.ts" in str(exc_info.value)

    @pytest.mark.parametrize("edit", [
        replace(0, 1, "x"),
        replace(6, 6, "x"),
        replace(3, 2, "x"),
        replace(4, 6, "x"),
        delete(2, 9),
        insert(-1, "x"),
        insert(6, "x"),
    ])
    def test_out_of_range(self, editor, edit):
        current = {"f.ts": SAMPLE}
        with pytest.raises(EditRangeError):
            editor.apply_edits(current, [edit])
        assert current["f.ts"] == SAMPLE

    def test_overlapping_ranges(self, editor):
        with pytest.raises(OverlappingEditsError):
            editor.apply_edits({"f.ts": SAMPLE}, [replace(1, 2, "x"), delete(2, 3)])

    def test_insert_inside_replaced_range(self, editor):
        with pytest.raises(OverlappingEditsError):
            editor.apply_edits({"f.ts": SAMPLE}, [replace(2, 4, "x"), insert(2, "y")])


class TestValidateEdits:
    def test_valid_batch_has_no_errors(self, editor):
        edits = [replace(2, 3, "X"), insert(4, "Y"), delete(5, 5)]
        assert editor.validate_edits(edits, {"f.ts": SAMPLE}) == []

    def test_missing_file(self, editor):
        errors = editor.validate_edits([delete(1, 1, "ghost.ts")], {})
        assert errors == ["File ghost.ts does not exist. Cannot apply delete action."]

    def test_bounds(self, editor):
        errors = editor.validate_edits([replace(4, 7, "x"), insert(9, "y")], {"f.ts": SAMPLE})
        assert any("endLine 7 exceeds file length (5 lines)" in e for e in errors)
        assert any("insertAfterLine 9 exceeds file length" in e for e in errors)

    def test_overlaps(self, editor):
        errors = editor.validate_edits([replace(1, 3, "x"), replace(3, 4, "y")],
                                       {"f.ts": SAMPLE})
        assert len(errors) == 1
        assert "overlaps" in errors[0]

    def test_created_file_is_measured_by_created_content(self, editor):
        edits = [create("1\n2", "n.ts"), insert(2, "3", "n.ts")]
        assert editor.validate_edits(edits, {}) == []


class TestDisplay:
    def test_diff_summary(self, editor):
        summary = editor.generate_diff_summary([
            LineEdit(file="a.ts", action="replace", description="swap",
                     content="x", start_line=2, end_line=3),
            LineEdit(file="a.ts", action="insert", description="add",
                     content="y", insert_after_line=0),
            LineEdit(file="b.ts", action="delete", description="drop",
                     start_line=4, end_line=4),
        ])
        assert summary == (
            "\n**a.ts**\n"
            "  - REPLACE lines 2-3: swap\n"
            "  - INSERT after line 0: add\n"
            "\n**b.ts**\n"
            "  - DELETE line 4: drop"
        )

    def test_before_after_preview(self, editor):
        preview = editor.generate_before_after_preview(
            [replace(2, 2, "B"), create("1\n2", "n.ts")],
            {"f.ts": SAMPLE},
        )
        assert "### f.ts" in preview
        assert "- b\n+ B" in preview
        assert "**Created new file** (2 lines)" in preview


class TestTenLineFile:
    TEN = "\n".join(f"line {i}" for i in range(1, 11))

    def test_reordering_does_not_change_result(self, editor):
        edits = [replace(10, 10, "last"), insert(5, "after five")]
        forward = editor.apply_edits({"f.ts": self.TEN}, edits)
        backward = editor.apply_edits({"f.ts": self.TEN}, list(reversed(edits)))
        assert forward == backward
        assert forward["f.ts"].split("\n")[5] == "after five"
        assert forward["f.ts"].split("\n")[-1] == "last"

    def test_replace_and_insert_on_longer_file(self, editor):
        content = "\n".join(f"line {i}" for i in range(1, 16))
        edits = [replace(10, 12, "X"), insert(5, "Y")]
        forward = editor.apply_edits({"f.ts": content}, edits)
        backward = editor.apply_edits({"f.ts": content}, list(reversed(edits)))

        assert forward == backward
        lines = forward["f.ts"].split("\n")
        assert lines[:7] == ["line 1", "line 2", "line 3", "line 4", "line 5", "Y", "line 6"]
        assert lines[10:12] == ["X", "line 13"]

    def test_line_eleven_is_out_of_range(self, editor):
        with pytest.raises(EditRangeError):
            editor.apply_edits({"f.ts": self.TEN}, [replace(11, 11, "x")])

    def test_insert_after_eleven_is_out_of_range(self, editor):
        with pytest.raises(EditRangeError):
            editor.apply_edits({"f.ts": self.TEN}, [insert(11, "x")])
