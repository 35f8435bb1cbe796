"""Tests for the ResponseParser."""

import json

import pytest

from surgical_coder.editing.response_parser import (
    LineEdit, ParsedAIResponse, RawCandidate, ResponseParser, SurgicalResponse,
)
from surgical_coder.errors import ParseError, PlaceholderError, ValidationError


@pytest.fixture
def parser():
    return ResponseParser()


def _full(files=None, **extra):
    data = {"thought": "Think", "messageToUser": "Done", "files": files or {}}
    data.update(extra)
    return json.dumps(data)


class TestExtraction:
    def test_json_fence_with_surrounding_prose(self, parser):
        raw = "Here you go:\n```json\n" + _full({"a.js": "let a = 1;"}) + "\n```\nEnjoy!"
        result = parser.parse(raw, "full")

        assert isinstance(result, ParsedAIResponse)
        assert result.files == {"a.js": "let a = 1;"}
        assert result.source == "direct"

    def test_bare_fence(self, parser):
        raw = "```\n" + _full({"b.ts": "export {};"}) + "\n```"
        assert parser.parse(raw).files == {"b.ts": "export {};"}

    def test_whole_input_when_no_fence(self, parser):
        assert parser.extract_json_text('  {"a": 1}  ') == '{"a": 1}'

    def test_nested_fence_extends_to_last_closing_fence(self, parser):
        raw = '```json\n{"x": "```inner```"}\n```'
        assert parser.extract_json_text(raw) == '{"x": "```inner```"}'

    def test_trailing_fenced_block_is_ignored(self, parser):
        payload = _full({"a.js": "let a = 1;"})
        raw = "```json\n" + payload + "\n```\n\nThen run:\n```bash\nnpm test\n```"

        assert parser.extract_json_text(raw) == payload
        result = parser.parse(raw)
        assert result.source == "direct"
        assert result.files == {"a.js": "let a = 1;"}

    def test_trailing_fenced_block_does_not_skip_tool_check(self, parser):
        raw = ("```json\n" + _full(tool="delete_everything", arguments={})
               + "\n```\n```bash\nnpm test\n```")
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(raw)
        assert exc_info.value.field == "tool"

    def test_candidate_payloads_first_fence_then_widest(self, parser):
        raw = '```json\n{"a": 1}\n```\ntext\n```\nmore\n```'
        assert parser.candidate_payloads(raw) == [
            '{"a": 1}',
            '{"a": 1}\n```\ntext\n```\nmore',
        ]


class TestRecoveryLadder:
    def test_raw_newlines_in_strings_are_sanitized(self, parser):
        raw = '{"thought": "t", "messageToUser": "m", "files": {"a.js": "line1\nline2"}}'
        result = parser.parse(raw)

        assert result.source == "sanitized"
        assert result.files["a.js"] == "line1\nline2"

    def test_embedded_code_fence_survives(self, parser):
        raw = (
            "```json\n"
            '{"thought": "t", "messageToUser": "m", '
            '"files": {"README.md": "# Title\n```js\nconst a = 1;\n```\n"}}\n'
            "```"
        )
        result = parser.parse(raw)

        assert result.source == "sanitized"
        assert result.files["README.md"] == "# Title\n```js\nconst a = 1;\n```\n"

    def test_partial_recovery_from_truncated_json(self, parser):
        raw = (
            r'{"thought": "Plan it", "messageToUser": "Done", '
            r'"plan": ["first", "second"], "requiresConfirmation": true, '
            r'"files": {"index.html": "<p>\"hi\"</p>", "app.js": "x\ny" '
        )
        result = parser.parse(raw)

        assert result.source == "partial"
        assert result.thought == "Plan it"
        assert result.message_to_user == "Done"
        assert result.plan == ("first", "second")
        assert result.requires_confirmation is True
        assert result.files == {"index.html": '<p>"hi"</p>', "app.js": "x\ny"}

    def test_total_failure_reports_both_attempts(self, parser):
        raw = "this is not json at all"
        with pytest.raises(ParseError) as exc_info:
            parser.parse(raw)

        err = exc_info.value
        assert len(err.attempt_errors) == 2
        assert err.input_length == len(raw)

    def test_decode_returns_untrusted_candidate(self, parser):
        candidate = parser.decode_full('{"anything": true}')
        assert isinstance(candidate, RawCandidate)
        assert candidate.data == {"anything": True}
        with pytest.raises(ValidationError):
            parser.validate_full(candidate)


class TestFullValidation:
    def test_missing_thought(self, parser):
        raw = json.dumps({"messageToUser": "m", "files": {}})
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(raw)
        assert exc_info.value.field == "thought"

    def test_files_must_be_object(self, parser):
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(json.dumps({"thought": "t", "messageToUser": "m", "files": ["a.js"]}))
        assert exc_info.value.field == "files"

    def test_plan_must_be_array(self, parser):
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(_full(plan="do it"))
        assert exc_info.value.field == "plan"

    def test_recognized_tool_accepted(self, parser):
        result = parser.parse(_full(tool="generate_code", arguments={}))
        assert result.message_to_user == "Done"

    def test_unknown_tool_rejected(self, parser):
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(_full(tool="delete_everything", arguments={}))
        assert exc_info.value.field == "tool"

    def test_tool_requires_object_arguments(self, parser):
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(_full(tool="generate_code", arguments="x"))
        assert exc_info.value.field == "arguments"

    def test_configured_tool_name(self):
        parser = ResponseParser(recognized_tool="write_files")
        assert parser.parse(_full(tool="write_files", arguments={})).thought == "Think"

    def test_unknown_mode(self, parser):
        with pytest.raises(ValueError):
            parser.parse(_full(), "diff")


class TestPlaceholders:
    @pytest.mark.parametrize("content", [
        "function a() {\n  // ... rest of code\n}",
        "function a() {\n  // existing code\n}",
        "const x = 1;\n...\n",
        "<div>\n  {/* ... */}\n</div>",
        "def f():\n    # rest of the file unchanged\n",
    ])
    def test_truncated_content_rejected(self, parser, content):
        with pytest.raises(PlaceholderError) as exc_info:
            parser.parse(_full({"src/a.js": content}))
        assert exc_info.value.file_path == "src/a.js"
        assert "src/a.js" in str(exc_info.value)

    def test_spread_syntax_is_not_a_placeholder(self, parser):
        content = "const b = { ...a };\nfn(...args);\n"
        assert parser.parse(_full({"a.js": content})).files["a.js"] == content


class TestSurgical:
    def test_valid_edits(self, parser):
        raw = json.dumps({
            "thought": "1. Locate header\n2. Replace it",
            "messageToUser": "Changed",
            "edits": [
                {"file": "a.ts", "action": "replace", "startLine": 2, "endLine": 3,
                 "content": "x", "description": "swap"},
                {"file": "a.ts", "action": "insert", "insertAfterLine": 0,
                 "content": "// top", "description": "header"},
                {"file": "a.ts", "action": "delete", "startLine": 5, "endLine": 5,
                 "description": "drop"},
            ],
        })
        result = parser.parse(raw, "surgical")

        assert isinstance(result, SurgicalResponse)
        assert len(result.edits) == 3
        assert result.edits[0] == LineEdit(
            file="a.ts", action="replace", description="swap",
            content="x", start_line=2, end_line=3,
        )
        assert result.edits[1].insert_after_line == 0
        assert result.edits[2].line_label == "line 5"

    def _surgical(self, edit):
        return json.dumps({"thought": "t", "messageToUser": "m", "edits": [edit]})

    def test_invalid_action(self, parser):
        raw = self._surgical({"file": "a", "action": "rename", "description": "d"})
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(raw, "surgical")
        assert exc_info.value.edit_index == 0
        assert exc_info.value.field == "action"

    def test_replace_needs_both_bounds(self, parser):
        raw = self._surgical({"file": "a", "action": "replace", "startLine": 1,
                              "content": "x", "description": "d"})
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(raw, "surgical")
        assert exc_info.value.field == "endLine"

    def test_boolean_is_not_a_line_number(self, parser):
        raw = self._surgical({"file": "a", "action": "insert", "insertAfterLine": True,
                              "content": "x", "description": "d"})
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(raw, "surgical")
        assert exc_info.value.field == "insertAfterLine"

    def test_insert_needs_content(self, parser):
        raw = self._surgical({"file": "a", "action": "insert", "insertAfterLine": 1,
                              "description": "d"})
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(raw, "surgical")
        assert exc_info.value.field == "content"

    def test_missing_description(self, parser):
        raw = self._surgical({"file": "a", "action": "delete", "startLine": 1, "endLine": 1})
        with pytest.raises(ValidationError) as exc_info:
            parser.parse(raw, "surgical")
        assert exc_info.value.field == "description"

    def test_edits_must_be_list(self, parser):
        raw = json.dumps({"thought": "t", "messageToUser": "m", "edits": {}})
        with pytest.raises(ValidationError):
            parser.parse(raw, "surgical")

    def test_malformed_json_is_not_recovered(self, parser):
        raw = '{"thought": "t", "messageToUser": "m", "edits": ['
        with pytest.raises(ParseError):
            parser.parse(raw, "surgical")


def test_extract_thinking_steps():
    steps = ResponseParser.extract_thinking_steps("1. Find it\n\n2. Fix it\nVerify")
    assert steps == ["Find it", "Fix it", "Verify"]


def test_rest_of_file_unchanged_comment_rejected(parser):
    raw = _full({"a.ts": "import x from 'x';\n// rest of file unchanged\n"})
    with pytest.raises(PlaceholderError) as exc_info:
        parser.parse(raw)
    assert "a.ts" in str(exc_info.value)


def test_surgical_response_followed_by_shell_block(parser):
    payload = json.dumps({
        "thought": "t",
        "messageToUser": "m",
        "edits": [{"file": "a.ts", "action": "delete", "startLine": 1, "endLine": 1,
                   "description": "drop"}],
    })
    raw = "```json\n" + payload + "\n```\n\nThen run:\n```bash\nnpm test\n```"

    result = parser.parse(raw, "surgical")
    assert result.edits[0].line_label == "line 1"


def test_partial_recovery_decodes_unicode_escapes(parser):
    raw = (
        r'{"thought": "caf\u00e9 plan", "messageToUser": "Done", '
        r'"files": {"a.html": "<p>caf\u00e9</p>\f", "b.js": "a\\b" '
    )
    result = parser.parse(raw)

    assert result.source == "partial"
    assert result.thought == "café plan"
    assert result.files == {"a.html": "<p>café</p>\f", "b.js": "a\\b"}


class TestLegitimateComments:
    @pytest.mark.parametrize("content", [
        "// returns the array unchanged when empty\nexport const f = (a) => a;\n",
        "# keep the input unchanged\nx = 1\n",
        "/* values pass through unchanged */\nconst id = (v) => v;\n",
    ])
    def test_prose_mentioning_unchanged_is_accepted(self, parser, content):
        assert parser.parse(_full({"a.ts": content})).files["a.ts"] == content

    def test_markdown_heading_is_not_a_comment(self, parser):
        content = "# Existing code\n\nThe modules below predate the rewrite.\n"
        assert parser.parse(_full({"README.md": content})).files["README.md"] == content

    @pytest.mark.parametrize("content", [
        "const a = 1;\n// unchanged\n",
        "const a = 1;\n// file unchanged\n",
        "const a = 1;\n/* ... code remains unchanged */\n",
    ])
    def test_marker_comments_still_rejected(self, parser, content):
        with pytest.raises(PlaceholderError):
            parser.parse(_full({"a.ts": content}))

    def test_markdown_html_comment_marker_rejected(self, parser):
        with pytest.raises(PlaceholderError):
            parser.parse(_full({"README.md": "# Title\n<!-- rest of file -->\n"}))
