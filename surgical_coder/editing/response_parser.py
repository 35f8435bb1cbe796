"""
Response parser — turns raw LLM output into a validated change request.

Two response shapes are supported:

* **full** — the model returns complete contents for every touched file
  (:class:`ParsedAIResponse`).
* **surgical** — the model returns line-addressed edits
  (:class:`SurgicalResponse`).

Decoding and validation are separate steps: the decoding ladder only ever
produces a :class:`RawCandidate`, and only ``validate_full`` /
``validate_surgical`` turn a candidate into a trusted response.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from ..errors import ParseError, PlaceholderError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TOOL_NAME = "generate_code"

VALID_ACTIONS = ("create", "replace", "insert", "delete")
_RANGE_ACTIONS = ("replace", "delete")
_CONTENT_ACTIONS = ("create", "replace", "insert")

# ---------------------------------------------------------------------------
# Extraction patterns
# ---------------------------------------------------------------------------

# Each fence is tried with a lazy body first (the payload ends at the first
# closing fence) and then a greedy one (the payload ends at the last fence),
# which keeps code fences nested inside JSON strings intact.
_FENCES = (
    (re.compile(r"```json[^\n]*\n(.*?)```", re.DOTALL),
     re.compile(r"```json[^\n]*\n(.*)```", re.DOTALL)),
    (re.compile(r"```[ \t\r]*\n(.*?)```", re.DOTALL),
     re.compile(r"```[ \t\r]*\n(.*)```", re.DOTALL)),
)

# Fenced sub-blocks inside the payload (non-greedy, one block at a time)
_SUB_BLOCK = re.compile(r"```[\w.+#-]*\n.*?```", re.DOTALL)
_BLOCK_TOKEN = "__CODE_BLOCK_{}__"

# Partial recovery
_STRING_BODY = r'"((?:[^"\\]|\\.)*)"'
_THOUGHT = re.compile(r'"thought"\s*:\s*' + _STRING_BODY, re.DOTALL)
_MESSAGE = re.compile(r'"messageToUser"\s*:\s*' + _STRING_BODY, re.DOTALL)
_CONFIRM = re.compile(r'"requiresConfirmation"\s*:\s*(true|false)')
_PLAN = re.compile(r'"plan"\s*:\s*\[((?:[^\]"]|"(?:[^"\\]|\\.)*")*)\]', re.DOTALL)
_PLAN_ITEM = re.compile(_STRING_BODY, re.DOTALL)
_FILES_START = re.compile(r'"files"\s*:\s*\{')
_FILE_ENTRY = re.compile(r'\s*,?\s*"([^"\\\n]+)"\s*:\s*' + _STRING_BODY, re.DOTALL)

_UNESCAPES = {"n": "\n", "t": "\t", "r": "\r", '"': '"', "\\": "\\", "/": "/"}

# Truncation markers.  A bare ``...`` is only a marker when it stands alone
# on a line so that spread syntax (``...props``) is never flagged.  Marker
# phrases must open the comment text; "returns the array unchanged" is prose.
_MARKER_PHRASE = (
    r"\s*(?:\.\.\.|…)?\s*"
    r"(?:rest of\b"
    r"|existing code\b"
    r"|(?:the\s+)?(?:file|code)\s+(?:remains\s+|is\s+)?unchanged\b"
    r"|unchanged\b)"
)


def _placeholder_patterns(openers: str) -> list[re.Pattern]:
    return [
        re.compile(r"^\s*(?:" + openers + r")?\s*(?:\.\.\.|…)\s*(?:\*/\}?)?\s*$",
                   re.MULTILINE),
        re.compile(r"(?:" + openers + r")\s*(?:\.\.\.|…)"),
        re.compile(r"(?:" + openers + r")" + _MARKER_PHRASE, re.IGNORECASE),
    ]


_PLACEHOLDER_PATTERNS = _placeholder_patterns(r"//|#|/\*|\{/\*|<!--")
# In Markdown ``#`` opens a heading, not a comment
_MARKDOWN_PLACEHOLDER_PATTERNS = _placeholder_patterns(r"//|/\*|\{/\*|<!--")
_MARKDOWN_EXTENSIONS = (".md", ".markdown", ".mdx")

_STEP_NUMBER = re.compile(r"^\d+\.\s*")


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LineEdit:
    """One line-addressed modification of a single file."""
    file: str
    action: str                              # create | replace | insert | delete
    description: str
    content: str = ""
    start_line: Optional[int] = None         # 1-indexed, inclusive
    end_line: Optional[int] = None           # 1-indexed, inclusive
    insert_after_line: Optional[int] = None  # 0 = before the first line

    @property
    def reference_line(self) -> float:
        """Line the edit is anchored at, used to order bottom-up application.

        An insertion point sits between two lines, hence the half offset.
        """
        if self.action == "insert":
            return (self.insert_after_line or 0) + 0.5
        return float(self.start_line or 0)

    @property
    def line_label(self) -> str:
        if self.action in _RANGE_ACTIONS:
            if self.start_line == self.end_line:
                return f"line {self.start_line}"
            return f"lines {self.start_line}-{self.end_line}"
        if self.action == "insert":
            return f"after line {self.insert_after_line}"
        return "new file"

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "file": self.file,
            "action": self.action,
            "description": self.description,
        }
        if self.content:
            data["content"] = self.content
        if self.start_line is not None:
            data["startLine"] = self.start_line
        if self.end_line is not None:
            data["endLine"] = self.end_line
        if self.insert_after_line is not None:
            data["insertAfterLine"] = self.insert_after_line
        return data

    @classmethod
    def from_dict(cls, raw: Any, index: int) -> "LineEdit":
        """Build an edit from decoded JSON, raising ValidationError on any gap."""
        if not isinstance(raw, dict):
            raise ValidationError(
                f"Edit {index} must be an object", field="edits", edit_index=index,
            )

        for name in ("file", "action", "description"):
            value = raw.get(name)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(
                    f"Edit {index} missing required field: {name}",
                    field=name, edit_index=index,
                )

        action = raw["action"]
        if action not in VALID_ACTIONS:
            raise ValidationError(
                f"Edit {index} has invalid action: {action}",
                field="action", edit_index=index,
            )

        if action in _RANGE_ACTIONS:
            for name in ("startLine", "endLine"):
                if not _is_int(raw.get(name)):
                    raise ValidationError(
                        f"Edit {index} with action {action} requires integer {name}",
                        field=name, edit_index=index,
                    )

        if action == "insert" and not _is_int(raw.get("insertAfterLine")):
            raise ValidationError(
                f"Edit {index} with action insert requires integer insertAfterLine",
                field="insertAfterLine", edit_index=index,
            )

        content = raw.get("content", "")
        if content is None:
            content = ""
        if not isinstance(content, str):
            raise ValidationError(
                f"Edit {index} content must be a string",
                field="content", edit_index=index,
            )
        if action in _CONTENT_ACTIONS and not content:
            raise ValidationError(
                f"Edit {index} with action {action} requires content",
                field="content", edit_index=index,
            )

        return cls(
            file=raw["file"],
            action=action,
            description=raw["description"],
            content=content,
            start_line=raw.get("startLine") if action in _RANGE_ACTIONS else None,
            end_line=raw.get("endLine") if action in _RANGE_ACTIONS else None,
            insert_after_line=raw.get("insertAfterLine") if action == "insert" else None,
        )


@dataclass(frozen=True)
class RawCandidate:
    """Decoded but untrusted response object.

    ``source`` records which decoding step produced it:
    ``"direct"``, ``"sanitized"`` or ``"partial"``.
    """
    data: dict
    source: str = "direct"


@dataclass(frozen=True)
class ParsedAIResponse:
    """Validated full-file response."""
    thought: str
    message_to_user: str
    files: dict[str, str] = field(default_factory=dict)
    plan: tuple[str, ...] = ()
    requires_confirmation: bool = False
    source: str = "direct"


@dataclass(frozen=True)
class SurgicalResponse:
    """Validated surgical-edit response."""
    thought: str
    message_to_user: str
    edits: tuple[LineEdit, ...] = ()
    requires_confirmation: bool = False


# ---------------------------------------------------------------------------
# ResponseParser
# ---------------------------------------------------------------------------

class ResponseParser:
    """Parse and validate LLM responses in full-file or surgical mode."""

    def __init__(self, recognized_tool: str = DEFAULT_TOOL_NAME) -> None:
        self.recognized_tool = recognized_tool

    def parse(
        self,
        raw_text: str,
        mode: str = "full",
    ) -> Union[ParsedAIResponse, SurgicalResponse]:
        """Parse *raw_text* according to *mode* (``"full"`` or ``"surgical"``).

        Raises
        ------
        ParseError
            The text could not be decoded into a JSON object.
        ValidationError
            The object was decoded but does not satisfy the schema
            (:class:`PlaceholderError` for truncated file content).
        """
        if mode == "surgical":
            return self.validate_surgical(self.decode_surgical(raw_text))
        if mode == "full":
            return self.validate_full(self.decode_full(raw_text))
        raise ValueError(f"Unknown parse mode: {mode!r}")

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    @staticmethod
    def candidate_payloads(raw_text: str) -> list[str]:
        """JSON payloads to try, in order.

        For the first fence style present (```json, then bare ```), the body
        up to the first closing fence comes before the body up to the last
        one.  Without a fence the whole input is the only payload.
        """
        for lazy, greedy in _FENCES:
            payloads: list[str] = []
            for pattern in (lazy, greedy):
                match = pattern.search(raw_text)
                body = match.group(1).strip() if match else ""
                if body and body not in payloads:
                    payloads.append(body)
            if payloads:
                return payloads
        return [raw_text.strip()]

    def extract_json_text(self, raw_text: str) -> str:
        """Return the first payload that decodes as JSON, else the widest one."""
        payloads = self.candidate_payloads(raw_text)
        for payload in payloads:
            try:
                json.loads(payload)
            except (json.JSONDecodeError, ValueError):
                continue
            return payload
        return payloads[-1]

    def decode_full(self, raw_text: str) -> RawCandidate:
        """Run the full-mode recovery ladder and return a raw candidate."""
        payloads = self.candidate_payloads(raw_text)

        direct_error: Optional[Exception] = None
        for payload in payloads:
            try:
                return RawCandidate(json.loads(payload), "direct")
            except (json.JSONDecodeError, ValueError) as exc:
                direct_error = direct_error or exc
        logger.debug("[Parser] Direct parse failed: %s", direct_error)

        sanitize_error: Optional[Exception] = None
        for payload in payloads:
            try:
                candidate = RawCandidate(self._sanitize_and_parse(payload), "sanitized")
            except (json.JSONDecodeError, ValueError) as exc:
                sanitize_error = sanitize_error or exc
                continue
            logger.info("[Parser] Recovered response via sanitization")
            return candidate
        logger.debug("[Parser] Sanitized parse failed: %s", sanitize_error)

        recovered = self._recover_partial(payloads[-1])
        if recovered is not None:
            logger.warning(
                "[Parser] Recovered partial response (%d files) from malformed JSON",
                len(recovered.get("files", {})),
            )
            return RawCandidate(recovered, "partial")

        logger.error(
            "[Parser] All parse attempts failed for %d chars of input",
            len(raw_text),
        )
        raise ParseError(
            "Failed to parse AI response as JSON",
            attempt_errors=[direct_error, sanitize_error],
            input_length=len(raw_text),
        )

    def decode_surgical(self, raw_text: str) -> RawCandidate:
        first_error: Optional[Exception] = None
        for payload in self.candidate_payloads(raw_text):
            try:
                return RawCandidate(json.loads(payload), "direct")
            except (json.JSONDecodeError, ValueError) as exc:
                first_error = first_error or exc
        logger.error("[Parser] Surgical response is not valid JSON: %s", first_error)
        raise ParseError(
            "Failed to parse surgical AI response as JSON",
            attempt_errors=[first_error],
            input_length=len(raw_text),
        ) from first_error

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_full(self, candidate: RawCandidate) -> ParsedAIResponse:
        """Validate a decoded full-file candidate and check for placeholders."""
        data = candidate.data
        if not isinstance(data, dict):
            raise ValidationError("Response must be a JSON object")

        self._require_text(data, "thought")
        self._require_text(data, "messageToUser")

        files = data.get("files")
        if files is None:
            files = {}
        if not isinstance(files, dict):
            raise ValidationError("files must be an object", field="files")
        for path, content in files.items():
            if not isinstance(content, str):
                raise ValidationError(
                    f"Content of file {path} must be a string", field="files",
                )

        plan = data.get("plan")
        if plan is None:
            plan = []
        if not isinstance(plan, list):
            raise ValidationError("plan must be an array", field="plan")

        if "tool" in data:
            if data["tool"] != self.recognized_tool:
                raise ValidationError(
                    f"Unrecognized tool: {data['tool']!r}", field="tool",
                )
            if not isinstance(data.get("arguments"), dict):
                raise ValidationError(
                    "arguments must be an object", field="arguments",
                )

        self.check_for_placeholders(files)

        return ParsedAIResponse(
            thought=data["thought"],
            message_to_user=data["messageToUser"],
            files=dict(files),
            plan=tuple(str(step) for step in plan),
            requires_confirmation=bool(data.get("requiresConfirmation", False)),
            source=candidate.source,
        )

    def validate_surgical(self, candidate: RawCandidate) -> SurgicalResponse:
        data = candidate.data
        if not isinstance(data, dict):
            raise ValidationError("Surgical response must be a JSON object")

        self._require_text(data, "thought")
        self._require_text(data, "messageToUser")

        raw_edits = data.get("edits")
        if raw_edits is None:
            raise ValidationError(
                "Missing required field in surgical response: edits", field="edits",
            )
        if not isinstance(raw_edits, list):
            raise ValidationError("edits must be an array", field="edits")

        edits = tuple(LineEdit.from_dict(raw, i) for i, raw in enumerate(raw_edits))

        return SurgicalResponse(
            thought=data["thought"],
            message_to_user=data["messageToUser"],
            edits=edits,
            requires_confirmation=bool(data.get("requiresConfirmation", False)),
        )

    @staticmethod
    def check_for_placeholders(files: dict[str, str]) -> None:
        """Raise PlaceholderError for the first file that looks truncated."""
        for path, content in files.items():
            patterns = (
                _MARKDOWN_PLACEHOLDER_PATTERNS
                if path.lower().endswith(_MARKDOWN_EXTENSIONS)
                else _PLACEHOLDER_PATTERNS
            )
            for pattern in patterns:
                match = pattern.search(content)
                if match:
                    logger.warning(
                        "[Parser] Placeholder %r found in %s",
                        match.group(0).strip(), path,
                    )
                    raise PlaceholderError(path, match.group(0).strip())

    @staticmethod
    def extract_thinking_steps(thought: str) -> list[str]:
        """Split a thought into steps, dropping ``1.``-style numbering."""
        return [
            _STEP_NUMBER.sub("", line.strip()).strip()
            for line in thought.split("\n")
            if line.strip()
        ]

    # ------------------------------------------------------------------
    # Recovery helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _require_text(data: dict, name: str) -> None:
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"Missing required field: {name}", field=name)

    @staticmethod
    def _sanitize_and_parse(payload: str) -> Any:
        """Protect fenced sub-blocks, repair strings, normalize and re-inject."""
        blocks: list[str] = []

        def _stash(match: re.Match) -> str:
            blocks.append(match.group(0))
            return _BLOCK_TOKEN.format(len(blocks) - 1)

        tokenized = _SUB_BLOCK.sub(_stash, payload)
        repaired = _escape_control_chars_in_strings(tokenized)
        normalized = json.dumps(json.loads(repaired))

        for i, block in enumerate(blocks):
            normalized = normalized.replace(
                _BLOCK_TOKEN.format(i), _escape_json_text(block),
            )
        return json.loads(normalized)

    @staticmethod
    def _recover_partial(payload: str) -> Optional[dict]:
        """Regex-extract whatever fields survive in irreparably broken JSON."""
        recovered: dict[str, Any] = {}

        thought = _THOUGHT.search(payload)
        if thought:
            recovered["thought"] = _unescape(thought.group(1))

        message = _MESSAGE.search(payload)
        if message:
            recovered["messageToUser"] = _unescape(message.group(1))

        plan = _PLAN.search(payload)
        if plan:
            recovered["plan"] = [
                _unescape(item) for item in _PLAN_ITEM.findall(plan.group(1))
            ]

        confirm = _CONFIRM.search(payload)
        if confirm:
            recovered["requiresConfirmation"] = confirm.group(1) == "true"

        files: dict[str, str] = {}
        start = _FILES_START.search(payload)
        if start:
            pos = start.end()
            while True:
                entry = _FILE_ENTRY.match(payload, pos)
                if not entry:
                    break
                files[entry.group(1)] = _unescape(entry.group(2))
                pos = entry.end()
        if files:
            recovered["files"] = files

        if not any(k in recovered for k in ("thought", "messageToUser", "files")):
            return None
        return recovered


# ---------------------------------------------------------------------------
# String helpers
# ---------------------------------------------------------------------------

def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _escape_control_chars_in_strings(raw: str) -> str:
    """Escape bare newline, CR and tab characters inside JSON string literals."""
    out: list[str] = []
    in_string = False
    escape = False

    for ch in raw:
        if not in_string:
            if ch == '"':
                in_string = True
            out.append(ch)
            continue

        if escape:
            out.append(ch)
            escape = False
        elif ch == "\\":
            out.append(ch)
            escape = True
        elif ch == '"':
            out.append(ch)
            in_string = False
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\t":
            out.append("\\t")
        else:
            out.append(ch)

    return "".join(out)


def _escape_json_text(text: str) -> str:
    """Escape literal text for placement inside a JSON string literal."""
    return (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def _unescape(text: str) -> str:
    """Decode a captured JSON string body, including ``\\uXXXX`` escapes."""
    try:
        return json.loads('"' + text + '"', strict=False)
    except (json.JSONDecodeError, ValueError):
        pass
    # Invalid escapes somewhere in the body: decode the common ones only
    return re.sub(
        r"\\(.)",
        lambda m: _UNESCAPES.get(m.group(1), m.group(0)),
        text,
        flags=re.DOTALL,
    )
