"""
Prompt construction for surgical (line-level) and full-file generation.

The current project files are listed with 1-indexed line numbers so the
model can address exact lines.  Large files are abbreviated to their head
and tail.
"""

from __future__ import annotations

from typing import Iterable, Mapping

_LARGE_FILE_LINES = 100
_HEAD_LINES = 50
_TAIL_LINES = 20
_MAX_CONTEXT_ITEMS = 5
_HISTORY_SNIPPET_CHARS = 100

SURGICAL_SYSTEM_PROMPT = """\
## SURGICAL CODE EDITOR ##

You make PRECISE, LINE-LEVEL code modifications.  Identify the exact lines
to change and modify ONLY those lines.  Never regenerate entire files.

## EDIT ACTIONS ##

- replace: replace lines startLine..endLine (inclusive) with content
- insert: insert content after insertAfterLine (0 = start of file)
- delete: remove lines startLine..endLine (inclusive)
- create: create a completely new file with content

## OUTPUT FORMAT ##

Respond with a single JSON object:

```json
{
  "thought": "1. User wants X\\n2. Located in file Y, lines A-B\\n3. Replace lines A-B",
  "edits": [
    {
      "file": "src/components/Header.tsx",
      "action": "replace",
      "startLine": 15,
      "endLine": 17,
      "content": "<header className=\\"bg-gray-500\\">\\n  <h1>My Site</h1>\\n</header>",
      "description": "Changed header background to gray"
    }
  ],
  "messageToUser": "Changed header color to gray.",
  "requiresConfirmation": false
}
```

## RULES ##

- Line numbers are 1-indexed and refer to the files as shown below,
  before any of your edits are applied
- startLine and endLine are INCLUSIVE
- Edits in one file must not overlap
- Always include "description" explaining the edit
- Set requiresConfirmation to true for complex or risky changes
- Never use placeholders like "// ... rest of code"; content must be complete
"""

FULL_SYSTEM_PROMPT = """\
## CODE GENERATOR ##

You write complete, working files for the user's request.

## OUTPUT FORMAT ##

Respond with a single JSON object:

```json
{
  "thought": "Step-by-step reasoning",
  "plan": ["step one", "step two"],
  "files": {"path/to/file.ts": "complete file content"},
  "messageToUser": "What was done",
  "requiresConfirmation": false
}
```

## RULES ##

- Every file in "files" must contain its COMPLETE content
- Never use placeholders like "// ... existing code" or "// rest of file"
- An empty string as file content deletes that file
"""


def number_lines(content: str) -> str:
    """Render *content* with ``N: `` prefixes, abbreviating large files."""
    lines = content.split("\n")
    count = len(lines)
    if count <= _LARGE_FILE_LINES:
        return "\n".join(f"{i + 1}: {line}" for i, line in enumerate(lines))

    head = "\n".join(f"{i + 1}: {line}" for i, line in enumerate(lines[:_HEAD_LINES]))
    tail_start = count - _TAIL_LINES
    tail = "\n".join(
        f"{tail_start + i + 1}: {line}" for i, line in enumerate(lines[tail_start:])
    )
    omitted = count - _HEAD_LINES - _TAIL_LINES
    return f"{head}\n... [{omitted} lines omitted] ...\n{tail}"


class SurgicalPromptBuilder:
    """Builds the system prompt and user message for one LLM call."""

    def build_modification_prompt(
        self,
        instruction: str,
        files: Mapping[str, str],
        recent_changes: Iterable = (),
        history: Iterable = (),
    ) -> str:
        """Prompt asking for surgical edits of *files*.

        Parameters
        ----------
        instruction:
            The user's request.
        files:
            Current project files (path -> content).
        recent_changes:
            Change records (anything with ``change_type``, ``path`` and
            ``reason`` attributes, e.g. file store history), newest last.
        history:
            Conversation messages as ``{"role": ..., "content": ...}`` dicts.
        """
        return "\n\n".join([
            self.format_context(recent_changes, history),
            self.format_files(files),
            self.format_instruction(instruction, "SURGICAL EDIT FORMAT"),
        ])

    def build_generation_prompt(
        self,
        instruction: str,
        files: Mapping[str, str],
        recent_changes: Iterable = (),
        history: Iterable = (),
    ) -> str:
        """Prompt asking for complete file contents."""
        return "\n\n".join([
            self.format_context(recent_changes, history),
            self.format_files(files),
            self.format_instruction(instruction, "FULL FILE FORMAT"),
        ])

    # ------------------------------------------------------------------

    @staticmethod
    def format_files(files: Mapping[str, str]) -> str:
        sections = []
        for path, content in files.items():
            line_count = len(content.split("\n"))
            sections.append(
                f"### FILE: {path} ({line_count} lines) ###\n"
                f"```\n{number_lines(content)}\n```"
            )
        body = "\n\n".join(sections) or "No files yet"
        return f"## CURRENT FILES ##\n\n{body}"

    @staticmethod
    def format_context(recent_changes: Iterable, history: Iterable) -> str:
        changes = list(recent_changes)[-_MAX_CONTEXT_ITEMS:]
        change_lines = "\n".join(
            f"- [{c.change_type}] {c.path}: {c.reason}" for c in reversed(changes)
        ) or "No recent changes"

        messages = list(history)[-_MAX_CONTEXT_ITEMS:]
        history_lines = "\n".join(
            f"[{m.get('role', 'user')}]: {_snippet(str(m.get('content', '')))}"
            for m in messages
        ) or "No conversation history"

        return (
            "## PROJECT CONTEXT ##\n\n"
            f"### Recent Changes ###\n{change_lines}\n\n"
            f"### Conversation History ###\n{history_lines}"
        )

    @staticmethod
    def format_instruction(instruction: str, format_name: str) -> str:
        return (
            f"## USER REQUEST ##\n\n{instruction}\n\n---\n"
            f"Generate your response as a single JSON object following the "
            f"{format_name} specified above."
        )


def _snippet(text: str) -> str:
    if len(text) <= _HISTORY_SNIPPET_CHARS:
        return text
    return text[:_HISTORY_SNIPPET_CHARS] + "..."
