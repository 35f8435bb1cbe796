"""
Syntax sanity checks for generated code.

The default check only counts brackets.  When tree-sitter and the matching
grammar are installed, ``tree_sitter_errors`` additionally reports parse
errors for JavaScript/TypeScript sources.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_CODE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")

_BRACKET_PAIRS = (("{", "}"), ("(", ")"), ("[", "]"))

_EXT_TO_LANGUAGE = {
    ".js": "javascript", ".jsx": "javascript",
    ".mjs": "javascript", ".cjs": "javascript",
    ".ts": "typescript", ".tsx": "tsx",
}

_parser_cache: dict[str, object] = {}


def is_code_file(path: str, extensions=DEFAULT_CODE_EXTENSIONS) -> bool:
    return os.path.splitext(path)[1].lower() in tuple(extensions)


def unbalanced_brackets(content: str) -> list[str]:
    """Return the bracket pairs whose open/close counts differ."""
    problems = []
    for opener, closer in _BRACKET_PAIRS:
        opened, closed = content.count(opener), content.count(closer)
        if opened != closed:
            problems.append(f"{opener}{closer} ({opened} open, {closed} close)")
    return problems


def has_syntax_errors(content: str) -> bool:
    """Cheap structural check: are ``{}``, ``()`` and ``[]`` balanced?"""
    return bool(unbalanced_brackets(content))


# ---------------------------------------------------------------------------
# tree-sitter
# ---------------------------------------------------------------------------

def _get_lang_func(language: str):
    """Return the grammar's language() callable, or None if not installed."""
    try:
        if language == "javascript":
            import tree_sitter_javascript as m  # type: ignore
            return m.language
        if language == "typescript":
            import tree_sitter_typescript as m  # type: ignore
            return m.language_typescript
        if language == "tsx":
            import tree_sitter_typescript as m  # type: ignore
            return m.language_tsx
    except ImportError:
        return None
    return None


def _get_ts_parser(language: str):
    if language in _parser_cache:
        return _parser_cache[language]

    func = _get_lang_func(language)
    if func is None:
        _parser_cache[language] = None
        return None
    try:
        import tree_sitter as ts  # type: ignore
        parser = ts.Parser(ts.Language(func()))
    except (ImportError, TypeError, ValueError) as exc:
        logger.debug("[Syntax] tree-sitter unavailable for %s: %s", language, exc)
        parser = None
    _parser_cache[language] = parser
    return parser


def tree_sitter_errors(path: str, content: str) -> Optional[list[str]]:
    """Parse *content* with tree-sitter and describe any error nodes.

    Returns ``None`` when no grammar is available for *path*, otherwise a
    (possibly empty) list of ``"line N: ..."`` messages.
    """
    language = _EXT_TO_LANGUAGE.get(os.path.splitext(path)[1].lower())
    if language is None:
        return None
    parser = _get_ts_parser(language)
    if parser is None:
        return None

    tree = parser.parse(content.encode("utf-8"))
    if not tree.root_node.has_error:
        return []

    problems: list[str] = []
    stack = [tree.root_node]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            kind = f"missing {node.type}" if node.is_missing else "unexpected syntax"
            problems.append(f"line {node.start_point[0] + 1}: {kind}")
            continue
        if node.has_error:
            stack.extend(reversed(node.children))
    return problems or ["parse error"]


def check_file(path: str, content: str, mode: str = "brackets") -> list[str]:
    """Run the configured checks for one file; returns problem descriptions."""
    problems = [f"unbalanced {p}" for p in unbalanced_brackets(content)]
    if mode == "tree_sitter" and not problems:
        ts_problems = tree_sitter_errors(path, content)
        if ts_problems is None:
            logger.debug("[Syntax] No tree-sitter grammar for %s, brackets only", path)
        else:
            problems.extend(ts_problems)
    return problems
