"""Tests for the syntax sanity checks."""

import pytest

from surgical_coder.editing.syntax import (
    check_file, has_syntax_errors, is_code_file, tree_sitter_errors, unbalanced_brackets,
)


@pytest.mark.parametrize("path,expected", [
    ("src/App.tsx", True),
    ("lib/a.JS", True),
    ("index.jsx", True),
    ("README.md", False),
    ("styles.css", False),
    ("Makefile", False),
])
def test_is_code_file(path, expected):
    assert is_code_file(path) is expected


def test_custom_extensions():
    assert is_code_file("tool.py", (".py",)) is True
    assert is_code_file("a.ts", (".py",)) is False


class TestBrackets:
    def test_balanced(self):
        assert has_syntax_errors("function f(a) { return [a]; }") is False

    def test_reports_each_unbalanced_pair(self):
        problems = unbalanced_brackets("f({[")
        assert problems == [
            "{} (1 open, 0 close)",
            "() (1 open, 0 close)",
            "[] (1 open, 0 close)",
        ]

    def test_counts_not_order(self):
        # Only counts are compared, so a misordered pair still passes
        assert has_syntax_errors(")(") is False


class TestCheckFile:
    def test_brackets_mode(self):
        assert check_file("a.ts", "if (x {}") == ["unbalanced () (1 open, 0 close)"]
        assert check_file("a.ts", "if (x) {}") == []

    def test_no_grammar_for_extension(self):
        assert tree_sitter_errors("notes.md", "anything") is None
        assert check_file("notes.md", "(ok)", mode="tree_sitter") == []


class TestTreeSitter:
    @pytest.fixture(autouse=True)
    def _grammar(self):
        pytest.importorskip("tree_sitter")
        pytest.importorskip("tree_sitter_javascript")

    def test_valid_javascript(self):
        assert tree_sitter_errors("a.js", "const a = 1;\nfunction f() { return a; }\n") == []

    def test_balanced_but_invalid_javascript(self):
        content = "const = ;\nfunction () { }\n"
        assert not has_syntax_errors(content)
        assert check_file("a.js", content, mode="tree_sitter")
