"""
Diff display — compute and show colored unified diffs before files are written.

Includes a Textual-based interactive diff viewer that pauses execution so the
user can review a change set and approve/reject it before it is applied.
"""

from __future__ import annotations

import difflib

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, VerticalScroll
from textual.widgets import Button, Footer, Static

from .cli_display import log


def compute_diff(filepath: str, old_content: str, new_content: str) -> str | None:
    """Return a unified diff string, or None if the content is unchanged."""
    if old_content == new_content:
        return None

    diff = difflib.unified_diff(
        old_content.splitlines(keepends=True),
        new_content.splitlines(keepends=True),
        fromfile=f"a/{filepath}",
        tofile=f"b/{filepath}",
        lineterm="",
    )
    diff_text = "\n".join(line.rstrip("\n") for line in diff)
    return diff_text if diff_text.strip() else None


def compute_diffs(current: dict[str, str],
                  new_files: dict[str, str]) -> tuple[list[tuple[str, str]], list[str], list[str]]:
    """Compare proposed *new_files* with the *current* project files.

    Returns ``(diffs, created, deleted)`` where *diffs* holds
    ``(filepath, diff_text)`` for modified files.  Empty content over an
    existing file counts as a deletion.
    """
    diffs: list[tuple[str, str]] = []
    created: list[str] = []
    deleted: list[str] = []
    for filepath, content in new_files.items():
        if filepath not in current:
            created.append(filepath)
        elif content == "" and current[filepath] != "":
            deleted.append(filepath)
        else:
            diff = compute_diff(filepath, current[filepath], content)
            if diff:
                diffs.append((filepath, diff))
    return diffs, created, deleted


def format_colored_diff(diff_text: str) -> str:
    """Add ANSI colors to a unified diff string.

    Green for additions (+), red for deletions (-), cyan for @@ hunks.
    """
    colored: list[str] = []
    for line in diff_text.splitlines():
        if line.startswith("+++") or line.startswith("---"):
            colored.append(f"\033[1m{line}\033[0m")  # bold
        elif line.startswith("@@"):
            colored.append(f"\033[36m{line}\033[0m")  # cyan
        elif line.startswith("+"):
            colored.append(f"\033[32m{line}\033[0m")  # green
        elif line.startswith("-"):
            colored.append(f"\033[31m{line}\033[0m")  # red
        else:
            colored.append(line)
    return "\n".join(colored)


# ══════════════════════════════════════════════════════════════════
#  Interactive Diff Approval — Textual TUI
# ══════════════════════════════════════════════════════════════════

def prompt_diff_approval(current: dict[str, str], new_files: dict[str, str],
                         auto: bool = False) -> bool:
    """Show the change set in an interactive Textual viewer and wait for approval.

    Returns ``True`` if the user approves (or if running in auto mode).
    Returns ``False`` if the user rejects.
    """
    diffs, created, deleted = compute_diffs(current, new_files)

    # Nothing to review
    if not diffs and not created and not deleted:
        return True

    # Auto mode: log diffs and approve
    if auto:
        for filepath, diff_text in diffs:
            log.info("[auto] Diff for %s:\n%s", filepath, diff_text)
        if created:
            log.info("[auto] New files: %s", ", ".join(created))
        if deleted:
            log.info("[auto] Deleted files: %s", ", ".join(deleted))
        return True

    try:
        app = DiffApprovalApp(diffs, created, deleted, new_files)
        app.run()
        return app.approved
    except Exception as e:
        log.warning("Textual diff viewer failed: %s", e)

    # Fallback: console-based approval (no usable terminal for Textual)
    return _console_diff_approval(diffs, created, deleted)


def _format_rich_diff(diff_text: str) -> str:
    """Convert unified diff text to Rich markup for Textual display."""
    markup_lines: list[str] = []
    for line in diff_text.splitlines():
        # Escape Rich markup characters in the line content
        escaped = line.replace("[", "\\[")
        if line.startswith("+++") or line.startswith("---"):
            markup_lines.append(f"[bold white]{escaped}[/bold white]")
        elif line.startswith("@@"):
            markup_lines.append(f"[cyan]{escaped}[/cyan]")
        elif line.startswith("+"):
            markup_lines.append(f"[green]{escaped}[/green]")
        elif line.startswith("-"):
            markup_lines.append(f"[red]{escaped}[/red]")
        else:
            markup_lines.append(escaped)
    return "\n".join(markup_lines)


class DiffApprovalApp(App):
    """Interactive diff viewer with approve/reject."""

    CSS = """
    Screen {
        background: $surface;
    }
    #title-bar {
        dock: top;
        height: 3;
        background: #1a1a2e;
        color: #e94560;
        text-align: center;
        padding: 1;
        text-style: bold;
    }
    #diff-scroll {
        height: 1fr;
        margin: 1 2;
        border: round #444;
        padding: 1;
    }
    .file-header {
        color: #e9c46a;
        text-style: bold;
        margin: 1 0 0 0;
    }
    .diff-content {
        margin: 0 0 1 0;
    }
    .file-list-section {
        text-style: bold;
        margin: 1 0;
    }
    #action-buttons {
        dock: bottom;
        height: 3;
        align: center middle;
        padding: 0 2;
    }
    #action-buttons Button {
        margin: 0 2;
        min-width: 20;
    }
    #summary {
        dock: bottom;
        height: 1;
        text-align: center;
        color: #888;
    }
    """

    BINDINGS = [
        Binding("a", "approve", "Approve"),
        Binding("ctrl+s", "approve", "Approve"),
        Binding("escape", "reject", "Reject"),
        Binding("r", "reject", "Reject"),
    ]

    def __init__(self, diffs: list[tuple[str, str]], created: list[str],
                 deleted: list[str], files: dict[str, str]) -> None:
        super().__init__()
        self._diffs = diffs
        self._created = created
        self._deleted = deleted
        self._files = files
        self.approved: bool = False

    def compose(self) -> ComposeResult:
        file_count = len(self._diffs) + len(self._created) + len(self._deleted)
        yield Static(
            f" ━━  Change Review — {file_count} file(s) changed  ━━ ",
            id="title-bar",
        )
        with VerticalScroll(id="diff-scroll"):
            for filepath, diff_text in self._diffs:
                yield Static(
                    f"[bold yellow]{'─' * 58}[/bold yellow]\n"
                    f"[bold yellow]  {filepath}[/bold yellow]",
                    classes="file-header",
                )
                yield Static(_format_rich_diff(diff_text), classes="diff-content")
            if self._created:
                yield Static("[bold #2a9d8f]  New files:[/bold #2a9d8f]",
                             classes="file-list-section")
                for path in self._created:
                    line_count = len(self._files.get(path, "").splitlines())
                    yield Static(f"  [green]+ {path}[/green]  ({line_count} lines)")
            if self._deleted:
                yield Static("[bold #e76f51]  Deleted files:[/bold #e76f51]",
                             classes="file-list-section")
                for path in self._deleted:
                    yield Static(f"  [red]- {path}[/red]")

        summary_parts = []
        if self._diffs:
            summary_parts.append(f"{len(self._diffs)} modified")
        if self._created:
            summary_parts.append(f"{len(self._created)} new")
        if self._deleted:
            summary_parts.append(f"{len(self._deleted)} deleted")
        yield Static(
            f"  {' | '.join(summary_parts)}  —  "
            f"Press [bold]A[/bold] to approve, [bold]R[/bold] or Esc to reject",
            id="summary",
        )
        with Horizontal(id="action-buttons"):
            yield Button("✔ Approve", id="approve-btn", variant="success")
            yield Button("✕ Reject", id="reject-btn", variant="error")
        yield Footer()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.approved = event.button.id == "approve-btn"
        self.exit()

    def action_approve(self) -> None:
        self.approved = True
        self.exit()

    def action_reject(self) -> None:
        self.approved = False
        self.exit()


def _console_diff_approval(diffs: list[tuple[str, str]],
                           created: list[str],
                           deleted: list[str]) -> bool:
    print("\n" + "=" * 60)
    print("  CHANGE REVIEW")
    print("=" * 60)

    for _filepath, diff_text in diffs:
        print(f"\n{'─' * 60}")
        print(format_colored_diff(diff_text))

    if created:
        print(f"\n  New files: {', '.join(created)}")
    if deleted:
        print(f"\n  Deleted files: {', '.join(deleted)}")

    print("\n" + "=" * 60)
    print("  [A]pprove  |  [R]eject")
    print()

    while True:
        try:
            choice = input("  Your choice: ").strip().lower()
        except (EOFError, KeyboardInterrupt):
            return False
        if choice in ("a", "approve"):
            return True
        elif choice in ("r", "reject"):
            return False
        else:
            print("  Invalid choice. Use A or R.")
