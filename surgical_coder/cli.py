"""
`surgical-coder` command line.

Commands
--------
surgical-coder edit "<request>"                 -- ask for line-level edits and apply them
surgical-coder generate "<request>"             -- ask for complete files and apply them
surgical-coder apply RESPONSE_FILE --mode full  -- apply a saved LLM response
surgical-coder rollback BACKUP_ID               -- restore an earlier backup
surgical-coder backups                          -- list recent backups
surgical-coder stats                            -- learning-event statistics
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Optional

from .cli_display import log, setup_logger, token_tracker
from .config import Config
from .diff_display import prompt_diff_approval
from .editing.change_applicator import ApplyResult, ChangeApplicator
from .editing.metrics import read_learning_stats
from .editing.response_parser import ResponseParser
from .errors import ParseError, ValidationError
from .handler import HandlerResult, SurgicalEditHandler
from .llm.base import LLMError
from .llm.openai_client import OpenAIClient
from .storage.backup_store import SQLiteBackupStore
from .storage.file_store import DirectoryFileStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _project_paths(args: argparse.Namespace, cfg: Config) -> tuple[str, str, str]:
    """Return (project_root, backup_db, event_log), relative paths anchored at the root."""
    root = os.path.abspath(args.project)

    def _anchor(path: str) -> str:
        return path if os.path.isabs(path) else os.path.join(root, path)

    return root, _anchor(cfg.BACKUP_DB), _anchor(cfg.EVENT_LOG)


def _build_applicator(args: argparse.Namespace, cfg: Config) -> ChangeApplicator:
    root, backup_db, event_log = _project_paths(args, cfg)
    return ChangeApplicator(
        DirectoryFileStore(root),
        SQLiteBackupStore(backup_db, retention=cfg.BACKUP_RETENTION),
        project_id=os.path.basename(root) or root,
        user_id=os.getenv("USER") or os.getenv("USERNAME") or "local",
        config=cfg,
        event_log_path=event_log,
    )


def _build_handler(args: argparse.Namespace, cfg: Config,
                   applicator: ChangeApplicator,
                   llm_client: Optional[OpenAIClient] = None) -> SurgicalEditHandler:
    auto = args.auto

    def _approve(current: dict, proposed: dict, requires_confirmation: bool) -> bool:
        # A response that asks for confirmation is always reviewed
        return prompt_diff_approval(current, proposed,
                                    auto=auto and not requires_confirmation)

    return SurgicalEditHandler(
        llm_client,
        applicator,
        parser=ResponseParser(recognized_tool=cfg.RECOGNIZED_TOOL),
        approve=_approve,
    )


def _build_llm(cfg: Config) -> OpenAIClient:
    return OpenAIClient(
        base_url=cfg.GATEWAY_BASE_URL,
        model=cfg.MODEL,
        api_key=cfg.API_KEY,
        temperature=cfg.TEMPERATURE,
        max_retries=cfg.LLM_MAX_RETRIES,
        retry_delay=cfg.LLM_RETRY_DELAY,
        stream=cfg.STREAM_RESPONSES,
    )


def _print_apply_result(result: Optional[ApplyResult]) -> bool:
    if result is None:
        return False
    if result.success:
        if result.applied_files:
            print(f"\n  Applied {len(result.applied_files)} file(s):")
            for change in result.changes:
                print(f"    [{change.change_type}] {change.path}")
        else:
            print("\n  No changes to apply.")
        if result.backup_id:
            print(f"  Backup: {result.backup_id}")
        return True
    print(f"\n  Apply failed: {result.error}", file=sys.stderr)
    if result.backup_id:
        print(f"  Backup taken: {result.backup_id}", file=sys.stderr)
    return False


def _print_handler_result(result: HandlerResult) -> bool:
    if result.thinking_steps:
        print("\n  Thinking:")
        for i, step in enumerate(result.thinking_steps, 1):
            print(f"    {i}. {step}")
    print(f"\n  {result.message_to_user}")
    if result.summary:
        print(result.summary)
    if not result.approved:
        print("\n  Changes rejected; nothing was written.")
        return False
    return _print_apply_result(result.apply_result)


def _run_handler(func, request: str, conversation_id: Optional[str]) -> None:
    try:
        result = func(request, conversation_id)
    except (ParseError, ValidationError) as exc:
        log.error("[CLI] %s", exc)
        print(f"\n  Could not use the model's response: {exc}\n"
              f"  Try rephrasing the request.", file=sys.stderr)
        sys.exit(1)
    except LLMError as exc:
        log.error("[CLI] %s", exc)
        print(f"\n  LLM request failed: {exc}", file=sys.stderr)
        sys.exit(1)

    ok = _print_handler_result(result)
    if token_tracker.call_count:
        print(f"\n  Tokens: {token_tracker.total_tokens} "
              f"({token_tracker.call_count} call(s))")
    if not ok:
        sys.exit(1)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _cmd_edit(args: argparse.Namespace, cfg: Config) -> None:
    applicator = _build_applicator(args, cfg)
    handler = _build_handler(args, cfg, applicator, _build_llm(cfg))
    _run_handler(handler.handle, args.request, args.conversation)


def _cmd_generate(args: argparse.Namespace, cfg: Config) -> None:
    applicator = _build_applicator(args, cfg)
    handler = _build_handler(args, cfg, applicator, _build_llm(cfg))
    _run_handler(handler.handle_full, args.request, args.conversation)


def _cmd_apply(args: argparse.Namespace, cfg: Config) -> None:
    try:
        with open(args.response_file, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as exc:
        print(f"Cannot read {args.response_file}: {exc}", file=sys.stderr)
        sys.exit(1)

    applicator = _build_applicator(args, cfg)
    handler = _build_handler(args, cfg, applicator)

    def _apply(request: str, conversation_id: Optional[str]) -> HandlerResult:
        return handler.apply_response(raw, args.mode, request, conversation_id)

    _run_handler(_apply, f"Apply {os.path.basename(args.response_file)}", args.conversation)


def _cmd_rollback(args: argparse.Namespace, cfg: Config) -> None:
    applicator = _build_applicator(args, cfg)
    if applicator.rollback(args.backup_id):
        print(f"Rolled back to backup {args.backup_id}.")
    else:
        print(f"Rollback to backup {args.backup_id} failed; see the log for details.",
              file=sys.stderr)
        sys.exit(1)


def _cmd_backups(args: argparse.Namespace, cfg: Config) -> None:
    root, backup_db, _ = _project_paths(args, cfg)
    store = SQLiteBackupStore(backup_db, retention=cfg.BACKUP_RETENTION)
    records = store.list(os.path.basename(root) or root, limit=args.limit)
    if not records:
        print("No backups yet.")
        return
    print(f"\n{'ID':>6}  {'Created':<32}  {'Files':>5}  Reason")
    print("-" * 70)
    for r in records:
        print(f"{r.id:>6}  {r.created_at:<32}  {r.file_count:>5}  {r.reason}")


def _cmd_stats(args: argparse.Namespace, cfg: Config) -> None:
    _, _, event_log = _project_paths(args, cfg)
    stats = read_learning_stats(last_n=args.last_n, log_path=event_log)
    if not stats["total_events"]:
        print("No change events recorded yet.")
        return
    print("\nChange Statistics")
    print("=" * 40)
    print(f"  {'Events':<20} {stats['total_events']}")
    print(f"  {'Success rate':<20} {stats['success_rate']:.1f}%")
    print(f"  {'Avg files changed':<20} {stats['avg_files_changed']:.1f}")
    for change_type, count in stats["change_types"].items():
        print(f"  {change_type:<20} {count}")
    print()


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="surgical-coder",
        description="Surgical Coder — apply LLM code edits with backups and rollback",
    )
    parser.add_argument("--project", default=".",
                        help="Project directory (default: current directory)")
    parser.add_argument("--config", default=None,
                        help="Path to .surgical.yaml config file")
    parser.add_argument("--auto", action="store_true",
                        help="Non-interactive mode: apply without diff review "
                             "unless the model asks for confirmation")
    parser.add_argument("--conversation", default=None,
                        help="Conversation id recorded with each change")

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    # --- edit ---
    edit_p = subparsers.add_parser("edit", help="Line-level edits for a request")
    edit_p.add_argument("request", help="What to change")
    edit_p.set_defaults(func=_cmd_edit)

    # --- generate ---
    gen_p = subparsers.add_parser("generate", help="Full-file generation for a request")
    gen_p.add_argument("request", help="What to build")
    gen_p.set_defaults(func=_cmd_generate)

    # --- apply ---
    apply_p = subparsers.add_parser("apply", help="Apply a saved LLM response")
    apply_p.add_argument("response_file", help="File containing the raw response")
    apply_p.add_argument("--mode", choices=["full", "surgical"], default="full",
                         help="Response shape (default: full)")
    apply_p.set_defaults(func=_cmd_apply)

    # --- rollback ---
    rollback_p = subparsers.add_parser("rollback", help="Restore an earlier backup")
    rollback_p.add_argument("backup_id", help="Backup id (see `backups`)")
    rollback_p.set_defaults(func=_cmd_rollback)

    # --- backups ---
    backups_p = subparsers.add_parser("backups", help="List recent backups")
    backups_p.add_argument("--limit", type=int, default=20,
                           help="Number of backups to show (default: 20)")
    backups_p.set_defaults(func=_cmd_backups)

    # --- stats ---
    stats_p = subparsers.add_parser("stats", help="Show change statistics")
    stats_p.add_argument("--last-n", dest="last_n", type=int, default=50,
                         help="Number of recent events to include (default: 50)")
    stats_p.set_defaults(func=_cmd_stats)

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv: Optional[list[str]] = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    cfg = Config.load(args.config)
    root = os.path.abspath(args.project)
    log_dir = cfg.LOG_DIR if os.path.isabs(cfg.LOG_DIR) else os.path.join(root, cfg.LOG_DIR)
    setup_logger(log_dir)
    log.info("[CLI] %s in %s", args.command, root)

    args.func(args, cfg)


if __name__ == "__main__":
    main()
