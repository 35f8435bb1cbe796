"""
Learning-event log — records applied change sets in a JSONL file for
later analysis.
"""

from __future__ import annotations

import json
import logging
import os
from collections import Counter
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

DEFAULT_EVENT_LOG = ".surgical/learning_events.jsonl"


def append_jsonl(path: str, entry: dict) -> bool:
    """Append *entry* as one JSON line; returns False if the write failed."""
    try:
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")
        return True
    except OSError as exc:
        logger.warning("[Events] Failed to write %s: %s", path, exc)
        return False


def read_jsonl(path: str) -> list[dict]:
    """Read every well-formed JSON line from *path* (missing file → [])."""
    entries: list[dict] = []
    if not os.path.isfile(path):
        return entries
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line:
                    try:
                        entries.append(json.loads(line))
                    except json.JSONDecodeError:
                        continue
    except OSError as exc:
        logger.warning("[Events] Failed to read %s: %s", path, exc)
    return entries


def log_learning_event(data: dict, log_path: str = DEFAULT_EVENT_LOG) -> None:
    """Append a timestamped learning event.

    Parameters
    ----------
    data:
        Event fields (project_id, event_type, success, context, ...).
    log_path:
        JSONL file to append to.
    """
    entry = {"timestamp": datetime.now(timezone.utc).isoformat()}
    entry.update(data)
    append_jsonl(log_path, entry)


def read_learning_stats(last_n: int = 50, log_path: str = DEFAULT_EVENT_LOG) -> dict:
    """Rolling statistics over the most recent *last_n* events.

    Returns
    -------
    dict
        ``total_events``, ``success_rate`` (percent), ``avg_files_changed``
        and ``change_types`` (histogram summed over all events).
    """
    entries = read_jsonl(log_path)[-last_n:]

    if not entries:
        return {
            "total_events": 0,
            "success_rate": 0.0,
            "avg_files_changed": 0.0,
            "change_types": {},
        }

    total = len(entries)
    successes = sum(1 for e in entries if e.get("success", False))
    files_changed = [
        e.get("context", {}).get("files_changed", 0) for e in entries
    ]
    change_types: Counter = Counter()
    for e in entries:
        change_types.update(e.get("context", {}).get("change_types", {}))

    return {
        "total_events": total,
        "success_rate": successes / total * 100,
        "avg_files_changed": sum(files_changed) / total,
        "change_types": dict(change_types.most_common()),
    }
