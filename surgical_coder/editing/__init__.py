"""Surgical editing — response parsing, line-addressed edits and change application."""

from .response_parser import (
    ResponseParser, LineEdit, RawCandidate, ParsedAIResponse, SurgicalResponse,
)
from .surgical_editor import SurgicalEditor
from .change_applicator import ChangeApplicator, ApplyResult, determine_changes
from .metrics import log_learning_event, read_learning_stats

__all__ = [
    "ResponseParser", "LineEdit", "RawCandidate", "ParsedAIResponse", "SurgicalResponse",
    "SurgicalEditor",
    "ChangeApplicator", "ApplyResult", "determine_changes",
    "log_learning_event", "read_learning_stats",
]
