"""
Edit handler — one user request end to end: prompt, LLM call, parse,
review and apply.

Parse and validation errors propagate to the caller (who can rephrase or
re-prompt); apply-time failures come back inside the ``ApplyResult``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from .editing.change_applicator import ApplyResult, ChangeApplicator
from .editing.response_parser import ParsedAIResponse, ResponseParser, SurgicalResponse
from .editing.surgical_editor import SurgicalEditor
from .errors import ValidationError
from .llm.base import LLMClient
from .prompts import FULL_SYSTEM_PROMPT, SURGICAL_SYSTEM_PROMPT, SurgicalPromptBuilder

logger = logging.getLogger(__name__)

# (current_files, proposed_files, requires_confirmation) -> approved?
ApprovalCallback = Callable[[dict, dict, bool], bool]

_REASON_CHARS = 80


@dataclass
class HandlerResult:
    """What one handled request produced."""
    mode: str
    message_to_user: str
    thinking_steps: list[str] = field(default_factory=list)
    summary: str = ""
    preview: str = ""
    approved: bool = True
    apply_result: Optional[ApplyResult] = None

    @property
    def success(self) -> bool:
        return self.apply_result is not None and self.apply_result.success


class SurgicalEditHandler:
    """Drive a request through the LLM and the change applicator.

    Parameters
    ----------
    llm_client:
        Any :class:`~surgical_coder.llm.base.LLMClient`.
    applicator:
        The project's :class:`ChangeApplicator`.
    parser, editor:
        Overrides for the default parser and editor.
    approve:
        Called with the current files, the proposed files and the model's
        ``requiresConfirmation`` flag before anything is written; returning
        False skips the write.  ``None`` approves everything.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        applicator: ChangeApplicator,
        parser: Optional[ResponseParser] = None,
        editor: Optional[SurgicalEditor] = None,
        approve: Optional[ApprovalCallback] = None,
    ) -> None:
        self.llm = llm_client
        self.applicator = applicator
        self.parser = parser or ResponseParser()
        self.editor = editor or SurgicalEditor()
        self.approve = approve
        self.prompt_builder = SurgicalPromptBuilder()
        self._conversations: dict[str, list[dict]] = {}

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def handle(self, request: str, conversation_id: Optional[str] = None) -> HandlerResult:
        """Ask for line-level edits and apply them."""
        files = self.applicator.file_store.capture_project_state()
        prompt = self.prompt_builder.build_modification_prompt(
            request, files,
            recent_changes=self.applicator.file_store.history(),
            history=self._history(conversation_id),
        )
        logger.info("[Handler] Requesting surgical edits for %d files", len(files))
        raw = self.llm.generate_response(prompt, SURGICAL_SYSTEM_PROMPT)
        self._remember(conversation_id, request, raw)
        return self.apply_response(raw, "surgical", request, conversation_id)

    def handle_full(self, request: str, conversation_id: Optional[str] = None) -> HandlerResult:
        """Ask for complete file contents and apply them."""
        files = self.applicator.file_store.capture_project_state()
        prompt = self.prompt_builder.build_generation_prompt(
            request, files,
            recent_changes=self.applicator.file_store.history(),
            history=self._history(conversation_id),
        )
        logger.info("[Handler] Requesting full-file generation for %d files", len(files))
        raw = self.llm.generate_response(prompt, FULL_SYSTEM_PROMPT)
        self._remember(conversation_id, request, raw)
        return self.apply_response(raw, "full", request, conversation_id)

    def apply_response(
        self,
        raw_text: str,
        mode: str,
        request: str = "",
        conversation_id: Optional[str] = None,
    ) -> HandlerResult:
        """Parse an LLM response (from any source) and apply it."""
        response = self.parser.parse(raw_text, mode)
        if isinstance(response, SurgicalResponse):
            return self._apply_surgical(response, request, conversation_id)
        return self._apply_full(response, request, conversation_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_surgical(
        self,
        response: SurgicalResponse,
        request: str,
        conversation_id: Optional[str],
    ) -> HandlerResult:
        current = self.applicator.file_store.capture_project_state()

        problems = self.editor.validate_edits(response.edits, current)
        if problems:
            logger.error("[Handler] Invalid edits: %s", "; ".join(problems))
            raise ValidationError(f"Invalid edits: {'; '.join(problems)}", field="edits")

        result = HandlerResult(
            mode="surgical",
            message_to_user=response.message_to_user,
            thinking_steps=self.parser.extract_thinking_steps(response.thought),
            summary=self.editor.generate_diff_summary(response.edits),
            preview=self.editor.generate_before_after_preview(response.edits, current),
        )

        if self.approve is not None:
            proposed = self.editor.apply_edits(current, response.edits)
            if not self.approve(current, proposed, response.requires_confirmation):
                logger.info("[Handler] Surgical edits rejected by reviewer")
                result.approved = False
                return result

        result.apply_result = self.applicator.apply_edits(
            response.edits, self._reason("Surgical edit", request), conversation_id,
        )
        return result

    def _apply_full(
        self,
        response: ParsedAIResponse,
        request: str,
        conversation_id: Optional[str],
    ) -> HandlerResult:
        current = self.applicator.file_store.capture_project_state()
        result = HandlerResult(
            mode="full",
            message_to_user=response.message_to_user,
            thinking_steps=self.parser.extract_thinking_steps(response.thought),
            summary="\n".join(f"- {path}" for path in response.files),
        )

        if self.approve is not None:
            if not self.approve(current, dict(response.files), response.requires_confirmation):
                logger.info("[Handler] Generated files rejected by reviewer")
                result.approved = False
                return result

        result.apply_result = self.applicator.apply_changes(
            dict(response.files), self._reason("Code generation", request), conversation_id,
        )
        return result

    @staticmethod
    def _reason(prefix: str, request: str) -> str:
        request = " ".join(request.split())
        if not request:
            return prefix
        if len(request) > _REASON_CHARS:
            request = request[:_REASON_CHARS] + "..."
        return f"{prefix}: {request}"

    def _history(self, conversation_id: Optional[str]) -> list[dict]:
        if conversation_id is None:
            return []
        return list(self._conversations.get(conversation_id, []))

    def _remember(self, conversation_id: Optional[str], request: str, raw: str) -> None:
        if conversation_id is None:
            return
        messages = self._conversations.setdefault(conversation_id, [])
        messages.append({"role": "user", "content": request})
        messages.append({"role": "assistant", "content": raw})
