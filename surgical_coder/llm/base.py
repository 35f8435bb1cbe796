import random
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional

from ..cli_display import log


class LLMError(Exception):
    """Raised when all LLM retries are exhausted."""


class LLMClient(ABC):

    def __init__(self, max_retries: int = 3, retry_delay: float = 2.0,
                 stream: bool = False):
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.stream = stream
        self._stream_callback: Optional[Callable[[int], None]] = None

    def set_stream_callback(self, callback: Callable[[int], None]) -> None:
        """Set a callback that receives ``(tokens_generated)`` during streaming."""
        self._stream_callback = callback

    # ── Public entry point ──

    def generate_response(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """Generate a response with automatic retry and exponential backoff.

        Calls ``_generate_stream`` when streaming is enabled, otherwise
        ``_generate``.  Raises :class:`LLMError` after all retries are
        exhausted.
        """
        last_error: Exception | None = None
        use_stream = self.stream  # falls back on failure

        for attempt in range(1, self.max_retries + 1):
            try:
                if use_stream:
                    result = self._generate_stream(prompt, system_prompt)
                else:
                    result = self._generate(prompt, system_prompt)

                if not result or not result.strip():
                    log.warning("[LLM] Empty response on attempt %d/%d",
                                attempt, self.max_retries)
                    if attempt < self.max_retries:
                        time.sleep(self._backoff(attempt))
                        continue
                    raise LLMError("LLM returned empty response after all retries")

                return result

            except LLMError:
                raise
            except Exception as e:
                last_error = e
                log.warning("[LLM] Error on attempt %d/%d: %s",
                            attempt, self.max_retries, e)

                # If streaming failed, fall back to non-streaming for next retry
                if use_stream:
                    log.warning("[LLM] Streaming failed — falling back to non-streaming")
                    use_stream = False

                if attempt < self.max_retries:
                    wait = self._backoff(attempt)
                    # Rate limited: wait longer
                    if "429" in str(e):
                        wait *= 2
                        log.info("[LLM] Rate limit detected (429). Backing off for %.1fs", wait)
                    time.sleep(wait)

        raise LLMError(
            f"LLM failed after {self.max_retries} retries: {last_error}")

    def _backoff(self, attempt: int) -> float:
        """Jittered exponential backoff."""
        wait = self.retry_delay * (2 ** (attempt - 1))
        return wait + wait * 0.1 * random.random()

    # ── Subclass hooks ──

    @abstractmethod
    def _generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """Synchronous (non-streaming) generation."""

    @abstractmethod
    def _generate_stream(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        """Streaming generation. Should call ``self._stream_callback``
        periodically with the number of tokens generated so far."""
