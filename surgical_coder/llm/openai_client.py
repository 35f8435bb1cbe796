"""
OpenAI-compatible LLM client — works with OpenAI, Groq, Together.ai, a
local gateway, and any other provider that implements the OpenAI
chat/completions API.
"""

import json
from typing import Optional

import requests

from .base import LLMClient
from ..cli_display import token_tracker, log

_DEFAULT_SYSTEM_PROMPT = "You are a careful coding assistant that answers in JSON."


class OpenAIClient(LLMClient):

    def __init__(self, base_url: str, model: str, api_key: str,
                 temperature: float = 0.2, **kwargs):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.temperature = temperature

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _payload(self, prompt: str, system_prompt: Optional[str], stream: bool) -> dict:
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt or _DEFAULT_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": self.temperature,
            "stream": stream,
        }

    # ── Non-streaming generation ──

    def _generate(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        est_tokens = int(len(prompt.split()) * 1.3)
        log.debug("[OpenAI] Sending ~%d est. tokens", est_tokens)

        url = f"{self.base_url}/chat/completions"
        response = requests.post(url, headers=self._headers(),
                                 json=self._payload(prompt, system_prompt, False),
                                 timeout=(10, 300))
        response.raise_for_status()
        data = response.json()

        usage = data.get("usage", {})
        prompt_tokens = usage.get("prompt_tokens", est_tokens)
        completion_tokens = usage.get("completion_tokens", 0)
        token_tracker.record(
            prompt_tokens if isinstance(prompt_tokens, int) else est_tokens,
            completion_tokens if isinstance(completion_tokens, int) else 0,
        )
        log.debug("[OpenAI] Usage: prompt=%s completion=%s", prompt_tokens, completion_tokens)

        response_text = data["choices"][0]["message"]["content"]
        log.debug("[OpenAI] Response:\n%s", response_text)
        return response_text

    # ── Streaming generation ──

    def _generate_stream(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        est_tokens = int(len(prompt.split()) * 1.3)
        log.debug("[OpenAI] Streaming ~%d est. tokens", est_tokens)

        url = f"{self.base_url}/chat/completions"
        content_parts: list[str] = []
        tokens_generated = 0

        response = requests.post(url, headers=self._headers(),
                                 json=self._payload(prompt, system_prompt, True),
                                 stream=True, timeout=(10, 120))
        response.raise_for_status()

        for line in response.iter_lines(decode_unicode=True):
            if not line:
                continue
            if line.startswith("data: "):
                data_str = line[6:]
                if data_str.strip() == "[DONE]":
                    break
                try:
                    chunk = json.loads(data_str)
                    delta = chunk.get("choices", [{}])[0].get("delta", {})
                    token = delta.get("content", "")
                    if token:
                        content_parts.append(token)
                        tokens_generated += 1
                        if self._stream_callback and tokens_generated % 10 == 0:
                            self._stream_callback(tokens_generated)
                except (json.JSONDecodeError, KeyError, IndexError):
                    continue

        result = "".join(content_parts)
        token_tracker.record(est_tokens, tokens_generated)
        log.debug("[OpenAI] Streamed %d tokens", tokens_generated)

        if self._stream_callback:
            self._stream_callback(tokens_generated)

        return result
