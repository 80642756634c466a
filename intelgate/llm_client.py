"""Async wrapper around any OpenAI-compatible chat completions endpoint.

Works with OpenAI, DeepSeek, Gemini (OpenAI compat) or a local proxy; swap
``base_url`` and ``model``. Failures surface as ``ProviderError`` tagged
transient or permanent so the job worker decides whether to retry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import openai
from openai import AsyncOpenAI

from intelgate.analysis.base import ProviderError
from intelgate.config import get_settings

logger = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class LLMClient:
    """Thin async wrapper around any OpenAI-compatible chat completions API."""

    def __init__(
        self,
        provider: str,
        api_key: str,
        base_url: str,
        model: str,
        max_retries: int = 1,
        backoff_base: float = 2.0,
        timeout: float = 60.0,
    ) -> None:
        self.provider = provider
        self.model = model
        self.max_retries = max(1, max_retries)
        self.backoff_base = backoff_base

        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

        self._total_prompt_tokens = 0
        self._total_completion_tokens = 0
        self._calls = 0

    # ── core completion ────────────────────────────────────────────────
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        json_mode: bool = False,
    ) -> str:
        """Send a single chat completion request with retry + backoff."""
        messages: list[dict[str, str]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

        kwargs: dict[str, Any] = {"model": self.model, "messages": messages}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        last_exc: BaseException | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.chat.completions.create(**kwargs)
                self._calls += 1
                usage = response.usage
                if usage:
                    self._total_prompt_tokens += usage.prompt_tokens
                    self._total_completion_tokens += usage.completion_tokens
                    logger.debug(
                        "LLM usage [%s/%s] prompt=%d completion=%d",
                        self.provider,
                        self.model,
                        usage.prompt_tokens,
                        usage.completion_tokens,
                    )
                return response.choices[0].message.content or ""
            except _TRANSIENT_ERRORS as exc:
                last_exc = exc
                if attempt < self.max_retries:
                    wait = self.backoff_base ** attempt
                    logger.warning(
                        "LLM call failed (attempt %d/%d, provider=%s): %s, retrying in %.1fs",
                        attempt, self.max_retries, self.provider, exc, wait,
                    )
                    await asyncio.sleep(wait)
            except openai.APIError as exc:
                raise ProviderError(f"{self.provider} rejected request: {exc}", transient=False) from exc

        raise ProviderError(
            f"LLM call failed after {self.max_retries} attempts: {last_exc}", transient=True,
        ) from last_exc

    # ── stats ──────────────────────────────────────────────────────────
    @property
    def token_usage(self) -> dict[str, int]:
        return {
            "calls": self._calls,
            "prompt_tokens": self._total_prompt_tokens,
            "completion_tokens": self._total_completion_tokens,
            "total_tokens": self._total_prompt_tokens + self._total_completion_tokens,
        }


# ── module-level factory ───────────────────────────────────────────────

_analysis_client: LLMClient | None = None


def get_analysis_client() -> LLMClient:
    """Return (and cache) an LLMClient configured for the analysis tier."""
    global _analysis_client
    if _analysis_client is None:
        s = get_settings()
        _analysis_client = LLMClient(
            provider=s.llm_provider,
            api_key=s.llm_api_key,
            base_url=s.llm_base_url,
            model=s.llm_model,
            max_retries=s.llm_max_retries,
        )
    return _analysis_client
