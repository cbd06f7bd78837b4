"""Universal LLM client wrapper using OpenAI-compatible endpoints.

Works with OpenAI and Anthropic (via its OpenAI-compatible endpoint); you
just swap the base_url and model. Every reply is normalised into a
ModelResponse here so nothing downstream branches on provider shapes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from openai import AsyncOpenAI

from solpulse.config import Settings

logger = logging.getLogger(__name__)

_ERROR_PREFIXES = ("an error", "i apologize", "sorry,")


class EmptyCompletionError(RuntimeError):
    """The provider answered, but with nothing usable."""


@dataclass(frozen=True)
class ModelResponse:
    content: str
    provider: str
    model: str
    tokens_used: int | None = None


def _is_reasoning_model(model: str) -> bool:
    # o-series models reject temperature and response_format
    return model.startswith(("o3", "o4"))


class LLMClient:
    """Thin async wrapper around any OpenAI-compatible chat completions API."""

    def __init__(
        self,
        provider: str,
        api_key: str,
        base_url: str,
        supports_json_mode: bool = True,
        max_retries: int = 1,
        backoff_base: float = 2.0,
        client: Any | None = None,
    ) -> None:
        self.provider = provider
        self.supports_json_mode = supports_json_mode
        self.max_retries = max_retries
        self.backoff_base = backoff_base

        self._client = client or AsyncOpenAI(
            api_key=api_key or "missing",
            base_url=base_url,
        )

        self._total_prompt_tokens = 0
        self._total_completion_tokens = 0

    # ── core completion ────────────────────────────────────────────────
    async def complete(
        self,
        model: str,
        messages: list[dict[str, str]],
        json_mode: bool = False,
        max_tokens: int = 4000,
        temperature: float = 0.7,
    ) -> ModelResponse:
        """Send a chat completion request; the last failure is re-raised as-is."""
        kwargs: dict[str, Any] = {"model": model, "messages": messages}
        if _is_reasoning_model(model):
            kwargs["max_completion_tokens"] = max_tokens
        else:
            kwargs["max_tokens"] = max_tokens
            kwargs["temperature"] = temperature
            if json_mode and self.supports_json_mode:
                kwargs["response_format"] = {"type": "json_object"}

        for attempt in range(1, self.max_retries + 1):
            try:
                response = await self._client.chat.completions.create(**kwargs)
                return self._normalise(model, response)
            except EmptyCompletionError:
                raise
            except Exception as exc:
                if attempt >= self.max_retries:
                    raise
                wait = self.backoff_base ** attempt
                logger.warning(
                    "LLM call failed (attempt %d/%d, provider=%s): %s — retrying in %.1fs",
                    attempt,
                    self.max_retries,
                    self.provider,
                    exc,
                    wait,
                )
                await asyncio.sleep(wait)
        raise EmptyCompletionError(f"no attempts made against {self.provider}/{model}")

    def _normalise(self, model: str, response: Any) -> ModelResponse:
        content = ""
        if response.choices:
            content = response.choices[0].message.content or ""
        if not content.strip():
            raise EmptyCompletionError(f"Empty response from {model}")
        if content.strip().lower().startswith(_ERROR_PREFIXES):
            raise EmptyCompletionError(
                f"Model returned error text instead of completion: {content[:120]}"
            )

        tokens_used = None
        usage = response.usage
        if usage:
            self._total_prompt_tokens += usage.prompt_tokens or 0
            self._total_completion_tokens += usage.completion_tokens or 0
            tokens_used = usage.total_tokens
            logger.debug(
                "LLM usage [%s/%s] prompt=%d completion=%d",
                self.provider,
                model,
                usage.prompt_tokens or 0,
                usage.completion_tokens or 0,
            )
        return ModelResponse(content=content, provider=self.provider, model=model, tokens_used=tokens_used)

    # ── stats ──────────────────────────────────────────────────────────
    @property
    def token_usage(self) -> dict[str, int]:
        return {
            "prompt_tokens": self._total_prompt_tokens,
            "completion_tokens": self._total_completion_tokens,
            "total_tokens": self._total_prompt_tokens + self._total_completion_tokens,
        }


# ── factory ────────────────────────────────────────────────────────────

def build_provider_clients(settings: Settings) -> dict[str, LLMClient]:
    """One client per configured provider; Anthropic only when a key is set."""
    clients = {
        "openai": LLMClient(
            provider="openai",
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
        ),
    }
    if settings.has_anthropic:
        clients["anthropic"] = LLMClient(
            provider="anthropic",
            api_key=settings.anthropic_api_key,
            base_url=settings.anthropic_base_url,
            supports_json_mode=False,
        )
    return clients
