"""ModelRouter — maps task roles onto provider/model bindings.

Roles:
  * reasoning  narrative detection
  * writing    idea generation (Anthropic when configured)
  * fallback   cheap backup for any other failure

A provider that reports billing/quota exhaustion is switched OPEN for the
rest of the process and its role is served by the reasoning binding. There
is no reset path: a restart is the only way back to CLOSED.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Literal

from solpulse.config import Settings
from solpulse.llm_client import LLMClient, ModelResponse, build_provider_clients

logger = logging.getLogger(__name__)

Role = Literal["reasoning", "writing", "fallback"]


class CircuitState(str, enum.Enum):
    CLOSED = "closed"
    OPEN = "open"


@dataclass(frozen=True)
class ModelBinding:
    provider: str
    model: str
    label: str


# ── quota classifiers ─────────────────────────────────────────────────

def _error_fields(exc: BaseException) -> tuple[int | None, str, str]:
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    err_type = ""
    body: Any = getattr(exc, "body", None)
    if isinstance(body, dict):
        inner = body.get("error") if isinstance(body.get("error"), dict) else body
        err_type = str(inner.get("type") or inner.get("code") or "")
    err_type = err_type or str(getattr(exc, "type", None) or getattr(exc, "code", None) or "")
    message = str(getattr(exc, "message", None) or exc).lower()
    return status, err_type, message


def is_anthropic_credit_error(exc: BaseException) -> bool:
    status, err_type, message = _error_fields(exc)
    if status in (400, 403) and (
        err_type == "billing_error" or any(w in message for w in ("billing", "credit", "quota"))
    ):
        return True
    if status == 429 and (err_type == "insufficient_credits" or "credit" in message):
        return True
    return any(
        phrase in message
        for phrase in ("insufficient funds", "payment required", "exceeded your current quota")
    )


def is_openai_quota_error(exc: BaseException) -> bool:
    status, err_type, message = _error_fields(exc)
    if err_type == "insufficient_quota":
        return True
    return status == 429 and "exceeded your current quota" in message


QUOTA_CLASSIFIERS: dict[str, Callable[[BaseException], bool]] = {
    "anthropic": is_anthropic_credit_error,
    "openai": is_openai_quota_error,
}


def default_bindings(settings: Settings) -> dict[str, ModelBinding]:
    if settings.has_anthropic:
        writing = ModelBinding("anthropic", settings.writing_model, f"{settings.writing_model} (writing)")
    else:
        writing = ModelBinding("openai", settings.fallback_model, f"{settings.fallback_model} (writing)")
    return {
        "reasoning": ModelBinding("openai", settings.reasoning_model, f"{settings.reasoning_model} (reasoning)"),
        "writing": writing,
        "fallback": ModelBinding("openai", settings.fallback_model, f"{settings.fallback_model} (fallback)"),
    }


class ModelRouter:
    """Routes a role's call to its binding with breaker and fallback handling."""

    def __init__(self, clients: dict[str, LLMClient], bindings: dict[str, ModelBinding]) -> None:
        missing = {b.provider for b in bindings.values()} - set(clients)
        if missing:
            raise ValueError(f"no client configured for provider(s): {', '.join(sorted(missing))}")
        self._clients = clients
        self._bindings = bindings
        self._breakers: dict[str, CircuitState] = {p: CircuitState.CLOSED for p in clients}
        self.calls_routed = 0
        self.fallbacks_used = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> ModelRouter:
        return cls(build_provider_clients(settings), default_bindings(settings))

    def state(self, provider: str) -> CircuitState:
        return self._breakers.get(provider, CircuitState.CLOSED)

    def _trip(self, provider: str) -> None:
        if self._breakers.get(provider) is CircuitState.OPEN:
            return
        self._breakers[provider] = CircuitState.OPEN
        logger.error(
            "[router] %s quota exhausted — circuit OPEN, rerouting to %s for this process",
            provider,
            self._bindings["reasoning"].label,
        )

    async def _call(
        self, binding: ModelBinding, messages: list[dict[str, str]], **options: Any
    ) -> ModelResponse:
        return await self._clients[binding.provider].complete(binding.model, messages, **options)

    async def route(
        self,
        role: Role,
        messages: list[dict[str, str]],
        json_mode: bool = False,
        max_tokens: int = 4000,
        temperature: float = 0.7,
    ) -> ModelResponse:
        binding = self._bindings[role]
        reasoning = self._bindings["reasoning"]
        options = {"json_mode": json_mode, "max_tokens": max_tokens, "temperature": temperature}
        self.calls_routed += 1

        if self.state(binding.provider) is CircuitState.OPEN and binding.provider != reasoning.provider:
            logger.warning("[router] %s circuit open — routing %r to %s", binding.provider, role, reasoning.label)
            return await self._call(reasoning, messages, **options)

        try:
            return await self._call(binding, messages, **options)
        except Exception as exc:
            classifier = QUOTA_CLASSIFIERS.get(binding.provider)
            if binding.provider != reasoning.provider and classifier and classifier(exc):
                self._trip(binding.provider)
                return await self._call(reasoning, messages, **options)

            fallback = self._bindings["fallback"]
            self.fallbacks_used += 1
            logger.warning(
                "[router] %s failed (%s: %s), falling back to %s",
                binding.label,
                type(exc).__name__,
                exc,
                fallback.label,
            )
            return await self._call(fallback, messages, **options)

    def active_models(self) -> dict[str, Any]:
        writing = self._bindings["writing"]
        writing_open = self.state(writing.provider) is CircuitState.OPEN
        return {
            "reasoning": self._bindings["reasoning"].label,
            "writing": (
                f"{self._bindings['reasoning'].model} ({writing.provider} credits exhausted)"
                if writing_open
                else writing.label
            ),
            "fallback": self._bindings["fallback"].label,
            "hasAnthropic": "anthropic" in self._clients and self.state("anthropic") is CircuitState.CLOSED,
            "breakers": {p: s.value for p, s in self._breakers.items()},
        }

    def get_stats(self) -> dict[str, Any]:
        return {
            "calls_routed": self.calls_routed,
            "fallbacks_used": self.fallbacks_used,
            "token_usage": {p: c.token_usage for p, c in self._clients.items()},
        }
