# @TASK P3-T3.2 - OpenAI Provider implementation
# @TEST tests/test_ai_router.py
"""OpenAI provider using the official openai SDK (AsyncOpenAI).

Only small, low-latency chat models are offered: query enhancement sits on
the search hot path.
"""

from __future__ import annotations

from typing import Any

import openai
from openai import AsyncOpenAI

from vaultsearch.ai_router.providers.base import AIProvider
from vaultsearch.ai_router.schemas import (
    AIResponse,
    Message,
    ModelInfo,
    ProviderError,
    TokenUsage,
)

_PROVIDER_NAME = "openai"

_SUPPORTED_MODELS: list[ModelInfo] = [
    ModelInfo(id="gpt-4o-mini", name="GPT-4o mini", provider=_PROVIDER_NAME, max_tokens=128_000),
    ModelInfo(id="gpt-4.1-mini", name="GPT-4.1 mini", provider=_PROVIDER_NAME, max_tokens=128_000),
    ModelInfo(id="gpt-4.1-nano", name="GPT-4.1 nano", provider=_PROVIDER_NAME, max_tokens=128_000),
    ModelInfo(id="gpt-4o", name="GPT-4o", provider=_PROVIDER_NAME, max_tokens=128_000),
]

# Models that require max_completion_tokens instead of max_tokens.
_MAX_COMPLETION_TOKENS_PREFIXES = ("gpt-4.1",)


class OpenAIProvider(AIProvider):
    """Provider backed by the OpenAI chat completions API.

    Raises:
        ProviderError: If no API key is given.
    """

    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise ProviderError(
                provider=_PROVIDER_NAME,
                message="API key is required. Set OPENAI_API_KEY.",
            )
        self._client = AsyncOpenAI(api_key=api_key)

    @staticmethod
    def _normalize_kwargs(model: str, kwargs: dict[str, Any]) -> dict[str, Any]:
        if model.startswith(_MAX_COMPLETION_TOKENS_PREFIXES) and "max_tokens" in kwargs:
            kwargs["max_completion_tokens"] = kwargs.pop("max_tokens")
        return kwargs

    async def chat(
        self,
        messages: list[Message],
        model: str,
        **kwargs: Any,
    ) -> AIResponse:
        """Send messages to OpenAI and return a complete response.

        Raises:
            ProviderError: On any OpenAI API error.
        """
        openai_messages = [{"role": m.role, "content": m.content} for m in messages]
        kwargs = self._normalize_kwargs(model, kwargs)
        try:
            completion = await self._client.chat.completions.create(
                model=model,
                messages=openai_messages,
                **kwargs,
            )
        except openai.APIStatusError as exc:
            raise ProviderError(
                provider=_PROVIDER_NAME,
                message=str(exc),
                status_code=exc.status_code,
            ) from exc
        except openai.APIError as exc:
            raise ProviderError(provider=_PROVIDER_NAME, message=str(exc)) from exc

        choice = completion.choices[0]
        usage = None
        if completion.usage is not None:
            usage = TokenUsage(
                prompt_tokens=completion.usage.prompt_tokens,
                completion_tokens=completion.usage.completion_tokens,
                total_tokens=completion.usage.total_tokens,
            )

        return AIResponse(
            content=choice.message.content or "",
            model=completion.model,
            provider=_PROVIDER_NAME,
            usage=usage,
            finish_reason=choice.finish_reason or "stop",
        )

    def available_models(self) -> list[ModelInfo]:
        return list(_SUPPORTED_MODELS)
