# @TASK P3-T3.3 - Anthropic AI Provider implementation
# @TEST tests/test_ai_router.py
"""Anthropic (Claude) provider via the official ``anthropic`` SDK."""

from __future__ import annotations

from typing import Any

import anthropic

from vaultsearch.ai_router.providers.base import AIProvider
from vaultsearch.ai_router.schemas import AIResponse, Message, ModelInfo, ProviderError, TokenUsage

# Anthropic requires max_tokens on every request
_DEFAULT_MAX_TOKENS = 512


class AnthropicProvider(AIProvider):
    """Provider backed by Anthropic's Messages API.

    Raises:
        ProviderError: If no API key is given.
    """

    def __init__(self, api_key: str) -> None:
        if not api_key:
            raise ProviderError(
                provider="anthropic",
                message="API key is required. Set ANTHROPIC_API_KEY.",
            )
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    @staticmethod
    def _separate_system_messages(
        messages: list[Message],
    ) -> tuple[str | anthropic.NotGiven, list[dict[str, str]]]:
        """Split out system messages; Anthropic takes ``system`` as a top-level parameter."""
        system_parts: list[str] = []
        api_messages: list[dict[str, str]] = []

        for msg in messages:
            if msg.role == "system":
                system_parts.append(msg.content)
            else:
                api_messages.append({"role": msg.role, "content": msg.content})

        system_text: str | anthropic.NotGiven = (
            "\n\n".join(system_parts) if system_parts else anthropic.NOT_GIVEN
        )
        return system_text, api_messages

    async def chat(
        self,
        messages: list[Message],
        model: str,
        **kwargs: Any,
    ) -> AIResponse:
        """Send a chat request and return a complete response.

        Raises:
            ProviderError: On any Anthropic API error.
        """
        system_text, api_messages = self._separate_system_messages(messages)
        max_tokens = kwargs.pop("max_tokens", _DEFAULT_MAX_TOKENS)

        try:
            response = await self._client.messages.create(
                model=model,
                messages=api_messages,
                system=system_text,
                max_tokens=max_tokens,
                **kwargs,
            )
        except anthropic.APIStatusError as exc:
            raise ProviderError(
                provider="anthropic",
                message=str(exc.message),
                status_code=exc.response.status_code,
            ) from exc
        except anthropic.APIError as exc:
            raise ProviderError(provider="anthropic", message=str(exc.message)) from exc

        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            total_tokens=response.usage.input_tokens + response.usage.output_tokens,
        )
        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")

        return AIResponse(
            content=text,
            model=response.model,
            provider="anthropic",
            usage=usage,
            finish_reason=response.stop_reason or "stop",
        )

    def available_models(self) -> list[ModelInfo]:
        return [
            ModelInfo(
                id="claude-3-5-haiku-latest",
                name="Claude 3.5 Haiku",
                provider="anthropic",
                max_tokens=200_000,
            ),
            ModelInfo(
                id="claude-3-5-sonnet-latest",
                name="Claude 3.5 Sonnet",
                provider="anthropic",
                max_tokens=200_000,
            ),
        ]
