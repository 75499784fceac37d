# @TASK P3-T3.1 - Abstract AI Provider interface
"""Abstract base class for language providers.

Each provider (OpenAI, Anthropic) implements this interface so the
AIRouter can dispatch to it by model id.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from vaultsearch.ai_router.schemas import AIResponse, Message, ModelInfo


class AIProvider(ABC):
    """Interface every provider implements: ``chat`` and ``available_models``."""

    @abstractmethod
    async def chat(
        self,
        messages: list[Message],
        model: str,
        **kwargs: Any,
    ) -> AIResponse:
        """Send a chat request and return a complete response.

        Args:
            messages: The conversation as a list of Messages.
            model: The model identifier to use.
            **kwargs: Provider parameters (temperature, max_tokens).

        Raises:
            ProviderError: If the provider request fails.
        """
        ...

    @abstractmethod
    def available_models(self) -> list[ModelInfo]:
        """Return the models this provider serves, preferred first."""
        ...
