# @TASK P3-T3.6 - AI Router unified interface
# @TEST tests/test_ai_router.py
"""AI Router - single chat interface over the configured language providers.

The AIRouter auto-detects available providers from the API keys in
:class:`~vaultsearch.config.Settings` and dispatches each request to the
provider that serves the requested model.

Usage:
    router = AIRouter()  # auto-detects providers from settings
    response = await router.chat(AIRequest(messages=[...], model="gpt-4o-mini"))
"""

from __future__ import annotations

import importlib
import logging
from typing import Any

from vaultsearch.ai_router.providers.base import AIProvider
from vaultsearch.ai_router.schemas import (
    AIRequest,
    AIResponse,
    ModelInfo,
    ProviderError,
)
from vaultsearch.config import get_settings

logger = logging.getLogger(__name__)

# (settings attribute, provider name, provider class path)
_PROVIDER_REGISTRY: list[tuple[str, str, str]] = [
    ("OPENAI_API_KEY", "openai", "vaultsearch.ai_router.providers.openai.OpenAIProvider"),
    ("ANTHROPIC_API_KEY", "anthropic", "vaultsearch.ai_router.providers.anthropic.AnthropicProvider"),
]


class AIRouter:
    """Manages language providers behind one interface.

    Providers whose keys are missing are skipped. Pass ``auto_detect=False``
    to start empty and register providers manually.
    """

    def __init__(self, auto_detect: bool = True) -> None:
        self._providers: dict[str, AIProvider] = {}
        if auto_detect:
            self._auto_detect()

    # ------------------------------------------------------------------
    # Auto-detection
    # ------------------------------------------------------------------

    def _auto_detect(self) -> None:
        """Register every provider whose API key is configured.

        Errors during instantiation are logged and the provider is skipped.
        """
        settings = get_settings()
        for attr, name, class_path in _PROVIDER_REGISTRY:
            api_key = getattr(settings, attr, "")
            if not api_key:
                continue

            try:
                module_path, class_name = class_path.rsplit(".", 1)
                module = importlib.import_module(module_path)
                provider_cls = getattr(module, class_name)
                self._providers[name] = provider_cls(api_key=api_key)
                logger.info("Auto-detected AI provider: %s", name)
            except Exception:
                logger.warning(
                    "Failed to initialize provider %s (key present but init failed)",
                    name,
                    exc_info=True,
                )

    # ------------------------------------------------------------------
    # Provider management
    # ------------------------------------------------------------------

    def register_provider(self, name: str, provider: AIProvider) -> None:
        """Register (or replace) a provider under ``name``."""
        self._providers[name] = provider

    def available_providers(self) -> list[str]:
        return list(self._providers.keys())

    def has_providers(self) -> bool:
        return bool(self._providers)

    def all_models(self) -> list[ModelInfo]:
        models: list[ModelInfo] = []
        for provider in self._providers.values():
            models.extend(provider.available_models())
        return models

    def resolve_model(self, model: str | None = None) -> tuple[str, AIProvider]:
        """Find the provider that serves a given model.

        Args:
            model: Model identifier. When *None*, the first registered
                provider's preferred model is selected.

        Returns:
            A tuple of (model_id, provider_instance).

        Raises:
            ProviderError: If no providers are registered or the model
                cannot be found.
        """
        if not self._providers:
            raise ProviderError(
                provider="router",
                message="No AI providers are registered. "
                "Set OPENAI_API_KEY or ANTHROPIC_API_KEY.",
            )

        if model is None:
            first_provider_name = next(iter(self._providers))
            first_provider = self._providers[first_provider_name]
            models = first_provider.available_models()
            if not models:
                raise ProviderError(
                    provider=first_provider_name,
                    message="Provider has no available models.",
                )
            return models[0].id, first_provider

        for provider in self._providers.values():
            for model_info in provider.available_models():
                if model_info.id == model:
                    return model, provider

        available_ids = [m.id for m in self.all_models()]
        raise ProviderError(
            provider="router",
            message=f"Model '{model}' not found. Available models: "
            f"{', '.join(available_ids) or 'none'}",
        )

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(self, request: AIRequest) -> AIResponse:
        """Send a chat request to the provider serving ``request.model``.

        Raises:
            ProviderError: If the model cannot be resolved or the provider
                call fails.
        """
        model_name, provider = self.resolve_model(request.model)

        kwargs: dict[str, Any] = {}
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature
        if request.max_tokens is not None:
            kwargs["max_tokens"] = request.max_tokens

        return await provider.chat(
            messages=request.messages,
            model=model_name,
            **kwargs,
        )
