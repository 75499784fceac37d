# @TASK P3-T3.2 - OpenAI Provider
# @TASK P3-T3.3 - Anthropic Provider
"""AI Provider implementations."""

from vaultsearch.ai_router.providers.anthropic import AnthropicProvider
from vaultsearch.ai_router.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "OpenAIProvider"]
