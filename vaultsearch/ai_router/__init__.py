# @TASK P3-T3.1 - Language service package
"""AI Router - Unified chat interface over the configured language providers."""

from vaultsearch.ai_router.router import AIRouter

__all__ = ["AIRouter"]
