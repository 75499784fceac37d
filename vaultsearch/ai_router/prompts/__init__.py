"""Prompt templates sent to the language service."""

from vaultsearch.ai_router.prompts import query_enhance

__all__ = ["query_enhance"]
