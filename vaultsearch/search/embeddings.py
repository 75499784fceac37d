# @TASK P2-T2.4 - Query embedding provider
# @TEST tests/test_embeddings.py

"""Embedding service for converting query text into vector embeddings.

Uses the OpenAI embeddings API (text-embedding-3-small by default)
to generate vectors comparable with the ``dumps.content_vector`` column.
"""

import logging

import httpx
import tiktoken
from openai import APIError, AsyncOpenAI

from vaultsearch.config import get_settings

logger = logging.getLogger(__name__)


class EmbeddingError(Exception):
    """Raised when an embedding API call fails."""


class EmbeddingService:
    """Generate vector embeddings for text.

    Supports two modes:

    * **OpenAI API mode** (default) -- uses the OpenAI embeddings endpoint.
    * **Local HTTP mode** -- when ``local_url`` (the ``EMBEDDING_SERVICE_URL``
      setting) is given, requests are forwarded to a local embedding
      service instead.

    Parameters
    ----------
    api_key : str
        OpenAI API key.  Ignored when running in local mode.
    model : str
        Embedding model name (default: ``text-embedding-3-small``).
        Only used in OpenAI mode.
    dimensions : int
        Output vector dimensions (default: 1536).
    max_tokens : int
        Inputs longer than this are truncated before embedding.
    local_url : str | None
        Base URL of a local embedding service.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = "text-embedding-3-small",
        dimensions: int = 1536,
        max_tokens: int = 8191,
        local_url: str | None = None,
    ) -> None:
        self._model = model
        self._dimensions = dimensions
        self._max_tokens = max_tokens
        self._local_url = local_url or None
        self._has_api_key = bool(api_key)

        if self._local_url:
            logger.info(
                "EmbeddingService: local mode enabled (%s)", self._local_url
            )
            self._client = None
            self._encoding = None
        else:
            self._client = AsyncOpenAI(api_key=api_key)
            # Use the tokenizer for the chosen model
            self._encoding = tiktoken.encoding_for_model(model)

    @classmethod
    def from_settings(cls) -> "EmbeddingService":
        settings = get_settings()
        return cls(
            api_key=settings.OPENAI_API_KEY,
            model=settings.EMBEDDING_MODEL,
            dimensions=settings.EMBEDDING_DIMENSION,
            max_tokens=settings.EMBEDDING_MAX_TOKENS,
            local_url=settings.EMBEDDING_SERVICE_URL,
        )

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def is_configured(self) -> bool:
        """Whether a backend is available (local service URL or API key)."""
        return bool(self._local_url) or self._has_api_key

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_text(self, text: str) -> list[float]:
        """Embed a single text string.

        Returns an empty list when *text* is empty or whitespace-only.

        Raises
        ------
        EmbeddingError
            If the embedding backend call fails.
        """
        if not text or not text.strip():
            return []

        result = await self._call_api([self.truncate(text)])
        return result[0]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts in one backend call.

        Returns an empty list when *texts* is empty. Every item must be
        non-blank; callers filter blank texts first.

        Raises
        ------
        EmbeddingError
            If the embedding backend call fails or returns a different
            number of vectors than texts.
        """
        if not texts:
            return []

        vectors = await self._call_api([self.truncate(t) for t in texts])
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(vectors)}"
            )
        return vectors

    def truncate(self, text: str) -> str:
        """Trim *text* to the model's input limit.

        In local mode (no tiktoken encoder) a 4-characters-per-token
        approximation is used.
        """
        if self._encoding is None:
            return text[: self._max_tokens * 4]

        tokens = self._encoding.encode(text)
        if len(tokens) <= self._max_tokens:
            return text
        return self._encoding.decode(tokens[: self._max_tokens])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call_api(self, texts: list[str]) -> list[list[float]]:
        """Dispatch to the appropriate backend (OpenAI or local HTTP).

        Raises
        ------
        EmbeddingError
            If the underlying API call fails.
        """
        if self._local_url:
            return await self._call_local_api(texts)
        return await self._call_openai_api(texts)

    async def _call_openai_api(self, texts: list[str]) -> list[list[float]]:
        """Call the OpenAI embeddings API.

        Raises
        ------
        EmbeddingError
            Wraps any ``openai.APIError`` into a domain-specific exception.
        """
        try:
            response = await self._client.embeddings.create(
                input=texts,
                model=self._model,
                dimensions=self._dimensions,
            )
        except APIError as exc:
            logger.error("Embedding API error: %s", exc)
            raise EmbeddingError(str(exc)) from exc

        sorted_data = sorted(response.data, key=lambda d: d.index)
        return [item.embedding for item in sorted_data]

    async def _call_local_api(self, texts: list[str]) -> list[list[float]]:
        """Call a local HTTP embedding service.

        Expects ``POST /embed`` accepting ``{"input": [...], "dimensions": N}``
        and returning ``{"embeddings": [[...], ...]}``.

        Raises
        ------
        EmbeddingError
            If the HTTP request fails or returns an unexpected response.
        """
        url = f"{self._local_url}/embed"
        payload = {"input": texts, "dimensions": self._dimensions}

        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                data = response.json()
                return data["embeddings"]
        except httpx.HTTPStatusError as exc:
            logger.error("Local embedding HTTP error: %s", exc)
            raise EmbeddingError(str(exc)) from exc
        except httpx.RequestError as exc:
            logger.error("Local embedding request error: %s", exc)
            raise EmbeddingError(str(exc)) from exc
        except (KeyError, ValueError) as exc:
            logger.error("Local embedding response parse error: %s", exc)
            raise EmbeddingError(
                f"Unexpected response from local embedding service: {exc}"
            ) from exc
