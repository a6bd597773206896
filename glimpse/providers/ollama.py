"""
Ollama embedding provider for Glimpse.

Calls a local Ollama server's ``/api/embeddings`` endpoint.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

import httpx
from dotenv import load_dotenv

from glimpse.core.errors import ProviderError
from glimpse.indexing.rate_limiter import RateLimiter
from glimpse.providers.base import EmbeddingProvider
from glimpse.providers.http import HTTPProviderMixin

load_dotenv()

logger = logging.getLogger(__name__)


class OllamaEmbeddingProvider(HTTPProviderMixin, EmbeddingProvider):
    """Text embeddings from an Ollama server.

    Every vector this provider returns comes from one model, which keeps
    indexing and querying in the same embedding space.
    """

    DEFAULT_BASE_URL = "http://localhost:11434"
    DEFAULT_MODEL = "embeddinggemma:latest"

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        timeout: float = 60.0,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the provider.

        Args:
            base_url: Ollama server URL (default: OLLAMA_BASE_URL env var or
                http://localhost:11434)
            model: Embedding model (default: OLLAMA_EMBED_MODEL env var or
                embeddinggemma:latest)
            timeout: Per-request timeout in seconds
            rate_limiter: Optional limiter applied to every request
            transport: Custom httpx transport
        """
        super().__init__(model or os.getenv("OLLAMA_EMBED_MODEL") or self.DEFAULT_MODEL)
        self.base_url = (base_url or os.getenv("OLLAMA_BASE_URL") or self.DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self.rate_limiter = rate_limiter
        self._transport = transport
        self._client = None
        self._dimension: int | None = None

        logger.info(f"OllamaEmbeddingProvider using model '{self.model}' at {self.base_url}")

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def dimension(self) -> int | None:
        """Vector length seen so far, or None before the first call."""
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        """Embed ``text`` with the configured model.

        Raises:
            ProviderError: On HTTP failure or a malformed response
        """
        payload = {"model": self.model, "prompt": text}

        if self.rate_limiter is not None:
            async with self.rate_limiter:
                response = await self._post("/api/embeddings", payload)
        else:
            response = await self._post("/api/embeddings", payload)

        embedding = response.get("embedding")
        if not isinstance(embedding, list) or not embedding:
            raise ProviderError(f"Ollama returned no embedding for model '{self.model}'")
        try:
            vector = [float(x) for x in embedding]
        except (TypeError, ValueError) as e:
            raise ProviderError(f"Ollama returned a non-numeric embedding: {e}") from e

        if self._dimension is None:
            self._dimension = len(vector)
        elif len(vector) != self._dimension:
            logger.warning(
                f"Embedding dimension changed from {self._dimension} to {len(vector)} "
                f"for model '{self.model}'"
            )
        return vector
