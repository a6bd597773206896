"""
Provider construction from configuration.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from glimpse.indexing.rate_limiter import RateLimiter
from glimpse.providers.ollama import OllamaEmbeddingProvider
from glimpse.providers.openrouter import OpenRouterVisionProvider

if TYPE_CHECKING:
    from glimpse.app.config import GlimpseConfig


def create_rate_limiter(config: "GlimpseConfig") -> RateLimiter:
    """Limiter sized from the indexing settings."""
    return RateLimiter(
        max_concurrent=config.indexing.max_concurrent_requests,
        min_delay=config.indexing.min_request_interval,
    )


def create_embedding_provider(
    config: "GlimpseConfig",
    rate_limiter: Optional[RateLimiter] = None,
) -> OllamaEmbeddingProvider:
    """Embedding provider for indexing and querying."""
    return OllamaEmbeddingProvider(
        base_url=config.embedding.base_url,
        model=config.embedding.model,
        timeout=config.embedding.timeout,
        rate_limiter=rate_limiter,
    )


def create_vision_provider(
    config: "GlimpseConfig",
    rate_limiter: Optional[RateLimiter] = None,
) -> OpenRouterVisionProvider:
    """Vision provider for describing captures.

    Raises:
        AuthenticationError: If no API key is configured
    """
    return OpenRouterVisionProvider(
        api_key=config.vision.api_key,
        base_url=config.vision.base_url,
        model=config.vision.model,
        answer_model=config.vision.answer_model,
        timeout=config.vision.timeout,
        rate_limiter=rate_limiter,
    )
