"""
Providers - embedding and vision backends.

Supports Ollama for embeddings and OpenRouter for screenshot descriptions.
"""

from glimpse.providers.base import Embedder, EmbeddingProvider, VisionProvider
from glimpse.providers.ollama import OllamaEmbeddingProvider
from glimpse.providers.openrouter import OpenRouterVisionProvider, DESCRIPTION_PROMPT
from glimpse.providers.factory import (
    create_rate_limiter,
    create_embedding_provider,
    create_vision_provider,
)

__all__ = [
    # Base
    "Embedder",
    "EmbeddingProvider",
    "VisionProvider",
    # Providers
    "OllamaEmbeddingProvider",
    "OpenRouterVisionProvider",
    "DESCRIPTION_PROMPT",
    # Factory
    "create_rate_limiter",
    "create_embedding_provider",
    "create_vision_provider",
]
