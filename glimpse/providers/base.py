"""
Base classes for Glimpse providers.

Providers are explicit handles passed to the components that need them; the
same EmbeddingProvider instance must serve both indexing and querying so
vectors share one embedding space.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class Embedder(Protocol):
    """Anything that turns text into a vector."""

    async def embed(self, text: str) -> list[float]:
        ...


class EmbeddingProvider(ABC):
    """Abstract base class for text embedding backends."""

    def __init__(self, model: str):
        self.model = model

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Short backend name for logs."""
        ...

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed ``text``.

        Raises:
            ProviderError: On any backend failure
        """
        ...

    async def close(self) -> None:
        """Release network resources."""

    async def __aenter__(self) -> "EmbeddingProvider":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class VisionProvider(ABC):
    """Abstract base class for image description backends."""

    def __init__(self, model: str):
        self.model = model

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    async def describe(self, image_path: str | Path, prompt: str | None = None) -> str:
        """Describe the image at ``image_path``.

        Raises:
            ProviderError: On any backend failure
        """
        ...

    @abstractmethod
    async def answer(self, prompt: str, image_paths: Sequence[str | Path]) -> str:
        """Answer ``prompt`` using all of ``image_paths`` as context.

        Raises:
            ProviderError: On any backend failure
        """
        ...

    async def close(self) -> None:
        """Release network resources."""

    async def __aenter__(self) -> "VisionProvider":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
