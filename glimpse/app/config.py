"""
Glimpse Configuration.

Central configuration for storage, indexing, retrieval and providers.
API keys are read from the environment (``.env`` is honored) and never
written to the config file.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from dotenv import load_dotenv

from glimpse.storage.atomic import write_json_atomic

load_dotenv()


# ============================================================================
# Default Paths
# ============================================================================


def get_default_data_dir() -> Path:
    """Get the default data directory for Glimpse."""
    if env_path := os.environ.get("GLIMPSE_DATA_DIR"):
        return Path(env_path)
    return Path.home() / ".glimpse"


def get_default_config_path() -> Path:
    return get_default_data_dir() / "config.json"


# ============================================================================
# Configuration Classes
# ============================================================================


@dataclass
class StorageConfig:
    """Configuration for memory stores."""

    debounce_seconds: float = 0.1
    requeue_orphans: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StorageConfig":
        return cls(**{k: v for k, v in data.items() if hasattr(cls, k)})

    def to_dict(self) -> dict[str, Any]:
        return {
            "debounce_seconds": self.debounce_seconds,
            "requeue_orphans": self.requeue_orphans,
        }


@dataclass
class IndexingConfig:
    """Configuration for the embedding worker."""

    delay_seconds: float = 1.0
    max_concurrent_requests: int = 1
    min_request_interval: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IndexingConfig":
        return cls(**{k: v for k, v in data.items() if hasattr(cls, k)})

    def to_dict(self) -> dict[str, Any]:
        return {
            "delay_seconds": self.delay_seconds,
            "max_concurrent_requests": self.max_concurrent_requests,
            "min_request_interval": self.min_request_interval,
        }


@dataclass
class RetrievalConfig:
    """Configuration for retrieval."""

    top_k: int = 5
    min_similarity: float = 0.0
    recency_weight: float = 0.01  # Score penalty per hour of age

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RetrievalConfig":
        return cls(**{k: v for k, v in data.items() if hasattr(cls, k)})

    def to_dict(self) -> dict[str, Any]:
        return {
            "top_k": self.top_k,
            "min_similarity": self.min_similarity,
            "recency_weight": self.recency_weight,
        }


@dataclass
class EmbeddingConfig:
    """Configuration for the embedding provider (Ollama)."""

    base_url: str = "http://localhost:11434"
    model: str = "embeddinggemma:latest"
    timeout: float = 60.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EmbeddingConfig":
        return cls(**{k: v for k, v in data.items() if hasattr(cls, k)})

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_url": self.base_url,
            "model": self.model,
            "timeout": self.timeout,
        }


@dataclass
class VisionConfig:
    """Configuration for the vision provider (OpenRouter)."""

    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "mistralai/pixtral-12b"
    answer_model: str | None = None  # Falls back to model
    timeout: float = 60.0
    api_key: str | None = None  # Falls back to OPENROUTER_API_KEY

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VisionConfig":
        return cls(
            base_url=data.get("base_url", "https://openrouter.ai/api/v1"),
            model=data.get("model", "mistralai/pixtral-12b"),
            answer_model=data.get("answer_model"),
            timeout=data.get("timeout", 60.0),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "base_url": self.base_url,
            "model": self.model,
            "answer_model": self.answer_model,
            "timeout": self.timeout,
            # Don't serialize API key
        }


@dataclass
class GlimpseConfig:
    """Main configuration for Glimpse.

    Aggregates all sub-configurations and provides load/save functionality.
    """

    data_dir: Path = field(default_factory=get_default_data_dir)

    storage: StorageConfig = field(default_factory=StorageConfig)
    indexing: IndexingConfig = field(default_factory=IndexingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    vision: VisionConfig = field(default_factory=VisionConfig)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    def __post_init__(self):
        if isinstance(self.data_dir, str):
            self.data_dir = Path(self.data_dir)

    @property
    def log_dir(self) -> Path:
        return self.data_dir / "logs"

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "GlimpseConfig":
        """Load configuration from a JSON file.

        Args:
            config_path: Path to config file. If None, uses default location.

        Returns:
            GlimpseConfig instance (defaults when the file does not exist)
        """
        config_path = Path(config_path) if config_path else get_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GlimpseConfig":
        """Create config from dictionary."""
        return cls(
            data_dir=Path(data.get("data_dir", get_default_data_dir())),
            storage=StorageConfig.from_dict(data.get("storage", {})),
            indexing=IndexingConfig.from_dict(data.get("indexing", {})),
            retrieval=RetrievalConfig.from_dict(data.get("retrieval", {})),
            embedding=EmbeddingConfig.from_dict(data.get("embedding", {})),
            vision=VisionConfig.from_dict(data.get("vision", {})),
            log_level=data.get("log_level", "INFO"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "data_dir": str(self.data_dir),
            "storage": self.storage.to_dict(),
            "indexing": self.indexing.to_dict(),
            "retrieval": self.retrieval.to_dict(),
            "embedding": self.embedding.to_dict(),
            "vision": self.vision.to_dict(),
            "log_level": self.log_level,
        }

    def save(self, config_path: str | Path | None = None) -> Path:
        """Save configuration to a JSON file, replacing it atomically.

        Returns:
            Path to saved file

        Raises:
            PersistenceError: If the file cannot be written
        """
        config_path = Path(config_path) if config_path else self.data_dir / "config.json"
        return write_json_atomic(config_path, self.to_dict())

    def ensure_directories(self) -> None:
        """Ensure all configured directories exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.log_dir.mkdir(parents=True, exist_ok=True)


# ============================================================================
# Global Config Instance
# ============================================================================


_global_config: GlimpseConfig | None = None


def get_config() -> GlimpseConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = GlimpseConfig.load()
    return _global_config


def set_config(config: GlimpseConfig) -> None:
    """Set the global configuration instance."""
    global _global_config
    _global_config = config


def reload_config(config_path: str | Path | None = None) -> GlimpseConfig:
    """Reload configuration from disk."""
    global _global_config
    _global_config = GlimpseConfig.load(config_path)
    return _global_config
