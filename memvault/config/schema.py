"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageConfig(BaseModel):
    """Where the index, metrics log and session hierarchy live."""
    home: str = "~/.memvault"

    @property
    def home_path(self) -> Path:
        return Path(self.home).expanduser()

    @property
    def sessions_path(self) -> Path:
        return self.home_path / "sessions"

    @property
    def index_path(self) -> Path:
        return self.home_path / "memory-index.json"

    @property
    def metrics_path(self) -> Path:
        return self.home_path / "memory-metrics.json"


class QualityConfig(BaseModel):
    """Weights for ranking memories by recency and quality."""
    recency_weight: float = Field(default=0.4, ge=0.0, le=1.0)
    quality_weight: float = Field(default=0.6, ge=0.0, le=1.0)
    max_age_days: int = Field(default=365, ge=2, description="Age at which recency bottoms out")
    min_quality_score: float = Field(default=0.3, ge=0.0, le=1.0, description="Memories below this are not loaded")


class LoaderConfig(BaseModel):
    """Defaults for context injection."""
    limit: int = Field(default=3, ge=1)
    max_age: int = Field(default=30, ge=1, description="Only load memories from the last N days")
    sort_by: Literal["recent", "relevance"] = "recent"


class ArchiveConfig(BaseModel):
    """Archive scoring configuration."""
    model_config = ConfigDict(extra="ignore")

    threshold: float = Field(default=0.6, ge=0.0, le=1.0, description="finalScore above this archives")
    age_horizon_days: int = Field(default=90, ge=1)
    usage_saturation: int = Field(default=10, ge=1)
    oversized_file_mb: float = Field(default=5.0, gt=0.0)
    cache_threshold_mb: float = Field(default=5.0, gt=0.0)


class Config(BaseSettings):
    """Root configuration for memvault."""
    model_config = SettingsConfigDict(env_prefix="MEMVAULT_", env_nested_delimiter="__")

    storage: StorageConfig = Field(default_factory=StorageConfig)
    quality: QualityConfig = Field(default_factory=QualityConfig)
    loader: LoaderConfig = Field(default_factory=LoaderConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)

    @property
    def sessions_path(self) -> Path:
        return self.storage.sessions_path
