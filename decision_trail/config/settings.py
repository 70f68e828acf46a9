"""Application settings using Pydantic."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    storage_backend: Literal["memory", "sql", "files"] = "sql"
    database_url: str = "sqlite:///data/decision_trail.db"
    executions_dir: Path = Path("data/executions")

    # Catalog
    catalog_path: Optional[Path] = None

    # Recording
    auto_save: bool = False

    # Rule filtering (stage 3)
    price_min_ratio: float = 0.5
    price_max_ratio: float = 2.0
    min_rating: float = 3.0
    min_reviews: int = 1

    # Winner eligibility (stage 5)
    min_reviews_for_winner: int = 2
    min_rating_for_winner: float = 3.0
    score_precision: int = 4

    # Logging
    log_level: str = "INFO"
    log_json: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
