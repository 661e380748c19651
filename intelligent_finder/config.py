"""Configuration management using pydantic-settings."""
import logging
import sys
from enum import Enum
from typing import Any, Literal, Optional

import structlog
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheBackendType(str, Enum):
    """Supported match cache backends."""
    MEMORY = "memory"
    REDIS = "redis"


class MatchingSettings(BaseSettings):
    """Matching pipeline configuration loaded from environment variables.

    All settings prefixed with MATCH_ (e.g., MATCH_MIN_CONFIDENCE=0.6)
    """

    # Result selection
    min_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Results below this confidence are dropped (default: 0.5)"
    )
    max_results: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum number of results returned per document"
    )

    # Batch processing
    batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Number of documents per progress group"
    )
    concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Maximum find_matches calls in flight during a batch"
    )
    candidate_concurrency: int = Field(
        default=64,
        ge=1,
        le=4096,
        description="Maximum candidates scored simultaneously inside one find_matches call"
    )
    strict_batch_status: bool = Field(
        default=False,
        description="Report partially_failed/failed batch statuses instead of always completed"
    )

    model_config = SettingsConfigDict(
        env_prefix="MATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class ScoringSettings(BaseSettings):
    """Confidence scoring configuration.

    All settings prefixed with SCORING_ (e.g., SCORING_LEARNING_RATE=0.05)
    """

    learning_rate: float = Field(
        default=0.02,
        gt=0.0,
        le=0.5,
        description="Step size of the online weight update from feedback"
    )

    # Tier boundaries (each inclusive on its lower bound)
    high_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    medium_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    low_threshold: float = Field(default=0.5, ge=0.0, le=1.0)

    # Default weights
    weight_fuzzy: float = Field(default=0.25, ge=0.0)
    weight_semantic: float = Field(default=0.25, ge=0.0)
    weight_date: float = Field(default=0.2, ge=0.0)
    weight_amount: float = Field(default=0.3, ge=0.0)
    weight_metadata: float = Field(default=0.0, ge=0.0)

    model_config = SettingsConfigDict(
        env_prefix="SCORING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def default_weights(self) -> dict[str, float]:
        """Default weight set keyed by factor name."""
        return {
            "fuzzy": self.weight_fuzzy,
            "semantic": self.weight_semantic,
            "date": self.weight_date,
            "amount": self.weight_amount,
            "metadata": self.weight_metadata,
        }


class CacheSettings(BaseSettings):
    """Match cache configuration.

    All settings prefixed with CACHE_ (e.g., CACHE_BACKEND=redis)
    """

    backend: CacheBackendType = Field(
        default=CacheBackendType.MEMORY,
        description="Cache backend to use (memory, redis)"
    )
    ttl_seconds: int = Field(
        default=3600,
        ge=1,
        le=7 * 24 * 60 * 60,
        description="Lifetime of a cached candidate list"
    )
    key_prefix: str = Field(default="finder:matches:", description="Redis key prefix")

    # Redis Configuration
    redis_host: str = "localhost"
    redis_port: int = Field(default=6379, ge=1, le=65535)
    redis_password: Optional[str] = None
    redis_db: int = Field(default=0, ge=0, le=15)

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def redis_url(self) -> str:
        """Build the Redis connection URL."""
        auth = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


class EngineSettings(BaseSettings):
    """Tolerances of the default similarity engines (prefix ENGINE_)."""

    date_window_days: int = Field(
        default=30,
        ge=1,
        le=3650,
        description="Date difference at which the date score decays to zero"
    )
    amount_absolute_tolerance: float = Field(
        default=0.01,
        ge=0.0,
        description="Absolute amount difference still treated as a match"
    )
    amount_percentage_tolerance: float = Field(
        default=0.02,
        ge=0.0,
        le=1.0,
        description="Relative amount difference still treated as a match"
    )

    model_config = SettingsConfigDict(
        env_prefix="ENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class EmbeddingSettings(BaseSettings):
    """Embedding backend configuration for the semantic engine (prefix EMBED_)."""

    ollama_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL"
    )
    model: str = Field(default="nomic-embed-text", description="Embedding model name")
    timeout: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Request timeout in seconds"
    )
    max_retries: int = Field(default=3, ge=1, le=10, description="Maximum retry attempts")

    model_config = SettingsConfigDict(
        env_prefix="EMBED_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Global settings instances
settings = Settings()
matching_settings = MatchingSettings()
scoring_settings = ScoringSettings()
cache_settings = CacheSettings()
engine_settings = EngineSettings()
embedding_settings = EmbeddingSettings()


def configure_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog for JSON (production) or console (development) output."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    shared_processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_logs:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=False),
        ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


configure_logging(settings.log_level, json_logs=settings.is_production)
