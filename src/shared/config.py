# Configuration loader with environment variable support.
# Every component accepts its section explicitly; the process-wide cache below
# is a convenience for callers that want a single shared instance.

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, model_validator, validator
from pydantic_settings import BaseSettings

from .models import ContextBaseModel

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).parent.parent.parent / "config"


class TokenEstimatorConfig(BaseModel):
    """Character-ratio token estimation (approximation of a real tokenizer)."""

    chars_per_token: float = Field(default=4.0, gt=0)


class ContextWindowConfig(BaseModel):
    default_max_tokens: int = Field(default=4096, gt=0)
    default_reserved_tokens: int = Field(default=512, ge=0)


class ThresholdConfig(BaseModel):
    """
    Pass 1 boundary detection.

    In similarity mode a gap is a boundary when its score falls below
    mean - std_multiplier * std; in distance mode when it rises above
    mean + std_multiplier * std. Sequences shorter than min_samples use
    fallback_threshold as the cutoff instead.
    """

    score_mode: str = Field(default="similarity")
    std_multiplier: float = Field(default=1.0, ge=0.0)
    min_samples: int = Field(default=3, ge=2)
    fallback_threshold: float = Field(default=0.5)
    candidate_limit: Optional[int] = Field(default=None, gt=0)
    min_threshold: Optional[float] = None
    max_threshold: Optional[float] = None

    @validator("score_mode")
    def validate_score_mode(cls, v):
        valid_modes = {"similarity", "distance"}
        if v not in valid_modes:
            raise ValueError(f"score_mode must be one of {valid_modes}, got {v}")
        return v

    @model_validator(mode="after")
    def validate_clamp(self):
        if (
            self.min_threshold is not None
            and self.max_threshold is not None
            and self.min_threshold > self.max_threshold
        ):
            raise ValueError(
                f"min_threshold ({self.min_threshold}) must be <= "
                f"max_threshold ({self.max_threshold})"
            )
        return self


class ChunkingConfig(BaseModel):
    """Chunk size bounds are measured in characters of the joined chunk text."""

    min_size: int = Field(default=200, gt=0)
    max_size: int = Field(default=2000, gt=0)
    strategy: str = Field(default="semantic")
    fallback_to_simple: bool = False
    # Simple strategy only; None means 15% of max_size
    overlap: Optional[int] = Field(default=None, ge=0)
    threshold: ThresholdConfig = Field(default_factory=ThresholdConfig)

    @validator("strategy")
    def validate_strategy(cls, v):
        valid = {"semantic", "simple"}
        if v not in valid:
            raise ValueError(f"strategy must be one of {valid}, got {v}")
        return v

    @model_validator(mode="after")
    def validate_bounds(self):
        if self.max_size <= self.min_size:
            raise ValueError(
                f"max_size ({self.max_size}) must be greater than "
                f"min_size ({self.min_size})"
            )
        if self.overlap is not None and self.overlap >= self.max_size:
            raise ValueError(
                f"overlap ({self.overlap}) must be less than "
                f"max_size ({self.max_size})"
            )
        return self

    @property
    def effective_overlap(self) -> int:
        if self.overlap is not None:
            return self.overlap
        return int(self.max_size * 0.15)


class EmbeddingCacheConfig(BaseModel):
    enabled: bool = True
    max_size: int = Field(default=10_000, gt=0)
    ttl_seconds: float = Field(default=86_400, gt=0)


class EmbeddingClientConfig(BaseModel):
    """Remote embedding provider settings plus batching/retry behaviour."""

    model: str = Field(default="nomic-embed-text")
    base_url: str = Field(default="http://localhost:11434")
    batch_size: int = Field(default=20, gt=0)
    max_concurrency: int = Field(default=4, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_delays_ms: List[int] = Field(default_factory=lambda: [100, 500, 2000])
    timeout_seconds: float = Field(default=30.0, gt=0)

    @validator("retry_delays_ms")
    def validate_retry_delays(cls, v):
        if not v:
            raise ValueError("retry_delays_ms must contain at least one delay")
        if any(delay < 0 for delay in v):
            raise ValueError(f"retry_delays_ms must be non-negative, got {v}")
        return v


class Config(ContextBaseModel):
    """Main configuration model"""

    tokenizer: TokenEstimatorConfig = Field(default_factory=TokenEstimatorConfig)
    context_window: ContextWindowConfig = Field(default_factory=ContextWindowConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    cache: EmbeddingCacheConfig = Field(default_factory=EmbeddingCacheConfig)
    embedding: EmbeddingClientConfig = Field(default_factory=EmbeddingClientConfig)


class Settings(BaseSettings):
    """Environment-based settings"""

    env: str = Field(default="development", alias="ENV")
    config_path: Optional[str] = Field(default=None, alias="CONFIG_PATH")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Embedding overrides
    embedding_model: Optional[str] = Field(default=None, alias="EMBEDDING_MODEL")
    embedding_base_url: Optional[str] = Field(
        default=None, alias="EMBEDDING_BASE_URL"
    )
    embedding_batch_size: Optional[int] = Field(
        default=None, alias="EMBEDDING_BATCH_SIZE"
    )
    embedding_max_retries: Optional[int] = Field(
        default=None, alias="EMBEDDING_MAX_RETRIES"
    )
    embedding_timeout_seconds: Optional[float] = Field(
        default=None, alias="EMBEDDING_TIMEOUT_SECONDS"
    )
    embedding_cache_enabled: Optional[bool] = Field(
        default=None, alias="EMBEDDING_CACHE_ENABLED"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra environment variables


_ENV_OVERRIDES = {
    "embedding_model": ("embedding", "model"),
    "embedding_base_url": ("embedding", "base_url"),
    "embedding_batch_size": ("embedding", "batch_size"),
    "embedding_max_retries": ("embedding", "max_retries"),
    "embedding_timeout_seconds": ("embedding", "timeout_seconds"),
    "embedding_cache_enabled": ("cache", "enabled"),
}


def _apply_env_overrides(
    config_dict: Dict[str, Any], settings: Settings
) -> Dict[str, Any]:
    for attr, (section, key) in _ENV_OVERRIDES.items():
        value = getattr(settings, attr)
        if value is None:
            continue
        logger.info("Env override %s.%s=%s", section, key, value)
        config_dict.setdefault(section, {})[key] = value
    return config_dict


def _resolve_config_path(settings: Settings) -> Path:
    if settings.config_path:
        return Path(settings.config_path).expanduser()
    return DEFAULT_CONFIG_DIR / f"{settings.env}.yaml"


def load_config() -> tuple[Config, Settings]:
    """
    Load configuration from YAML file and environment variables.

    A missing YAML file is not an error: the documented defaults apply. An
    explicitly requested CONFIG_PATH that does not exist is.

    Returns:
        tuple: (Config, Settings)

    Raises:
        FileNotFoundError: If CONFIG_PATH points to a missing file
        pydantic.ValidationError: If configuration validation fails
    """
    settings = Settings()
    config_path = _resolve_config_path(settings)

    config_dict: Dict[str, Any] = {}
    if config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        with open(config_path, "r") as f:
            config_dict = yaml.safe_load(f) or {}
    elif settings.config_path:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")
    else:
        logger.info(f"No configuration file at {config_path}; using defaults")

    config = Config(**_apply_env_overrides(config_dict, settings))
    return config, settings


# Global config instances
_config: Optional[Config] = None
_settings: Optional[Settings] = None


def get_config() -> Config:
    """Get the global Config instance"""
    global _config
    if _config is None:
        init_config()
    return _config


def get_settings() -> Settings:
    """Get the global Settings instance"""
    global _settings
    if _settings is None:
        init_config()
    return _settings


def init_config() -> tuple[Config, Settings]:
    """Initialize and cache global config instances"""
    global _config, _settings
    _config, _settings = load_config()
    return _config, _settings


def reload_config() -> tuple[Config, Settings]:
    """Force reload of config/settings from disk and environment."""
    return init_config()

