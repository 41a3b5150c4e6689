"""Configuration settings using pydantic-settings."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )
    
    # API keys (checked by the CLI command that needs them)
    etherscan_api_key: Optional[str] = Field(None, description="Etherscan API key")
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    
    # Services
    etherscan_base_url: str = Field(
        "https://api.etherscan.io/api",
        description="Etherscan API endpoint"
    )
    openai_model: str = Field("gpt-4o", description="Model used for classification")
    
    # Rate limiting
    fetch_rate_per_second: float = Field(3.0, description="Etherscan max calls per second")
    classify_rate_per_second: float = Field(1.0, description="OpenAI max calls per second")
    
    # Retry backoff
    throttle_backoff_seconds: float = Field(3.0, description="Wait after an explicit throttle reply")
    status_backoff_seconds: float = Field(3.0, description="Wait after a non-success HTTP status")
    network_backoff_seconds: float = Field(10.0, description="Wait after a network-level fault")
    max_retries: Optional[int] = Field(None, description="Attempt cap per record (unbounded if unset)")
    
    # Pipeline defaults
    skip_already_processed: bool = Field(True, description="Skip keys already in the output")
    min_code_length: int = Field(20, description="Code at or below this length is not classified")
    
    # Caching
    cache_dir: str = Field(".cache", description="Directory for disk cache")
    cache_ttl_days: int = Field(30, description="Cache TTL in days")
    
    # Logging
    log_level: str = Field("INFO", description="Logging level")
    
    # Timeouts
    http_timeout: float = Field(30.0, description="HTTP request timeout in seconds")


class Stage(str, Enum):
    """Which enrichment a run performs."""

    FETCH = "fetch"
    CLASSIFY = "classify"


class PipelineConfig(BaseModel):
    """Per-run options for one pipeline invocation."""

    input_path: str
    output_path: str
    stage: Stage = Stage.CLASSIFY
    rate_per_second: float
    skip_already_processed: bool = True
    minimum_content_length: int = 20

    @field_validator("rate_per_second")
    @classmethod
    def _positive_rate(cls, value: float) -> float:
        if value <= 0:
            raise ValueError(f"rate_per_second must be positive, got {value}")
        return value

    @field_validator("minimum_content_length")
    @classmethod
    def _non_negative_length(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"minimum_content_length must not be negative, got {value}")
        return value

    @classmethod
    def create(cls, **values) -> "PipelineConfig":
        """Build a config, reporting invalid values as ConfigurationError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigurationError(str(e)) from e


# Global settings instance
settings = Settings()
