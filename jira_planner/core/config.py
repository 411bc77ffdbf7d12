"""
Configuration management using Pydantic Settings.
Loads settings from environment variables and .env files.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GenerationSettings(BaseSettings):
    """Text-generation service configuration."""

    model_config = SettingsConfigDict(env_prefix="GENERATION_")

    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of an OpenAI-compatible chat completions API",
    )
    api_key: str = Field(default="", description="API key for the generation service")
    model: Optional[str] = Field(
        default=None,
        description="Model to use; generation fails explicitly when unset",
    )
    max_tokens: int = Field(default=4096, description="Max tokens per response")
    temperature: float = Field(default=0.3, description="Sampling temperature")
    timeout: int = Field(default=60, description="HTTP request timeout in seconds")


class CacheSettings(BaseSettings):
    """Response cache configuration."""

    model_config = SettingsConfigDict(env_prefix="CACHE_")

    ttl_seconds: int = Field(default=30 * 60, description="Entry lifetime in seconds")
    max_entries: int = Field(default=100, description="Maximum number of cached responses")


class RateLimitSettings(BaseSettings):
    """Outbound generation rate limiting."""

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_")

    window_seconds: int = Field(default=60, description="Sliding window length")
    max_requests: int = Field(default=20, description="Admitted requests per window")


class RetrySettings(BaseSettings):
    """Retry and timeout configuration."""

    model_config = SettingsConfigDict(env_prefix="RETRY_")

    max_attempts: int = Field(default=3, description="Attempts per operation")
    base_delay_ms: int = Field(default=1000, description="First backoff delay in milliseconds")
    timeout_ms: int = Field(default=30000, description="Per-attempt generation timeout")


class ErrorSettings(BaseSettings):
    """Error history configuration."""

    model_config = SettingsConfigDict(env_prefix="ERRORS_")

    history_limit: int = Field(default=100, description="Maximum retained error contexts")
    recent_window_seconds: int = Field(default=60, description="Window for recent errors")
    recent_limit: int = Field(default=10, description="Maximum recent errors reported")


class PlannerSettings(BaseSettings):
    """Planning workflow behaviour."""

    model_config = SettingsConfigDict(env_prefix="PLANNER_")

    max_more_suggestions: int = Field(
        default=3, description="Upper bound on suggestions added per request"
    )
    preferred_export_format: str = Field(default="csv", description="Default export format")
    sessions_directory: str = Field(
        default="planning_sessions", description="Default directory for saved sessions"
    )


class SecuritySettings(BaseSettings):
    """Security configuration."""

    model_config = SettingsConfigDict(env_prefix="SECURITY_")

    allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="CORS allowed origins",
    )


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="jira-planner", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=True, description="Debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Sub-settings
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    errors: ErrorSettings = Field(default_factory=ErrorSettings)
    planner: PlannerSettings = Field(default_factory=PlannerSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v.lower() not in allowed:
            raise ValueError(f"app_env must be one of {allowed}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Convenience function for accessing settings
settings = get_settings()
