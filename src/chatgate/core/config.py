"""Configuration loaders for the chat gateway.

Leverages pydantic-settings to hydrate runtime configuration from environment
variables, an optional ``.env`` file, or default values. Nested settings classes
mirror infrastructure concerns (datastore, LLM providers) and the tunable
policies of the turn pipeline (rate limiting, risk thresholds, history).
"""

from __future__ import annotations

from enum import Enum
from functools import cached_property
from typing import Any

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseAppSettings(BaseSettings):
    """Base settings that looks at environment variables and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class PostgresSettings(BaseAppSettings):
    """Postgres connection details."""

    model_config = SettingsConfigDict(
        env_prefix="postgres_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = "localhost"
    port: int = Field(default=5432, ge=1, le=65535)
    database: str = "chatgate"
    user: str = "chatgate"
    password: str = "changeme"
    sslmode: str = "prefer"
    connect_timeout_seconds: int = Field(default=10, ge=1)
    statement_timeout_ms: int = Field(default=5000, ge=100)
    pool_size: int = Field(default=10, ge=1)
    pool_timeout_seconds: float = Field(default=10.0, ge=0.1)

    @cached_property
    def dsn(self) -> str:
        """Return a libpq compatible DSN string."""

        return (
            f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"
            f"?sslmode={self.sslmode}"
        )


class LLMProvider(str, Enum):
    """Supported completion backends (all speak the OpenAI wire protocol)."""

    MISTRAL = "mistral"
    OPENAI = "openai"
    OPENROUTER = "openrouter"


class MistralSettings(BaseAppSettings):
    """Configuration for Mistral's OpenAI-compatible endpoint."""

    model_config = SettingsConfigDict(
        env_prefix="mistral_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_key: str | None = None
    base_url: str = "https://api.mistral.ai/v1"
    model: str = "mistral-small-latest"
    timeout_seconds: float = Field(default=30.0, ge=0.1)


class OpenAISettings(BaseAppSettings):
    """Configuration specific to OpenAI-hosted models."""

    model_config = SettingsConfigDict(
        env_prefix="openai_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_key: str | None = None
    base_url: str | None = None
    model: str = Field(default="gpt-4.1-mini")
    timeout_seconds: float = Field(default=30.0, ge=0.1)


class OpenRouterSettings(BaseAppSettings):
    """Configuration specific to OpenRouter-hosted models."""

    model_config = SettingsConfigDict(
        env_prefix="openrouter_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_key: str | None = None
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "mistralai/mistral-small"
    timeout_seconds: float = Field(default=30.0, ge=0.1)


class LLMSettings(BaseAppSettings):
    """Aggregate configuration for the active completion backend."""

    model_config = SettingsConfigDict(
        env_prefix="llm_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    provider: LLMProvider = LLMProvider.MISTRAL
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=500, ge=1)
    long_response_tokens: int = Field(default=300, ge=1)
    input_price_per_million: float = Field(default=0.2, ge=0.0)
    output_price_per_million: float = Field(default=0.6, ge=0.0)

    def resolve_credentials(
        self,
        mistral: MistralSettings,
        openai: OpenAISettings,
        openrouter: OpenRouterSettings,
    ) -> dict[str, Any]:
        """Return the credential payload for the configured provider."""

        if self.provider is LLMProvider.OPENAI:
            return {
                "api_key": openai.api_key,
                "base_url": openai.base_url,
                "model": openai.model,
                "timeout_seconds": openai.timeout_seconds,
            }

        if self.provider is LLMProvider.OPENROUTER:
            return {
                "api_key": openrouter.api_key,
                "base_url": openrouter.base_url,
                "model": openrouter.model,
                "timeout_seconds": openrouter.timeout_seconds,
            }

        return {
            "api_key": mistral.api_key,
            "base_url": mistral.base_url,
            "model": mistral.model,
            "timeout_seconds": mistral.timeout_seconds,
        }


class RateLimitSettings(BaseAppSettings):
    """Fixed-window admission policy for chat turns."""

    model_config = SettingsConfigDict(
        env_prefix="rate_limit_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    window_seconds: float = Field(default=30.0, gt=0)
    max_requests: int = Field(default=10, ge=1)
    sweep_interval_seconds: float = Field(default=60.0, gt=0)


class RiskSettings(BaseAppSettings):
    """Thresholds and judge parameters for the risk classifier."""

    model_config = SettingsConfigDict(
        env_prefix="risk_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    high_threshold: int = Field(default=7, ge=1, le=10)
    elevated_threshold: int = Field(default=4, ge=1, le=10)
    min_semantic_length: int = Field(default=10, ge=0)
    judge_model: str | None = None
    judge_temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    judge_max_tokens: int = Field(default=150, ge=1)
    judge_timeout_seconds: float = Field(default=10.0, ge=0.1)

    @model_validator(mode="after")
    def _check_bands(self) -> RiskSettings:
        if self.elevated_threshold > self.high_threshold:
            raise ValueError("elevated_threshold must not exceed high_threshold")
        return self


class ChatSettings(BaseAppSettings):
    """Conversation-level knobs for the turn pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="chat_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    history_limit: int = Field(default=20, ge=0)
    max_prompt_chars: int = Field(default=4000, ge=1)


class TelemetrySettings(BaseAppSettings):
    """OTLP export and sampling for request and completion-backend spans."""

    model_config = SettingsConfigDict(
        env_prefix="otel_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    exporter_endpoint: str | None = None
    exporter_headers: str | None = None
    sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)
    excluded_urls: str = "health,metrics"


class AppSettings(BaseAppSettings):
    """Top level settings object used by services."""

    app_version: str = "0.1.0"
    environment: str = "development"
    database_url: str | None = None
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    mistral: MistralSettings = Field(default_factory=MistralSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    openrouter: OpenRouterSettings = Field(default_factory=OpenRouterSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    risk: RiskSettings = Field(default_factory=RiskSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    @property
    def database_dsn(self) -> str:
        """``DATABASE_URL`` wins over the discrete Postgres settings."""

        return self.database_url or self.postgres.dsn

    def llm_credentials(self) -> dict[str, Any]:
        return self.llm.resolve_credentials(self.mistral, self.openai, self.openrouter)

    @classmethod
    def load(cls, **kwargs: Any) -> AppSettings:
        """Helper factory that mirrors BaseSettings semantics."""

        return cls(**kwargs)
