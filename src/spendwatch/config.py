from __future__ import annotations

from typing import Literal

from pydantic import Field, SecretStr, confloat, conint, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .resilience.circuit_breaker import CircuitBreakerConfig
from .resilience.retry import RetryPolicy

LLMProviderType = Literal["openai", "anthropic", "endpoint"]


class SpendWatchConfig(BaseSettings):
    """Configuration loaded from SPENDWATCH_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="SPENDWATCH_",
        frozen=True,
        extra="ignore",
        protected_namespaces=(),  # Allow fields starting with 'model_'
    )

    enabled: bool = Field(default=True, description="Enable model-assisted analysis")

    # Model endpoint selection + credentials
    llm_provider: LLMProviderType = Field(
        default="openai",
        description="Model provider: openai, anthropic, endpoint",
    )
    model_id: str = Field(default="gpt-4.1-mini")
    openai_api_key: SecretStr = Field(default="", description="Required when llm_provider=openai")
    anthropic_api_key: SecretStr = Field(default="", description="Required when llm_provider=anthropic")
    endpoint_url: str = Field(default="", description="Managed analysis endpoint base URL")
    endpoint_token: SecretStr = Field(default="", description="Bearer token for the managed endpoint")

    # Generation settings
    max_tokens: conint(ge=1) = Field(default=1024)
    temperature: confloat(ge=0, le=1) = Field(default=0.1)
    request_timeout_seconds: conint(ge=1) = Field(default=60)

    # Rate limiting
    rate_limit_per_minute: conint(ge=1) = Field(default=10)
    rate_limit_window_seconds: confloat(gt=0) = Field(default=60.0)

    # Degradation
    fallback_on_error: bool = Field(
        default=True,
        description="Return heuristic analysis instead of raising when the model is unavailable",
    )

    # Retry
    retry_max_attempts: conint(ge=1) = Field(default=3)
    retry_base_delay_seconds: confloat(ge=0) = Field(default=1.0)
    retry_max_delay_seconds: confloat(ge=0) = Field(default=30.0)
    retry_backoff_multiplier: confloat(gt=1) = Field(default=2.0)
    retry_jitter: bool = Field(default=True)

    # Circuit breaker
    breaker_failure_threshold: conint(ge=1) = Field(default=5)
    breaker_recovery_timeout_seconds: confloat(ge=0) = Field(default=60.0)
    breaker_half_open_max_calls: conint(ge=1) = Field(default=3)

    @field_validator("llm_provider", mode="before")
    @classmethod
    def _normalize_lowercase(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @model_validator(mode="after")
    def _validate_provider_settings(self) -> "SpendWatchConfig":
        if self.retry_max_delay_seconds < self.retry_base_delay_seconds:
            raise ValueError("retry_max_delay_seconds must be >= retry_base_delay_seconds")

        # A disabled analyzer never calls the model, so credentials are optional.
        if not self.enabled:
            return self

        provider = self.llm_provider
        if provider == "openai" and not self.openai_api_key.get_secret_value():
            raise ValueError("openai_api_key is required when llm_provider=openai")
        if provider == "anthropic" and not self.anthropic_api_key.get_secret_value():
            raise ValueError("anthropic_api_key is required when llm_provider=anthropic")
        if provider == "endpoint" and not self.endpoint_url.strip():
            raise ValueError("endpoint_url is required when llm_provider=endpoint")
        return self

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay_seconds,
            max_delay=self.retry_max_delay_seconds,
            backoff_multiplier=self.retry_backoff_multiplier,
            jitter=self.retry_jitter,
        )

    def breaker_config(self) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.breaker_failure_threshold,
            recovery_timeout=self.breaker_recovery_timeout_seconds,
            half_open_max_calls=self.breaker_half_open_max_calls,
        )
