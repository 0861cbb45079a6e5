"""Settings for the enrichment (OpenAI LLM) stage."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field, PositiveFloat, PositiveInt, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalysisSettings(BaseSettings):
    """Environment-driven configuration for the enrichment stage."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    openai_api_key: Optional[SecretStr] = Field(None, alias="OPENAI_API_KEY", description="OpenAI API key")
    analysis_model: str = Field("gpt-4o", alias="ANALYSIS_MODEL", description="OpenAI model name")
    analysis_max_tokens: PositiveInt = Field(700, alias="ANALYSIS_MAX_TOKENS", description="Max completion tokens")
    analysis_temperature: PositiveFloat = Field(0.3, alias="ANALYSIS_TEMPERATURE", description="Sampling temperature")
    analysis_cost_limit_usd: PositiveFloat = Field(0.05, alias="ANALYSIS_COST_LIMIT_USD", description="Per-request cost cap (USD)")
    analysis_request_timeout_seconds: PositiveFloat = Field(
        30.0,
        alias="ANALYSIS_REQUEST_TIMEOUT_SECONDS",
        description="Per-attempt request timeout in seconds",
    )
    analysis_retry_max_attempts: PositiveInt = Field(2, alias="ANALYSIS_RETRY_MAX_ATTEMPTS", description="Max retry attempts")
    analysis_max_chars: PositiveInt = Field(6000, alias="ANALYSIS_MAX_CHARS", description="Max article characters sent to the model")

    @field_validator("openai_api_key")
    @classmethod
    def _blank_key_is_missing(cls, v: Optional[SecretStr]) -> Optional[SecretStr]:
        if v is None or not v.get_secret_value().strip():
            return None
        return SecretStr(v.get_secret_value().strip())


@lru_cache()
def get_analysis_settings() -> AnalysisSettings:
    try:
        return AnalysisSettings()
    except ValidationError as exc:
        raise RuntimeError(f"분석 설정 검증 실패: {exc}") from exc


def reset_analysis_settings_cache() -> None:
    get_analysis_settings.cache_clear()  # type: ignore[attr-defined]
