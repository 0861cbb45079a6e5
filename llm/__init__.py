"""Article enrichment LLM: OpenAI client and its settings."""

from llm.client.openai_client import (
    LLMError,
    MissingCredentialsError,
    OpenAIClient,
    PermanentLLMError,
    ProviderFn,
    TransientLLMError,
)
from llm.settings import AnalysisSettings, get_analysis_settings, reset_analysis_settings_cache

__all__ = [
    "LLMError",
    "MissingCredentialsError",
    "OpenAIClient",
    "PermanentLLMError",
    "ProviderFn",
    "TransientLLMError",
    "AnalysisSettings",
    "get_analysis_settings",
    "reset_analysis_settings_cache",
]
