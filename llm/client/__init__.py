"""LLM client module."""

from llm.client.openai_client import (
    LLMError,
    MissingCredentialsError,
    OpenAIClient,
    PermanentLLMError,
    ProviderFn,
    TransientLLMError,
    extract_json_object,
)

__all__ = [
    "LLMError",
    "MissingCredentialsError",
    "OpenAIClient",
    "PermanentLLMError",
    "ProviderFn",
    "TransientLLMError",
    "extract_json_object",
]
