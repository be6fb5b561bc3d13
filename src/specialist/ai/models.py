"""Model strings and provider client construction.

A model is addressed as ``provider/model-name``; the model part may itself
contain slashes (``groq/meta-llama/llama-4-scout``).
"""

import os
from dataclasses import dataclass

from .llm_client import AnthropicCompletionClient, ChatCompletionsClient, CompletionClient

PROVIDERS = ("ollama", "openai", "anthropic", "mistral", "groq")

MISTRAL_BASE_URL = "https://api.mistral.ai/v1"
OLLAMA_BASE_URL = "http://localhost:11434/v1"

API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
}


class ModelConfigError(ValueError):
    """Raised when a completion client cannot be built."""


class UnknownProviderError(ModelConfigError):
    """Raised for a model string whose provider prefix is not recognized."""


class MissingCredentialsError(ModelConfigError):
    """Raised when the provider's API key is not configured."""


@dataclass(frozen=True)
class ModelSpec:
    """A parsed ``provider/model-name`` string."""

    provider: str
    model: str

    def __str__(self) -> str:
        return f"{self.provider}/{self.model}"


def parse_model_string(model_string: str) -> ModelSpec:
    """Split a model string into provider and model name.

    Raises:
        UnknownProviderError: If the string has no provider prefix or the
            provider is not one of PROVIDERS.
    """
    provider, sep, model = model_string.partition("/")
    if not sep or not provider or not model:
        raise UnknownProviderError(
            f"Invalid model string '{model_string}', expected 'provider/model'"
        )
    if provider not in PROVIDERS:
        raise UnknownProviderError(f"Unknown model provider: {provider}")
    return ModelSpec(provider=provider, model=model)


def model_string(client: CompletionClient) -> str:
    """Return the ``provider/model`` string for a client."""
    provider = getattr(client, "provider", "unknown")
    return f"{provider}/{client.model}"


def _api_key(provider: str, api_key: str | None) -> str:
    if api_key:
        return api_key
    env_name = API_KEY_ENV[provider]
    value = os.getenv(env_name)
    if not value:
        raise MissingCredentialsError(
            f"{env_name} environment variable not set (required for {provider})"
        )
    return value


def client_from_model_string(model_str: str, api_key: str | None = None) -> CompletionClient:
    """Build a completion client for a ``provider/model`` string.

    Args:
        model_str: The model string, e.g. ``groq/llama-3.1-70b-versatile``.
        api_key: Explicit key; otherwise read from the provider's env var.

    Raises:
        UnknownProviderError: For an unrecognized provider.
        MissingCredentialsError: When the provider needs a key and none is set.
    """
    spec = parse_model_string(model_str)

    if spec.provider == "groq":
        from groq import AsyncGroq

        return ChatCompletionsClient(
            AsyncGroq(api_key=_api_key("groq", api_key)), spec.model, provider="groq"
        )

    if spec.provider == "anthropic":
        from anthropic import AsyncAnthropic

        return AnthropicCompletionClient(
            AsyncAnthropic(api_key=_api_key("anthropic", api_key)), spec.model
        )

    from openai import AsyncOpenAI

    if spec.provider == "openai":
        client = AsyncOpenAI(api_key=_api_key("openai", api_key))
        return ChatCompletionsClient(client, spec.model, provider="openai", stream_usage=True)

    if spec.provider == "mistral":
        client = AsyncOpenAI(api_key=_api_key("mistral", api_key), base_url=MISTRAL_BASE_URL)
        return ChatCompletionsClient(client, spec.model, provider="mistral")

    # ollama: local server, no key required
    client = AsyncOpenAI(
        api_key=api_key or "ollama",
        base_url=os.getenv("OLLAMA_BASE_URL", OLLAMA_BASE_URL),
    )
    return ChatCompletionsClient(client, spec.model, provider="ollama")
