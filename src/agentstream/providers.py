"""Provider name + model alias resolution for the relay.

Agents are configured with a provider ("anthropic", "xai", ...) and a short
model alias ("sonnet", "grok"). LiteLLM wants a qualified model string.
"""

import os
from typing import Mapping

# Provider name -> LiteLLM prefix, where they differ
_LITELLM_PREFIX = {
    "google": "gemini",
}

MODEL_ALIASES: dict[str, dict[str, str]] = {
    "anthropic": {
        "sonnet": "anthropic/claude-sonnet-4-5",
        "opus": "anthropic/claude-opus-4-1",
        "haiku": "anthropic/claude-haiku-4-5",
    },
    "openai": {
        "gpt-4o": "openai/gpt-4o",
        "gpt-4o-mini": "openai/gpt-4o-mini",
    },
    "xai": {
        "grok": "xai/grok-3",
        "grok-mini": "xai/grok-3-mini",
    },
    "google": {
        "gemini-flash": "gemini/gemini-2.0-flash",
        "gemini-pro": "gemini/gemini-2.5-pro",
    },
    "groq": {
        "llama": "groq/llama-3.3-70b-versatile",
    },
    "mistral": {
        "mistral-large": "mistral/mistral-large-latest",
    },
}

API_KEY_ENV_VARS = {
    "xai": "XAI_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_GENERATIVE_AI_API_KEY",
    "groq": "GROQ_API_KEY",
}


def resolve_model(provider: str, model: str) -> str:
    """Map provider + alias to a LiteLLM model string.

    Qualified names ("openai/gpt-4.1") pass through unchanged; unknown
    aliases are prefixed with the provider.
    """
    if "/" in model:
        return model
    alias = MODEL_ALIASES.get(provider, {}).get(model)
    if alias:
        return alias
    return f"{_LITELLM_PREFIX.get(provider, provider)}/{model}"


def api_key_env_var(provider: str) -> str:
    return API_KEY_ENV_VARS.get(provider, f"{provider.upper()}_API_KEY")


def get_api_key(provider: str, env: Mapping[str, str] | None = None) -> str | None:
    """API key for a provider from the environment, None if unset or empty."""
    env = os.environ if env is None else env
    return env.get(api_key_env_var(provider)) or None
