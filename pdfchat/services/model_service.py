"""
Model service for LLM provider management.
Handles model resolution and listing available models.
"""
from typing import Tuple, Dict, List

from ..config import Settings
from ..errors import ConfigurationError
from ..generation import GenerationProvider, GeminiGenerationProvider
from ..logging_config import logger

# Model registry
AVAILABLE_MODELS = {
    "openai": ["gpt-4o-mini"],
    "gemini": ["gemini-2.5-flash"],
    "ollama": ["qwen2.5:7b"],
}


def get_available_models() -> Dict[str, List[str]]:
    """
    Get all available models grouped by provider.

    Returns:
        Dictionary with provider names as keys and model lists as values
    """
    return AVAILABLE_MODELS


def _split(model_string: str) -> Tuple[str, str]:
    provider, _, model_name = model_string.partition(":")
    return provider, model_name


def resolve_model(model_string: str = None, default: str = "openai:gpt-4o-mini") -> Tuple[str, str]:
    """
    Resolve a model string to provider and model name.

    Args:
        model_string: Format "provider:model_name" (e.g., "openai:gpt-4o-mini")
                     or None for default
        default: Model string used when model_string is missing or unknown

    Returns:
        Tuple of (provider, model_name)

    Examples:
        >>> resolve_model("ollama:qwen2.5:7b")
        ('ollama', 'qwen2.5:7b')

        >>> resolve_model(None)
        ('openai', 'gpt-4o-mini')
    """
    if model_string:
        provider, model_name = _split(model_string)
        if provider in AVAILABLE_MODELS and model_name:
            return provider, model_name
    return _split(default)


def validate_model(provider: str, model_name: str) -> bool:
    """
    Check if a model is available in the registry.
    """
    return (
        provider in AVAILABLE_MODELS
        and model_name in AVAILABLE_MODELS[provider]
    )


def build_generation_provider(settings: Settings, model_string: str = None) -> GenerationProvider:
    """Instantiate the provider for a model string, falling back to the configured default."""
    provider, model_name = resolve_model(model_string, default=settings.chat_model)
    if not validate_model(provider, model_name):
        logger.warning("Model not in registry, trying anyway", provider=provider, model=model_name)

    if provider == "openai":
        from ..openai_client import OpenAIGenerationProvider
        return OpenAIGenerationProvider(settings.require("openai_api_key"), model_name)
    if provider == "ollama":
        from ..ollama_client import OllamaGenerationProvider
        return OllamaGenerationProvider(model_name, base_url=settings.ollama_url)
    if provider == "gemini":
        return GeminiGenerationProvider(
            settings.require("gemini_api_key"),
            model_name,
            base_url=settings.gemini_base_url,
        )
    raise ConfigurationError(f"Unsupported model provider '{provider}'")
