"""
LLM Provider Factory
"""
from django.conf import settings

from .base import LLMProvider
from .openai_provider import OpenAIProvider
from .anthropic_provider import AnthropicProvider


def get_llm_provider(model_key: str = None) -> LLMProvider:
    """
    Get the appropriate LLM provider based on model key

    Args:
        model_key: Key into settings.AI_MODELS (e.g. 'classifier', 'fast').
                   Unknown keys fall back to AI_MODELS['fast'].

    Returns:
        Initialized LLM provider instance

    Examples:
        provider = get_llm_provider('classifier')
        text = await provider.generate([{"role": "user", "content": "..."}])
    """
    if model_key is None:
        model_key = 'fast'

    # Model identifier from settings, e.g. "anthropic:claude-3-5-haiku-latest"
    model_identifier = settings.AI_MODELS.get(model_key, settings.AI_MODELS['fast'])

    if ':' in model_identifier:
        provider_name, model_name = model_identifier.split(':', 1)
    else:
        provider_name = 'anthropic'
        model_name = model_identifier

    if provider_name == 'anthropic':
        return AnthropicProvider(api_key=settings.ANTHROPIC_API_KEY, model=model_name)
    elif provider_name == 'openai':
        return OpenAIProvider(api_key=settings.OPENAI_API_KEY, model=model_name)
    else:
        raise ValueError(f"Unknown provider: {provider_name}")
