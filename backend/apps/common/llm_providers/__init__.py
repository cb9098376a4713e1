"""
LLM Provider abstraction for seamless provider switching
"""
from .base import LLMProvider
from .factory import get_llm_provider
from .openai_provider import OpenAIProvider
from .anthropic_provider import AnthropicProvider

__all__ = [
    'LLMProvider',
    'get_llm_provider',
    'OpenAIProvider',
    'AnthropicProvider',
]
