"""
LLM Provider Module

Text-generation collaborator used by the interpreter, insight, suggestion and
feedback-learning agents.

Usage:
    from finquery.config import get_settings
    from finquery.llm import LLMProviderFactory

    provider = LLMProviderFactory.create_default_provider(get_settings().llm)
    text = await provider.complete("Summarize revenue", max_tokens=500)
"""

from finquery.llm.anthropic import AnthropicProvider
from finquery.llm.base import BaseLLMProvider
from finquery.llm.factory import LLMProviderFactory
from finquery.llm.models import LLMMessage, LLMRequest, LLMResponse, LLMUsage
from finquery.llm.openai import OpenAIProvider

__all__ = [
    "BaseLLMProvider",
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMUsage",
    "LLMProviderFactory",
    "OpenAIProvider",
    "AnthropicProvider",
]
