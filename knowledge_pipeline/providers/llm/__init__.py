"""LLM provider adapters."""

from knowledge_pipeline.providers.llm.anthropic_provider import AnthropicLLMProvider
from knowledge_pipeline.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "OpenAILLMProvider"]
