"""Abstract base class for LLM service providers.

The pipeline uses an LLM only for smart tagging, so the contract is plain
text completion.  Implementations wrap OpenAI (and OpenAI-compatible
endpoints) or Anthropic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: OpenAILLMProvider, AnthropicLLMProvider
# Located in: knowledge_pipeline/providers/llm/
class ILLMProvider(ABC):
    """Contract for LLM text completion."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 4000,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user-facing prompt containing the actual request or data.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        knowledge_pipeline.utils.errors.ExternalServiceError
            If the API call fails or returns an empty response.
        """

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Return ``True`` if the configured credentials are accepted by the API."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (credentials present)."""
