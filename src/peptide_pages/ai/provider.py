"""Text-generation provider protocol and factory."""

import logging
from typing import Protocol

from .schemas import Generation

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    """Protocol for text-generation providers."""

    def is_available(self) -> tuple[bool, str]:
        """Check if the provider is configured and ready."""
        ...

    async def generate(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int = 8000,
        temperature: float = 0.3,
    ) -> Generation:
        """Generate text for the prompt.

        Raises on provider errors; callers decide whether that is fatal.
        """
        ...


def get_provider(config) -> TextGenerator:
    """Factory: return the configured text-generation provider.

    Args:
        config: AIConfig (or ComplianceConfig) with provider name and credentials

    Returns:
        TextGenerator instance
    """
    if config.provider == "anthropic":
        from .anthropic import AnthropicProvider
        return AnthropicProvider(config)
    elif config.provider == "openai":
        from .openai import OpenAIProvider
        return OpenAIProvider(config)
    elif config.provider == "ollama":
        from .ollama import OllamaProvider
        return OllamaProvider(config)
    else:
        raise ValueError(f"Unknown AI provider: {config.provider}")


def estimate_cost(usage, config) -> float:
    """Dollar cost of a token usage at the configured per-million prices."""
    input_cost = usage.input_tokens / 1_000_000 * config.input_cost_per_mtok
    output_cost = usage.output_tokens / 1_000_000 * config.output_cost_per_mtok
    return input_cost + output_cost
