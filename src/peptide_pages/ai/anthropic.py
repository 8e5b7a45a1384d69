"""Anthropic (Claude) text-generation provider."""

import logging

from tenacity import (
    before_sleep_log,
    retry,
    stop_after_attempt,
    wait_exponential,
)

from .schemas import Generation, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class AnthropicProvider:
    """Generate text using the Claude API."""

    def __init__(self, config):
        self.config = config
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import anthropic
                api_key = self.config.get_api_key()
                self._client = anthropic.AsyncAnthropic(api_key=api_key)
            except ImportError:
                raise ImportError(
                    "anthropic package required. Install with: "
                    "pip install peptide-pages[anthropic]"
                )
        return self._client

    def is_available(self) -> tuple[bool, str]:
        api_key = self.config.get_api_key()
        if not api_key:
            return False, "No Anthropic API key. Set anthropic_api_key in config or ANTHROPIC_API_KEY env var."
        try:
            self._get_client()
            return True, "Anthropic API ready"
        except ImportError as e:
            return False, str(e)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=4, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def generate(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int = 8000,
        temperature: float = 0.3,
    ) -> Generation:
        client = self._get_client()
        model = self.config.model or DEFAULT_MODEL

        try:
            response = await client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": prompt}],
            )
        except Exception as e:
            logger.error(f"Anthropic API error: {e}")
            raise

        text = "\n".join(block.text for block in response.content if block.type == "text")
        return Generation(
            text=text,
            usage=TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
            model=model,
        )
