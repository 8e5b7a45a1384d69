"""OpenAI text-generation provider."""

import logging

from tenacity import (
    before_sleep_log,
    retry,
    stop_after_attempt,
    wait_exponential,
)

from .schemas import Generation, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o"


class OpenAIProvider:
    """Generate text using the OpenAI API."""

    def __init__(self, config):
        self.config = config
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import openai
                api_key = self.config.get_api_key()
                self._client = openai.AsyncOpenAI(api_key=api_key)
            except ImportError:
                raise ImportError(
                    "openai package required. Install with: "
                    "pip install peptide-pages[openai]"
                )
        return self._client

    def is_available(self) -> tuple[bool, str]:
        api_key = self.config.get_api_key()
        if not api_key:
            return False, "No OpenAI API key. Set openai_api_key in config or OPENAI_API_KEY env var."
        try:
            self._get_client()
            return True, "OpenAI API ready"
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
            response = await client.chat.completions.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
            )
        except Exception as e:
            logger.error(f"OpenAI API error: {e}")
            raise

        usage = TokenUsage()
        if response.usage:
            usage = TokenUsage(
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
            )
        return Generation(
            text=response.choices[0].message.content or "",
            usage=usage,
            model=model,
        )
