"""Ollama (local LLM) text-generation provider.

Uses httpx directly, no extra package needed.
"""

import logging
from typing import Optional

import httpx

from .schemas import Generation, TokenUsage

logger = logging.getLogger(__name__)


class OllamaProvider:
    """Generate text using a local Ollama instance."""

    def __init__(self, config, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    def is_available(self) -> tuple[bool, str]:
        try:
            response = httpx.get(
                f"{self.config.ollama_url}/api/tags",
                timeout=5.0,
            )
            if response.status_code == 200:
                models = [m["name"] for m in response.json().get("models", [])]
                target = self.config.ollama_model
                if any(target in m for m in models):
                    return True, f"Ollama ready with {target}"
                return False, (
                    f"Model '{target}' not found. Available: {', '.join(models[:5])}\n"
                    f"Pull it with: ollama pull {target}"
                )
            return False, f"Ollama returned {response.status_code}"
        except httpx.ConnectError:
            return False, f"Cannot connect to Ollama at {self.config.ollama_url}. Is it running?"
        except Exception as e:
            return False, f"Ollama check failed: {e}"

    async def generate(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int = 8000,
        temperature: float = 0.3,
    ) -> Generation:
        model = self.config.ollama_model
        payload = {
            "model": model,
            "prompt": prompt,
            "system": system_prompt,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }

        try:
            if self._client is not None:
                response = await self._client.post(f"{self.config.ollama_url}/api/generate", json=payload)
            else:
                # Local models can be slow
                async with httpx.AsyncClient(timeout=300.0) as client:
                    response = await client.post(f"{self.config.ollama_url}/api/generate", json=payload)
            response.raise_for_status()
        except httpx.ConnectError:
            logger.error(f"Cannot connect to Ollama at {self.config.ollama_url}")
            raise
        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama returned {e.response.status_code}")
            raise

        data = response.json()
        return Generation(
            text=data.get("response", ""),
            usage=TokenUsage(
                input_tokens=data.get("prompt_eval_count", 0),
                output_tokens=data.get("eval_count", 0),
            ),
            model=model,
        )
