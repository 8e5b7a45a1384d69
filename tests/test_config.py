import asyncio
import json

import httpx
import pytest

from peptide_pages.ai.anthropic import AnthropicProvider
from peptide_pages.ai.ollama import OllamaProvider
from peptide_pages.ai.openai import OpenAIProvider
from peptide_pages.ai.provider import estimate_cost, get_provider
from peptide_pages.ai.schemas import TokenUsage
from peptide_pages.config import AIConfig, Config, config_path, create_default_config, load_config


class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.ai.provider == "anthropic"
        assert config.compliance.provider == "openai"
        assert not config.compliance.require_citation_completeness
        assert config.normalize.limits["human_controlled_trial"] == 20
        assert not config.batch.continue_on_error

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(tmp_path / "absent.toml") == Config()

    def test_load_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            '[ai]\nprovider = "ollama"\nplain_language = false\n\n'
            "[normalize.limits]\nanimal_in_vivo = 3\n\n"
            "[compliance]\nrequire_citation_completeness = true\n"
        )
        config = load_config(path)
        assert config.ai.provider == "ollama"
        assert not config.ai.plain_language
        assert config.normalize.limits == {"animal_in_vivo": 3}
        assert config.compliance.require_citation_completeness
        assert config.pubmed.max_results == 100

    def test_env_overrides_path(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.toml"
        path.write_text('[batch]\ndelay_seconds = 5.0\n')
        monkeypatch.setenv("PEPTIDE_PAGES_CONFIG", str(path))
        assert config_path() == path
        assert load_config().batch.delay_seconds == 5.0

    def test_default_file_round_trips(self, tmp_path):
        path = create_default_config(tmp_path / "nested" / "config.toml")
        config = load_config(path)
        assert config.ai == Config().ai
        assert config.normalize == Config().normalize
        assert config.publish.database_url == "sqlite:///pages.db"

    def test_api_key_from_environment(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        assert AIConfig().get_api_key() == "sk-env"
        assert AIConfig(anthropic_api_key="sk-config").get_api_key() == "sk-config"
        assert AIConfig(provider="ollama").get_api_key() is None


class TestProviders:
    @pytest.mark.parametrize("name,cls", [
        ("anthropic", AnthropicProvider),
        ("openai", OpenAIProvider),
        ("ollama", OllamaProvider),
    ])
    def test_factory(self, name, cls):
        assert isinstance(get_provider(AIConfig(provider=name)), cls)

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown AI provider"):
            get_provider(AIConfig(provider="mystery"))

    def test_missing_key_is_unavailable(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        available, message = AnthropicProvider(AIConfig()).is_available()
        assert not available
        assert "No Anthropic API key" in message

    def test_estimate_cost(self):
        usage = TokenUsage(input_tokens=2_000_000, output_tokens=100_000)
        assert estimate_cost(usage, AIConfig()) == pytest.approx(7.5)

    def test_usage_addition(self):
        total = TokenUsage(input_tokens=1, output_tokens=2) + TokenUsage(input_tokens=3, output_tokens=4)
        assert (total.input_tokens, total.output_tokens, total.total) == (4, 6, 10)

    def test_ollama_generate(self):
        payloads = []

        def handler(request: httpx.Request) -> httpx.Response:
            payloads.append(json.loads(request.content))
            return httpx.Response(200, json={"response": "<p>Text.</p>", "prompt_eval_count": 12, "eval_count": 34})

        async def run():
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                provider = OllamaProvider(AIConfig(provider="ollama"), client=client)
                return await provider.generate("system", "prompt", max_tokens=100, temperature=0.1)

        generation = asyncio.run(run())
        assert generation.text == "<p>Text.</p>"
        assert generation.usage.total == 46
        assert payloads[0]["system"] == "system"
        assert payloads[0]["options"] == {"temperature": 0.1, "num_predict": 100}
