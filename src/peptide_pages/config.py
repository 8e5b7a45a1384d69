"""Configuration loading and validation for peptide-pages."""

import os
import sys
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

CONFIG_DIR = Path.home() / ".peptide-pages"
CONFIG_FILE = CONFIG_DIR / "config.toml"


class PubMedConfig(BaseModel):
    email: str = "user@example.com"
    ncbi_api_key: str = ""
    max_results: int = 100
    batch_size: int = 200


class TrialsConfig(BaseModel):
    max_results: int = 50
    timeout_seconds: float = 30.0


class AIConfig(BaseModel):
    provider: str = "anthropic"
    model: str = ""
    anthropic_api_key: str = ""
    openai_api_key: str = ""
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1:70b"
    max_tokens: int = 8000
    temperature: float = 0.3
    plain_language: bool = True
    # USD per million tokens
    input_cost_per_mtok: float = 3.0
    output_cost_per_mtok: float = 15.0

    def get_api_key(self) -> Optional[str]:
        """Resolve API key from config or environment variable."""
        if self.provider == "anthropic":
            return self.anthropic_api_key or os.getenv("ANTHROPIC_API_KEY")
        elif self.provider == "openai":
            return self.openai_api_key or os.getenv("OPENAI_API_KEY")
        return None


class ComplianceConfig(AIConfig):
    provider: str = "openai"
    max_tokens: int = 4000
    temperature: float = 0.2
    plain_language: bool = False
    input_cost_per_mtok: float = 2.5
    output_cost_per_mtok: float = 10.0
    require_citation_completeness: bool = False


class NormalizeConfig(BaseModel):
    filter_by_quality: bool = True
    # Per-design caps on studies sent to synthesis; unset means unlimited
    limits: dict[str, int] = Field(default_factory=lambda: {
        "human_controlled_trial": 20,
        "human_observational": 15,
        "human_case_report": 10,
        "animal_in_vivo": 15,
        "animal_in_vitro": 10,
    })


class PublishConfig(BaseModel):
    database_url: str = f"sqlite:///{CONFIG_DIR / 'pages.db'}"
    storage_dir: str = str(CONFIG_DIR / "objects")
    public_url: str = ""
    page_format: str = "A4"


class BatchConfig(BaseModel):
    delay_seconds: float = 1.0
    continue_on_error: bool = False


class Config(BaseModel):
    pubmed: PubMedConfig = Field(default_factory=PubMedConfig)
    trials: TrialsConfig = Field(default_factory=TrialsConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    compliance: ComplianceConfig = Field(default_factory=ComplianceConfig)
    normalize: NormalizeConfig = Field(default_factory=NormalizeConfig)
    publish: PublishConfig = Field(default_factory=PublishConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)


def config_path() -> Path:
    """Config file location, overridable with PEPTIDE_PAGES_CONFIG."""
    override = os.getenv("PEPTIDE_PAGES_CONFIG")
    return Path(override) if override else CONFIG_FILE


def load_config(path: Optional[Path] = None) -> Config:
    """Load config from TOML file, falling back to defaults."""
    path = path or config_path()
    if not path.exists():
        return Config()

    if sys.version_info >= (3, 11):
        import tomllib
    else:
        import tomli as tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)

    return Config(**data)


def create_default_config(path: Optional[Path] = None) -> Path:
    """Create config directory and default config file."""
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_DEFAULT_CONFIG)
    return path


_DEFAULT_CONFIG = """\
# peptide-pages configuration

[pubmed]
email = "user@example.com"
ncbi_api_key = ""
max_results = 100

[trials]
max_results = 50

[ai]
# Synthesis provider: anthropic, openai or ollama
provider = "anthropic"
model = ""
anthropic_api_key = ""
openai_api_key = ""
ollama_url = "http://localhost:11434"
ollama_model = "llama3.1:70b"
plain_language = true

[compliance]
# Provider for the full compliance audit
provider = "openai"
model = ""
require_citation_completeness = false

[normalize]
filter_by_quality = true

[normalize.limits]
human_controlled_trial = 20
human_observational = 15
human_case_report = 10
animal_in_vivo = 15
animal_in_vitro = 10

[publish]
database_url = "sqlite:///pages.db"
storage_dir = "./objects"
public_url = ""

[batch]
delay_seconds = 1.0
continue_on_error = false
"""
