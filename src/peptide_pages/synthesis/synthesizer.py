"""Evidence synthesis: studies in, cited summary and sections out."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..ai.prompts import (
    PLAIN_LANGUAGE_SYSTEM_PROMPT,
    SYSTEM_PROMPT,
    build_plain_language_prompt,
    build_synthesis_prompt,
)
from ..ai.provider import TextGenerator, estimate_cost
from ..ai.schemas import TokenUsage
from ..errors import SynthesisError
from ..models import EvidenceGrade, Section
from .parser import parse_synthesis

logger = logging.getLogger(__name__)

PLAIN_LANGUAGE_MAX_TOKENS = 200
PLAIN_LANGUAGE_TEMPERATURE = 0.5


@dataclass
class SynthesisOutput:
    """Parsed synthesis plus what it cost."""
    summary_html: str
    sections: List[Section]
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    raw_output: Optional[str] = None


class Synthesizer:
    """Turn a study list into page prose using an injected TextGenerator.

    Args:
        generator: Any TextGenerator (Anthropic, OpenAI, Ollama or a test fake)
        config: AIConfig supplying token limits, temperature and pricing
    """

    def __init__(self, generator: TextGenerator, config):
        self.generator = generator
        self.config = config

    async def synthesize(
        self,
        peptide_name: str,
        aliases: List[str],
        studies: list,
        grade: EvidenceGrade,
    ) -> SynthesisOutput:
        """Generate and parse the main synthesis.

        When ``config.plain_language`` is set, a best-effort second pass adds
        a plain-language summary to every section.

        Raises:
            SynthesisError: if generation fails or the output cannot be parsed
        """
        available, msg = self.generator.is_available()
        if not available:
            raise SynthesisError(peptide_name, msg)

        prompt = build_synthesis_prompt(peptide_name, aliases, studies, grade)

        try:
            generation = await self.generator.generate(
                SYSTEM_PROMPT,
                prompt,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
        except Exception as e:
            logger.error(f"Synthesis request failed for {peptide_name}: {e}")
            raise SynthesisError(peptide_name, f"Text generation failed: {e}") from e

        usage = generation.usage
        try:
            summary_html, sections = parse_synthesis(generation.text)
        except ValueError as e:
            raise SynthesisError(
                peptide_name,
                f"Unusable synthesis output: {e}",
                raw_output=generation.text,
                usage=generation.usage,
            ) from e

        logger.info(f"Synthesized {len(sections)} sections for {peptide_name}")

        if self.config.plain_language:
            sections, extra = await self.add_plain_language_summaries(sections, peptide_name)
            usage = usage + extra

        return SynthesisOutput(
            summary_html=summary_html,
            sections=sections,
            usage=usage,
            cost=estimate_cost(usage, self.config),
            raw_output=generation.text,
        )

    async def add_plain_language_summaries(
        self,
        sections: List[Section],
        peptide_name: str,
    ) -> tuple[List[Section], TokenUsage]:
        """Add a plain-language summary to each section.

        A failed request leaves that section's summary empty; it never fails
        the synthesis. Returns the updated sections and the tokens spent.
        """
        updated = []
        usage = TokenUsage()

        for section in sections:
            prompt = build_plain_language_prompt(section.title, section.content_html, peptide_name)
            try:
                generation = await self.generator.generate(
                    PLAIN_LANGUAGE_SYSTEM_PROMPT,
                    prompt,
                    max_tokens=PLAIN_LANGUAGE_MAX_TOKENS,
                    temperature=PLAIN_LANGUAGE_TEMPERATURE,
                )
            except Exception as e:
                logger.warning(f"Plain-language summary failed for '{section.title}': {e}")
                updated.append(section)
                continue

            usage = usage + generation.usage
            summary = generation.text.strip() or None
            updated.append(section.model_copy(update={"plain_language_summary": summary}))

        return updated, usage
