"""PageRecord: the versioned, publishable artifact for one peptide."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .evidence import EvidenceGrade
from .study import SLUG_PATTERN, Study, StudyDesign

DEFAULT_LEGAL_NOTES = [
    "This content is for educational purposes only.",
    "Not intended as medical advice.",
    "Consult a healthcare provider before use.",
]


class Section(BaseModel):
    """A titled block of generated prose with inline [REGISTRY:ID] citations."""

    title: str = Field(min_length=1)
    content_html: str = Field(min_length=1)
    plain_language_summary: Optional[str] = Field(
        default=None,
        description="2-3 sentence summary for non-scientists",
    )
    order: int = Field(ge=0, description="Display order (0-indexed)")


class PageRecord(BaseModel):
    """Fully synthesized peptide page, ready for publication."""

    slug: str = Field(min_length=1, pattern=SLUG_PATTERN)
    name: str = Field(min_length=1)
    aliases: list[str] = Field(default_factory=list)

    evidence_grade: EvidenceGrade
    summary_html: str = Field(min_length=1)
    sections: list[Section] = Field(min_length=1)

    studies: list[Study] = Field(default_factory=list)
    human_controlled_count: int = Field(default=0, ge=0)
    animal_count: int = Field(default=0, ge=0)

    legal_notes: list[str] = Field(default_factory=lambda: list(DEFAULT_LEGAL_NOTES))
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _unique_section_order(self):
        orders = [s.order for s in self.sections]
        if len(orders) != len(set(orders)):
            raise ValueError(f"Section orders must be unique, got {orders}")
        return self

    @classmethod
    def build(
        cls,
        slug: str,
        name: str,
        aliases: list[str],
        evidence_grade: EvidenceGrade,
        summary_html: str,
        sections: list[Section],
        studies: list,
    ) -> "PageRecord":
        """Create a record with study counts computed from ``studies``."""
        human_controlled, animal = calculate_study_counts(studies)
        return cls(
            slug=slug,
            name=name,
            aliases=aliases,
            evidence_grade=evidence_grade,
            summary_html=summary_html,
            sections=sections,
            studies=studies,
            human_controlled_count=human_controlled,
            animal_count=animal,
        )

    def sorted_sections(self) -> list[Section]:
        return sorted(self.sections, key=lambda s: s.order)

    def content_html(self) -> str:
        """Summary plus every section body, in display order."""
        return " ".join([self.summary_html] + [s.content_html for s in self.sorted_sections()])

    def next_version(self) -> "PageRecord":
        """Copy with version + 1 and a strictly later last_updated."""
        return self.with_version(self.version + 1)

    def with_version(self, version: int) -> "PageRecord":
        # last_updated must strictly increase across versions
        now = datetime.now(timezone.utc)
        if now <= self.last_updated:
            now = self.last_updated + timedelta(microseconds=1)
        return self.model_copy(update={"version": version, "last_updated": now})

    def excerpt(self, max_length: int = 200) -> str:
        """Plain-text excerpt of the summary, cut at a word boundary."""
        text = re.sub(r"<[^>]+>", "", self.summary_html).strip()
        if len(text) <= max_length:
            return text
        truncated = text[:max_length]
        last_space = truncated.rfind(" ")
        if last_space > 0:
            return truncated[:last_space] + "..."
        return truncated + "..."


def calculate_study_counts(studies: list) -> tuple[int, int]:
    """Return (human controlled trial count, animal study count)."""
    human_controlled = sum(1 for s in studies if s.design == StudyDesign.HUMAN_CONTROLLED_TRIAL)
    animal = sum(1 for s in studies if s.design.is_animal)
    return human_controlled, animal
