"""Pydantic schemas for ingested research records.

A study is either a literature article (PubMed) or a trial-registry entry
(ClinicalTrials.gov). Both carry a registry-prefixed id such as
``PMID:12345678`` or ``NCT:NCT01234567``; the id is the only dedup key.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

STUDY_ID_PATTERN = r"^[A-Z]+:\S+$"
SLUG_PATTERN = r"^[a-z0-9-]+$"


class StudyDesign(str, Enum):
    """Study design tier, strongest evidence first."""

    HUMAN_CONTROLLED_TRIAL = "human_controlled_trial"
    HUMAN_OBSERVATIONAL = "human_observational"
    HUMAN_CASE_REPORT = "human_case_report"
    ANIMAL_IN_VIVO = "animal_in_vivo"
    ANIMAL_IN_VITRO = "animal_in_vitro"

    @property
    def is_human(self) -> bool:
        return self.value.startswith("human_")

    @property
    def is_animal(self) -> bool:
        return self.value.startswith("animal_")

    @property
    def priority(self) -> int:
        """Sort priority, lower sorts first."""
        return DESIGN_PRIORITY.index(self)


DESIGN_PRIORITY = [
    StudyDesign.HUMAN_CONTROLLED_TRIAL,
    StudyDesign.HUMAN_OBSERVATIONAL,
    StudyDesign.HUMAN_CASE_REPORT,
    StudyDesign.ANIMAL_IN_VIVO,
    StudyDesign.ANIMAL_IN_VITRO,
]


class _StudyBase(BaseModel):
    id: str = Field(pattern=STUDY_ID_PATTERN, description="Registry-prefixed id, e.g. PMID:123")
    title: str
    design: StudyDesign

    @property
    def registry(self) -> str:
        return self.id.split(":", 1)[0]

    @property
    def accession(self) -> str:
        return self.id.split(":", 1)[1]

    @property
    def is_human(self) -> bool:
        return self.design.is_human

    @property
    def is_animal(self) -> bool:
        return self.design.is_animal


class LiteratureStudy(_StudyBase):
    """A journal article from PubMed."""

    kind: Literal["literature"] = "literature"
    abstract: str = ""
    authors: list[str] = Field(default_factory=list)
    journal: str = ""
    year: Optional[int] = None
    doi: Optional[str] = Field(default=None, description="External document identifier")

    @property
    def url(self) -> str:
        return f"https://pubmed.ncbi.nlm.nih.gov/{self.accession}/"


class RegistryTrial(_StudyBase):
    """A registered clinical trial from ClinicalTrials.gov."""

    kind: Literal["registry"] = "registry"
    status: str = "Unknown"
    phase: Optional[str] = None
    conditions: list[str] = Field(default_factory=list)
    interventions: list[str] = Field(default_factory=list)
    enrollment: Optional[int] = None
    start_date: Optional[str] = None
    completion_date: Optional[str] = None

    @property
    def url(self) -> str:
        return f"https://clinicaltrials.gov/study/{self.accession}"


Study = Annotated[Union[LiteratureStudy, RegistryTrial], Field(discriminator="kind")]


class StudySet(BaseModel):
    """All studies ingested for one peptide (the source pack)."""

    slug: str = Field(min_length=1, pattern=SLUG_PATTERN)
    name: str = Field(min_length=1)
    aliases: list[str] = Field(default_factory=list)
    studies: list[Study] = Field(default_factory=list)
    ingested_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_counts: dict[str, int] = Field(default_factory=dict)

    def count_by_source(self) -> dict[str, int]:
        """Per-registry study counts, e.g. {"PMID": 12, "NCT": 3}."""
        counts: dict[str, int] = {}
        for study in self.studies:
            counts[study.registry] = counts.get(study.registry, 0) + 1
        return counts


class PeptideInput(BaseModel):
    """Identity of a peptide to process."""

    slug: str = Field(min_length=1, pattern=SLUG_PATTERN)
    name: str = Field(min_length=1)
    aliases: list[str] = Field(default_factory=list)

    @field_validator("aliases")
    @classmethod
    def _strip_aliases(cls, value: list[str]) -> list[str]:
        return [a.strip() for a in value if a and a.strip()]


def slugify(name: str) -> str:
    """Turn a display name into a slug: "BPC-157" -> "bpc-157"."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return slug.strip("-")
