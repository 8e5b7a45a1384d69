"""Shared fixtures and fakes for the peptide-pages test suite."""

from typing import List, Optional

import pytest
from rich.console import Console

from peptide_pages.ai.schemas import Generation, TokenUsage
from peptide_pages.config import Config
from peptide_pages.models import (
    EvidenceGrade,
    LiteratureStudy,
    PageRecord,
    RegistryTrial,
    Section,
    StudyDesign,
)
from peptide_pages.publish.renderer import RenderedDocument

ABSTRACT = (
    "This study examined the effects of the peptide on tissue repair in a "
    "controlled setting and reports outcomes across several endpoints."
)


def make_article(pmid: str, design=StudyDesign.ANIMAL_IN_VIVO, year: Optional[int] = 2020, **kwargs) -> LiteratureStudy:
    fields = dict(
        id=f"PMID:{pmid}",
        title=f"Article {pmid}",
        abstract=ABSTRACT,
        journal="J Test",
        year=year,
        design=design,
    )
    fields.update(kwargs)
    return LiteratureStudy(**fields)


def make_trial(nct: str, design=StudyDesign.HUMAN_CONTROLLED_TRIAL, start_date: Optional[str] = "2021-03", **kwargs) -> RegistryTrial:
    fields = dict(
        id=f"NCT:{nct}",
        title=f"Trial {nct}",
        status="COMPLETED",
        conditions=["Tendinopathy"],
        interventions=["BPC-157"],
        start_date=start_date,
        design=design,
    )
    fields.update(kwargs)
    return RegistryTrial(**fields)


def cited_html(studies) -> str:
    """Synthesis output citing every study once, with one section per study."""
    parts = [f"<p>Several studies reported outcomes [{studies[0].id}].</p>"]
    for i, study in enumerate(studies):
        parts.append(f"<h2>Section {i}</h2>")
        parts.append(f"<p>Researchers reported that healing improved in this study [{study.id}].</p>")
    return "\n".join(parts)


BUILD_FIELDS = {"slug", "name", "aliases", "evidence_grade", "summary_html", "sections"}


def make_page(studies=None, **kwargs) -> PageRecord:
    studies = studies if studies is not None else [make_article("1001"), make_trial("NCT00000001")]
    fields = dict(
        slug="bpc-157",
        name="BPC-157",
        aliases=["Body Protection Compound 157"],
        evidence_grade=EvidenceGrade.MODERATE,
        summary_html=f"<p>Studies reported improved tendon healing [{studies[0].id}].</p>",
        sections=[
            Section(
                title="Human Research",
                content_html=" ".join(
                    f"<p>One study reported reduced pain scores [{s.id}].</p>" for s in studies
                ),
                order=0,
            ),
        ],
        studies=studies,
    )
    fields.update({k: v for k, v in kwargs.items() if k in BUILD_FIELDS})
    page = PageRecord.build(**fields)
    extra = {k: v for k, v in kwargs.items() if k not in BUILD_FIELDS}
    return page.model_copy(update=extra) if extra else page


class FakeGenerator:
    """TextGenerator that replays canned responses in order."""

    def __init__(self, responses: List, available: bool = True):
        self.responses = list(responses)
        self.available = available
        self.calls = []

    def is_available(self) -> tuple[bool, str]:
        return (True, "ready") if self.available else (False, "No API key")

    async def generate(self, system_prompt, prompt, max_tokens=8000, temperature=0.3) -> Generation:
        self.calls.append({"system": system_prompt, "prompt": prompt, "max_tokens": max_tokens})
        response = self.responses.pop(0) if self.responses else ""
        if isinstance(response, Exception):
            raise response
        return Generation(text=response, usage=TokenUsage(input_tokens=1000, output_tokens=500))


class FakeSource:
    def __init__(self, name: str, studies=None, error: Optional[Exception] = None):
        self.name = name
        self.studies = studies or []
        self.error = error
        self.calls = 0

    async def fetch(self, peptide_name, aliases):
        self.calls += 1
        if self.error:
            raise self.error
        return list(self.studies)


class FakeRenderer:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.rendered = []

    async def render(self, page) -> RenderedDocument:
        if self.error:
            raise self.error
        self.rendered.append(page.version)
        return RenderedDocument(content=b"%PDF-1.7 fake " + page.slug.encode(), page_count=1)


@pytest.fixture
def config(tmp_path):
    cfg = Config()
    cfg.ai.plain_language = False
    cfg.publish.database_url = "sqlite://"
    cfg.publish.storage_dir = str(tmp_path / "objects")
    cfg.publish.public_url = "https://cdn.example.org"
    return cfg


@pytest.fixture
def quiet_console():
    return Console(quiet=True)


@pytest.fixture
def studies():
    return [
        make_trial("NCT00000001"),
        make_trial("NCT00000002", start_date="2019-01-15"),
        make_article("1001", StudyDesign.HUMAN_OBSERVATIONAL, year=2018),
        make_article("1002", StudyDesign.ANIMAL_IN_VIVO, year=2022),
        make_article("1003", StudyDesign.ANIMAL_IN_VITRO, year=2015),
    ]
