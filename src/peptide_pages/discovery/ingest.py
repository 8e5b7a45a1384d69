"""Multi-source study ingestion.

Queries every literature source concurrently and merges whatever comes back.
A single failing source degrades the result instead of aborting the run.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Protocol

from ..errors import IngestError
from ..models import StudySet

logger = logging.getLogger(__name__)


class LiteratureSource(Protocol):
    """Protocol for literature sources (PubMed, trial registries, etc.)."""

    name: str

    async def fetch(self, peptide_name: str, aliases: List[str]) -> list:
        """Return studies matching the peptide name or any alias."""
        ...


@dataclass
class IngestResult:
    """Merged studies plus any per-source failures."""
    study_set: StudySet
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return bool(self.errors)


def get_sources(config) -> List[LiteratureSource]:
    """Factory: the default PubMed + ClinicalTrials.gov source list."""
    from .clinicaltrials import ClinicalTrialsSource
    from .pubmed import PubMedSource

    return [PubMedSource(config.pubmed), ClinicalTrialsSource(config.trials)]


async def ingest(
    slug: str,
    peptide_name: str,
    aliases: List[str],
    sources: List[LiteratureSource],
) -> IngestResult:
    """Fetch studies from all sources concurrently.

    Raises:
        IngestError: if every source failed
    """
    results = await asyncio.gather(
        *(source.fetch(peptide_name, aliases) for source in sources),
        return_exceptions=True,
    )

    studies = []
    counts: dict[str, int] = {}
    errors: dict[str, str] = {}

    for source, result in zip(sources, results):
        if isinstance(result, BaseException):
            logger.warning(f"{source.name} ingestion failed for {peptide_name}: {result}")
            errors[source.name] = str(result)
            continue
        counts[source.name] = len(result)
        studies.extend(result)

    if sources and len(errors) == len(sources):
        raise IngestError(
            ",".join(errors),
            peptide_name,
            f"All sources failed for {peptide_name}: " + "; ".join(f"{k}: {v}" for k, v in errors.items()),
        )

    study_set = StudySet(
        slug=slug,
        name=peptide_name,
        aliases=aliases,
        studies=studies,
        source_counts=counts,
    )
    return IngestResult(study_set=study_set, errors=errors)
