"""Study deduplication, relevance sorting and quality filtering.

Combines studies from every source into one ordered list: human evidence
before animal evidence, stronger designs first, newest first within a tier.
"""

import logging
import re
from typing import Mapping, Optional

from ..models import RegistryTrial, StudyDesign, StudySet

logger = logging.getLogger(__name__)

MIN_ABSTRACT_LENGTH = 100


def deduplicate_by_id(studies: list) -> list:
    """Drop repeated study ids; the first occurrence wins."""
    seen: set[str] = set()
    unique = []
    for study in studies:
        if study.id in seen:
            continue
        seen.add(study.id)
        unique.append(study)
    return unique


def study_year(study) -> Optional[int]:
    """Publication year, or the start-date year of a registry trial.

    Returns None when the year is unknown (missing or unparsable start date).
    """
    if isinstance(study, RegistryTrial):
        if study.start_date:
            match = re.search(r"(\d{4})", study.start_date)
            if match:
                return int(match.group(1))
        return None
    return study.year


def _relevance_key(study) -> tuple:
    year = study_year(study)
    # Unknown years sort after every known year in the same tier
    return (study.design.priority, year is None, -(year or 0))


def sort_by_relevance(studies: list) -> list:
    """Sort by design priority, then newest first."""
    return sorted(studies, key=_relevance_key)


def normalize(studies: list) -> list:
    """Deduplicate and sort. Running it on its own output is a no-op."""
    unique = deduplicate_by_id(studies)
    dropped = len(studies) - len(unique)
    if dropped:
        logger.debug(f"Dropped {dropped} duplicate studies")
    return sort_by_relevance(unique)


def normalize_study_set(study_set: StudySet) -> StudySet:
    """Return a normalized copy of a StudySet with refreshed source counts."""
    normalized = study_set.model_copy(update={"studies": normalize(study_set.studies)})
    normalized.source_counts = normalized.count_by_source()
    return normalized


def filter_by_quality(studies: list) -> list:
    """Remove studies that cannot support citation-grounded synthesis.

    Literature records need an abstract of at least 100 characters; registry
    trials need at least one condition and one intervention.
    """
    kept = []
    for study in studies:
        if isinstance(study, RegistryTrial):
            if study.conditions and study.interventions:
                kept.append(study)
        elif study.abstract and len(study.abstract) >= MIN_ABSTRACT_LENGTH:
            kept.append(study)
    if len(kept) < len(studies):
        logger.info(f"Quality filter removed {len(studies) - len(kept)} of {len(studies)} studies")
    return kept


def limit_by_category(studies: list, limits: Mapping) -> list:
    """Cap the number of studies per design tier, keeping input order.

    Args:
        studies: Studies, usually already sorted by relevance
        limits: Map of StudyDesign (or its value) to maximum count.
            Missing or None means unlimited.
    """
    caps = {StudyDesign(k): v for k, v in limits.items() if v is not None}
    taken: dict[StudyDesign, int] = {}
    limited = []
    for study in studies:
        cap = caps.get(study.design)
        count = taken.get(study.design, 0)
        if cap is not None and count >= cap:
            continue
        taken[study.design] = count + 1
        limited.append(study)
    return limited
