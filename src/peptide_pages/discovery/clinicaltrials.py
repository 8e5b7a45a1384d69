"""ClinicalTrials.gov (API v2) trial search for peptides."""

import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import IngestError
from ..models import RegistryTrial, StudyDesign

logger = logging.getLogger(__name__)

CT_STUDIES_URL = "https://clinicaltrials.gov/api/v2/studies"

CONTROLLED_KEYWORDS = ["randomized", "randomised", "controlled", "double-blind", "placebo"]


def build_query(peptide_name: str, aliases: List[str]) -> str:
    """ClinicalTrials.gov takes a plain OR-joined term list."""
    return " OR ".join([peptide_name] + [a for a in aliases if a])


def parse_trial(study: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Extract trial fields from an API v2 study object."""
    protocol = study.get("protocolSection")
    if not protocol:
        return None

    ident = protocol.get("identificationModule", {})
    nct_id = ident.get("nctId")
    if not nct_id:
        return None

    status_module = protocol.get("statusModule", {})
    design_module = protocol.get("designModule", {})
    arms = protocol.get("armsInterventionsModule", {})

    phases = design_module.get("phases") or []
    interventions = [i.get("name", "") for i in arms.get("interventions", []) if i.get("name")]

    return {
        "nct_id": nct_id,
        "title": ident.get("officialTitle") or ident.get("briefTitle") or "",
        "status": status_module.get("overallStatus") or "Unknown",
        "study_type": design_module.get("studyType") or "",
        "phase": phases[0] if phases else None,
        "conditions": protocol.get("conditionsModule", {}).get("conditions", []),
        "interventions": interventions,
        "enrollment": design_module.get("enrollmentInfo", {}).get("count"),
        "start_date": status_module.get("startDateStruct", {}).get("date"),
        "completion_date": status_module.get("completionDateStruct", {}).get("date"),
    }


def infer_design(trial: Dict[str, Any]) -> StudyDesign:
    """Registry trials are always human research; decide which tier.

    A declared observational study type wins. Otherwise a controlled-trial
    keyword in the title or a phase 1-4 label marks a controlled trial
    before the title is checked for observational or case-report wording.
    """
    title = trial.get("title", "").lower()
    status = trial.get("status", "").lower()
    study_type = trial.get("study_type", "").lower()

    if "observational" in study_type or "observational" in status:
        return StudyDesign.HUMAN_OBSERVATIONAL

    if any(kw in title for kw in CONTROLLED_KEYWORDS) or _is_numbered_phase(trial.get("phase")):
        return StudyDesign.HUMAN_CONTROLLED_TRIAL

    if any(kw in title for kw in ("observational", "registry", "cohort")):
        return StudyDesign.HUMAN_OBSERVATIONAL

    if any(kw in title for kw in ("case series", "case report", "case study")):
        return StudyDesign.HUMAN_CASE_REPORT

    # Interventional trials default to the controlled tier
    return StudyDesign.HUMAN_CONTROLLED_TRIAL


def _is_numbered_phase(phase: Optional[str]) -> bool:
    """True for PHASE1..PHASE4 (also "Phase 2"); False for NA, EARLY_PHASE1 or None."""
    if not phase:
        return False
    normalized = phase.upper().replace(" ", "")
    return normalized in {"PHASE1", "PHASE2", "PHASE3", "PHASE4"}


def is_valid_trial(trial: Dict[str, Any]) -> bool:
    return bool(
        trial.get("nct_id")
        and trial.get("title")
        and trial.get("conditions")
        and trial.get("interventions")
    )


def to_study(trial: Dict[str, Any]) -> RegistryTrial:
    return RegistryTrial(
        id=f"NCT:{trial['nct_id']}",
        title=trial["title"],
        status=trial["status"],
        phase=trial.get("phase"),
        conditions=trial["conditions"],
        interventions=trial["interventions"],
        enrollment=trial.get("enrollment"),
        start_date=trial.get("start_date"),
        completion_date=trial.get("completion_date"),
        design=infer_design(trial),
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type(
        (httpx.HTTPStatusError, httpx.ConnectError, httpx.TimeoutException)
    ),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def search_trials(
    client: httpx.AsyncClient,
    query: str,
    max_results: int = 50,
) -> List[Dict[str, Any]]:
    """Search ClinicalTrials.gov and return parsed trial dicts."""
    params = {"query.term": query, "pageSize": str(max_results), "format": "json"}
    logger.info(f"Searching ClinicalTrials.gov: {query}")

    response = await client.get(CT_STUDIES_URL, params=params)
    response.raise_for_status()

    trials = []
    for study in response.json().get("studies", []):
        trial = parse_trial(study)
        if trial:
            trials.append(trial)
    logger.info(f"Found {len(trials)} trials")
    return trials


class ClinicalTrialsSource:
    """Trial-registry source backed by ClinicalTrials.gov."""

    name = "clinicaltrials"

    def __init__(self, config, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    async def fetch(self, peptide_name: str, aliases: List[str]) -> List[RegistryTrial]:
        query = build_query(peptide_name, aliases)
        try:
            if self._client is not None:
                trials = await search_trials(self._client, query, self.config.max_results)
            else:
                async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                    trials = await search_trials(client, query, self.config.max_results)
        except Exception as e:
            logger.error(f"ClinicalTrials.gov search failed for {peptide_name}: {e}")
            raise IngestError(self.name, peptide_name, f"ClinicalTrials.gov search failed: {e}") from e

        return [to_study(t) for t in trials if is_valid_trial(t)]
