"""PubMed literature search for peptide studies."""

import asyncio
import logging
import re
import time
from typing import Dict, List, Optional

from Bio import Entrez, Medline
from tenacity import (
    before_sleep_log,
    retry,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import IngestError
from ..models import LiteratureStudy, StudyDesign

logger = logging.getLogger(__name__)

MIN_ABSTRACT_CHARS = 50

CONTROLLED_TRIAL_KEYWORDS = [
    "randomized controlled trial",
    "randomised controlled trial",
    "rct",
    "double-blind",
    "double blind",
    "placebo-controlled",
    "clinical trial",
]
HUMAN_KEYWORDS = [
    "human",
    "humans",
    "patient",
    "patients",
    "clinical",
    "cohort",
    "case-control",
    "cross-sectional",
    "retrospective",
    "prospective",
    "volunteer",
    "volunteers",
    "participant",
    "participants",
]
CASE_REPORT_KEYWORDS = ["case report", "case series", "case study"]
IN_VITRO_KEYWORDS = ["in vitro", "cell culture", "cultured cells", "cell line", "cell lines"]
ANIMAL_KEYWORDS = ["rat", "rats", "mouse", "mice", "animal", "animals", "rodent", "rabbit", "guinea pig", "in vivo"]


def _contains_any(text: str, keywords: List[str]) -> bool:
    return any(re.search(rf"\b{re.escape(kw)}\b", text) for kw in keywords)


def infer_design(title: str, abstract: str) -> StudyDesign:
    """Classify study design from title and abstract text.

    Order: controlled trial, human (case report or observational),
    animal, then in vitro. An article naming both animals and cell work is
    in vivo. Unclassifiable articles fall back to in vivo.
    """
    text = f"{title} {abstract}".lower()

    if _contains_any(text, CONTROLLED_TRIAL_KEYWORDS):
        return StudyDesign.HUMAN_CONTROLLED_TRIAL

    if _contains_any(text, HUMAN_KEYWORDS):
        if _contains_any(text, CASE_REPORT_KEYWORDS):
            return StudyDesign.HUMAN_CASE_REPORT
        return StudyDesign.HUMAN_OBSERVATIONAL

    if _contains_any(text, ANIMAL_KEYWORDS):
        return StudyDesign.ANIMAL_IN_VIVO

    if _contains_any(text, IN_VITRO_KEYWORDS):
        return StudyDesign.ANIMAL_IN_VITRO

    return StudyDesign.ANIMAL_IN_VIVO


def build_query(peptide_name: str, aliases: List[str]) -> str:
    """OR-join quoted name and aliases: '"BPC-157" OR "Body Protection Compound"'."""
    terms = [peptide_name] + [a for a in aliases if a]
    return " OR ".join(f'"{t}"' for t in terms)


def _parse_year(pub_date: str) -> Optional[int]:
    """Extract year from PubMed date string."""
    if not pub_date:
        return None
    try:
        return int(pub_date.split()[0][:4])
    except (ValueError, IndexError):
        return None


def parse_medline_record(record: Dict) -> Dict:
    """Turn a Medline record into an article dict."""
    # DOI lives in AID as "10.xxxx/yyyy [doi]"
    doi = None
    for aid in record.get("AID", []):
        if aid.endswith("[doi]"):
            doi = aid.replace(" [doi]", "").strip()
            break

    return {
        "pmid": record.get("PMID", ""),
        "title": record.get("TI", ""),
        "abstract": record.get("AB", ""),
        "authors": record.get("AU", []),
        "journal": record.get("JT", ""),
        "year": _parse_year(record.get("DP", "")),
        "doi": doi,
    }


def is_valid_article(article: Dict) -> bool:
    if not article.get("pmid") or not article.get("title"):
        return False
    return len(article.get("abstract") or "") >= MIN_ABSTRACT_CHARS


def to_study(article: Dict) -> LiteratureStudy:
    return LiteratureStudy(
        id=f"PMID:{article['pmid']}",
        title=article["title"],
        abstract=article.get("abstract") or "",
        authors=article.get("authors") or [],
        journal=article.get("journal") or "",
        year=article.get("year"),
        doi=article.get("doi"),
        design=infer_design(article["title"], article.get("abstract") or ""),
    )


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
def _esearch(query: str, max_results: int) -> List[str]:
    handle = Entrez.esearch(db="pubmed", term=query, retmax=max_results, retmode="xml")
    result = Entrez.read(handle)
    handle.close()
    return list(result.get("IdList", []))


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
def _efetch(pmids: List[str]) -> List[Dict]:
    handle = Entrez.efetch(db="pubmed", id=pmids, rettype="medline", retmode="text")
    records = [parse_medline_record(r) for r in Medline.parse(handle)]
    handle.close()
    return records


def search_articles(
    query: str,
    email: str = "user@example.com",
    api_key: Optional[str] = None,
    max_results: int = 100,
    batch_size: int = 200,
) -> List[Dict]:
    """Search PubMed and fetch article records.

    Args:
        query: Search term, usually from build_query()
        email: Required by NCBI for API access
        api_key: Optional NCBI API key (raises the limit to 10 req/sec)
        max_results: Maximum PMIDs to retrieve
        batch_size: PMIDs per efetch request

    Returns:
        List of article dicts with: pmid, title, abstract, authors,
        journal, year, doi
    """
    Entrez.email = email
    if api_key:
        Entrez.api_key = api_key

    logger.info(f"Searching PubMed: {query}")
    pmids = _esearch(query, max_results)
    logger.info(f"Found {len(pmids)} PMIDs")

    # 3 req/sec without a key, 10 with
    pause = 0.1 if api_key else 0.34
    articles = []
    for start in range(0, len(pmids), batch_size):
        batch = pmids[start : start + batch_size]
        articles.extend(_efetch(batch))
        if start + batch_size < len(pmids):
            time.sleep(pause)

    return articles


class PubMedSource:
    """Literature source backed by NCBI PubMed."""

    name = "pubmed"

    def __init__(self, config):
        self.config = config

    async def fetch(self, peptide_name: str, aliases: List[str]) -> List[LiteratureStudy]:
        query = build_query(peptide_name, aliases)
        try:
            articles = await asyncio.to_thread(
                search_articles,
                query,
                self.config.email,
                self.config.ncbi_api_key or None,
                self.config.max_results,
                self.config.batch_size,
            )
        except Exception as e:
            logger.error(f"PubMed search failed for {peptide_name}: {e}")
            raise IngestError(self.name, peptide_name, f"PubMed search failed: {e}") from e

        valid = [a for a in articles if is_valid_article(a)]
        logger.info(f"Fetched {len(valid)} PubMed articles with abstracts")
        return [to_study(a) for a in valid]
