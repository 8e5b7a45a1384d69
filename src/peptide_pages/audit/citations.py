"""Citation auditing for synthesized HTML.

Every empirical claim must carry an inline ``[REGISTRY:ID]`` token, e.g.
``[PMID:12345678]`` or ``[NCT:NCT01234567]``.
"""

import re
from dataclasses import dataclass, field
from typing import List

CITATION_RE = re.compile(r"\[([A-Z]+):([^\]\s]+)\]")
CLAIM_RE = re.compile(
    r"\b(increase|decrease|improve|reduce|enhance|inhibit|promote|prevent)\w*\b",
    re.IGNORECASE,
)
SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
TAG_RE = re.compile(r"<[^>]+>")

MIN_CLAIM_SENTENCE_LENGTH = 20
CLAIM_EXCERPT_LENGTH = 100


@dataclass
class CitationAudit:
    """Citation coverage of one block of HTML."""
    citation_count: int
    missing_claims: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.citation_count > 0 and not self.missing_claims


@dataclass
class PageAudit:
    """Citation coverage of a whole page, checked against its study list."""
    citations: CitationAudit
    uncited_studies: List[str] = field(default_factory=list)
    unknown_citations: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.citations.passed and not self.unknown_citations

    @property
    def complete(self) -> bool:
        """Passed, and every study in the evidence set is cited at least once."""
        return self.passed and not self.uncited_studies


def extract_citations(html: str) -> set[str]:
    """Distinct citation ids (``PMID:123``) referenced in the text."""
    return {f"{registry}:{accession}" for registry, accession in CITATION_RE.findall(html)}


def audit_citations(html: str) -> CitationAudit:
    """Count distinct citations and list claim sentences that lack one.

    A sentence counts as a claim when it contains an effect verb (increase,
    reduce, inhibit, ...). Very short fragments are ignored.
    """
    text = TAG_RE.sub(" ", html)
    missing = []
    for sentence in SENTENCE_SPLIT_RE.split(text):
        sentence = sentence.strip()
        if len(sentence) <= MIN_CLAIM_SENTENCE_LENGTH:
            continue
        if CLAIM_RE.search(sentence) and not CITATION_RE.search(sentence):
            missing.append(sentence[:CLAIM_EXCERPT_LENGTH])

    return CitationAudit(citation_count=len(extract_citations(html)), missing_claims=missing)


def audit_page(page) -> PageAudit:
    """Audit the summary and all sections, and cross-check against page.studies."""
    html = page.content_html()
    cited = extract_citations(html)
    known = {study.id for study in page.studies}

    return PageAudit(
        citations=audit_citations(html),
        uncited_studies=sorted(known - cited),
        unknown_citations=sorted(cited - known),
    )
