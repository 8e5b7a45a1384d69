"""Compliance validation for synthesized pages.

Two modes:

    quick   local regex checks, no network, run on every page
    full    the complete checklist reviewed by an external auditor

A failed check is a normal result (``passed=False``), not an exception.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from ..ai.prompts import AUDIT_RESPONSE_FORMAT, COMPLIANCE_CHECKLIST, build_audit_document
from ..ai.provider import TextGenerator, estimate_cost
from ..ai.schemas import AuditIssue, AuditResponse, TokenUsage
from ..errors import AuditError
from .citations import audit_citations

logger = logging.getLogger(__name__)

ComplianceIssue = AuditIssue

PRESCRIPTIVE_PATTERNS = [
    re.compile(r"\b(you should|we recommend|recommended dose|consult your doctor about)\b", re.IGNORECASE),
    re.compile(r"\b(take|use|administer)\s+\d+\s*(mcg|mg|ml|iu)\b", re.IGNORECASE),
]
DOSING_PATTERNS = [
    re.compile(r"\b(dose|dosage|dosing)\s*:?\s*\d+", re.IGNORECASE),
    re.compile(r"\b\d+\s*(mcg|mg|ml|iu)\s+(daily|twice daily|per day|weekly)\b", re.IGNORECASE),
]
VENDOR_PATTERNS = [
    re.compile(r"\b(buy|purchase|order from|available at|sold by)\b", re.IGNORECASE),
    re.compile(r"\b(vendors?|suppliers?)\b", re.IGNORECASE),
]
EDUCATIONAL_RE = re.compile(r"\beducational\b", re.IGNORECASE)
NOT_ADVICE_RE = re.compile(r"\bnot\b.*\bmedical advice\b", re.IGNORECASE)

_TAG_RE = re.compile(r"<[^>]+>")


@dataclass
class ComplianceResult:
    passed: bool
    score: int
    issues: List[ComplianceIssue] = field(default_factory=list)
    mode: str = "quick"
    fixed_text: Optional[str] = None
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0

    @property
    def critical_issues(self) -> List[ComplianceIssue]:
        return [i for i in self.issues if i.severity == "critical"]

    def summary(self) -> str:
        """One line per issue, for logs and batch reports."""
        if not self.issues:
            return f"{self.mode} compliance: passed (score {self.score})"
        lines = [f"{self.mode} compliance: {'passed' if self.passed else 'FAILED'} (score {self.score})"]
        for issue in self.issues:
            where = f' at "{issue.location}"' if issue.location else ""
            lines.append(f"  [{issue.severity}] {issue.type}: {issue.description}{where}")
        return "\n".join(lines)


def _first_match(patterns, text: str) -> List[str]:
    matches = []
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            matches.append(match.group(0))
    return matches


def has_disclaimer(legal_notes: List[str]) -> bool:
    """Disclaimers must say the page is educational and not medical advice."""
    text = " ".join(legal_notes)
    return bool(EDUCATIONAL_RE.search(text) and NOT_ADVICE_RE.search(text))


def quick_validate(page) -> ComplianceResult:
    """Run the local regex subset of the compliance checklist.

    Passes iff no critical issue was found. Score is 0 on failure, otherwise
    100 minus 10 per issue, floored at 70.
    """
    html = page.content_html()
    text = re.sub(r"\s+", " ", _TAG_RE.sub(" ", html))
    issues = []

    if not has_disclaimer(page.legal_notes):
        issues.append(ComplianceIssue(
            type="disclaimer",
            severity="critical",
            description="Page is missing the educational / not-medical-advice disclaimer",
        ))

    for quote in _first_match(PRESCRIPTIVE_PATTERNS, text):
        issues.append(ComplianceIssue(
            type="medical_advice",
            severity="critical",
            description="Content appears to provide medical advice",
            location=quote,
        ))

    for quote in _first_match(DOSING_PATTERNS, text):
        issues.append(ComplianceIssue(
            type="dosing",
            severity="critical",
            description="Content includes specific dosing instructions",
            location=quote,
        ))

    for quote in _first_match(VENDOR_PATTERNS, text):
        issues.append(ComplianceIssue(
            type="vendor",
            severity="critical",
            description="Content mentions vendors or purchasing",
            location=quote,
        ))

    citations = audit_citations(html)
    if citations.missing_claims:
        # Reported once per page
        issues.append(ComplianceIssue(
            type="claims",
            severity="warning",
            description=f"{len(citations.missing_claims)} effect claim(s) may be missing a citation",
            location=citations.missing_claims[0],
        ))

    passed = not any(i.severity == "critical" for i in issues)
    score = max(70, 100 - 10 * len(issues)) if passed else 0
    return ComplianceResult(passed=passed, score=score, issues=issues, mode="quick")


class Auditor(Protocol):
    """Protocol for external compliance auditors."""

    async def audit(self, document: str) -> AuditResponse:
        """Review the document against the compliance checklist."""
        ...


def parse_audit_response(text: str) -> AuditResponse:
    """Parse an auditor's JSON verdict, tolerating fences and preambles.

    Raises:
        AuditError: if no JSON object can be recovered
    """
    # Try direct JSON parse
    try:
        return AuditResponse(**json.loads(text))
    except (json.JSONDecodeError, ValueError, TypeError):
        pass

    # Try extracting JSON from markdown code block
    json_match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", text, re.DOTALL)
    if json_match:
        try:
            return AuditResponse(**json.loads(json_match.group(1)))
        except (json.JSONDecodeError, ValueError, TypeError):
            pass

    # Try finding JSON object in text
    brace_start = text.find("{")
    brace_end = text.rfind("}")
    if brace_start != -1 and brace_end > brace_start:
        try:
            return AuditResponse(**json.loads(text[brace_start : brace_end + 1]))
        except (json.JSONDecodeError, ValueError, TypeError):
            pass

    raise AuditError(f"Could not parse audit response: {text[:200]!r}")


class LLMAuditor:
    """Adapt any TextGenerator into an Auditor by asking for a JSON verdict."""

    def __init__(self, generator: TextGenerator, config):
        self.generator = generator
        self.config = config

    async def audit(self, document: str) -> AuditResponse:
        try:
            generation = await self.generator.generate(
                COMPLIANCE_CHECKLIST + "\n" + AUDIT_RESPONSE_FORMAT,
                document,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
        except Exception as e:
            logger.error(f"Compliance audit request failed: {e}")
            raise AuditError(f"Audit request failed: {e}") from e

        try:
            response = parse_audit_response(generation.text)
        except AuditError as e:
            raise AuditError(str(e), usage=generation.usage) from e
        response.usage = generation.usage
        return response


class ComplianceChecker:
    """Full compliance review through an injected Auditor.

    Args:
        auditor: Any Auditor, usually an LLMAuditor
        config: Optional ComplianceConfig, used only to price token usage
    """

    def __init__(self, auditor: Auditor, config=None):
        self.auditor = auditor
        self.config = config

    async def validate(self, page) -> ComplianceResult:
        """Run the full checklist. Raises AuditError on unusable responses."""
        response = await self.auditor.audit(build_audit_document(page))

        # A critical issue always fails, whatever the auditor's own verdict
        critical = any(i.severity == "critical" for i in response.issues)
        passed = response.passed and not critical
        cost = estimate_cost(response.usage, self.config) if self.config else 0.0

        if not passed:
            logger.warning(f"Full compliance audit failed for {page.name} (score {response.score})")

        return ComplianceResult(
            passed=passed,
            score=response.score,
            issues=response.issues,
            mode="full",
            fixed_text=response.fixed_text,
            usage=response.usage,
            cost=cost,
        )
