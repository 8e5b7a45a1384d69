"""Per-peptide pipeline driver for peptide-pages.

Coordinates: ingest -> normalize -> grade -> synthesize -> quick audit
-> full audit -> publish
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from rich.console import Console

from .ai.provider import estimate_cost
from .ai.schemas import TokenUsage
from .analysis.grading import explain_grade, grade_evidence
from .analysis.normalizer import filter_by_quality, limit_by_category, normalize
from .audit.citations import PageAudit, audit_page
from .audit.compliance import ComplianceChecker, ComplianceResult, quick_validate
from .config import Config
from .discovery.ingest import LiteratureSource, ingest
from .errors import AuditError, PipelineError
from .models import EvidenceGrade, PageRecord, PeptideInput
from .publish.orchestrator import Publisher
from .synthesis.synthesizer import Synthesizer

logger = logging.getLogger(__name__)
console = Console()


class Step(str, Enum):
    INGEST = "ingest"
    NORMALIZE = "normalize"
    GRADE = "grade"
    SYNTHESIZE = "synthesize"
    QUICK_AUDIT = "quick_audit"
    FULL_AUDIT = "full_audit"
    PUBLISH = "publish"


class RunStatus(str, Enum):
    PUBLISHED = "published"
    DRY_RUN = "dry_run"
    NOT_READY = "not_ready"
    FAILED = "failed"


@dataclass
class StepRecord:
    step: Step
    duration: float
    detail: str = ""


@dataclass
class PipelineResult:
    """Structured record of one peptide run, successful or not."""
    slug: str
    name: str
    status: RunStatus = RunStatus.FAILED
    grade: Optional[EvidenceGrade] = None
    study_count: int = 0
    source_counts: Dict[str, int] = field(default_factory=dict)
    ingest_errors: Dict[str, str] = field(default_factory=dict)
    usage: TokenUsage = field(default_factory=TokenUsage)
    cost: float = 0.0
    steps: List[StepRecord] = field(default_factory=list)
    failed_step: Optional[Step] = None
    error: Optional[str] = None
    duration: float = 0.0
    page: Optional[PageRecord] = None
    pdf_url: str = ""
    quick_compliance: Optional[ComplianceResult] = None
    compliance: Optional[ComplianceResult] = None
    citations: Optional[PageAudit] = None

    @property
    def success(self) -> bool:
        return self.status in (RunStatus.PUBLISHED, RunStatus.DRY_RUN)

    @property
    def version(self) -> Optional[int]:
        return self.page.version if self.page else None


class PipelineDriver:
    """Run peptides through the pipeline with injected sources and adapters.

    Args:
        config: Loaded Config
        sources: Literature sources queried during ingest
        synthesizer: Synthesizer wrapping the text-generation provider
        compliance_checker: Full compliance checker, None to run quick checks only
        publisher: Publisher, only required for non-dry runs
    """

    def __init__(
        self,
        config: Config,
        sources: List[LiteratureSource],
        synthesizer: Synthesizer,
        compliance_checker: Optional[ComplianceChecker] = None,
        publisher: Optional[Publisher] = None,
        console: Console = console,
    ):
        self.config = config
        self.sources = sources
        self.synthesizer = synthesizer
        self.compliance_checker = compliance_checker
        self.publisher = publisher
        self.console = console

    @contextmanager
    def _timed(self, result: PipelineResult, step: Step):
        started = time.monotonic()
        record = StepRecord(step=step, duration=0.0)
        try:
            yield record
        finally:
            record.duration = time.monotonic() - started
            result.steps.append(record)

    async def run(
        self,
        peptide: PeptideInput,
        skip_full_audit: bool = False,
        dry_run: bool = False,
    ) -> PipelineResult:
        """Process one peptide. Never raises; failures are recorded in the result."""
        started = time.monotonic()
        result = PipelineResult(slug=peptide.slug, name=peptide.name)
        step = Step.INGEST

        try:
            await self._run(peptide, result, skip_full_audit, dry_run)
        except Exception as e:
            step = result.steps[-1].step if result.steps else step
            result.status = RunStatus.FAILED
            result.failed_step = step
            result.error = f"{type(e).__name__}: {e}"
            usage = getattr(e, "usage", None)
            if usage is not None:
                result.usage = result.usage + usage
                prices = self.config.compliance if isinstance(e, AuditError) else self.config.ai
                result.cost += estimate_cost(usage, prices)
            logger.error(f"{peptide.name} failed at {step.value}: {result.error}")
            self.console.print(f"  [red]Failed at {step.value}:[/red] {result.error}")
        finally:
            result.duration = time.monotonic() - started

        return result

    async def _run(
        self,
        peptide: PeptideInput,
        result: PipelineResult,
        skip_full_audit: bool,
        dry_run: bool,
    ) -> None:
        # === Step 1: Ingest ===
        with self._timed(result, Step.INGEST) as record:
            with self.console.status("[bold]Searching PubMed and ClinicalTrials.gov..."):
                ingested = await ingest(peptide.slug, peptide.name, peptide.aliases, self.sources)
            study_set = ingested.study_set
            result.source_counts = dict(study_set.source_counts)
            result.ingest_errors = dict(ingested.errors)
            record.detail = ", ".join(f"{k}={v}" for k, v in result.source_counts.items())

        counts = " + ".join(f"{v} {k}" for k, v in result.source_counts.items()) or "0"
        self.console.print(f"  Ingest: [green]{counts}[/green] studies")
        for source, error in result.ingest_errors.items():
            self.console.print(f"  Ingest: [yellow]{source} failed ({error})[/yellow]")

        # === Step 2: Normalize ===
        with self._timed(result, Step.NORMALIZE) as record:
            studies = normalize(study_set.studies)
            if self.config.normalize.filter_by_quality:
                studies = filter_by_quality(studies)
            if not studies:
                raise PipelineError(f"No usable studies found for {peptide.name}")
            result.study_count = len(studies)
            record.detail = f"{len(study_set.studies)} -> {len(studies)}"
        self.console.print(f"  Normalize: [green]{len(studies)}[/green] unique studies")

        # === Step 3: Grade ===
        with self._timed(result, Step.GRADE) as record:
            grade = grade_evidence(studies)
            result.grade = grade
            selected = limit_by_category(studies, self.config.normalize.limits)
            record.detail = grade.value
        self.console.print(f"  Grade: [green]{grade.label}[/green] ({explain_grade(studies)})")

        # === Step 4: Synthesize ===
        with self._timed(result, Step.SYNTHESIZE) as record:
            with self.console.status(f"[bold]Synthesizing {len(selected)} studies via {self.config.ai.provider}..."):
                output = await self.synthesizer.synthesize(peptide.name, peptide.aliases, selected, grade)
            result.usage = result.usage + output.usage
            result.cost += output.cost
            page = PageRecord.build(
                slug=peptide.slug,
                name=peptide.name,
                aliases=peptide.aliases,
                evidence_grade=grade,
                summary_html=output.summary_html,
                sections=output.sections,
                studies=selected,
            )
            result.page = page
            record.detail = f"{len(page.sections)} sections"
        self.console.print(
            f"  Synthesis: [green]{len(page.sections)}[/green] sections "
            f"(${output.cost:.2f}, {output.usage.total} tokens)"
        )

        # === Step 5: Quick audit ===
        with self._timed(result, Step.QUICK_AUDIT) as record:
            quick = quick_validate(page)
            citations = audit_page(page)
            result.quick_compliance = quick
            result.citations = citations
            record.detail = f"score {quick.score}"

        if quick.issues:
            self.console.print(f"  Quick audit: [yellow]{len(quick.issues)} potential issue(s)[/yellow]")
            for issue in quick.issues[:3]:
                self.console.print(f"    - [{issue.severity}] {issue.description}")
        else:
            self.console.print("  Quick audit: [green]No obvious issues[/green]")

        if not citations.complete:
            logger.warning(
                f"{peptide.name}: {len(citations.citations.missing_claims)} uncited claim(s), "
                f"{len(citations.unknown_citations)} unknown citation(s), "
                f"{len(citations.uncited_studies)} uncited study(ies)"
            )
            if self.config.compliance.require_citation_completeness:
                self._not_ready(result, Step.QUICK_AUDIT, "Citation audit failed")
                return

        # === Step 6: Full audit ===
        gate = quick
        if skip_full_audit:
            self.console.print("  Full audit: [dim]Skipped[/dim]")
        elif self.compliance_checker is None:
            self._not_ready(result, Step.FULL_AUDIT, "No compliance checker configured")
            return
        else:
            with self._timed(result, Step.FULL_AUDIT) as record:
                with self.console.status(f"[bold]Running compliance audit via {self.config.compliance.provider}..."):
                    full = await self.compliance_checker.validate(page)
                result.compliance = full
                result.usage = result.usage + full.usage
                result.cost += full.cost
                record.detail = f"score {full.score}"
            gate = full
            color = "green" if full.passed else "red"
            self.console.print(f"  Full audit: [{color}]score {full.score}/100[/{color}]")

        if not gate.passed:
            step = Step.QUICK_AUDIT if gate.mode == "quick" else Step.FULL_AUDIT
            self._not_ready(result, step, f"Compliance validation failed (score {gate.score})")
            return

        # === Step 7: Publish ===
        if dry_run:
            result.status = RunStatus.DRY_RUN
            self.console.print("  Publish: [dim]Dry run, skipped[/dim]")
            return

        with self._timed(result, Step.PUBLISH) as record:
            if self.publisher is None:
                raise PipelineError("No publisher configured")
            with self.console.status("[bold]Publishing..."):
                published = await self.publisher.publish(page)
            record.detail = published.pdf_key or (published.failed_step or "")

        result.page = published.page or page
        if not published.success:
            result.status = RunStatus.FAILED
            result.failed_step = Step.PUBLISH
            result.error = f"PublishError: {published.error}"
            logger.error(f"{peptide.name} publish failed: {published.error}")
            self.console.print(f"  Publish: [red]{published.error}[/red]")
            return

        result.status = RunStatus.PUBLISHED
        result.pdf_url = published.pdf_url
        self.console.print(
            f"  Publish: [green]v{published.version}[/green] "
            f"({published.page_count} pages, {published.studies_inserted} new studies) {published.pdf_url}"
        )

    def _not_ready(self, result: PipelineResult, step: Step, message: str) -> None:
        result.status = RunStatus.NOT_READY
        result.failed_step = step
        result.error = message
        logger.warning(f"{result.name} not ready: {message}")
        self.console.print(f"  [yellow]Not ready:[/yellow] {message}")


def create_driver(config: Config, console: Console = console) -> PipelineDriver:
    """Wire the configured sources, providers and stores into a driver."""
    from .ai.provider import get_provider
    from .audit.compliance import LLMAuditor
    from .discovery.ingest import get_sources
    from .publish.renderer import WeasyPrintRenderer
    from .publish.storage import LocalObjectStore
    from .publish.store import SqlMetadataStore

    synthesizer = Synthesizer(get_provider(config.ai), config.ai)
    checker = ComplianceChecker(
        LLMAuditor(get_provider(config.compliance), config.compliance),
        config.compliance,
    )
    publisher = Publisher(
        renderer=WeasyPrintRenderer(config.publish.page_format),
        store=SqlMetadataStore(config.publish.database_url),
        objects=LocalObjectStore(config.publish.storage_dir, config.publish.public_url),
    )
    return PipelineDriver(
        config=config,
        sources=get_sources(config),
        synthesizer=synthesizer,
        compliance_checker=checker,
        publisher=publisher,
        console=console,
    )
