"""Batch mode: run a list of peptides through the pipeline one at a time."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import yaml
from rich.console import Console
from rich.table import Table

from .models import PeptideInput, slugify
from .pipeline import PipelineDriver, PipelineResult, RunStatus

logger = logging.getLogger(__name__)
console = Console()

STATUS_STYLE = {
    RunStatus.PUBLISHED: "green",
    RunStatus.DRY_RUN: "cyan",
    RunStatus.NOT_READY: "yellow",
    RunStatus.FAILED: "red",
}


def load_peptides(path: Path) -> List[PeptideInput]:
    """Load peptides from a YAML file.

    Format:
        peptides:
          - id: bpc-157          # or slug:, defaults to slugified name
            name: BPC-157
            aliases: [Body Protection Compound 157]
    """
    data = yaml.safe_load(Path(path).read_text())
    if not isinstance(data, dict) or not isinstance(data.get("peptides"), list):
        raise ValueError(f'{path} must contain a "peptides" list')

    peptides = []
    for entry in data["peptides"]:
        if not isinstance(entry, dict) or not entry.get("name"):
            raise ValueError(f"Every peptide in {path} needs a name, got: {entry!r}")
        slug = entry.get("id") or entry.get("slug") or slugify(entry["name"])
        peptides.append(PeptideInput(slug=slug, name=entry["name"], aliases=entry.get("aliases") or []))
    return peptides


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    return f"{int(seconds // 60)}m {int(seconds % 60)}s"


@dataclass
class BatchReport:
    results: List[PipelineResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration: float = 0.0
    # Slug of the peptide whose failure halted the batch
    stopped_by: Optional[str] = None

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def total_cost(self) -> float:
        return sum(r.cost for r in self.results)

    def to_markdown(self) -> str:
        lines = [
            "# Batch Processing Report",
            "",
            f"**Date:** {self.started_at.isoformat()}",
            f"**Total Peptides:** {self.total}",
            f"**Succeeded:** {self.succeeded}",
            f"**Failed:** {self.failed}",
            f"**Total Cost:** ${self.total_cost:.2f}",
            f"**Duration:** {format_duration(self.duration)}",
        ]
        if self.stopped_by:
            lines.append(f"**Stopped by:** {self.stopped_by}")

        lines += [
            "",
            "## Results",
            "",
            "| Peptide | Status | Evidence Grade | Studies | Cost | Duration |",
            "|---------|--------|----------------|---------|------|----------|",
        ]
        for r in self.results:
            grade = r.grade.value.upper() if r.grade else "-"
            lines.append(
                f"| {r.slug} | {r.status.value} | {grade} | {r.study_count} "
                f"| ${r.cost:.2f} | {format_duration(r.duration)} |"
            )
        lines.append("")

        failures = [r for r in self.results if not r.success]
        if failures:
            lines += ["## Errors", ""]
            for r in failures:
                step = r.failed_step.value if r.failed_step else "unknown"
                lines += [f"### {r.slug} ({step})", "", "```", r.error or "Unknown error", "```", ""]

        return "\n".join(lines)

    def to_table(self) -> Table:
        table = Table(title="Batch results", border_style="blue")
        table.add_column("Peptide", style="bold")
        table.add_column("Status")
        table.add_column("Grade")
        table.add_column("Studies", justify="right")
        table.add_column("Cost", justify="right")
        table.add_column("Duration", justify="right")

        for r in self.results:
            style = STATUS_STYLE[r.status]
            table.add_row(
                r.slug,
                f"[{style}]{r.status.value}[/{style}]",
                r.grade.label if r.grade else "-",
                str(r.study_count),
                f"${r.cost:.2f}",
                format_duration(r.duration),
            )
        return table


class BatchRunner:
    """Run peptides sequentially, pausing between them for upstream rate limits.

    A failed peptide stops the batch unless ``continue_on_error`` is set.
    "Not ready" outcomes never stop the batch.
    """

    def __init__(
        self,
        driver: PipelineDriver,
        delay_seconds: float = 1.0,
        continue_on_error: bool = False,
        console: Console = console,
    ):
        self.driver = driver
        self.delay_seconds = delay_seconds
        self.continue_on_error = continue_on_error
        self.console = console

    async def run(
        self,
        peptides: List[PeptideInput],
        skip_full_audit: bool = False,
        dry_run: bool = False,
    ) -> BatchReport:
        started = time.monotonic()
        report = BatchReport()

        for i, peptide in enumerate(peptides, 1):
            self.console.print(f"\n[bold][{i}/{len(peptides)}] Processing:[/bold] {peptide.name}")

            result = await self.driver.run(peptide, skip_full_audit=skip_full_audit, dry_run=dry_run)
            report.results.append(result)

            if result.status == RunStatus.FAILED and not self.continue_on_error:
                report.stopped_by = peptide.slug
                logger.error(f"Batch stopped by {peptide.slug}: {result.error}")
                self.console.print(f"\n[red]Batch stopped:[/red] {peptide.name} failed")
                break

            if i < len(peptides) and self.delay_seconds > 0:
                logger.debug(f"Waiting {self.delay_seconds}s before next peptide")
                await asyncio.sleep(self.delay_seconds)

        report.duration = time.monotonic() - started
        return report
