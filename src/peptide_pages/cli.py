"""CLI entry point for peptide-pages."""

import asyncio
import json
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import config_path, create_default_config, load_config
from .logging_config import setup_logging

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="peptide-pages")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging (otherwise LOG_LEVEL)")
def main(verbose):
    """Build cited, compliance-checked evidence pages for peptides."""
    setup_logging(verbose)


def _print_result(result) -> None:
    from .pipeline import RunStatus

    if result.status == RunStatus.PUBLISHED:
        console.print(Panel(
            f"[bold]{result.name}[/bold] v{result.version} published\n"
            f"  Grade:    {result.grade.label}\n"
            f"  Studies:  {result.study_count}\n"
            f"  PDF:      {result.pdf_url}\n"
            f"  Cost:     ${result.cost:.2f} ({result.usage.total} tokens)\n"
            f"  Duration: {result.duration:.1f}s",
            title="Complete",
            border_style="green",
        ))
    elif result.status == RunStatus.DRY_RUN:
        console.print(Panel(
            f"[bold]{result.name}[/bold] passed all checks (dry run, nothing published)\n"
            f"  Grade:    {result.grade.label}\n"
            f"  Sections: {len(result.page.sections)}\n"
            f"  Cost:     ${result.cost:.2f}",
            title="Dry run",
            border_style="cyan",
        ))
    elif result.status == RunStatus.NOT_READY:
        issues = result.compliance or result.quick_compliance
        body = result.error + ("\n" + issues.summary() if issues else "")
        console.print(Panel(body, title=f"Not ready: {result.name}", border_style="yellow"))
    else:
        console.print(Panel(
            f"Failed at [bold]{result.failed_step.value}[/bold]: {result.error}\n"
            f"Cost so far: ${result.cost:.2f}",
            title=f"Failed: {result.name}",
            border_style="red",
        ))


@main.command()
@click.argument("name")
@click.option("--alias", "-a", "aliases", multiple=True, help="Alternate name (repeatable)")
@click.option("--slug", help="URL slug (default: derived from name)")
@click.option("--dry-run", is_flag=True, help="Run every check but do not publish")
@click.option("--skip-audit", is_flag=True, help="Skip the full compliance audit")
@click.option("--output", "-o", type=click.Path(), help="Write the page record as JSON")
def process(name, aliases, slug, dry_run, skip_audit, output):
    """Ingest, synthesize, audit and publish a single peptide.

    \b
    Examples:
      peptide-pages process BPC-157 -a "Body Protection Compound 157"
      peptide-pages process TB-500 --dry-run --skip-audit
    """
    from .models import PeptideInput, slugify
    from .pipeline import create_driver

    config = load_config()
    peptide = PeptideInput(slug=slug or slugify(name), name=name, aliases=list(aliases))

    console.print(Panel(
        f"[bold]{peptide.name}[/bold]"
        + (f" [dim]({', '.join(peptide.aliases)})[/dim]" if peptide.aliases else ""),
        title="peptide-pages",
        border_style="blue",
    ))

    driver = create_driver(config, console)
    result = asyncio.run(driver.run(peptide, skip_full_audit=skip_audit, dry_run=dry_run))

    if output and result.page:
        Path(output).write_text(result.page.model_dump_json(indent=2))
        console.print(f"Page record written to [bold]{output}[/bold]")

    _print_result(result)
    if not result.success:
        raise SystemExit(1)


@main.command()
@click.argument("peptides_file", type=click.Path(exists=True))
@click.option("--continue-on-error/--stop-on-error", default=None, help="Keep going after a failed peptide")
@click.option("--delay", type=float, default=None, help="Seconds to wait between peptides")
@click.option("--dry-run", is_flag=True, help="Run every check but do not publish")
@click.option("--skip-audit", is_flag=True, help="Skip the full compliance audit")
@click.option("--report", "-r", type=click.Path(), help="Write a markdown report")
def batch(peptides_file, continue_on_error, delay, dry_run, skip_audit, report):
    """Process every peptide listed in a YAML file.

    \b
    Example:
      peptide-pages batch peptides.yaml --continue-on-error --report report.md
    """
    from .batch import BatchRunner, load_peptides
    from .pipeline import create_driver

    config = load_config()
    peptides = load_peptides(Path(peptides_file))

    runner = BatchRunner(
        create_driver(config, console),
        delay_seconds=config.batch.delay_seconds if delay is None else delay,
        continue_on_error=config.batch.continue_on_error if continue_on_error is None else continue_on_error,
        console=console,
    )

    console.print(Panel(
        f"[bold]{len(peptides)}[/bold] peptides from {peptides_file}",
        title="peptide-pages batch",
        border_style="blue",
    ))

    result = asyncio.run(runner.run(peptides, skip_full_audit=skip_audit, dry_run=dry_run))

    console.print(result.to_table())
    console.print(
        f"Succeeded: [green]{result.succeeded}[/green]  Failed: [red]{result.failed}[/red]  "
        f"Cost: ${result.total_cost:.2f}"
    )
    if result.stopped_by:
        console.print(f"[red]Stopped by {result.stopped_by}[/red]")

    if report:
        Path(report).write_text(result.to_markdown())
        console.print(f"Report written to [bold]{report}[/bold]")

    if result.failed:
        raise SystemExit(1)


@main.command()
@click.argument("studies_file", type=click.Path(exists=True))
def grade(studies_file):
    """Grade a saved study list (JSON list of studies, or a study set) offline."""
    from pydantic import TypeAdapter

    from .analysis.grading import count_studies, explain_grade, grade_counts, missing_for_upgrade
    from .analysis.normalizer import normalize
    from .models import Study

    data = json.loads(Path(studies_file).read_text())
    if isinstance(data, dict):
        data = data.get("studies", [])
    studies = normalize(TypeAdapter(list[Study]).validate_python(data))

    counts = count_studies(studies)
    table = Table(title=f"Evidence grade: {grade_counts(counts).label}", border_style="blue")
    table.add_column("Design", style="bold")
    table.add_column("Studies", justify="right")
    table.add_row("Human controlled trials", str(counts.human_controlled))
    table.add_row("Human observational", str(counts.human_observational))
    table.add_row("Human case reports", str(counts.human_case_report))
    table.add_row("Animal in vivo", str(counts.animal_in_vivo))
    table.add_row("Animal in vitro", str(counts.animal_in_vitro))
    table.add_row("Total", str(counts.total))
    console.print(table)

    console.print(explain_grade(studies))
    for suggestion in missing_for_upgrade(studies):
        console.print(f"  [dim]Upgrade: {suggestion}[/dim]")


@main.command()
def init():
    """Create config file with default settings."""
    path = config_path()
    if path.exists():
        if not click.confirm(f"Config already exists at {path}. Overwrite?"):
            console.print("Keeping existing config.")
            return

    path = create_default_config(path)
    console.print(Panel(
        f"Config created at [bold]{path}[/bold]\n\n"
        f"Edit this file to set:\n"
        f"  1. PubMed email (and NCBI API key)\n"
        f"  2. Synthesis provider + API key\n"
        f"  3. Compliance provider + API key\n"
        f"  4. Database URL and storage directory\n\n"
        f"Then run: [bold]peptide-pages status[/bold] to verify",
        title="Configuration Created",
        border_style="green",
    ))


def _provider_status(ai_config) -> str:
    if ai_config.provider == "ollama":
        return f"Ollama at {ai_config.ollama_url}"
    api_key = ai_config.get_api_key()
    if api_key:
        return f"[green]{api_key[:8]}...{api_key[-4:]}[/green]"
    return "[red]No API key[/red]"


@main.command()
def status():
    """Show configuration and published pages."""
    from .publish.store import SqlMetadataStore

    config = load_config()
    path = config_path()
    config_status = "[green]Found[/green]" if path.exists() else "[yellow]Not found[/yellow] (using defaults)"

    try:
        pages = asyncio.run(SqlMetadataStore(config.publish.database_url).list_peptides())
        store_status = f"[green]{len(pages)} page(s) published[/green]"
    except Exception as e:
        pages = []
        store_status = f"[red]Unavailable ({e})[/red]"

    table = Table(title="peptide-pages status", show_header=False, border_style="blue")
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("Config", f"{config_status} {path}")
    table.add_row("", "")
    table.add_row("Synthesis provider", config.ai.provider)
    table.add_row("Synthesis key/endpoint", _provider_status(config.ai))
    table.add_row("Synthesis model", config.ai.model or "(provider default)")
    table.add_row("", "")
    table.add_row("Compliance provider", config.compliance.provider)
    table.add_row("Compliance key/endpoint", _provider_status(config.compliance))
    table.add_row("", "")
    table.add_row("PubMed email", config.pubmed.email)
    table.add_row("Database", config.publish.database_url)
    table.add_row("Metadata store", store_status)
    table.add_row("Storage dir", config.publish.storage_dir)

    console.print(table)

    if pages:
        published = Table(title="Published pages", border_style="blue")
        published.add_column("Slug", style="bold")
        published.add_column("Grade")
        published.add_column("Version", justify="right")
        published.add_column("Last updated")
        for page in pages:
            published.add_row(page["slug"], page["evidence_grade"], str(page["version"]), page["last_updated"])
        console.print(published)
