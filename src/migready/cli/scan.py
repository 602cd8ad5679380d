"""CLI command: migready scan — scan the configured org."""

from __future__ import annotations

import asyncio
import sys

import click
from rich.console import Console
from rich.table import Table

from migready.analysis.models import Severity
from migready.config import MigReadyConfig
from migready.errors import AuthenticationExpired, ScanFailed
from migready.inventory.prerequisites import migration_prerequisites
from migready.scan.models import ScanResult
from migready.scan.orchestrator import ScanOrchestrator
from migready.storage.db import get_db
from migready.storage.repos import SqliteScanStore

console = Console(stderr=True)

SEVERITY_COLORS = {
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}

_SEVERITY_ORDER = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}

EXIT_HIGH_FINDINGS = 1
EXIT_AUTH_EXPIRED = 2
EXIT_SCAN_FAILED = 3


@click.command()
@click.option(
    "--prerequisites",
    is_flag=True,
    help="Also print the pre-deployment checklist for the target org.",
)
@click.option("--no-save", is_flag=True, help="Do not store the scan in the local database.")
@click.pass_context
def scan(ctx: click.Context, prerequisites: bool, no_save: bool) -> None:
    """Scan the org and report migration blockers and health."""
    config: MigReadyConfig = ctx.obj["config"]
    try:
        credentials = config.credentials()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(EXIT_AUTH_EXPIRED)

    console.print(
        f"[bold]MigReady[/bold] scanning [cyan]{credentials.instance_url}[/cyan] "
        f"(API {credentials.api_version})\n"
    )

    try:
        result, scan_id = asyncio.run(_run_scan(config, credentials, save=not no_save))
    except AuthenticationExpired as e:
        console.print(f"[red]{e}[/red] [dim](trace {e.trace_id})[/dim]")
        sys.exit(EXIT_AUTH_EXPIRED)
    except ScanFailed as e:
        console.print(f"[red]Scan failed.[/red] [dim](trace {e.trace_id})[/dim]")
        sys.exit(EXIT_SCAN_FAILED)

    print_findings(result)
    print_summary(result)
    print_health(result)
    if prerequisites:
        print_prerequisites()
    if scan_id:
        console.print(f"\nSaved as scan [cyan]{scan_id}[/cyan]")

    high = result.summary.findings_by_severity.get(Severity.HIGH.value, 0)
    if high > 0:
        console.print(f"\n[red]{high} high severity finding(s)[/red]")
        sys.exit(EXIT_HIGH_FINDINGS)


async def _run_scan(config, credentials, save: bool) -> tuple[ScanResult, str | None]:
    result = await ScanOrchestrator.from_config(config).run(credentials)
    if not save:
        return result, None
    db = await get_db(config.db_path)
    try:
        scan_id = await SqliteScanStore(db).save(result)
    finally:
        await db.close()
    return result, scan_id


def print_findings(result: ScanResult) -> None:
    if not result.findings:
        console.print("[green]No findings.[/green]")
        return

    findings = sorted(
        result.findings, key=lambda f: (_SEVERITY_ORDER.get(f.severity, 9), f.category, f.id)
    )
    table = Table(title="Findings", show_lines=False)
    table.add_column("Severity", style="bold", width=8)
    table.add_column("Category", style="cyan")
    table.add_column("Finding")
    table.add_column("Objects", max_width=40)

    for finding in findings:
        color = SEVERITY_COLORS.get(finding.severity, "white")
        objects = ", ".join(finding.objects[:5])
        if len(finding.objects) > 5:
            objects += f" (+{len(finding.objects) - 5})"
        table.add_row(
            f"[{color}]{finding.severity.value}[/{color}]",
            finding.category,
            finding.title,
            objects,
        )
    console.print(table)


def print_summary(result: ScanResult) -> None:
    summary = result.summary
    console.print(
        f"\nScanned {summary.objects} objects (~{summary.records_approx:,} records), "
        f"{summary.flows} flows, {summary.triggers} triggers, "
        f"{summary.validation_rules} validation rules in {result.duration:.1f}s"
    )
    console.print(
        "Findings: "
        + ", ".join(f"{count} {sev}" for sev, count in summary.findings_by_severity.items())
    )
    if result.snapshot.degraded:
        console.print(
            f"[yellow]Degraded categories:[/yellow] {', '.join(result.snapshot.degraded)}"
        )
        for category in result.snapshot.degraded:
            console.print(f"  [dim]{result.snapshot.notes.get(category, '')}[/dim]")


def print_health(result: ScanResult) -> None:
    health = result.health
    if health is None:
        console.print("[dim]Health score unavailable.[/dim]")
        return

    table = Table(title="Health", show_lines=False)
    table.add_column("Category", style="cyan")
    table.add_column("Score", justify="right")
    for category in health.categories:
        table.add_row(category.label, "n/a" if category.score is None else str(category.score))
    table.add_row(
        "[bold]Overall[/bold]",
        "n/a" if health.overall_score is None else f"[bold]{health.overall_score}[/bold]",
    )
    console.print(table)


def print_prerequisites() -> None:
    table = Table(title="Migration Prerequisites", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Item")
    table.add_column("Status")
    table.add_column("Note", style="dim")
    for item in migration_prerequisites():
        table.add_row(str(item.no), item.name, item.status.value, item.note or "")
    console.print(table)
