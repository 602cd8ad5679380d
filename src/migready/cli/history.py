"""CLI commands: migready scans / migready diff — stored scan history."""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from migready.analysis.diff import ScanDiff, diff_scans
from migready.config import MigReadyConfig
from migready.storage.db import get_db
from migready.storage.repos import SqliteScanStore

console = Console(stderr=True)


async def _with_store(config: MigReadyConfig, work):
    db = await get_db(config.db_path)
    try:
        return await work(SqliteScanStore(db))
    finally:
        await db.close()


@click.command()
@click.option("--limit", "-n", type=int, default=20, help="Number of scans to show.")
@click.pass_context
def scans(ctx: click.Context, limit: int) -> None:
    """List stored scans, newest first."""
    config: MigReadyConfig = ctx.obj["config"]
    rows = asyncio.run(_with_store(config, lambda store: store.list(limit=limit)))

    if not rows:
        console.print("No stored scans.")
        return

    table = Table(title="Scans", show_lines=False)
    table.add_column("ID", style="cyan")
    table.add_column("When")
    table.add_column("Instance")
    table.add_column("Objects", justify="right")
    table.add_column("HIGH", justify="right", style="red")
    table.add_column("MEDIUM", justify="right", style="yellow")
    table.add_column("Health", justify="right")
    for row in rows:
        table.add_row(
            row["id"],
            datetime.fromtimestamp(row["created_at"]).strftime("%Y-%m-%d %H:%M"),
            row["instance_url"],
            str(row["objects"]),
            str(row["high_findings"]),
            str(row["medium_findings"]),
            "n/a" if row["health_score"] is None else str(row["health_score"]),
        )
    console.print(table)


@click.command()
@click.argument("from_id")
@click.argument("to_id")
@click.pass_context
def diff(ctx: click.Context, from_id: str, to_id: str) -> None:
    """Compare two stored scans."""
    config: MigReadyConfig = ctx.obj["config"]

    async def load(store):
        return await store.get(from_id), await store.get(to_id)

    before, after = asyncio.run(_with_store(config, load))
    for scan_id, scan_doc in ((from_id, before), (to_id, after)):
        if scan_doc is None:
            console.print(f"[red]Scan not found:[/red] {scan_id}")
            sys.exit(1)

    print_diff(diff_scans(before, after, from_id, to_id))


def print_diff(result: ScanDiff) -> None:
    if not result.has_changes:
        console.print("[green]No changes detected.[/green]")
        return

    for label, values in (
        ("objects", (result.added.objects, result.removed.objects)),
        ("flows", (result.added.flows, result.removed.flows)),
        ("triggers", (result.added.triggers, result.removed.triggers)),
        ("validation rules", (result.added.validation_rules, result.removed.validation_rules)),
    ):
        added, removed = values
        for name in added:
            console.print(f"[green]+[/green] {label}: {name}")
        for name in removed:
            console.print(f"[red]-[/red] {label}: {name}")

    for label, changes in (
        ("record count", result.changed_objects),
        ("flow status", result.changed_flows),
        ("trigger status", result.changed_triggers),
        ("finding severity", result.changed_findings),
    ):
        for change in changes:
            console.print(
                f"[yellow]~[/yellow] {label}: {change.name} {change.before} → {change.after}"
            )
