"""
Display utilities for presenting migration plans and results.
"""

from typing import List

from rich.console import Console
from rich.table import Table

from ..models import (
    TAG_MESSAGE,
    TAG_STATUS,
    TAG_TIMESTAMP,
    Instance,
    MigrationConfig,
    MigrationReport,
    MigrationStatus,
)

console = Console()

STATUS_STYLES = {
    MigrationStatus.COMPLETED: "green",
    MigrationStatus.WARNING: "yellow",
    MigrationStatus.FAILED: "red",
    MigrationStatus.SKIPPED: "dim",
    MigrationStatus.IN_PROGRESS: "cyan",
}


def display_run_header(config: MigrationConfig) -> None:
    """Display the parameters of a migration run."""
    console.print("[bold blue]🚚 Image Migration[/bold blue]")
    console.print(f"  • Target image: [cyan]{config.new_image_id}[/cyan]")
    if config.instance_id:
        console.print(f"  • Instance: [cyan]{config.instance_id}[/cyan]")
    else:
        console.print(f"  • Eligibility marker: migrate-enabled={config.enabled_value}")
    if config.compartment_id:
        console.print(f"  • Compartment: [cyan]{config.compartment_id}[/cyan]")
    console.print(f"  • Workers: {config.max_workers}")
    if config.dry_run:
        console.print("  • [yellow]Dry run: no changes will be made[/yellow]")


def display_plan(report: MigrationReport) -> None:
    """Display the instances a dry run would migrate."""
    if not report.planned:
        console.print("[dim]No instances would be migrated[/dim]")
        return

    table = Table(title="Planned Migrations")
    table.add_column("Instance", style="magenta")
    table.add_column("Name", style="cyan")
    table.add_column("State")
    table.add_column("Shape", style="yellow")
    table.add_column("Volumes", justify="right")

    for task in report.planned:
        instance = task.instance
        table.add_row(
            instance.instance_id,
            instance.display_name or "N/A",
            instance.lifecycle_state.value,
            instance.shape,
            str(len(instance.volumes)),
        )
    console.print(table)


def display_report(report: MigrationReport) -> None:
    """Display per-instance results and a summary line."""
    if not report.results:
        console.print("[dim]No instances matched the migration criteria[/dim]")
        return

    table = Table(title="Migration Results")
    table.add_column("Instance", style="magenta")
    table.add_column("Status")
    table.add_column("Replacement", style="cyan")
    table.add_column("Duration", justify="right")
    table.add_column("Message")

    for result in report.results:
        style = STATUS_STYLES.get(result.status, "")
        duration = result.duration_seconds
        table.add_row(
            result.instance_id,
            f"[{style}]{result.status.value}[/{style}]" if style else result.status.value,
            result.replacement_id or "",
            f"{duration:.0f}s" if duration is not None else "",
            result.message,
        )
    console.print(table)

    counts = report.counts()
    console.print(
        f"[bold blue]Summary:[/bold blue] {counts['completed']} completed, "
        f"{counts['warning']} warning, {counts['failed']} failed, {counts['skipped']} skipped"
    )


def display_instances(instances: List[Instance]) -> None:
    """Display tagged instances with their last recorded migration status."""
    if not instances:
        console.print("[dim]No tagged instances found[/dim]")
        return

    table = Table(title="Migration Status")
    table.add_column("Instance", style="magenta")
    table.add_column("Name", style="cyan")
    table.add_column("State")
    table.add_column("Status")
    table.add_column("Updated")
    table.add_column("Message")

    for instance in instances:
        table.add_row(
            instance.instance_id,
            instance.display_name or "N/A",
            instance.lifecycle_state.value,
            instance.tags.get(TAG_STATUS, "-"),
            instance.tags.get(TAG_TIMESTAMP, "-"),
            instance.tags.get(TAG_MESSAGE, ""),
        )
    console.print(table)


def display_error(message: str) -> None:
    console.print(f"[red]{message}[/red]")
