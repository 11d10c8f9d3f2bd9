"""Command implementations for CLI."""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Awaitable, List, Optional, TypeVar

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from csm_connector.cleanup import DeletionCandidates, DeletionReport
from csm_connector.config import load_product_catalog
from csm_connector.connector import CsmBackend
from csm_connector.sat.apply import ApplyOptions, ApplyResult
from csm_connector.sat.loader import SatFileLoader


console = Console()

T = TypeVar("T")


@dataclass
class CliContext:
    """Backend and credentials shared by every command."""
    backend: CsmBackend
    token: str


def _run_action(description: str, action: Awaitable[T], quiet: bool = False) -> T:
    """Run a coroutine behind a progress spinner."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        disable=quiet,
        transient=True,
    ) as progress:
        task = progress.add_task(description, total=None)
        result = asyncio.run(action)
        progress.update(task, completed=True)
    return result


def apply_sat(
    ctx: CliContext,
    path: Path,
    vars_file: Optional[Path] = None,
    variables: Optional[List[str]] = None,
    catalog_file: Optional[Path] = None,
    dry_run: bool = False,
    overwrite: bool = False,
    reboot: bool = False,
    image_only: bool = False,
    session_template_only: bool = False,
    ansible_verbosity: Optional[int] = None,
    ansible_passthrough: Optional[str] = None,
):
    """Apply a SAT file and print what was created."""
    sat_file = SatFileLoader().load(
        path,
        vars_file=vars_file,
        cli_vars=variables or [],
        image_only=image_only,
        session_template_only=session_template_only,
    )
    options = ApplyOptions(
        dry_run=dry_run,
        overwrite=overwrite,
        reboot=reboot,
        ansible_verbosity=ansible_verbosity,
        ansible_passthrough=ansible_passthrough,
    )
    result = _run_action(
        f"Applying {path}",
        ctx.backend.apply_sat_file(ctx.token, sat_file, options, catalog=load_product_catalog(catalog_file)),
    )
    _print_apply_result(result, dry_run)


def _print_apply_result(result: ApplyResult, dry_run: bool):
    title_suffix = " (dry run)" if dry_run else ""

    if result.configurations:
        table = Table(title=f"CFS configurations{title_suffix}")
        table.add_column("Name", style="cyan")
        table.add_column("Layers", justify="right")
        for name, configuration in result.configurations.items():
            table.add_row(name, str(len(configuration.layers)))
        console.print(table)

    if result.images:
        table = Table(title=f"Images{title_suffix}")
        table.add_column("Name", style="cyan")
        table.add_column("Id", style="magenta")
        for image_id, spec in result.images.items():
            table.add_row(spec.name, image_id)
        console.print(table)

    if result.templates:
        table = Table(title=f"BOS session templates{title_suffix}")
        table.add_column("Name", style="cyan")
        table.add_column("Configuration")
        table.add_column("Boot sets", style="dim")
        for name, template in result.templates.items():
            table.add_row(name, template.configuration_name() or "", ", ".join(template.boot_sets))
        console.print(table)

    console.print("[green]✓[/green] SAT file applied")


def validate_sat(
    ctx: CliContext,
    path: Path,
    vars_file: Optional[Path] = None,
    variables: Optional[List[str]] = None,
    catalog_file: Optional[Path] = None,
):
    """Validate a SAT file against the cluster."""
    sat_file = SatFileLoader().load(path, vars_file=vars_file, cli_vars=variables or [])
    _run_action(
        f"Validating {path}",
        ctx.backend.validate_sat_file(ctx.token, sat_file, catalog=load_product_catalog(catalog_file)),
    )
    console.print("[green]✓[/green] SAT file is valid")
    console.print(f"  Configurations: {len(sat_file.configurations or [])}")
    console.print(f"  Images: {len(sat_file.images or [])}")
    console.print(f"  Session templates: {len(sat_file.session_templates or [])}")


def _print_candidates(candidates: DeletionCandidates):
    table = Table(title="CFS configurations to delete")
    table.add_column("Name", style="cyan")
    table.add_column("Last updated", style="dim")
    for configuration in candidates.configurations:
        table.add_row(configuration.name, configuration.last_updated or "")
    console.print(table)

    for title, tuples in (
        ("CFS sessions to delete", candidates.session_tuples),
        ("BOS session templates to delete", candidates.template_tuples),
    ):
        table = Table(title=title)
        table.add_column("Name", style="cyan")
        table.add_column("Configuration")
        table.add_column("Image", style="magenta")
        for name, configuration_name, image_id in tuples:
            table.add_row(name, configuration_name, image_id)
        console.print(table)

    console.print(f"Images to delete: {', '.join(candidates.image_ids) or '-'}")


def _print_report(report: DeletionReport):
    for kind, names in report.deleted.items():
        for name in names:
            console.print(f"[green]✓[/green] {kind} deleted: {name}")
    for kind, names in report.failed.items():
        for name in names:
            console.print(f"[red]✗[/red] {kind} {name} could not be deleted, please delete it manually")


def delete_configurations(
    ctx: CliContext,
    groups: List[str],
    pattern: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    yes: bool = False,
):
    """Select, confirm and delete configurations with their derived data."""
    candidates: DeletionCandidates = _run_action(
        "Collecting data to delete",
        ctx.backend.get_data_to_delete(ctx.token, groups, pattern=pattern, since=since, until=until),
    )
    _print_candidates(candidates)

    if not yes and not typer.confirm("Delete the data listed above?"):
        raise typer.Abort()

    report: DeletionReport = _run_action(
        "Deleting",
        ctx.backend.delete_configurations_and_data_related(
            ctx.token,
            candidates.configuration_names,
            candidates.image_ids,
            candidates.session_names,
            candidates.template_names,
        ),
    )
    _print_report(report)


def delete_session(ctx: CliContext, name: str, dry_run: bool = False):
    """Cancel and delete a CFS session."""
    session = _run_action(
        f"Deleting CFS session {name}",
        ctx.backend.delete_and_cancel_session(ctx.token, name, dry_run=dry_run),
    )
    prefix = "Dry run mode: would delete" if dry_run else "Deleted"
    console.print(f"[green]✓[/green] {prefix} CFS session {session.name} ({session.target_definition()})")


def caller_info(ctx: CliContext):
    """Print the caller identity and groups in scope."""
    caller = asyncio.run(ctx.backend.get_caller(ctx.token))
    console.print(f"[bold]User:[/bold] {caller.username} ({caller.name})")
    console.print(f"  Admin: {'Yes' if caller.is_admin else 'No'}")
    console.print(f"  Groups: {', '.join(caller.sorted_groups()) or '-'}")
