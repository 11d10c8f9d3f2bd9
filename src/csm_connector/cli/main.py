"""Main CLI implementation using Typer."""

from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional

import typer
from rich.console import Console

from csm_connector.cli.commands import (
    CliContext,
    apply_sat,
    caller_info,
    delete_configurations,
    delete_session,
    validate_sat,
)
from csm_connector.config import load_config
from csm_connector.connector import CsmBackend
from csm_connector.errors import CsmError
from csm_connector.utils.logging import setup_logging


# Create Typer app
app = typer.Typer(
    name="csmctl",
    help="CSM connector - apply SAT files and clean up cluster configurations",
    add_completion=False,
)

# Console for rich output
console = Console()

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]


@app.callback()
def global_options(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Connector config file (default: $CSM_CONNECTOR_CONFIG)"
    ),
    token: Optional[str] = typer.Option(
        None, "--token", envvar="CSM_TOKEN", help="Bearer token"
    ),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="CSM API gateway URL"),
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l", help="Log level"),
):
    """Global options."""
    ctx.obj = {"config": config, "token": token, "base_url": base_url, "log_level": log_level}


def _run_cli_command(handler: Callable[..., Any], ctx: typer.Context, **kwargs: Any):
    """Helper to run a CLI command with a backend and error handling."""
    options = ctx.obj or {}
    try:
        config = load_config(options.get("config"))
        setup_logging(options.get("log_level") or config.log_level)
        token = options.get("token")
        if not token:
            raise CsmError("No token given, use --token or set CSM_TOKEN")
        backend = CsmBackend(base_url=options.get("base_url"), config=config)
        handler(CliContext(backend=backend, token=token), **kwargs)
    except CsmError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


@app.command("apply-sat")
def apply_sat_command(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="SAT file"),
    vars_file: Optional[Path] = typer.Option(None, "--vars-file", help="YAML file with template variables"),
    var: Optional[List[str]] = typer.Option(None, "--var", help="Template variable KEY=VALUE"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Product catalog export"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be created"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Overwrite existing configurations"),
    reboot: bool = typer.Option(False, "--reboot", help="Reboot nodes of the session templates"),
    image_only: bool = typer.Option(False, "--image-only", help="Only process the images section"),
    session_template_only: bool = typer.Option(
        False, "--session-template-only", help="Only process the session_templates section"
    ),
    ansible_verbosity: Optional[int] = typer.Option(
        None, "--ansible-verbosity", min=0, max=4, help="Ansible verbosity of image sessions"
    ),
    ansible_passthrough: Optional[str] = typer.Option(
        None, "--ansible-passthrough", help="Extra ansible-playbook arguments"
    ),
):
    """Apply a SAT file: configurations, images and session templates."""
    _run_cli_command(
        apply_sat,
        ctx,
        path=path,
        vars_file=vars_file,
        variables=var,
        catalog_file=catalog,
        dry_run=dry_run,
        overwrite=overwrite,
        reboot=reboot,
        image_only=image_only,
        session_template_only=session_template_only,
        ansible_verbosity=ansible_verbosity,
        ansible_passthrough=ansible_passthrough,
    )


@app.command("validate-sat")
def validate_sat_command(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="SAT file"),
    vars_file: Optional[Path] = typer.Option(None, "--vars-file", help="YAML file with template variables"),
    var: Optional[List[str]] = typer.Option(None, "--var", help="Template variable KEY=VALUE"),
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Product catalog export"),
):
    """Validate a SAT file against the cluster without changing it."""
    _run_cli_command(validate_sat, ctx, path=path, vars_file=vars_file, variables=var, catalog_file=catalog)


@app.command("delete-configurations")
def delete_configurations_command(
    ctx: typer.Context,
    group: List[str] = typer.Option(..., "--group", "-g", help="HSM group to clean up"),
    pattern: Optional[str] = typer.Option(None, "--pattern", "-p", help="Configuration name glob"),
    since: Optional[datetime] = typer.Option(None, "--since", formats=DATE_FORMATS, help="Updated at or after"),
    until: Optional[datetime] = typer.Option(None, "--until", formats=DATE_FORMATS, help="Updated before"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete configurations and the sessions, images and templates derived from them."""
    if (since is None) != (until is None):
        console.print("[red]Error:[/red] --since and --until go together")
        raise typer.Exit(1)
    _run_cli_command(
        delete_configurations,
        ctx,
        groups=group,
        pattern=pattern,
        since=since,
        until=until,
        yes=yes,
    )


@app.command("delete-session")
def delete_session_command(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="CFS session name"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be done"),
):
    """Cancel and delete a CFS session."""
    _run_cli_command(delete_session, ctx, name=name, dry_run=dry_run)


@app.command("whoami")
def whoami_command(ctx: typer.Context):
    """Show the token user and the HSM groups in scope."""
    _run_cli_command(caller_info, ctx)


def main():
    """Main entry point for CLI."""
    app()
