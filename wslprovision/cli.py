"""CLI interface for the provisioning tool."""
import platform
from pathlib import Path
from typing import List, Optional

import typer

from . import utils
from . import steps
from .errors import NotFoundError, PreconditionError
from .executor import RunMode
from .report import render_report
from .windows import DEFAULT_DISTRO

RESTART_HINT = (
    "You should restart WSL2 using PowerShell as administrator "
    "and use the command 'wsl -t {distro}'."
)


def select_mode(check: bool, fix: bool, fix_warnings: bool) -> RunMode:
    chosen = [mode for flag, mode in (
        (check, RunMode.CHECK_ONLY),
        (fix, RunMode.FIX_MISSING),
        (fix_warnings, RunMode.FIX_WARNINGS),
    ) if flag]
    if len(chosen) > 1:
        raise typer.BadParameter("use only one of --check, --fix and --fix-warnings")
    return chosen[0] if chosen else RunMode.FULL_INSTALL


def setup(
    check: bool = typer.Option(False, "--check", help="Report what is installed without changing anything"),
    fix: bool = typer.Option(False, "--fix", help="Install only the components that are missing"),
    fix_warnings: bool = typer.Option(False, "--fix-warnings", help="Retry the optional components"),
    step: Optional[List[str]] = typer.Option(None, "--step", "-s", help="Run only the named step (repeatable)"),
    list_steps: bool = typer.Option(False, "--list", help="List the provisioning steps and exit"),
    log_file: Path = typer.Option(
        utils.LOG_FILE, "--log-file", envvar="WSLPROVISION_LOG_FILE", help="Append the run log to this file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """Prepare a Windows host for WSL2 and bootstrap the Linux development environment."""
    mode = select_mode(check, fix, fix_warnings)
    utils.setup_logging(verbose, log_file)

    try:
        registry = steps.build_registry()
    except PreconditionError as e:
        typer.echo(f"❗ {e}")
        raise typer.Exit(1)

    if list_steps:
        for item in registry.all():
            suffix = " (optional)" if item.optional else ""
            typer.echo(f"{item.name}{suffix}: {item.description}")
        return

    utils.log_info(f"Log file: {log_file}")
    try:
        report = steps.provision_system(mode, only=step or None, registry=registry)
    except NotFoundError as e:
        raise typer.BadParameter(str(e), param_hint="--step")
    except PreconditionError as e:
        typer.echo(f"❗ {e}")
        raise typer.Exit(1)

    typer.echo(render_report(report))
    if mode is RunMode.FULL_INSTALL and platform.system() == 'Linux':
        typer.echo("✅ The basic configuration of WSL2 is now complete.")
        typer.echo(RESTART_HINT.format(distro=DEFAULT_DISTRO))


app = typer.Typer(
    name="wslprovision",
    help="An idempotent WSL2 provisioning tool.",
    add_completion=False,
    invoke_without_command=True,
    callback=setup,
)


if __name__ == "__main__":
    app()
