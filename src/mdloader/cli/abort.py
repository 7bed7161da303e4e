"""
mdloader abort - Stop a running load.
"""

import asyncio
from pathlib import Path

import typer

from mdloader.core.api import abort as abort_project
from mdloader.core.initialization import initialize
from mdloader.exceptions import MdLoaderError
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.cli.abort")


app = typer.Typer(name="abort", help="Stop a running load", invoke_without_command=True)


@app.callback()
def abort(
    project: str = typer.Argument(..., help="Project id or accession"),
    config_dir: Path | None = typer.Option(None, "--config-dir", "-c", help="Directory holding config.yaml"),
    env: str | None = typer.Option(None, help="Configuration environment"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Set the abort flag of a project.

    The running load stops at its next checkpoint; what it already loaded
    stays loaded.
    """
    try:
        settings = initialize(config_dir, env=env, verbose=verbose)
        project_id = asyncio.run(abort_project(project, settings=settings))
    except MdLoaderError as e:
        logger.error(f"Abort failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    typer.echo(f"Abort requested for project {project_id}")
