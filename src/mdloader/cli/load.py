"""
mdloader load - Load a project directory into the remote store.
"""

import asyncio
from pathlib import Path

import typer

from mdloader.core.api import load as load_project
from mdloader.core.initialization import initialize
from mdloader.exceptions import MdLoaderError
from mdloader.utils.display import TransferProgress
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.cli.load")


app = typer.Typer(
    name="load",
    help="Load a project directory",
    invoke_without_command=True,
    context_settings={"allow_interspersed_args": True},
)


@app.callback()
def load(
    source: Path = typer.Argument(Path.cwd(), help="Project directory"),
    project: str | None = typer.Option(None, "--project", "-p", help="Existing project id or accession"),
    mdirs: list[Path] | None = typer.Option(None, "--mdir", "-m", help="MD directories to load (default: discovered)"),
    conserve: bool = typer.Option(False, "--conserve", help="Keep existing data, never ask"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace existing data, never ask"),
    include: list[str] | None = typer.Option(None, "--include", "-i", help="Only load matching files"),
    exclude: list[str] | None = typer.Option(None, "--exclude", "-e", help="Do not load matching files"),
    skip_chains: bool = typer.Option(False, "--skip-chains", help="Do not annotate chains"),
    skip_mds: bool = typer.Option(False, "--skip-mds", help="Load project-level data only"),
    skip_trajectories: bool = typer.Option(False, "--skip-trajectories", help="Do not load trajectories"),
    skip_files: bool = typer.Option(False, "--skip-files", help="Do not load files"),
    skip_analyses: bool = typer.Option(False, "--skip-analyses", help="Do not load analyses"),
    published: bool | None = typer.Option(
        None, "--published/--unpublished", help="Set the published flag when the load completes"
    ),
    gromacs: str | None = typer.Option(None, "--gromacs", "-g", help="Gromacs executable"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Load into an in-memory store"),
    config_dir: Path | None = typer.Option(None, "--config-dir", "-c", help="Directory holding config.yaml"),
    env: str | None = typer.Option(None, help="Configuration environment"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
) -> None:
    """
    Load a project directory.

    Re-running on the same directory resumes the same project: existing data
    is conserved, overwritten or asked about, never duplicated.
    """
    try:
        settings = initialize(config_dir, env=env, verbose=verbose)
        summary = asyncio.run(
            load_project(
                source,
                settings=settings,
                progress=TransferProgress(),
                project=project,
                md_directories=mdirs or None,
                conserve=conserve,
                overwrite=overwrite,
                include=include or None,
                exclude=exclude or None,
                skip_chains=skip_chains,
                skip_mds=skip_mds,
                skip_trajectories=skip_trajectories,
                skip_files=skip_files,
                skip_analyses=skip_analyses,
                published=published,
                gromacs_command=gromacs,
                dry_run=dry_run,
            )
        )
    except MdLoaderError as e:
        logger.error(f"Load failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    typer.echo(f"Project: {summary.project_id}" + (f" ({summary.accession})" if summary.accession else ""))
    typer.echo(f"Loaded: {len(summary.loaded)}  Skipped: {len(summary.skipped)}  Chains: {len(summary.chains)}")
    if not summary.completed:
        typer.echo(f"Load aborted before {summary.checkpoint}", err=True)
        raise typer.Exit(2)
