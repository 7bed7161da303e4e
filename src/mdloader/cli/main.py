"""
Main CLI entry point.
"""

import typer

from mdloader import __version__
from mdloader.cli import abort, load


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"mdloader version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="mdloader",
    help="mdloader - Load MD simulation projects into a remote store",
    add_completion=True,
)

# Register subcommands
app.add_typer(load.app, name="load")
app.add_typer(abort.app, name="abort")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        help="Show version and exit.",
    ),
):
    """
    mdloader - Load MD simulation projects into a remote store.

    Run 'mdloader <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        if not version:
            typer.echo(ctx.get_help())
            raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
