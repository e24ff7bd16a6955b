"""Site visit CLI - command-line interface for the capture agent."""

import typer

from sitevisit import __version__
from sitevisit.cli_commands.capture import capture_app
from sitevisit.cli_commands.status import status_command
from sitevisit.cli_commands.sync import sync_app

app = typer.Typer(
    name="sitevisit",
    help="Site Visit Agent - offline capture queue for field visits.",
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(capture_app, name="capture")
app.add_typer(sync_app, name="sync")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"sitevisit-agent {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
) -> None:
    """Site Visit Agent - offline capture queue."""
    pass


# Register status as a direct command on the main app
app.command(name="status")(status_command)


if __name__ == "__main__":
    app()
