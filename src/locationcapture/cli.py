"""locationcapture CLI - inspect and operate the local location database."""

import typer

from locationcapture import __version__
from locationcapture.cli_commands.config import config_app
from locationcapture.cli_commands.locations import locations_app
from locationcapture.cli_commands.status import status_command
from locationcapture.cli_commands.sync import queue_app, sync_app
from locationcapture.config import get_settings
from locationcapture.logging import setup_logging

app = typer.Typer(
    name="locationcapture",
    help="Location capture - durable location history with offline upload.",
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(locations_app, name="locations")
app.add_typer(queue_app, name="queue")
app.add_typer(sync_app, name="sync")
app.add_typer(config_app, name="config")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"locationcapture {__version__}")
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
    """Location capture - durable location history with offline upload."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_file, settings.device_id)


app.command(name="status")(status_command)


if __name__ == "__main__":
    app()
