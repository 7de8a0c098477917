"""Configuration management CLI commands."""

import json

import typer
import yaml

from locationcapture.config import CaptureOptions, get_settings
from locationcapture.errors import ConfigError

config_app = typer.Typer(
    name="config",
    help="Configuration management - view and modify capture options.",
    no_args_is_help=True,
)


@config_app.command()
def show(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show current capture and upload options."""
    settings = get_settings()
    try:
        options = settings.load_options()
    except ConfigError as e:
        typer.echo(f"Invalid options file: {e}", err=True)
        raise typer.Exit(1)

    config_data = options.model_dump(mode="json")

    if output_json:
        typer.echo(json.dumps(config_data, indent=2))
        return

    typer.echo("")
    typer.echo("Location Capture Configuration")
    typer.echo("------------------------------")
    for key, value in config_data.items():
        typer.echo(f"{key}: {value}")
    typer.echo("")
    typer.echo(f"Options file: {settings.options_path}")
    typer.echo(f"Database: {settings.database_path}")


@config_app.command(name="set")
def set_config(
    key: str = typer.Argument(..., help="Option to set"),
    value: str = typer.Argument(..., help="Value, parsed as YAML (e.g. true, 60, [a, b])"),
) -> None:
    """Set a capture option in the options file."""
    if key not in CaptureOptions.model_fields:
        typer.echo(f"Unknown key: {key}")
        typer.echo(f"Valid keys: {', '.join(sorted(CaptureOptions.model_fields))}")
        raise typer.Exit(1)

    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError as e:
        typer.echo(f"Cannot parse value: {e}")
        raise typer.Exit(1)

    settings = get_settings()
    try:
        settings.save_options({key: parsed})
    except ConfigError as e:
        typer.echo(f"Invalid value for {key}: {e}")
        raise typer.Exit(1)

    typer.echo(f"Set {key} = {parsed!r}")
    typer.echo(f"Saved to {settings.options_path}")
