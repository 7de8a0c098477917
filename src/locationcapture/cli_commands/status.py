"""Status command for the locationcapture CLI."""

import json
import time

import typer

from locationcapture.config import get_settings
from locationcapture.errors import ConfigError, StorageError
from locationcapture.storage import Anchor, Database, LocationStore
from locationcapture.sync import UploadQueue


def _format_time_ago(timestamp: int | None) -> str:
    """Format an epoch timestamp as 'X minutes ago' style string."""
    if timestamp is None:
        return "Never"

    seconds = max(0, int(time.time() - timestamp))
    if seconds < 60:
        return f"{seconds} seconds ago"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"


def status_command(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show database and upload queue status."""
    settings = get_settings()
    try:
        options = settings.load_options()
        db = Database(settings.database_path)
    except (ConfigError, StorageError) as e:
        typer.echo(f"Status unavailable: {e}", err=True)
        raise typer.Exit(1)

    try:
        store = LocationStore(db)
        stored = store.count()
        anchor = store.latest_anchor()
        queue_stats = UploadQueue(db).get_stats()
    except StorageError as e:
        typer.echo(f"Status unavailable: {e}", err=True)
        raise typer.Exit(1)
    finally:
        db.close()

    latest = Anchor.decode(anchor).timestamp if anchor else None

    status_data = {
        "stored_locations": stored,
        "latest_location": latest,
        "latest_anchor": anchor,
        "queue_pending": queue_stats["pending"],
        "upload_enabled": options.upload_enabled,
        "upload_url": options.upload_url,
        "database": str(settings.database_path),
    }

    if output_json:
        typer.echo(json.dumps(status_data))
        return

    typer.echo("")
    typer.echo("Location Capture Status")
    typer.echo("-----------------------")
    typer.echo(f"Stored locations: {stored}")
    typer.echo(f"Latest location: {_format_time_ago(latest)}")
    typer.echo(f"Queue: {queue_stats['pending']} pending uploads")
    typer.echo(f"Upload: {'enabled' if options.upload_enabled else 'disabled'}")
    typer.echo("")
