"""Upload queue and sync CLI commands."""

import asyncio
import json

import typer

from locationcapture.config import get_settings
from locationcapture.engine import LocationCaptureService
from locationcapture.errors import ConfigError, StorageError
from locationcapture.storage import Database
from locationcapture.sync import NetworkType, StaticConnectivity, UploadQueue

queue_app = typer.Typer(
    name="queue",
    help="Upload queue - inspect or purge locations waiting for upload.",
    no_args_is_help=True,
)

sync_app = typer.Typer(
    name="sync",
    help="Synchronization - deliver queued locations to the upload endpoint.",
    no_args_is_help=True,
)


def _open_queue() -> UploadQueue:
    try:
        return UploadQueue(Database(get_settings().database_path))
    except StorageError as e:
        typer.echo(f"Cannot open database: {e}", err=True)
        raise typer.Exit(1)


@queue_app.command(name="status")
def queue_status(
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Show how many locations are waiting for upload."""
    queue = _open_queue()
    try:
        stats = queue.get_stats()
    except StorageError as e:
        typer.echo(f"Query failed: {e}", err=True)
        raise typer.Exit(1)
    finally:
        queue.close()

    if output_json:
        typer.echo(json.dumps(stats))
        return

    typer.echo(f"Pending uploads: {stats['pending']}")
    if stats["pending"]:
        typer.echo(f"Oldest: {stats['oldest']}  Newest: {stats['newest']}")


@queue_app.command()
def purge(
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Confirm dropping every queued location",
    ),
) -> None:
    """Drop every queued location without uploading it."""
    if not yes:
        typer.echo("Refusing to purge without --yes; queued locations would be lost.")
        raise typer.Exit(1)

    queue = _open_queue()
    try:
        removed = queue.purge()
    except StorageError as e:
        typer.echo(f"Purge failed: {e}", err=True)
        raise typer.Exit(1)
    finally:
        queue.close()
    typer.echo(f"Purged {removed} queued location(s).")


@sync_app.command(name="now")
def sync_now(
    network: NetworkType = typer.Option(
        NetworkType.WIFI,
        "--network",
        "-n",
        help="Network the device is on, checked against upload_connection_type",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """Run one sync cycle immediately."""
    try:
        service = LocationCaptureService(
            get_settings(),
            connectivity=StaticConnectivity(network),
        )
    except (ConfigError, StorageError) as e:
        typer.echo(f"Cannot start sync: {e}", err=True)
        raise typer.Exit(1)

    async def _run():
        try:
            return await service.sync_now()
        finally:
            await service.close()

    result = asyncio.run(_run())
    outcome = result.value.value if result.ok else None

    if output_json:
        typer.echo(json.dumps({"ok": result.ok, "outcome": outcome, "error": result.message}))
    elif result.ok:
        typer.echo(f"Sync finished: {outcome}")
    else:
        typer.echo(f"Sync failed: {result.message}")

    if not result.ok:
        raise typer.Exit(1)
