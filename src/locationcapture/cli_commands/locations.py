"""Location history CLI commands."""

import json

import typer

from locationcapture.config import get_settings
from locationcapture.errors import AnchorError, ConfigError, StorageError
from locationcapture.storage import Database, LocationStore

locations_app = typer.Typer(
    name="locations",
    help="Location history - page through, inspect and evict stored locations.",
    no_args_is_help=True,
)


def _open_store() -> tuple[Database, LocationStore]:
    settings = get_settings()
    try:
        db = Database(settings.database_path)
    except StorageError as e:
        typer.echo(f"Cannot open database: {e}", err=True)
        raise typer.Exit(1)
    return db, LocationStore(db)


@locations_app.command(name="list")
def list_locations(
    anchor: str = typer.Option(
        None,
        "--anchor",
        "-a",
        help="Continue after this anchor (default: from the oldest location)",
    ),
    limit: int = typer.Option(
        50,
        "--limit",
        "-n",
        help="Maximum number of locations (-1 for all)",
    ),
    output_json: bool = typer.Option(
        False,
        "--json",
        "-j",
        help="Output in JSON format",
    ),
) -> None:
    """List stored locations after an anchor."""
    db, store = _open_store()
    try:
        page = store.query(anchor, limit)
    except (AnchorError, StorageError) as e:
        typer.echo(f"Query failed: {e}", err=True)
        raise typer.Exit(1)
    finally:
        db.close()

    if output_json:
        typer.echo(
            json.dumps(
                {
                    "locations": [{"id": s.id, **s.as_dict()} for s in page.samples],
                    "next_anchor": page.next_anchor,
                }
            )
        )
        return

    for sample in page.samples:
        typer.echo(
            f"{sample.id:>8}  {sample.timestamp}  "
            f"{sample.latitude:.6f},{sample.longitude:.6f}  ±{sample.accuracy}m"
        )
    typer.echo(f"{len(page)} location(s); next anchor: {page.next_anchor or '-'}")


@locations_app.command(name="latest-anchor")
def latest_anchor() -> None:
    """Print the anchor of the newest stored location."""
    db, store = _open_store()
    try:
        anchor = store.latest_anchor()
    except StorageError as e:
        typer.echo(f"Query failed: {e}", err=True)
        raise typer.Exit(1)
    finally:
        db.close()
    typer.echo(anchor or "")


@locations_app.command()
def evict(
    days: int = typer.Option(
        None,
        "--days",
        "-d",
        help="Retention window in days (default: keep_locations_for option)",
    ),
) -> None:
    """Delete locations older than the retention window."""
    if days is None:
        try:
            days = get_settings().load_options().keep_locations_for
        except ConfigError as e:
            typer.echo(f"Invalid options file: {e}", err=True)
            raise typer.Exit(1)

    db, store = _open_store()
    try:
        deleted = store.evict_older_than(days)
    except StorageError as e:
        typer.echo(f"Eviction failed: {e}", err=True)
        raise typer.Exit(1)
    finally:
        db.close()
    typer.echo(f"Deleted {deleted} location(s) older than {days} day(s).")
