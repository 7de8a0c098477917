"""CLI command modules for locationcapture."""

from locationcapture.cli_commands.config import config_app
from locationcapture.cli_commands.locations import locations_app
from locationcapture.cli_commands.status import status_command
from locationcapture.cli_commands.sync import queue_app, sync_app

__all__ = ["config_app", "locations_app", "queue_app", "status_command", "sync_app"]
