"""Tests for the locationcapture CLI."""

import json

import pytest
import yaml
from conftest import make_sample
from typer.testing import CliRunner

from locationcapture import __version__, cli
from locationcapture.storage import Database, LocationStore
from locationcapture.sync import UploadQueue

runner = CliRunner()


@pytest.fixture
def cli_env(monkeypatch, tmp_path):
    """Point the CLI at a temporary data directory and options file."""
    monkeypatch.setenv("LOCATIONCAPTURE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("LOCATIONCAPTURE_OPTIONS_FILE", str(tmp_path / "options.yaml"))
    monkeypatch.setattr(cli, "setup_logging", lambda *args, **kwargs: None)
    return tmp_path


@pytest.fixture
def populated(cli_env):
    """Database with three stored and two queued locations."""
    db = Database(cli_env / "data" / "locations.db")
    store = LocationStore(db)
    queue = UploadQueue(db)
    for t in (1_700_000_000, 1_700_000_030, 1_700_000_060):
        store.append(make_sample(t))
    for t in (1_700_000_030, 1_700_000_060):
        queue.enqueue(make_sample(t))
    db.close()
    return cli_env


class TestCli:
    """Top-level commands."""

    def test_version(self):
        """Verify --version prints the package version."""
        result = runner.invoke(cli.app, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_status_json(self, populated):
        """Verify status --json reports store and queue counts."""
        result = runner.invoke(cli.app, ["status", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["stored_locations"] == 3
        assert data["latest_location"] == 1_700_000_060
        assert data["queue_pending"] == 2
        assert data["upload_enabled"] is False


class TestLocationsCommands:
    """Paging through and evicting the location history."""

    def test_list_pages_with_anchor(self, populated):
        """Verify list continues from the anchor of the previous page."""
        first = runner.invoke(cli.app, ["locations", "list", "--limit", "2", "--json"])
        assert first.exit_code == 0
        page1 = json.loads(first.stdout)
        assert [loc["timestamp"] for loc in page1["locations"]] == [1_700_000_000, 1_700_000_030]

        second = runner.invoke(
            cli.app,
            ["locations", "list", "--anchor", page1["next_anchor"], "--json"],
        )
        page2 = json.loads(second.stdout)
        assert [loc["timestamp"] for loc in page2["locations"]] == [1_700_000_060]

    def test_list_rejects_bad_anchor(self, populated):
        """Verify list exits with an error for a malformed anchor."""
        result = runner.invoke(cli.app, ["locations", "list", "--anchor", "%%%"])

        assert result.exit_code == 1

    def test_latest_anchor(self, populated):
        """Verify listing after the latest anchor returns nothing."""
        result = runner.invoke(cli.app, ["locations", "latest-anchor"])
        anchor = result.stdout.strip()

        listed = runner.invoke(cli.app, ["locations", "list", "--anchor", anchor, "--json"])
        assert json.loads(listed.stdout)["locations"] == []

    def test_evict_with_explicit_days(self, populated):
        """Verify evict --days deletes older locations."""
        result = runner.invoke(cli.app, ["locations", "evict", "--days", "0"])

        assert result.exit_code == 0
        assert "Deleted 3" in result.stdout

    def test_evict_keep_forever(self, populated):
        """Verify evict honours keep_locations_for from the options file."""
        (populated / "options.yaml").write_text("keep_locations_for: -1\n")

        result = runner.invoke(cli.app, ["locations", "evict"])

        assert result.exit_code == 0
        assert "Deleted 0" in result.stdout


class TestQueueCommands:
    """Inspecting and purging the upload queue."""

    def test_queue_status(self, populated):
        """Verify queue status reports pending count and time range."""
        result = runner.invoke(cli.app, ["queue", "status", "--json"])

        assert json.loads(result.stdout) == {
            "pending": 2,
            "oldest": 1_700_000_030,
            "newest": 1_700_000_060,
        }

    def test_purge_requires_confirmation(self, populated):
        """Verify purge refuses to run without --yes."""
        result = runner.invoke(cli.app, ["queue", "purge"])

        assert result.exit_code == 1
        status = runner.invoke(cli.app, ["queue", "status", "--json"])
        assert json.loads(status.stdout)["pending"] == 2

    def test_purge(self, populated):
        """Verify purge --yes empties the queue."""
        result = runner.invoke(cli.app, ["queue", "purge", "--yes"])

        assert result.exit_code == 0
        assert "Purged 2" in result.stdout

    def test_sync_now_disabled(self, populated):
        """Verify sync now reports a disabled upload."""
        result = runner.invoke(cli.app, ["sync", "now", "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["outcome"] == "disabled"


class TestConfigCommands:
    """Viewing and editing the options file."""

    def test_set_and_show(self, cli_env):
        """Verify config set writes the options file that config show reads."""
        result = runner.invoke(cli.app, ["config", "set", "upload_fields", "[timestamp, speed]"])
        assert result.exit_code == 0

        shown = runner.invoke(cli.app, ["config", "show", "--json"])
        assert json.loads(shown.stdout)["upload_fields"] == ["timestamp", "speed"]
        stored = yaml.safe_load((cli_env / "options.yaml").read_text())
        assert stored == {"upload_fields": ["timestamp", "speed"]}

    def test_set_unknown_key(self, cli_env):
        """Verify config set rejects unknown option names."""
        result = runner.invoke(cli.app, ["config", "set", "upload_interval", "5"])

        assert result.exit_code == 1
        assert "Unknown key" in result.stdout

    def test_set_invalid_value(self, cli_env):
        """Verify an invalid value leaves the options file unwritten."""
        result = runner.invoke(cli.app, ["config", "set", "upload_request_format", "XML"])

        assert result.exit_code == 1
        assert not (cli_env / "options.yaml").exists()
