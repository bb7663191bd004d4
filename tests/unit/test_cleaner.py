"""Unit tests for the cleanup operation."""

from __future__ import annotations

import json

import pytest

from gmail_exporter.exceptions import ManifestError, ValidationError
from gmail_exporter.models import CleanupConfig, ProcessedItemRecord
from gmail_exporter.operations import MANIFEST_FILENAME, Cleaner, save_manifest


@pytest.fixture
def manifest_path(tmp_path):
    path = tmp_path / MANIFEST_FILENAME
    save_manifest(path, [ProcessedItemRecord(id="cccccccccc01"), ProcessedItemRecord(id="cccccccccc02")])
    return path


class TestCleaner:
    """Test suite for Cleaner."""

    def test_dry_run_never_calls_the_api(self, fake_client, manifest_path) -> None:
        """Dry runs count every item as processed without touching the mailbox."""
        config = CleanupConfig(manifest_path=manifest_path, action="delete", dry_run=True)

        result = Cleaner(fake_client, config).cleanup()

        assert result.total_found == 2
        assert result.total_processed == 2
        assert fake_client.deleted == []
        assert fake_client.modified == []

    def test_invalid_action_fails_before_processing(self, fake_client, manifest_path) -> None:
        """Unknown actions are rejected up front."""
        config = CleanupConfig(manifest_path=manifest_path, action="archivex")

        with pytest.raises(ValidationError, match="archivex"):
            Cleaner(fake_client, config).cleanup()

        assert fake_client.modified == []
        assert fake_client.deleted == []
        assert not (manifest_path.parent / "cleanup_metrics.json").exists()

    def test_archive_removes_inbox_label(self, fake_client, manifest_path) -> None:
        """Archiving only drops INBOX."""
        result = Cleaner(fake_client, CleanupConfig(manifest_path=manifest_path)).cleanup()

        assert result.total_processed == 2
        assert sorted(fake_client.modified) == [
            ("cccccccccc01", [], ["INBOX"]),
            ("cccccccccc02", [], ["INBOX"]),
        ]
        assert fake_client.deleted == []

    def test_delete(self, fake_client, manifest_path) -> None:
        """Deleting removes each message permanently."""
        config = CleanupConfig(manifest_path=manifest_path, action="delete")

        result = Cleaner(fake_client, config).cleanup()

        assert result.total_processed == 2
        assert sorted(fake_client.deleted) == ["cccccccccc01", "cccccccccc02"]

    def test_failures_are_recorded(self, fake_client_factory, manifest_path) -> None:
        """A failing message does not stop the rest."""
        client = fake_client_factory(failing={"cccccccccc02"})

        result = Cleaner(client, CleanupConfig(manifest_path=manifest_path)).cleanup()

        assert result.total_processed == 1
        assert result.total_failed == 1
        assert result.failures[0].item_id == "cccccccccc02"

    def test_limit(self, fake_client, manifest_path) -> None:
        """The limit caps processing after counting the manifest."""
        config = CleanupConfig(manifest_path=manifest_path, action="delete", limit=1)

        result = Cleaner(fake_client, config).cleanup()

        assert result.total_found == 2
        assert result.total_processed == 1
        assert fake_client.deleted == ["cccccccccc01"]

    def test_metrics_written_next_to_manifest(self, fake_client, manifest_path) -> None:
        """cleanup_metrics.json lands beside the manifest."""
        Cleaner(fake_client, CleanupConfig(manifest_path=manifest_path, dry_run=True)).cleanup()

        metrics = json.loads((manifest_path.parent / "cleanup_metrics.json").read_text())
        assert metrics["operation"] == "cleanup"
        assert metrics["total_succeeded"] == 2

    def test_missing_manifest(self, fake_client, tmp_path) -> None:
        """A missing manifest is reported as a manifest error."""
        with pytest.raises(ManifestError):
            Cleaner(fake_client, CleanupConfig(manifest_path=tmp_path / "missing.json")).cleanup()
