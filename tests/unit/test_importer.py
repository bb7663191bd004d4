"""Unit tests for the import operation."""

from __future__ import annotations

import json
import mailbox

import pytest

from gmail_exporter.exceptions import ConfigurationError, ValidationError
from gmail_exporter.gmail.parsing import encode_raw
from gmail_exporter.models import ImportConfig
from gmail_exporter.operations import MANIFEST_FILENAME, Importer
from gmail_exporter.operations.importer import find_message_files, read_raw_messages


class TestImporter:
    """Test suite for Importer."""

    def test_imports_eml_and_ignores_other_files(self, fake_client_factory, raw_message, tmp_path) -> None:
        """Only supported message files are counted and imported."""
        (tmp_path / "one.eml").write_bytes(raw_message("one"))
        (tmp_path / "two.eml").write_bytes(raw_message("two"))
        (tmp_path / "notes.txt").write_text("not an email")
        client = fake_client_factory()

        result = Importer(client, ImportConfig(input_dir=tmp_path)).import_messages()

        assert result.total_found == 2
        assert result.total_imported == 2
        assert result.total_failed == 0
        assert sorted(raw for raw, _ in client.imported) == sorted([raw_message("one"), raw_message("two")])

    def test_preserve_dates_selects_date_source(self, fake_client_factory, raw_message, tmp_path) -> None:
        """Dates come from the Date header unless preservation is off."""
        (tmp_path / "one.eml").write_bytes(raw_message("one"))

        client = fake_client_factory()
        Importer(client, ImportConfig(input_dir=tmp_path, metrics_enabled=False)).import_messages()
        assert client.imported[0][1] == "dateHeader"

        client = fake_client_factory()
        config = ImportConfig(input_dir=tmp_path, preserve_dates=False, metrics_enabled=False)
        Importer(client, config).import_messages()
        assert client.imported[0][1] == "receivedTime"

    def test_recurses_and_limits(self, fake_client_factory, raw_message, tmp_path) -> None:
        """Nested label directories are searched and the limit applies after counting."""
        for label in ("INBOX", "Label_1"):
            (tmp_path / label).mkdir()
            for i in range(2):
                (tmp_path / label / f"{label}{i}.eml").write_bytes(raw_message(f"{label}{i}"))
        client = fake_client_factory()

        result = Importer(client, ImportConfig(input_dir=tmp_path, limit=3)).import_messages()

        assert result.total_found == 4
        assert result.total_imported == 3

    def test_rejected_message_is_a_failure(self, fake_client_factory, raw_message, tmp_path) -> None:
        """One bad file does not stop the others."""
        (tmp_path / "good.eml").write_bytes(raw_message("good"))
        (tmp_path / "bad.eml").write_bytes(raw_message("bad", subject="FAIL"))
        client = fake_client_factory()

        result = Importer(client, ImportConfig(input_dir=tmp_path)).import_messages()

        assert result.total_imported == 1
        assert result.total_failed == 1
        assert result.failures[0].item_id.endswith("bad.eml")

    def test_metrics_written_to_input_dir(self, fake_client_factory, raw_message, tmp_path) -> None:
        """import_metrics.json lands next to the imported files and is not re-imported."""
        (tmp_path / "one.eml").write_bytes(raw_message("one"))

        Importer(fake_client_factory(), ImportConfig(input_dir=tmp_path)).import_messages()
        metrics = json.loads((tmp_path / "import_metrics.json").read_text())
        assert metrics["operation"] == "import"

        result = Importer(fake_client_factory(), ImportConfig(input_dir=tmp_path)).import_messages()
        assert result.total_found == 1

    def test_missing_directory(self, fake_client_factory, tmp_path) -> None:
        """A missing input directory is a configuration error."""
        with pytest.raises(ConfigurationError):
            Importer(fake_client_factory(), ImportConfig(input_dir=tmp_path / "nope")).import_messages()

    def test_negative_limit(self, fake_client_factory, tmp_path) -> None:
        """Limits must not be negative."""
        with pytest.raises(ValidationError):
            Importer(fake_client_factory(), ImportConfig(input_dir=tmp_path, limit=-2)).import_messages()


class TestMessageFiles:
    """Test suite for file discovery and decoding."""

    def test_bookkeeping_files_skipped(self, tmp_path) -> None:
        """The manifest and metrics reports are not messages."""
        for name in (MANIFEST_FILENAME, "metrics.json", "cleanup_metrics.json", "a.json", "b.EML"):
            (tmp_path / name).write_text("{}")

        names = [p.name for p in find_message_files(tmp_path)]

        assert names == ["a.json", "b.EML"]

    def test_read_json_export(self, raw_message, tmp_path) -> None:
        """JSON exports are decoded from their raw field."""
        path = tmp_path / "m.json"
        path.write_text(json.dumps({"id": "m", "raw": encode_raw(raw_message("m"))}))

        assert read_raw_messages(path) == [raw_message("m")]

    def test_read_json_without_raw(self, tmp_path) -> None:
        """JSON without a raw field cannot be imported."""
        path = tmp_path / "m.json"
        path.write_text(json.dumps({"id": "m", "payload": {}}))

        with pytest.raises(ValueError):
            read_raw_messages(path)

    def test_read_mbox(self, raw_message, tmp_path) -> None:
        """Every message in an mbox file is returned."""
        path = tmp_path / "box.mbox"
        box = mailbox.mbox(str(path))
        box.add(mailbox.mboxMessage(raw_message("first")))
        box.add(mailbox.mboxMessage(raw_message("second")))
        box.close()

        raws = read_raw_messages(path)

        assert len(raws) == 2
        assert b"Subject: Hello" in raws[0]
        assert b"first" in raws[0]
        assert b"second" in raws[1]
