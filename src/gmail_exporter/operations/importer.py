"""Import previously exported message files into a Gmail mailbox.

Messages are inserted with ``users.messages.import``, which files them like
received mail without sending or delivering anything.
"""

from __future__ import annotations

import json
import mailbox
import threading
from pathlib import Path

import structlog

from gmail_exporter.exceptions import ConfigurationError, ValidationError
from gmail_exporter.gmail.client import MailClient
from gmail_exporter.gmail.parsing import decode_raw
from gmail_exporter.metrics import (
    CLEANUP_METRICS_FILENAME,
    EXPORT_METRICS_FILENAME,
    IMPORT_METRICS_FILENAME,
    save_report,
)
from gmail_exporter.models import BatchResult, ExportFormat, ImportConfig
from gmail_exporter.operations.manifest import MANIFEST_FILENAME
from gmail_exporter.pool import ProgressCallback, WorkerPool

logger = structlog.get_logger()

SUPPORTED_EXTENSIONS = frozenset(fmt.extension for fmt in ExportFormat)

# Bookkeeping files that share the .json extension with message exports.
_NON_MESSAGE_FILES = frozenset(
    {MANIFEST_FILENAME, EXPORT_METRICS_FILENAME, IMPORT_METRICS_FILENAME, CLEANUP_METRICS_FILENAME}
)


def find_message_files(input_dir: Path) -> list[Path]:
    """Recursively list exported message files under ``input_dir``, sorted."""

    return sorted(
        path
        for path in input_dir.rglob("*")
        if path.is_file()
        and path.suffix.lower() in SUPPORTED_EXTENSIONS
        and path.name not in _NON_MESSAGE_FILES
    )


def read_raw_messages(path: Path) -> list[bytes]:
    """Reconstruct the RFC 822 bytes stored in one exported file.

    Raises:
        OSError: If the file cannot be read.
        ValueError: If the file has no recognizable message content.
    """

    ext = path.suffix.lower()
    if ext == ExportFormat.EML.extension:
        return [path.read_bytes()]

    if ext == ExportFormat.JSON.extension:
        data = json.loads(path.read_text(encoding="utf-8"))
        raw = data.get("raw") if isinstance(data, dict) else None
        if not isinstance(raw, str) or not raw:
            raise ValueError(f"{path.name} has no raw message field")
        return [decode_raw(raw)]

    if ext == ExportFormat.MBOX.extension:
        box = mailbox.mbox(str(path), create=False)
        try:
            messages = [message.as_bytes() for message in box]
        finally:
            box.close()
        if not messages:
            raise ValueError(f"{path.name} contains no messages")
        return messages

    raise ValueError(f"unsupported file type: {ext}")


class Importer:
    """Runs one import of every message file found under ``config.input_dir``."""

    def __init__(
        self,
        client: MailClient,
        config: ImportConfig,
        *,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self.progress = progress
        self.cancel_event = cancel_event

    def import_messages(self) -> BatchResult:
        """Import every supported file.

        Raises:
            ValidationError: For a negative limit.
            ConfigurationError: If the input directory does not exist.
        """

        if self.config.limit is not None and self.config.limit < 0:
            raise ValidationError("limit must be >= 0")

        input_dir = self.config.input_dir
        if not input_dir.is_dir():
            raise ConfigurationError(f"input directory does not exist: {input_dir}")

        logger.info("import_started", input_dir=str(input_dir), limit=self.config.limit)

        files = find_message_files(input_dir)
        total_found = len(files)
        logger.info("import_files_found", count=total_found)

        if self.config.limit and total_found > self.config.limit:
            files = files[: self.config.limit]
            logger.info("import_limited", limited_count=len(files))

        pool: WorkerPool[Path] = WorkerPool(
            self.config.parallel_workers,
            progress=self.progress,
            cancel_event=self.cancel_event,
            timeout=self.config.timeout,
            name="import",
        )
        result = pool.run(files, self._import_one)
        result.total_matched = total_found

        if self.config.metrics_enabled:
            save_report("import", result, input_dir / IMPORT_METRICS_FILENAME)

        logger.info(
            "import_completed",
            total_found=result.total_found,
            total_imported=result.total_imported,
            total_failed=result.total_failed,
            duration=result.duration,
            cancelled=result.cancelled,
        )
        return result

    def _import_one(self, path: Path) -> int:
        date_source = "dateHeader" if self.config.preserve_dates else "receivedTime"
        size = 0
        for raw in read_raw_messages(path):
            self.client.import_message(raw, internal_date_source=date_source)
            size += len(raw)
        logger.debug("message_imported", path=str(path), size=size)
        return size
