"""Export Gmail messages matching a filter to local files.

Search results are collected in full before any message is fetched, then the
ids are handed to the worker pool. Every successfully written message is
listed in the ``processed_emails.json`` manifest for a later cleanup run.
"""

from __future__ import annotations

import json
import mailbox
import threading
import time
from email.utils import parseaddr
from pathlib import Path
from typing import Any

import structlog

from gmail_exporter.exceptions import ConfigurationError, GmailAPIError, ManifestError, ValidationError
from gmail_exporter.filters import build_query, validate
from gmail_exporter.gmail.client import MailClient
from gmail_exporter.gmail.parsing import decode_raw, first_label, internal_date, message_to_record
from gmail_exporter.metrics import EXPORT_METRICS_FILENAME, save_report
from gmail_exporter.models import BatchResult, ExportConfig, ExportFormat, FilterSpecification, ProcessedItemRecord
from gmail_exporter.operations.manifest import MANIFEST_FILENAME, save_manifest
from gmail_exporter.pool import ProgressCallback, WorkerPool
from gmail_exporter.utils import write_private

logger = structlog.get_logger()

UNLABELED_DIR = "unlabeled"


def resolve_format(value: str | None) -> ExportFormat:
    """Map a user-supplied format name to :class:`ExportFormat` (default ``eml``).

    Raises:
        ValidationError: For an unknown format.
    """

    if not value:
        return ExportFormat.EML
    try:
        return ExportFormat(value.lower())
    except ValueError:
        valid = ", ".join(fmt.value for fmt in ExportFormat)
        raise ValidationError(f"invalid format: {value} (valid: {valid})") from None


class Exporter:
    """Runs one export of matching messages into ``config.output_dir``."""

    def __init__(
        self,
        client: MailClient,
        config: ExportConfig,
        *,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self.progress = progress
        self.cancel_event = cancel_event
        self._records: dict[str, ProcessedItemRecord] = {}
        self._records_lock = threading.Lock()

    def export(self, spec: FilterSpecification) -> BatchResult:
        """Export every message matching ``spec``.

        Raises:
            ValidationError: For a bad filter, format or limit; nothing is touched.
            ConfigurationError: If the output directory cannot be created.
            GmailAPIError: If the search itself fails.
        """

        fmt = resolve_format(self.config.format)
        validate(spec)
        if self.config.limit is not None and self.config.limit < 0:
            raise ValidationError("limit must be >= 0")

        query = build_query(spec)
        output_dir = self.config.output_dir
        logger.info("export_started", query=query, output_dir=str(output_dir), format=fmt.value)

        try:
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(f"failed to create output directory {output_dir}: {exc}") from exc

        message_ids = self.search(query)
        total_matched = len(message_ids)
        logger.info("export_search_complete", count=total_matched)

        if self.config.limit and total_matched > self.config.limit:
            message_ids = message_ids[: self.config.limit]
            logger.info("export_limited", limited_count=len(message_ids))

        self._records = {}
        pool: WorkerPool[str] = WorkerPool(
            self.config.parallel_workers,
            progress=self.progress,
            cancel_event=self.cancel_event,
            timeout=self.config.timeout,
            name="export",
        )
        result = pool.run(message_ids, lambda message_id: self._export_one(message_id, fmt))
        result.total_matched = total_matched

        records = [self._records[mid] for mid in message_ids if mid in self._records]
        if records:
            try:
                save_manifest(output_dir / MANIFEST_FILENAME, records)
            except ManifestError as exc:
                logger.error("manifest_save_failed", error=str(exc))

        if self.config.metrics_enabled:
            save_report("export", result, output_dir / EXPORT_METRICS_FILENAME)

        logger.info(
            "export_completed",
            total_matched=result.total_matched,
            total_exported=result.total_exported,
            total_failed=result.total_failed,
            total_size=result.total_size,
            duration=result.duration,
            cancelled=result.cancelled,
        )
        return result

    def search(self, query: str) -> list[str]:
        """Collect every message id matching ``query`` across all result pages."""

        message_ids: list[str] = []
        page_token: str | None = None
        while True:
            ids, page_token = self.client.search(query, page_token)
            message_ids.extend(ids)
            if not page_token:
                return message_ids

    def output_path(self, message: dict[str, Any], fmt: ExportFormat) -> Path:
        """Where a message is written.

        With label organization only the first label id picks the directory.
        """

        filename = f"{message['id']}{fmt.extension}"
        if not self.config.organize_by_labels:
            return self.config.output_dir / filename

        label_dir = self.config.output_dir / (first_label(message) or UNLABELED_DIR)
        label_dir.mkdir(parents=True, exist_ok=True)
        return label_dir / filename

    def _export_one(self, message_id: str, fmt: ExportFormat) -> int:
        if fmt is ExportFormat.JSON:
            message = self.client.fetch(message_id, format="full")
            raw_message = self.client.fetch(message_id, format="raw")
            raw = _raw_bytes(raw_message)
            # Keep the raw form so the file can be imported again.
            message = {**message, "raw": raw_message["raw"]}
        else:
            message = self.client.fetch(message_id, format="raw")
            raw = _raw_bytes(message)

        message.setdefault("id", message_id)
        path = self.output_path(message, fmt)

        if fmt is ExportFormat.EML:
            write_private(path, raw)
            size = len(raw)
        elif fmt is ExportFormat.JSON:
            data = json.dumps(message, indent=2).encode("utf-8")
            write_private(path, data)
            size = len(data)
        else:
            size = _write_mbox(path, raw, message)

        record = message_to_record(message, size=size, raw=raw)
        with self._records_lock:
            self._records[message_id] = record

        logger.debug("message_exported", message_id=message_id, path=str(path), size=size)
        return size


def _raw_bytes(message: dict[str, Any]) -> bytes:
    raw = message.get("raw")
    if not isinstance(raw, str):
        raise GmailAPIError(f"message {message.get('id')} has no raw content")
    return decode_raw(raw)


def _write_mbox(path: Path, raw: bytes, message: dict[str, Any]) -> int:
    """Write a single-message mbox file and return its size."""

    mbox_message = mailbox.mboxMessage(raw)
    sender = parseaddr(mbox_message.get("Return-Path") or mbox_message.get("From") or "")[1]
    received = internal_date(message)
    time_tuple = received.timetuple() if received is not None else time.gmtime()
    mbox_message.set_from(sender or "MAILER-DAEMON", time_tuple)

    # Start from an empty owner-only file; mailbox appends to it.
    write_private(path, b"")
    box = mailbox.mbox(str(path), create=False)
    box.lock()
    try:
        box.add(mbox_message)
        box.flush()
    finally:
        box.unlock()
        box.close()
    return path.stat().st_size
