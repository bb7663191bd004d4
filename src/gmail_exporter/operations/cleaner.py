"""Archive or delete messages listed in an export manifest."""

from __future__ import annotations

import threading

import structlog

from gmail_exporter.exceptions import ValidationError
from gmail_exporter.gmail.client import MailClient
from gmail_exporter.metrics import CLEANUP_METRICS_FILENAME, save_report
from gmail_exporter.models import BatchResult, CleanupAction, CleanupConfig
from gmail_exporter.operations.manifest import load_manifest
from gmail_exporter.pool import ProgressCallback, WorkerPool

logger = structlog.get_logger()

INBOX_LABEL = "INBOX"


def resolve_action(value: str | None) -> CleanupAction:
    """Map a user-supplied action to :class:`CleanupAction` (default ``archive``).

    Raises:
        ValidationError: For anything other than archive or delete.
    """

    if not value:
        return CleanupAction.ARCHIVE
    try:
        return CleanupAction(value)
    except ValueError:
        raise ValidationError(f"action must be 'archive' or 'delete', got: {value}") from None


class Cleaner:
    """Runs one cleanup over the messages listed in ``config.manifest_path``."""

    def __init__(
        self,
        client: MailClient,
        config: CleanupConfig,
        *,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self.progress = progress
        self.cancel_event = cancel_event

    def cleanup(self) -> BatchResult:
        """Archive or delete every manifest entry.

        Raises:
            ValidationError: For an unknown action or a negative limit.
            ManifestError: If the manifest cannot be loaded.
        """

        action = resolve_action(self.config.action)
        if self.config.limit is not None and self.config.limit < 0:
            raise ValidationError("limit must be >= 0")

        logger.info(
            "cleanup_started",
            action=action.value,
            manifest=str(self.config.manifest_path),
            dry_run=self.config.dry_run,
            limit=self.config.limit,
        )

        records = load_manifest(self.config.manifest_path)
        total_found = len(records)
        logger.info("cleanup_manifest_loaded", count=total_found)

        if self.config.limit and total_found > self.config.limit:
            records = records[: self.config.limit]
            logger.info("cleanup_limited", limited_count=len(records))

        pool: WorkerPool[str] = WorkerPool(
            self.config.parallel_workers,
            progress=self.progress,
            cancel_event=self.cancel_event,
            timeout=self.config.timeout,
            name="cleanup",
        )
        result = pool.run([record.id for record in records], lambda message_id: self._clean_one(message_id, action))
        result.total_matched = total_found

        if self.config.metrics_enabled:
            save_report("cleanup", result, self.config.manifest_path.parent / CLEANUP_METRICS_FILENAME)

        logger.info(
            "cleanup_completed",
            total_found=result.total_found,
            total_processed=result.total_processed,
            total_failed=result.total_failed,
            action=action.value,
            dry_run=self.config.dry_run,
            duration=result.duration,
            cancelled=result.cancelled,
        )
        return result

    def _clean_one(self, message_id: str, action: CleanupAction) -> int:
        if self.config.dry_run:
            logger.info("cleanup_dry_run", message_id=message_id, action=action.value)
            return 0

        if action is CleanupAction.ARCHIVE:
            self.client.modify_labels(message_id, add=[], remove=[INBOX_LABEL])
        else:
            self.client.delete_message(message_id)
        logger.debug("message_cleaned", message_id=message_id, action=action.value)
        return 0
