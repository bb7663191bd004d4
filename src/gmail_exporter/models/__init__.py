"""Data models for Gmail Exporter.

This module contains Pydantic models for data validation and serialization.
"""

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from gmail_exporter.models.manifest import ProcessedItemRecord


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class ExportFormat(str, Enum):
    """On-disk format of an exported message."""

    EML = "eml"
    JSON = "json"
    MBOX = "mbox"

    @property
    def extension(self) -> str:
        return f".{self.value}"


class CleanupAction(str, Enum):
    """What cleanup does to a previously exported message."""

    ARCHIVE = "archive"
    DELETE = "delete"


class SearchScope(str, Enum):
    """Mailbox partitions a search can be restricted to."""

    ALL = "all"
    ALL_MAIL = "all_mail"
    INBOX = "inbox"
    SENT = "sent"
    DRAFTS = "drafts"
    SPAM = "spam"
    TRASH = "trash"


class FilterSpecification(BaseModel):
    """User-supplied search criteria. Every field is optional."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    to: Optional[str] = Field(default=None, description="Recipient address")
    from_: Optional[str] = Field(default=None, alias="from", description="Sender address")
    subject: Optional[str] = Field(default=None, description="Subject contains text")
    includes_words: Optional[str] = Field(default=None, description="Words that must appear")
    excludes_words: Optional[str] = Field(
        default=None, description="Space-separated words that must not appear"
    )

    size_greater_than: Optional[int] = Field(default=None, description="Minimum size in bytes")
    size_less_than: Optional[int] = Field(default=None, description="Maximum size in bytes")

    date_within: Optional[timedelta] = Field(default=None, description="Relative date window")
    date_after: Optional[date] = Field(default=None, description="Only messages after this date")
    date_before: Optional[date] = Field(default=None, description="Only messages before this date")

    has_attachment: Optional[bool] = Field(
        default=None, description="True for with attachments, False for without, None for either"
    )
    exclude_chats: bool = Field(default=False, description="Exclude chat messages")

    labels: Optional[str] = Field(default=None, description="Comma-separated label names")
    search_scope: Optional[str] = Field(default=None, description="Mailbox partition to search")


class Failure(BaseModel):
    """A single work item that could not be processed."""

    item_id: str = Field(description="Message id or file path of the failed item")
    error: str = Field(description="Error description")
    timestamp: datetime = Field(default_factory=utcnow, description="When the failure was recorded")


class BatchResult(BaseModel):
    """Aggregated outcome of one export, import or cleanup run.

    Only the aggregating consumer of the worker pool mutates an instance.
    """

    total_matched: int = Field(default=0, description="Items matched before any limit")
    total_succeeded: int = Field(default=0, description="Items processed successfully")
    total_failed: int = Field(default=0, description="Items that failed")
    total_size: int = Field(default=0, description="Bytes processed by successful items")
    duration: float = Field(default=0.0, description="Elapsed wall time in seconds")
    cancelled: bool = Field(default=False, description="Whether the run stopped early")
    failures: list[Failure] = Field(default_factory=list, description="Per-item failures")

    def record_success(self, size: int) -> None:
        self.total_succeeded += 1
        self.total_size += size

    def record_failure(self, item_id: str, error: str) -> None:
        self.total_failed += 1
        self.failures.append(Failure(item_id=item_id, error=error))

    @property
    def total_attempted(self) -> int:
        return self.total_succeeded + self.total_failed

    # Operation-specific names for the same counters.
    @property
    def total_exported(self) -> int:
        return self.total_succeeded

    @property
    def total_imported(self) -> int:
        return self.total_succeeded

    @property
    def total_processed(self) -> int:
        return self.total_succeeded

    @property
    def total_found(self) -> int:
        return self.total_matched


class ExportConfig(BaseModel):
    """Settings for a single export run."""

    output_dir: Path = Field(description="Directory exported messages are written to")
    format: str = Field(default=ExportFormat.EML.value, description="eml, json or mbox")
    organize_by_labels: bool = Field(
        default=False, description="Use the first label id as a subdirectory"
    )
    limit: Optional[int] = Field(default=None, description="Maximum number of messages to export")
    parallel_workers: int = Field(default=3, description="Number of concurrent workers")
    metrics_enabled: bool = Field(default=True, description="Write metrics.json after the run")
    timeout: Optional[float] = Field(default=None, description="Stop starting new items after N seconds")


class ImportConfig(BaseModel):
    """Settings for a single import run."""

    input_dir: Path = Field(description="Directory searched recursively for exported messages")
    limit: Optional[int] = Field(default=None, description="Maximum number of files to import")
    parallel_workers: int = Field(default=3, description="Number of concurrent workers")
    preserve_dates: bool = Field(
        default=True, description="Use the Date header as the message's internal date"
    )
    metrics_enabled: bool = Field(default=True, description="Write import_metrics.json after the run")
    timeout: Optional[float] = Field(default=None, description="Stop starting new items after N seconds")


class CleanupConfig(BaseModel):
    """Settings for a single cleanup run."""

    manifest_path: Path = Field(description="processed_emails.json produced by an export")
    action: str = Field(default=CleanupAction.ARCHIVE.value, description="archive or delete")
    dry_run: bool = Field(default=False, description="Log intended actions without calling Gmail")
    limit: Optional[int] = Field(default=None, description="Maximum number of messages to clean up")
    parallel_workers: int = Field(default=3, description="Number of concurrent workers")
    metrics_enabled: bool = Field(default=True, description="Write cleanup_metrics.json after the run")
    timeout: Optional[float] = Field(default=None, description="Stop starting new items after N seconds")


__all__ = [
    "BatchResult",
    "CleanupAction",
    "CleanupConfig",
    "ExportConfig",
    "ExportFormat",
    "Failure",
    "FilterSpecification",
    "ImportConfig",
    "ProcessedItemRecord",
    "SearchScope",
    "utcnow",
]
