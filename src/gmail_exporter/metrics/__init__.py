"""Run reports written after every batch operation.

A report summarizes one :class:`BatchResult` with throughput figures so runs
can be compared or fed into other tooling.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from gmail_exporter.models import BatchResult, Failure, utcnow
from gmail_exporter.utils import format_bytes, write_private

logger = structlog.get_logger()

EXPORT_METRICS_FILENAME = "metrics.json"
IMPORT_METRICS_FILENAME = "import_metrics.json"
CLEANUP_METRICS_FILENAME = "cleanup_metrics.json"


class MetricsReport(BaseModel):
    """Summary of one export, import or cleanup run."""

    operation: str = Field(description="export, import or cleanup")
    start_time: datetime = Field(description="When the run started (UTC)")
    end_time: datetime = Field(description="When the run finished (UTC)")
    duration_seconds: float = Field(description="Elapsed wall time")

    total_matched: int = Field(default=0)
    total_succeeded: int = Field(default=0)
    total_failed: int = Field(default=0)
    total_size_bytes: int = Field(default=0)
    cancelled: bool = Field(default=False)

    emails_per_second: float = Field(default=0.0)
    bytes_per_second: float = Field(default=0.0)

    failures: list[Failure] = Field(default_factory=list)

    @classmethod
    def from_result(cls, operation: str, result: BatchResult, end_time: datetime | None = None) -> MetricsReport:
        end = end_time or utcnow()
        duration = result.duration
        emails_per_second = 0.0
        bytes_per_second = 0.0
        if duration > 0:
            emails_per_second = result.total_attempted / duration
            bytes_per_second = result.total_size / duration

        return cls(
            operation=operation,
            start_time=end - timedelta(seconds=duration),
            end_time=end,
            duration_seconds=duration,
            total_matched=result.total_matched,
            total_succeeded=result.total_succeeded,
            total_failed=result.total_failed,
            total_size_bytes=result.total_size,
            cancelled=result.cancelled,
            emails_per_second=emails_per_second,
            bytes_per_second=bytes_per_second,
            failures=list(result.failures),
        )

    def save(self, path: Path) -> None:
        """Write the report as JSON, readable by the owner only."""

        path.parent.mkdir(parents=True, exist_ok=True)
        write_private(path, self.model_dump_json(indent=2).encode("utf-8"))
        logger.info("metrics_saved", operation=self.operation, path=str(path))

    def summary(self) -> str:
        return (
            f"Operation: {self.operation}\n"
            f"Duration: {self.duration_seconds:.1f}s\n"
            f"Matched: {self.total_matched}\n"
            f"Succeeded: {self.total_succeeded}\n"
            f"Failed: {self.total_failed}\n"
            f"Total size: {format_bytes(self.total_size_bytes)}\n"
            f"Performance: {self.emails_per_second:.2f} emails/sec, "
            f"{format_bytes(int(self.bytes_per_second))}/sec"
        )


def save_report(operation: str, result: BatchResult, path: Path) -> None:
    """Write a report for ``result``; failures are logged, never raised."""

    try:
        MetricsReport.from_result(operation, result).save(path)
    except OSError as exc:
        logger.warning("metrics_save_failed", operation=operation, path=str(path), error=str(exc))


__all__ = [
    "CLEANUP_METRICS_FILENAME",
    "EXPORT_METRICS_FILENAME",
    "IMPORT_METRICS_FILENAME",
    "MetricsReport",
    "save_report",
]
