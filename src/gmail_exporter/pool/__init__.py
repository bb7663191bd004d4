"""Worker pool used by every batch operation."""

from .engine import Handler, ProgressCallback, WorkerPool, run_batch
from .progress import RichProgressReporter

__all__ = ["Handler", "ProgressCallback", "RichProgressReporter", "WorkerPool", "run_batch"]
