"""Bounded-concurrency batch processing shared by export, import and cleanup.

A fixed number of worker threads pull items from one shared queue, so faster
workers absorb more of the batch. Each worker pushes exactly one outcome per
item onto a results queue. The calling thread is the single consumer of that
queue and the only code that touches the ``BatchResult``.
"""

from __future__ import annotations

import queue
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

import structlog

from gmail_exporter.models import BatchResult

logger = structlog.get_logger()

T = TypeVar("T")

Handler = Callable[[T], int]
"""Processes one work item and returns the number of bytes it handled."""

ProgressCallback = Callable[[int, int, int, int], None]
"""Called as ``(completed, total, succeeded, failed)`` after every outcome."""

_POLL_INTERVAL = 0.1


@dataclass(frozen=True)
class _Outcome:
    item_id: str
    size: int = 0
    error: str | None = None


class _Done:
    """Sentinel a worker pushes when it exits."""


_DONE = _Done()


class WorkerPool(Generic[T]):
    """Run a handler over many items with bounded parallelism.

    A failing item never aborts the batch and is never retried here; retry
    policy belongs to the handler.
    """

    def __init__(
        self,
        concurrency: int,
        *,
        progress: ProgressCallback | None = None,
        cancel_event: threading.Event | None = None,
        timeout: float | None = None,
        name: str = "batch",
    ) -> None:
        """Create a pool.

        Args:
            concurrency: Number of worker threads. Values below 1 are clamped to 1.
            progress: Optional callback invoked after every completed item.
            cancel_event: Token that stops workers from starting new items once set.
                Handlers may share it to abandon work early.
            timeout: Seconds after which the token is set automatically.
            name: Label used in log events and thread names.
        """

        self.concurrency = max(1, concurrency)
        self.progress = progress
        self.cancel_event = cancel_event or threading.Event()
        self.timeout = timeout
        self.name = name

    def run(self, items: Sequence[T], handler: Handler[T]) -> BatchResult:
        """Process every item and return the aggregated result.

        ``KeyboardInterrupt`` while waiting cancels the batch: in-flight items
        are drained and the partial result is returned with ``cancelled`` set.
        """

        started = time.monotonic()
        result = BatchResult(total_matched=len(items))
        if not items:
            return result

        jobs: queue.Queue[T] = queue.Queue()
        for item in items:
            jobs.put(item)

        results: queue.Queue[_Outcome | _Done] = queue.Queue()
        worker_count = min(self.concurrency, len(items))
        workers = [
            threading.Thread(
                target=self._work,
                args=(jobs, results, handler),
                name=f"{self.name}-worker-{i}",
                daemon=True,
            )
            for i in range(worker_count)
        ]

        logger.debug("worker_pool_started", batch=self.name, items=len(items), workers=worker_count)
        for worker in workers:
            worker.start()

        remaining_workers = worker_count
        completed = 0
        deadline = None if self.timeout is None else started + self.timeout

        while remaining_workers:
            try:
                outcome = results.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                outcome = None
            except KeyboardInterrupt:
                logger.warning("worker_pool_interrupted", batch=self.name, completed=completed)
                self.cancel_event.set()
                continue

            if deadline is not None and not self.cancel_event.is_set() and time.monotonic() >= deadline:
                logger.warning("worker_pool_timeout", batch=self.name, timeout=self.timeout)
                self.cancel_event.set()

            if outcome is None:
                continue
            if isinstance(outcome, _Done):
                remaining_workers -= 1
                continue

            completed += 1
            if outcome.error is None:
                result.record_success(outcome.size)
            else:
                result.record_failure(outcome.item_id, outcome.error)
                logger.error(
                    "item_failed",
                    batch=self.name,
                    item_id=outcome.item_id,
                    error=outcome.error,
                )

            if self.progress is not None:
                self.progress(completed, len(items), result.total_succeeded, result.total_failed)

        for worker in workers:
            worker.join()

        result.cancelled = self.cancel_event.is_set() and completed < len(items)
        result.duration = time.monotonic() - started

        logger.debug(
            "worker_pool_finished",
            batch=self.name,
            succeeded=result.total_succeeded,
            failed=result.total_failed,
            cancelled=result.cancelled,
        )
        return result

    def _work(
        self,
        jobs: queue.Queue[T],
        results: queue.Queue[_Outcome | _Done],
        handler: Handler[T],
    ) -> None:
        try:
            while not self.cancel_event.is_set():
                try:
                    item = jobs.get_nowait()
                except queue.Empty:
                    break

                try:
                    size = handler(item)
                except Exception as exc:  # noqa: BLE001
                    results.put(_Outcome(item_id=str(item), error=str(exc) or type(exc).__name__))
                else:
                    results.put(_Outcome(item_id=str(item), size=int(size or 0)))
        finally:
            results.put(_DONE)


def run_batch(
    items: Sequence[T],
    concurrency: int,
    handler: Handler[T],
    *,
    progress: ProgressCallback | None = None,
    cancel_event: threading.Event | None = None,
    timeout: float | None = None,
    name: str = "batch",
) -> BatchResult:
    """Convenience wrapper around :class:`WorkerPool`."""

    pool: WorkerPool[T] = WorkerPool(
        concurrency,
        progress=progress,
        cancel_event=cancel_event,
        timeout=timeout,
        name=name,
    )
    return pool.run(items, handler)
