"""Live progress display for worker pool batches."""

from __future__ import annotations

from types import TracebackType

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)


class RichProgressReporter:
    """Progress callback backed by a ``rich`` progress bar.

    Use as a context manager around ``WorkerPool.run`` and pass the instance as
    the pool's ``progress`` callback. Output is advisory only.
    """

    def __init__(self, description: str, total: int | None = None, console: Console | None = None) -> None:
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TaskProgressColumn(),
            TextColumn("[red]{task.fields[failed]} failed"),
            TimeElapsedColumn(),
            console=console or Console(stderr=True),
            transient=False,
        )
        self._task = self._progress.add_task(description, total=total, failed=0)

    def __enter__(self) -> RichProgressReporter:
        self._progress.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._progress.stop()

    def __call__(self, completed: int, total: int, succeeded: int, failed: int) -> None:
        self._progress.update(self._task, completed=completed, total=total, failed=failed)
