"""
Transfer progress display.

Shows one rich progress bar per unit transfer (bytes for files, frames for
trajectories). Disabled automatically when the console is not a terminal,
so tests and piped runs stay quiet.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TransferSpeedColumn,
)


def _noop(_: int) -> None:
    return None


class TransferProgress:
    """Progress bars for unit transfers."""

    def __init__(self, console: Console | None = None, enabled: bool | None = None) -> None:
        self.console = console or Console(stderr=True)
        self.enabled = self.console.is_terminal if enabled is None else enabled

    @contextmanager
    def track(self, description: str, total: int | None = None, unit: str = "bytes") -> Iterator[Callable[[int], None]]:
        """
        Display a progress bar for the duration of the block.

        Yields a callable advancing the bar by the given amount. A total of
        None renders an indeterminate bar (trajectory frame counts are not
        known up front).
        """
        if not self.enabled:
            yield _noop
            return

        if unit == "bytes":
            columns = (
                SpinnerColumn(),
                TextColumn("{task.description}"),
                BarColumn(),
                DownloadColumn(),
                TransferSpeedColumn(),
                TimeElapsedColumn(),
            )
        else:
            columns = (
                SpinnerColumn(),
                TextColumn("{task.description}"),
                TextColumn("{task.completed} " + unit),
                TimeElapsedColumn(),
            )

        with Progress(*columns, console=self.console, transient=True) as progress:
            task_id = progress.add_task(description, total=total)
            yield lambda amount: progress.advance(task_id, amount)
