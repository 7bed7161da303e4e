"""
Abort monitor.

Cooperative cancellation: the loader polls the project's remote abort flag
at safe checkpoints (between phases and between units, never in the middle
of a transfer) and stops with LoadAborted when it is set.
"""

from __future__ import annotations

from mdloader.exceptions import LoadAborted
from mdloader.store.base import RemoteStore
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.abort")


class AbortMonitor:
    """Checks the abort flag of one project."""

    def __init__(self, store: RemoteStore, project_id: str) -> None:
        self.store = store
        self.project_id = project_id
        self.checks = 0

    async def is_set(self) -> bool:
        self.checks += 1
        return await self.store.get_abort_flag(self.project_id)

    async def check(self, checkpoint: str | None = None) -> None:
        """Raise LoadAborted if the abort flag is set, return normally otherwise."""
        if await self.is_set():
            logger.warning(f"Abort requested for project {self.project_id}, stopping before {checkpoint or 'next step'}")
            raise LoadAborted(self.project_id, checkpoint)


async def request_abort(store: RemoteStore, project_id: str) -> None:
    """Ask a running load of project_id to stop at its next checkpoint."""
    await store.set_abort_flag(project_id, True)
    logger.info(f"Abort requested for project {project_id}")
