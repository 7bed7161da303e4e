"""
Project synchronizer.

Decides which remote project a run targets (an explicit reference, the
directory's trace, or a brand new project) and maps local MD directories to
remote MD runs.
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Any

from mdloader.exceptions import MdRunMismatchError, ProjectNotFoundError
from mdloader.load.trace import ProjectTrace
from mdloader.store.base import RemoteStore
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.synchronizer")

OBJECT_ID_PATTERN = re.compile(r"^[0-9a-f]{24}$")


@dataclass(frozen=True)
class ProjectReference:
    """A project reference coerced to either an id or an accession."""

    project_id: str | None = None
    accession: str | None = None

    def __str__(self) -> str:
        return self.project_id or self.accession or ""


def coerce_reference(reference: str, accession_prefix: str = "MCNS") -> ProjectReference:
    """
    Interpret a user supplied project reference.

    24 lowercase hex characters are an object id; anything else is looked up
    as an accession.
    """
    value = reference.strip()
    if OBJECT_ID_PATTERN.match(value):
        return ProjectReference(project_id=value)
    if not re.match(rf"^{re.escape(accession_prefix)}\d{{5}}$", value):
        logger.warning(f"'{value}' does not look like an accession ({accession_prefix}NNNNN), trying anyway")
    return ProjectReference(accession=value)


def new_project_document() -> dict[str, Any]:
    return {
        "accession": None,
        "published": False,
        "metadata": {},
        "mds": [],
        "mdref": 0,
        "files": [],
        "analyses": [],
    }


def new_md_document(name: str) -> dict[str, Any]:
    return {"name": name, "metadata": {}, "files": [], "analyses": []}


@dataclass
class SyncResult:
    project_id: str
    created: bool
    accession: str | None = None


class ProjectSynchronizer:
    """
    Resolves the project handle of a run.

    Args:
        store: Remote store
        trace: Trace of the source directory
        accession_prefix: Prefix of accessions, used to recognise references
    """

    def __init__(self, store: RemoteStore, trace: ProjectTrace, accession_prefix: str = "MCNS") -> None:
        self.store = store
        self.trace = trace
        self.accession_prefix = accession_prefix

    async def _find(self, reference: str) -> dict | None:
        ref = coerce_reference(reference, self.accession_prefix)
        return await self.store.find_project(project_id=ref.project_id, accession=ref.accession)

    async def resolve(self, reference: str | None = None) -> SyncResult:
        """
        Resolve the target project.

        An explicit reference must exist remotely. Without one, the trace is
        reused when it still points to an existing project; a stale trace is
        discarded and a new project is created.
        """
        created = False
        if reference:
            project = await self._find(reference)
            if project is None:
                raise ProjectNotFoundError(reference)
            logger.info(f"Loading into project {project['_id']} ({project.get('accession') or 'no accession'})")
        else:
            project = None
            traced = self.trace.read()
            if traced:
                project = await self._find(traced)
                if project is None:
                    logger.warning(f"Project {traced} from trace {self.trace.path} no longer exists, discarding trace")
                    self.trace.remove()
                else:
                    logger.info(f"Resuming project {project['_id']} from trace")
            if project is None:
                project_id = await self.store.create_project(new_project_document())
                project = {"_id": project_id, "accession": None}
                created = True
                logger.info(f"Created new project {project_id}")

        project_id = str(project["_id"])
        self.trace.write(project_id)

        if await self.store.get_abort_flag(project_id):
            logger.info(f"Clearing abort flag left on project {project_id} by a previous run")
            await self.store.set_abort_flag(project_id, False)

        return SyncResult(project_id=project_id, created=created, accession=project.get("accession"))

    async def sync_md_runs(self, project_id: str, names: list[str]) -> list[int]:
        """
        Map MD run names to remote MD indices, appending the runs that are missing.

        Existing runs are resolved by name; runs flagged as removed are never
        reused. Returns one index per name, in order.
        """
        duplicated = [name for name, count in Counter(names).items() if count > 1]
        if duplicated:
            raise MdRunMismatchError(
                f"Several MD directories resolve to the same MD run name: {', '.join(duplicated)}",
                details={"names": duplicated},
            )

        project = await self.store.find_project(project_id=project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        mds = list(project.get("mds") or [])

        indices = []
        for name in names:
            matches = [i for i, md in enumerate(mds) if md.get("name") == name and not md.get("removed")]
            if len(matches) > 1:
                raise MdRunMismatchError(
                    f"MD run name '{name}' is ambiguous in project {project_id} (indices {matches})",
                    details={"name": name, "indices": matches},
                )
            if matches:
                indices.append(matches[0])
                continue
            md = new_md_document(name)
            await self.store.push_project_item(project_id, "mds", md)
            mds.append(md)
            indices.append(len(mds) - 1)
            logger.info(f"Added MD run '{name}' with index {len(mds) - 1}")
        return indices
