"""
Type definitions for the ingestion pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from mdloader.exceptions import ValidationError


@dataclass(frozen=True)
class UnitIdentity:
    """
    One ingestable unit: what it is, its name and its scope.

    ``md`` is the MD run index, or None for project-level units.
    """

    kind: str
    name: str
    md: int | None = None

    @property
    def scope(self) -> str:
        return "project" if self.md is None else f"MD {self.md}"

    def __str__(self) -> str:
        return f"{self.kind} '{self.name}' ({self.scope})"


class Decision(str, Enum):
    """Answer of a decision provider to a conflict."""

    SKIP = "skip"
    OVERWRITE = "overwrite"


@dataclass(frozen=True)
class Conflict:
    """A unit that already exists remotely, as presented to a decision provider."""

    unit: UnitIdentity
    existing: Any = None
    new: Any = None


@dataclass
class LoadOptions:
    """
    Options of a single ingestion run.

    Args:
        source: Project directory to ingest
        project: Explicit project reference (id or accession); must exist
        md_directories: MD directories to load (default: discovered)
        conserve: Keep existing remote units, never ask
        overwrite: Replace existing remote units, never ask
        include: Only load files matching these patterns
        exclude: Never load files matching these patterns
        published: Set the project published flag at the end of the run
        dry_run: Load into an in-memory store
    """

    source: Path
    project: str | None = None
    md_directories: list[Path] | None = None
    conserve: bool = False
    overwrite: bool = False
    include: list[str] | None = None
    exclude: list[str] | None = None
    skip_chains: bool = False
    skip_mds: bool = False
    skip_trajectories: bool = False
    skip_files: bool = False
    skip_analyses: bool = False
    published: bool | None = None
    gromacs_command: str | None = None
    dry_run: bool = False

    def __post_init__(self):
        self.source = Path(self.source)
        if self.md_directories is not None:
            self.md_directories = [Path(d) for d in self.md_directories]

    def validate(self) -> None:
        """Reject flag combinations and inputs the pipeline cannot honour."""
        if self.conserve and self.overwrite:
            raise ValidationError(
                "'conserve' and 'overwrite' are mutually exclusive", details={"conserve": True, "overwrite": True}
            )
        if self.include and self.exclude:
            raise ValidationError("'include' and 'exclude' filters are mutually exclusive")
        if not self.source.is_dir():
            raise ValidationError(f"Source is not a directory: {self.source}", details={"source": str(self.source)})
        for directory in self.md_directories or []:
            if not directory.is_dir():
                raise ValidationError(f"MD directory not found: {directory}", details={"directory": str(directory)})


class RunStatus(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class LoadSummary:
    """Outcome of an ingestion run."""

    project_id: str
    created: bool = False
    accession: str | None = None
    status: RunStatus = RunStatus.COMPLETED
    checkpoint: str | None = None
    loaded: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    chains: list[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status == RunStatus.COMPLETED
