"""
Project trace: the local pointer from a source directory to its remote project.

The trace is a small JSON document, ``{"project": "<id>"}``, stored as
``.project_id`` inside the source directory. It is written after every
successful project resolution and removed when the project it points to no
longer exists remotely.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.trace")

TRACE_FILENAME = ".project_id"


class ProjectTrace:
    """
    Create / read / delete lifecycle of the trace of one source directory.

    A read-only trace (dry runs) is read but never written or removed.
    """

    def __init__(self, directory: Path, read_only: bool = False) -> None:
        self.directory = Path(directory)
        self.path = self.directory / TRACE_FILENAME
        self.read_only = read_only

    def read(self) -> str | None:
        """Project id the trace points to, or None when there is no usable trace."""
        try:
            content = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        if not content:
            return None
        try:
            record = json.loads(content)
        except ValueError:
            # Bare id written by older loaders
            return content
        if isinstance(record, dict) and record.get("project"):
            return str(record["project"])
        logger.warning(f"Ignoring malformed trace file {self.path}")
        return None

    def write(self, project_id: str) -> bool:
        """Point the trace at project_id. Returns False when the directory is not writable."""
        if self.read_only:
            return False
        if not os.access(self.directory, os.W_OK):
            logger.warning(f"No write permissions in {self.directory}. No trace will be left.")
            return False
        self.path.write_text(json.dumps({"project": project_id}), encoding="utf-8")
        logger.debug(f"Trace {self.path} -> {project_id}")
        return True

    def remove(self) -> None:
        if self.read_only:
            return
        self.path.unlink(missing_ok=True)
