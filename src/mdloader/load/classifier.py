"""
Directory classification.

Maps the files of a project directory and of its MD directories to named
roles through filename patterns.
"""

from __future__ import annotations

import fnmatch
import re
from dataclasses import dataclass, field
from pathlib import Path

from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.classifier")

# Marks a directory as an MD run directory
MD_REGISTER_FILE = ".register.json"

PROJECT_PATTERNS = {
    "metadata": re.compile(r"^metadata\.json$"),
    "inputs": re.compile(r"^inputs\.(yaml|yml|json)$"),
    "topology": re.compile(r"^topology\.json$"),
    "references": re.compile(r"^references\.json$"),
    "uploadables": re.compile(
        r"^(topology\.(prmtop|top|psf|tpr)|.+\.itp|ligands\.json|populations\.json|mdf\..+)$"
    ),
}

MD_PATTERNS = {
    "metadata": re.compile(r"^metadata\.json$"),
    "structure": re.compile(r"^structure\.pdb$"),
    "main_trajectory": re.compile(r"^trajectory\.(xtc|dump)$"),
    "trajectories": re.compile(r"^mdt\..+\.(xtc|dump)$"),
    "analyses": re.compile(r"^mda\..+\.json$"),
    "uploadables": re.compile(r"^(structure\.pdb|mdf\..+)$"),
}


@dataclass
class ProjectFiles:
    directory: Path
    metadata: Path | None = None
    inputs: Path | None = None
    topology: Path | None = None
    references: Path | None = None
    uploadables: list[Path] = field(default_factory=list)


@dataclass
class MdFiles:
    directory: Path
    metadata: Path | None = None
    structure: Path | None = None
    main_trajectory: Path | None = None
    trajectories: list[Path] = field(default_factory=list)
    analyses: list[Path] = field(default_factory=list)
    uploadables: list[Path] = field(default_factory=list)

    @property
    def all_trajectories(self) -> list[Path]:
        """Main trajectory first, then the additional ones."""
        main = [self.main_trajectory] if self.main_trajectory else []
        return main + self.trajectories


def _classify(directory: Path, patterns: dict[str, re.Pattern], target) -> None:
    for path in sorted(p for p in directory.iterdir() if p.is_file()):
        for role, pattern in patterns.items():
            if not pattern.match(path.name):
                continue
            current = getattr(target, role)
            if isinstance(current, list):
                current.append(path)
            else:
                setattr(target, role, path)


def classify_project(directory: Path) -> ProjectFiles:
    """Classify the project-level files of a directory."""
    files = ProjectFiles(directory=Path(directory))
    _classify(files.directory, PROJECT_PATTERNS, files)
    return files


def classify_md(directory: Path) -> MdFiles:
    """Classify the files of an MD directory."""
    files = MdFiles(directory=Path(directory))
    _classify(files.directory, MD_PATTERNS, files)
    return files


def find_md_directories(directory: Path) -> list[Path]:
    """MD directories of a project: sub-directories holding a register file, sorted by name."""
    found = sorted(p for p in Path(directory).iterdir() if p.is_dir() and (p / MD_REGISTER_FILE).is_file())
    logger.debug(f"Found {len(found)} MD directories in {directory}")
    return found


class PathFilter:
    """
    Include or exclude filter over local files.

    Patterns are fnmatch globs matched against the path relative to the
    project directory and against the bare filename.
    """

    def __init__(self, base: Path, include: list[str] | None = None, exclude: list[str] | None = None) -> None:
        self.base = Path(base).resolve()
        self.include = list(include or [])
        self.exclude = list(exclude or [])

    def _matches(self, path: Path, patterns: list[str]) -> bool:
        resolved = Path(path).resolve()
        try:
            relative = resolved.relative_to(self.base).as_posix()
        except ValueError:
            relative = resolved.as_posix()
        for pattern in patterns:
            if fnmatch.fnmatch(relative, pattern) or fnmatch.fnmatch(resolved.name, pattern):
                return True
            if Path(pattern).is_absolute() and Path(pattern).resolve() == resolved:
                return True
        return False

    def allows(self, path: Path) -> bool:
        # The inputs file is never filtered out
        if PROJECT_PATTERNS["inputs"].match(Path(path).name):
            return True
        if self.include:
            return self._matches(path, self.include)
        if self.exclude:
            return not self._matches(path, self.exclude)
        return True
