"""
Local file helpers: fail-soft document loading and naming rules.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

import yaml

from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.files")

# Characters dropped when turning an MD run name into a directory name
FORBIDDEN_DIRECTORY_CHARACTERS = (".", ",", ";", ":", "º")

# Analysis file stem -> analysis name
ANALYSIS_NAMES = {
    "dist_perres": "dist-perres",
    "rgyr": "rgyr",
    "rmsds": "rmsds",
    "tmscores": "tmscores",
    "rmsd_perres": "rmsd-perres",
    "rmsd_pairwise": "rmsd-pairwise",
    "rmsf": "fluctuation",
    "hbonds": "hbonds",
    "energies": "energies",
    "pockets": "pockets",
    "sasa": "sasa",
    "interactions": "interactions",
    "pca": "pca",
    "markov": "markov",
}

_ANALYSIS_FILE = re.compile(r"^mda\.(?P<stem>.+)\.json$")

# Extension -> content type; everything else is octet-stream
MIME_TYPES = {".pdb": "chemical/x-pdb"}


def load_json(path: Path) -> Any | None:
    """Read and parse a JSON file. Absent or malformed files yield None."""
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.error(f"Cannot parse JSON file {path}: {e}")
        return None


def load_yaml(path: Path) -> Any | None:
    """Read and parse a YAML file. Absent or malformed files yield None."""
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except FileNotFoundError:
        return None
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Cannot parse YAML file {path}: {e}")
        return None


def load_yaml_or_json(path: Path) -> Any | None:
    """Read a document choosing the parser by extension."""
    suffix = Path(path).suffix.lower()
    if suffix in (".yaml", ".yml"):
        return load_yaml(path)
    if suffix == ".json":
        return load_json(path)
    logger.error(f"File {path} has an unsupported extension")
    return None


def name_analysis(filename: str) -> str | None:
    """Map an 'mda.<stem>.json' filename to its analysis name, None if unknown."""
    match = _ANALYSIS_FILE.match(filename)
    if not match:
        return None
    return ANALYSIS_NAMES.get(match.group("stem"))


def content_type(filename: str) -> str:
    """Content type stored with a blob, from its filename."""
    return MIME_TYPES.get(Path(filename).suffix.lower(), "application/octet-stream")


def file_load_name(filename: str) -> str:
    """Name an uploadable file is stored under: 'mdf.<name>' loads as '<name>'."""
    if filename.startswith("mdf."):
        return filename[len("mdf.") :]
    return filename


def trajectory_load_name(filename: str) -> str:
    """
    Name a re-encoded trajectory is stored under.

    'trajectory.xtc' loads as 'trajectory.bin', 'mdt.<name>.xtc' as '<name>.bin'.
    """
    if filename.startswith("mdt."):
        filename = filename[len("mdt.") :]
    stem = filename.rsplit(".", 1)[0]
    return f"{stem}.bin"


def md_name_to_directory(name: str) -> str:
    """Translate an MD run name into its directory name."""
    directory = name.lower().replace(" ", "_")
    for character in FORBIDDEN_DIRECTORY_CHARACTERS:
        directory = directory.replace(character, "")
    return directory


def directory_to_md_name(directory: Path | str) -> str:
    """Default MD run name for a directory: its basename with spaces for underscores."""
    return Path(directory).name.replace("_", " ")
