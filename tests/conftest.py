"""
Shared fixtures: in-memory store and project directory trees.
"""

import json
from pathlib import Path

import pytest

from mdloader.store.memory import InMemoryStore

# Sequences long enough to be submitted for annotation
PROTEIN = ["MET", "LYS", "THR", "ALA", "TYR", "ILE", "ALA", "LYS", "GLN", "ARG", "GLN", "ILE"]


def pdb_atom(serial: int, residue: str, chain: str, number: int) -> str:
    return (
        f"ATOM  {serial:5d}  CA  {residue:3s} {chain}{number:4d}    "
        f"{0.0:8.3f}{0.0:8.3f}{0.0:8.3f}  1.00  0.00           C\n"
    )


def write_structure(path: Path, chains: dict[str, list[str]]) -> Path:
    lines = ["REMARK  test structure\n"]
    serial = 1
    for chain, residues in chains.items():
        for number, residue in enumerate(residues, start=1):
            lines.append(pdb_atom(serial, residue, chain, number))
            serial += 1
    lines.append("END\n")
    path.write_text("".join(lines))
    return path


def dump_text(frames: list[list[tuple[float, float, float]]]) -> str:
    """Text in the layout of 'gmx dump -f' for the given frames."""
    lines = ["traj.xtc:", "natoms=   3"]
    for index, atoms in enumerate(frames):
        lines.append(f"traj.xtc frame {index}:")
        lines.append(f"   natoms={len(atoms):10d}  step= {index * 100:10d}  time=  {index:.7e}  prec=      1000")
        lines.append("   x (3x3):")
        for i, (x, y, z) in enumerate(atoms):
            lines.append(f"      x[{i:5d}]={{{x: .5e}, {y: .5e}, {z: .5e}}}")
    return "\n".join(lines) + "\n"


def write_json(path: Path, data) -> Path:
    path.write_text(json.dumps(data))
    return path


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def project_dir(tmp_path):
    """A project directory with two MD runs and one unit of every kind."""
    root = tmp_path / "project"
    root.mkdir()
    write_json(root / "metadata.json", {"NAME": "Test protein", "AUTHORS": "Someone"})
    write_json(root / "topology.json", {"atom_names": ["CA", "CA"], "residue_names": ["ALA", "GLY"]})
    write_json(root / "references.json", [{"uniprot": "P69905", "name": "Hemoglobin alpha"}])
    (root / "mdf.notes.txt").write_text("project notes\n")

    for name, scale in (("replica_1", 1.0), ("replica_2", 2.0)):
        md = root / name
        md.mkdir()
        write_json(md / ".register.json", {})
        write_json(md / "metadata.json", {"TEMP": 300 * scale})
        write_structure(md / "structure.pdb", {"A": PROTEIN, "B": PROTEIN, "C": ["GLY", "SER", "HOH"]})
        (md / "trajectory.dump").write_text(
            dump_text([[(0.1 * scale, 0.2, 0.3), (0.4, 0.5, 0.6), (0.7, 0.8, 0.9)]] * 2)
        )
        write_json(md / "mda.rmsf.json", {"data": [1.0, 2.0, 3.0]})
        (md / "mdf.log.txt").write_text(f"log of {name}\n")
    return root
