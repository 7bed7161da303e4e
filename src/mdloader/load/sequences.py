"""
Chain sequences from a PDB structure.

Residues are read from ATOM/HETATM records in file order and translated to
one-letter codes. Chains whose sequence is identical are grouped under a
single key ("A, B") so each distinct sequence is annotated only once.
"""

from __future__ import annotations

from pathlib import Path

import aiofiles

from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.sequences")

RESIDUE_CODES = {
    "ALA": "A", "ARG": "R", "ASN": "N", "ASP": "D", "CYS": "C",
    "GLN": "Q", "GLU": "E", "GLY": "G", "HIS": "H", "ILE": "I",
    "LEU": "L", "LYS": "K", "MET": "M", "PHE": "F", "PRO": "P",
    "SER": "S", "THR": "T", "TRP": "W", "TYR": "Y", "VAL": "V",
    # Common force-field variants
    "HID": "H", "HIE": "H", "HIP": "H", "HSD": "H", "HSE": "H", "HSP": "H",
    "CYX": "C", "CYM": "C", "ASH": "D", "GLH": "E", "LYN": "K",
    "SEC": "U", "PYL": "O", "MSE": "M",
}

UNKNOWN = "X"

# Separator of chain names sharing a sequence
CHAIN_SEPARATOR = ", "


def chain_sequences(lines) -> dict[str, str]:
    """
    One-letter sequence of every named chain, in order of appearance.

    Chains without a name and chains made only of unknown residues (ions,
    waters, ligands) are dropped.
    """
    sequences: dict[str, list[str]] = {}
    last_residue: dict[str, tuple[str, str, str]] = {}
    for line in lines:
        if not line.startswith(("ATOM", "HETATM")):
            continue
        chain = line[21:22].strip()
        if not chain:
            continue
        residue_name = line[17:20].strip()
        residue_key = (line[22:26], line[26:27], residue_name)
        if last_residue.get(chain) == residue_key:
            continue
        last_residue[chain] = residue_key
        sequences.setdefault(chain, []).append(RESIDUE_CODES.get(residue_name, UNKNOWN))

    result = {}
    for chain, codes in sequences.items():
        sequence = "".join(codes)
        if sequence.strip(UNKNOWN):
            result[chain] = sequence
    return result


async def read_chain_sequences(path: Path) -> dict[str, str]:
    async with aiofiles.open(path, encoding="utf-8", errors="replace") as f:
        lines = await f.readlines()
    sequences = chain_sequences(lines)
    logger.debug(f"Read {len(sequences)} chain sequences from {path}")
    return sequences


def group_identical(sequences: dict[str, str]) -> dict[str, str]:
    """Group chains with identical sequences: {"A": s, "B": s} -> {"A, B": s}."""
    by_sequence: dict[str, list[str]] = {}
    for chain, sequence in sequences.items():
        by_sequence.setdefault(sequence, []).append(chain)
    return {CHAIN_SEPARATOR.join(chains): sequence for sequence, chains in by_sequence.items()}


def split_chain_key(key: str) -> list[str]:
    """Chain names carried by a grouped key."""
    return [name.strip() for name in key.split(",") if name.strip()]
