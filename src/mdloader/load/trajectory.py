"""
Trajectory codec.

Turns the textual dump of a trajectory into the flat binary coordinate
format: three little-endian float32 per atom, frame after frame, scaled from
nanometers to angstroms, with no header or delimiter. Frame and atom counts
are not embedded and travel as blob metadata.

Two sources of text are supported: the output of ``gmx dump -f <file>``
for binary trajectories, and pre-dumped text files read line by line.
"""

from __future__ import annotations

import asyncio
import re
import shutil
import struct
from collections.abc import AsyncIterable, AsyncIterator, Callable
from pathlib import Path

import aiofiles

from mdloader.exceptions import TrajectoryDecodeError, ValidationError
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.trajectory")

# '      x[    0]={ 6.40500e+00,  7.53800e+00,  9.81800e+00}'
COORDINATES_PATTERN = re.compile(
    r"^\s*x\[\s*\d*]={\s*(-?\d+\.\d+e[+-]\d{2}),\s*(-?\d+\.\d+e[+-]\d{2}),\s*(-?\d+\.\d+e[+-]\d{2})\s*}\s*$"
)
FRAME_PATTERN = re.compile(r" frame \d+:$")

UNIT_CONVERSION_SCALE = 10
N_COORDINATES = 3
ATOM_STRUCT = struct.Struct("<3f")
BYTES_PER_ATOM = ATOM_STRUCT.size

GROMACS_COMMANDS = ("gmx", "gmx_mpi")

# Pre-dumped trajectories are read as text, everything else goes through gmx dump
TEXT_SUFFIXES = (".dump",)


def find_gromacs_command(command: str | None = None) -> str:
    """Return the given gromacs command, or the first usual one found on PATH."""
    candidates = (command,) if command else GROMACS_COMMANDS
    for candidate in candidates:
        if shutil.which(candidate):
            return candidate
    raise ValidationError(
        "Gromacs is not installed or its executable is not in $PATH",
        details={"tried": list(candidates)},
    )


def needs_gromacs(path: Path) -> bool:
    return Path(path).suffix.lower() not in TEXT_SUFFIXES


async def file_lines(path: Path) -> AsyncIterator[str]:
    """Lines of a pre-dumped trajectory text file, without line endings."""
    async with aiofiles.open(path, "r", encoding="utf-8", errors="replace") as f:
        while True:
            lines = await f.readlines(1 << 20)
            if not lines:
                break
            for line in lines:
                yield line.rstrip("\r\n")


async def dump_lines(path: Path, command: str) -> AsyncIterator[str]:
    """
    Lines printed by ``<command> dump -f <path>``.

    The pipe is consumed only as fast as the lines are, so the dump process
    stalls instead of filling memory when the upload is slower. A non-zero
    exit raises TrajectoryDecodeError; an abandoned iteration kills the
    process.
    """
    process = await asyncio.create_subprocess_exec(
        command,
        "dump",
        "-f",
        str(path),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    # gmx is chatty on stderr; drain it concurrently so it never blocks the pipe
    stderr_task = asyncio.create_task(process.stderr.read())
    try:
        while True:
            line = await process.stdout.readline()
            if not line:
                break
            yield line.decode("utf-8", errors="replace").rstrip("\r\n")
        returncode = await process.wait()
        stderr = (await stderr_task).decode("utf-8", errors="replace")
        if returncode != 0:
            raise TrajectoryDecodeError(str(path), returncode, stderr)
    finally:
        if process.returncode is None:
            process.kill()
            await process.wait()
        if not stderr_task.done():
            stderr_task.cancel()


def trajectory_lines(path: Path, gromacs_command: str | None = None) -> AsyncIterator[str]:
    """Text lines of a trajectory file, dumping binary formats through gromacs."""
    if not needs_gromacs(path):
        return file_lines(path)
    if not gromacs_command:
        raise ValidationError(f"A gromacs command is required to read {path}")
    return dump_lines(path, gromacs_command)


class TrajectoryCodec:
    """
    Encodes dumped coordinate lines into binary coordinates.

    Atoms are packed into a batch buffer flushed every ``batch_atoms`` atoms
    and at every frame boundary. Counts are available once encode() has been
    fully consumed.

    Args:
        batch_atoms: Atoms per emitted buffer
        on_frame: Called once per frame marker
    """

    def __init__(self, batch_atoms: int = 1000, on_frame: Callable[[int], None] | None = None) -> None:
        if batch_atoms < 1:
            raise ValueError("batch_atoms must be >= 1")
        self.batch_atoms = batch_atoms
        self.on_frame = on_frame
        self.frames = 0
        self.atoms_written = 0

    @property
    def bytes_written(self) -> int:
        return self.atoms_written * BYTES_PER_ATOM

    @property
    def atoms_per_frame(self) -> int | None:
        if not self.frames:
            return None
        return self.atoms_written // self.frames

    async def encode(self, lines: AsyncIterable[str]) -> AsyncIterator[bytes]:
        """Yield binary coordinate buffers for the given text lines."""
        batch = bytearray(BYTES_PER_ATOM * self.batch_atoms)
        offset = 0
        async for line in lines:
            match = COORDINATES_PATTERN.match(line)
            if match is None:
                if FRAME_PATTERN.search(line):
                    if offset:
                        yield bytes(batch[:offset])
                        offset = 0
                    self.frames += 1
                    if self.on_frame is not None:
                        self.on_frame(self.frames)
                continue
            x, y, z = (float(value) * UNIT_CONVERSION_SCALE for value in match.groups())
            ATOM_STRUCT.pack_into(batch, offset, x, y, z)
            offset += BYTES_PER_ATOM
            self.atoms_written += 1
            if offset == len(batch):
                yield bytes(batch)
                offset = 0
        if offset:
            yield bytes(batch[:offset])
