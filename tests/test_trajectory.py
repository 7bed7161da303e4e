"""
Tests for the trajectory codec and dump sources.
"""

import struct
import sys
from unittest.mock import patch

import pytest

from conftest import dump_text
from mdloader.exceptions import TrajectoryDecodeError, ValidationError
from mdloader.load.trajectory import (
    BYTES_PER_ATOM,
    COORDINATES_PATTERN,
    TrajectoryCodec,
    dump_lines,
    file_lines,
    find_gromacs_command,
    needs_gromacs,
    trajectory_lines,
)


async def lines_of(text: str):
    for line in text.splitlines():
        yield line


async def encode(codec: TrajectoryCodec, text: str) -> bytes:
    return b"".join([chunk async for chunk in codec.encode(lines_of(text))])


class TestCoordinatesPattern:
    """Tests for the coordinate record pattern."""

    def test_matches_dump_line(self):
        match = COORDINATES_PATTERN.match("      x[    0]={ 6.40500e+00,  7.53800e+00, -9.81800e-01}")
        assert match.groups() == ("6.40500e+00", "7.53800e+00", "-9.81800e-01")

    @pytest.mark.parametrize(
        "line",
        ["traj.xtc frame 0:", "   x (3x3):", "   box (3x3):", "", "# comment", "      v[    0]={ 1.0, 2.0, 3.0}"],
    )
    def test_ignores_other_lines(self, line):
        assert COORDINATES_PATTERN.match(line) is None


class TestTrajectoryCodec:
    """Tests for TrajectoryCodec.encode."""

    @pytest.mark.asyncio
    async def test_scaled_little_endian_floats(self):
        codec = TrajectoryCodec()
        data = await encode(codec, dump_text([[(1.0, 2.0, 3.0), (1.0, 2.0, 3.0), (1.0, 2.0, 3.0)]]))
        assert len(data) == 3 * BYTES_PER_ATOM
        assert struct.unpack("<9f", data) == (10.0, 20.0, 30.0) * 3
        assert codec.frames == 1
        assert codec.atoms_written == 3
        assert codec.atoms_per_frame == 3

    @pytest.mark.asyncio
    async def test_headers_and_comments_ignored(self):
        text = dump_text([[(1.0, 2.0, 3.0)]])
        noisy = "# a comment\n\n" + text.replace("   x (3x3):", "   box (3x3):\n      box[    0]={ 5.0, 0.0, 0.0}")
        codec = TrajectoryCodec()
        data = await encode(codec, noisy)
        assert struct.unpack("<3f", data) == (10.0, 20.0, 30.0)
        assert codec.frames == 1
        assert codec.atoms_written == 1

    @pytest.mark.asyncio
    async def test_frame_major_order(self):
        frames = [[(0.1, 0.0, 0.0), (0.2, 0.0, 0.0)], [(0.3, 0.0, 0.0), (0.4, 0.0, 0.0)]]
        codec = TrajectoryCodec()
        data = await encode(codec, dump_text(frames))
        xs = struct.unpack("<12f", data)[::3]
        assert xs == pytest.approx((1.0, 2.0, 3.0, 4.0))
        assert codec.frames == 2
        assert codec.atoms_per_frame == 2
        assert codec.bytes_written == len(data)

    @pytest.mark.asyncio
    async def test_batches_flushed_at_size_and_frames(self):
        frames = [[(1.0, 1.0, 1.0)] * 5, [(2.0, 2.0, 2.0)] * 5]
        codec = TrajectoryCodec(batch_atoms=2)
        chunks = [chunk async for chunk in codec.encode(lines_of(dump_text(frames)))]
        # 5 atoms per frame in batches of 2: 2 + 2 + 1, twice
        assert [len(c) // BYTES_PER_ATOM for c in chunks] == [2, 2, 1, 2, 2, 1]

    @pytest.mark.asyncio
    async def test_frame_callback(self):
        seen = []
        codec = TrajectoryCodec(on_frame=seen.append)
        await encode(codec, dump_text([[(1.0, 2.0, 3.0)]] * 3))
        assert seen == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_empty_input(self):
        codec = TrajectoryCodec()
        assert await encode(codec, "") == b""
        assert codec.frames == 0
        assert codec.atoms_per_frame is None

    def test_batch_atoms_validated(self):
        with pytest.raises(ValueError):
            TrajectoryCodec(batch_atoms=0)


class TestSources:
    """Tests for the text sources feeding the codec."""

    def test_needs_gromacs(self, tmp_path):
        assert needs_gromacs(tmp_path / "trajectory.xtc") is True
        assert needs_gromacs(tmp_path / "trajectory.dump") is False

    @pytest.mark.asyncio
    async def test_file_lines(self, tmp_path):
        path = tmp_path / "trajectory.dump"
        path.write_text("a\r\nb\nc")
        assert [line async for line in file_lines(path)] == ["a", "b", "c"]

    def test_binary_trajectory_requires_command(self, tmp_path):
        with pytest.raises(ValidationError, match="gromacs"):
            trajectory_lines(tmp_path / "trajectory.xtc")

    @pytest.mark.asyncio
    async def test_dump_lines_runs_command(self, tmp_path):
        script = tmp_path / "fake_gmx.py"
        script.write_text(
            "import sys\n"
            "assert sys.argv[1:3] == ['dump', '-f']\n"
            "print(' frame 0:')\n"
            "print('      x[    0]={ 1.00000e+00,  2.00000e+00,  3.00000e+00}')\n"
            "print('gromacs says hi', file=sys.stderr)\n"
        )
        command = tmp_path / "gmx"
        command.write_text(f"#!/bin/sh\nexec {sys.executable} {script} \"$@\"\n")
        command.chmod(0o755)

        codec = TrajectoryCodec()
        data = b"".join([c async for c in codec.encode(dump_lines(tmp_path / "t.xtc", str(command)))])
        assert struct.unpack("<3f", data) == (10.0, 20.0, 30.0)

    @pytest.mark.asyncio
    async def test_dump_failure(self, tmp_path):
        command = tmp_path / "gmx"
        command.write_text("#!/bin/sh\necho 'File input/output error' >&2\nexit 1\n")
        command.chmod(0o755)
        with pytest.raises(TrajectoryDecodeError) as exc_info:
            async for _ in dump_lines(tmp_path / "t.xtc", str(command)):
                pass
        assert exc_info.value.returncode == 1
        assert "input/output error" in exc_info.value.details["stderr"]


class TestFindGromacsCommand:
    """Tests for gromacs executable detection."""

    def test_first_found(self):
        with patch("mdloader.load.trajectory.shutil.which", side_effect=lambda c: "/bin/gmx_mpi" if c == "gmx_mpi" else None):
            assert find_gromacs_command() == "gmx_mpi"

    def test_explicit_command(self):
        with patch("mdloader.load.trajectory.shutil.which", return_value="/opt/gmx"):
            assert find_gromacs_command("/opt/gmx") == "/opt/gmx"

    def test_none_found(self):
        with patch("mdloader.load.trajectory.shutil.which", return_value=None):
            with pytest.raises(ValidationError, match="Gromacs"):
                find_gromacs_command()
