"""
Tests for CLI commands.

Uses typer's CliRunner against an in-memory store configuration.
"""

import pytest
from typer.testing import CliRunner

from mdloader.cli.main import app
from mdloader.load.trace import TRACE_FILENAME

runner = CliRunner()


@pytest.fixture
def config_dir(tmp_path):
    directory = tmp_path / "config"
    directory.mkdir()
    (directory / "config.yaml").write_text(
        "store:\n  type: memory\nlogging:\n  level: INFO\n  console_enabled: false\n"
    )
    return directory


class TestVersion:
    """Tests for --version flag."""

    def test_version_flag(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "mdloader version" in result.output


class TestHelp:
    """Tests for help output."""

    def test_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "mdloader" in result.output.lower()

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "load" in result.output

    def test_load_help(self):
        result = runner.invoke(app, ["load", "--help"])
        assert result.exit_code == 0
        assert "--conserve" in result.output

    def test_abort_help(self):
        result = runner.invoke(app, ["abort", "--help"])
        assert result.exit_code == 0


class TestLoad:
    """Tests for the load command."""

    def test_dry_run(self, config_dir, project_dir):
        result = runner.invoke(
            app, ["load", "--dry-run", "--skip-chains", "--config-dir", str(config_dir), str(project_dir)]
        )
        assert result.exit_code == 0, result.output
        assert "Project: " in result.output
        assert "Loaded: 10  Skipped: 0  Chains: 0" in result.output
        assert not (project_dir / TRACE_FILENAME).exists()

    def test_conflicting_flags(self, config_dir, project_dir):
        result = runner.invoke(
            app, ["load", "--conserve", "--overwrite", "--config-dir", str(config_dir), str(project_dir)]
        )
        assert result.exit_code == 1
        assert "mutually exclusive" in result.output

    def test_unknown_project(self, config_dir, project_dir):
        result = runner.invoke(
            app, ["load", "--project", "MCNS00001", "--config-dir", str(config_dir), str(project_dir)]
        )
        assert result.exit_code == 1
        assert "MCNS00001" in result.output


class TestAbort:
    """Tests for the abort command."""

    def test_unknown_project(self, config_dir):
        result = runner.invoke(app, ["abort", "--config-dir", str(config_dir), "MCNS00001"])
        assert result.exit_code == 1
        assert "Error:" in result.output
