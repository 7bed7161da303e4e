"""
Tests for fail-soft document loading and naming rules.
"""

from mdloader.load.files import (
    content_type,
    directory_to_md_name,
    file_load_name,
    load_json,
    load_yaml,
    load_yaml_or_json,
    md_name_to_directory,
    name_analysis,
    trajectory_load_name,
)


class TestLoaders:
    """Tests for the fail-soft loaders."""

    def test_json(self, tmp_path):
        path = tmp_path / "doc.json"
        path.write_text('{"a": 1}')
        assert load_json(path) == {"a": 1}

    def test_missing_file_is_none(self, tmp_path, caplog):
        assert load_json(tmp_path / "absent.json") is None
        assert load_yaml(tmp_path / "absent.yaml") is None
        assert caplog.text == ""

    def test_malformed_json_logs_error(self, tmp_path, caplog):
        path = tmp_path / "doc.json"
        path.write_text("{not json")
        assert load_json(path) is None
        assert "Cannot parse JSON file" in caplog.text

    def test_malformed_yaml_logs_error(self, tmp_path, caplog):
        path = tmp_path / "doc.yaml"
        path.write_text("a: [1, 2\n")
        assert load_yaml(path) is None
        assert "Cannot parse YAML file" in caplog.text

    def test_parser_by_extension(self, tmp_path):
        (tmp_path / "inputs.yml").write_text("name: test\nmds:\n  - name: replica 1\n")
        (tmp_path / "inputs.json").write_text('{"name": "test"}')
        assert load_yaml_or_json(tmp_path / "inputs.yml")["mds"] == [{"name": "replica 1"}]
        assert load_yaml_or_json(tmp_path / "inputs.json") == {"name": "test"}

    def test_unsupported_extension(self, tmp_path, caplog):
        path = tmp_path / "inputs.toml"
        path.write_text("name = 'x'")
        assert load_yaml_or_json(path) is None
        assert "unsupported extension" in caplog.text


class TestNaming:
    """Tests for the naming rules."""

    def test_analysis_names(self):
        assert name_analysis("mda.rmsf.json") == "fluctuation"
        assert name_analysis("mda.rmsd_perres.json") == "rmsd-perres"
        assert name_analysis("mda.unknown.json") is None
        assert name_analysis("rmsf.json") is None

    def test_file_load_name(self):
        assert file_load_name("mdf.notes.txt") == "notes.txt"
        assert file_load_name("topology.tpr") == "topology.tpr"

    def test_trajectory_load_name(self):
        assert trajectory_load_name("trajectory.xtc") == "trajectory.bin"
        assert trajectory_load_name("mdt.imaged.xtc") == "imaged.bin"
        assert trajectory_load_name("trajectory.dump") == "trajectory.bin"

    def test_content_type(self):
        assert content_type("structure.pdb") == "chemical/x-pdb"
        assert content_type("trajectory.bin") == "application/octet-stream"

    def test_md_directory_names(self):
        assert md_name_to_directory("Replica 1, 300K.") == "replica_1_300k"
        assert directory_to_md_name("/data/project/replica_1") == "replica 1"
