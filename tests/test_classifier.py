"""
Tests for directory classification and path filtering.
"""

from mdloader.load.classifier import PathFilter, classify_md, classify_project, find_md_directories


class TestClassifyProject:
    """Tests for project-level classification."""

    def test_roles(self, project_dir):
        files = classify_project(project_dir)
        assert files.metadata.name == "metadata.json"
        assert files.topology.name == "topology.json"
        assert files.references.name == "references.json"
        assert files.inputs is None
        assert [p.name for p in files.uploadables] == ["mdf.notes.txt"]

    def test_topology_formats_and_inputs(self, tmp_path):
        for name in ("inputs.yaml", "topology.prmtop", "ligand.itp", "populations.json", "readme.md"):
            (tmp_path / name).write_text("x")
        files = classify_project(tmp_path)
        assert files.inputs.name == "inputs.yaml"
        assert files.topology is None
        assert sorted(p.name for p in files.uploadables) == ["ligand.itp", "populations.json", "topology.prmtop"]

    def test_directories_are_ignored(self, project_dir):
        files = classify_project(project_dir)
        assert all(p.is_file() for p in files.uploadables)


class TestClassifyMd:
    """Tests for MD directory classification."""

    def test_roles(self, project_dir):
        files = classify_md(project_dir / "replica_1")
        assert files.metadata.name == "metadata.json"
        assert files.structure.name == "structure.pdb"
        assert files.main_trajectory.name == "trajectory.dump"
        assert files.trajectories == []
        assert [p.name for p in files.analyses] == ["mda.rmsf.json"]
        assert [p.name for p in files.uploadables] == ["mdf.log.txt", "structure.pdb"]

    def test_additional_trajectories_follow_main(self, tmp_path):
        for name in ("trajectory.xtc", "mdt.imaged.xtc", "mdt.short.dump"):
            (tmp_path / name).write_text("x")
        files = classify_md(tmp_path)
        assert [p.name for p in files.all_trajectories] == ["trajectory.xtc", "mdt.imaged.xtc", "mdt.short.dump"]

    def test_no_main_trajectory(self, tmp_path):
        (tmp_path / "mdt.extra.xtc").write_text("x")
        files = classify_md(tmp_path)
        assert files.main_trajectory is None
        assert [p.name for p in files.all_trajectories] == ["mdt.extra.xtc"]


class TestFindMdDirectories:
    """Tests for MD directory discovery."""

    def test_register_file_marks_md_directories(self, project_dir):
        (project_dir / "scratch").mkdir()
        found = find_md_directories(project_dir)
        assert [p.name for p in found] == ["replica_1", "replica_2"]


class TestPathFilter:
    """Tests for include/exclude filtering."""

    def test_no_patterns_allows_everything(self, project_dir):
        assert PathFilter(project_dir).allows(project_dir / "mdf.notes.txt")

    def test_include_by_filename(self, project_dir):
        path_filter = PathFilter(project_dir, include=["*.json"])
        assert path_filter.allows(project_dir / "metadata.json")
        assert not path_filter.allows(project_dir / "mdf.notes.txt")

    def test_exclude_by_relative_path(self, project_dir):
        path_filter = PathFilter(project_dir, exclude=["replica_2/*"])
        assert path_filter.allows(project_dir / "replica_1" / "mdf.log.txt")
        assert not path_filter.allows(project_dir / "replica_2" / "mdf.log.txt")

    def test_exclude_by_absolute_path(self, project_dir):
        target = project_dir / "replica_1" / "structure.pdb"
        path_filter = PathFilter(project_dir, exclude=[str(target)])
        assert not path_filter.allows(target)
        assert path_filter.allows(project_dir / "replica_2" / "structure.pdb")

    def test_inputs_file_is_never_filtered(self, tmp_path):
        path_filter = PathFilter(tmp_path, include=["*.pdb"], exclude=["inputs.*"])
        assert path_filter.allows(tmp_path / "inputs.yaml")
