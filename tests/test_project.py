"""
Tests for the load operations of a project handle.
"""

import struct

import pytest
import pytest_asyncio

from conftest import dump_text
from mdloader.exceptions import StoreError, ValidationError
from mdloader.load.forestall import ConflictResolver, StaticDecisionProvider
from mdloader.load.project import ProjectHandle
from mdloader.load.synchronizer import new_md_document, new_project_document
from mdloader.load.types import Decision
from mdloader.store.base import ANALYSES, CHAINS, REFERENCES, TOPOLOGIES


@pytest_asyncio.fixture
async def project_id(store):
    project_id = await store.create_project(new_project_document())
    await store.push_project_item(project_id, "mds", new_md_document("replica 1"))
    return project_id


def make_handle(store, project_id, **resolver):
    resolver.setdefault("provider", StaticDecisionProvider(Decision.SKIP))
    return ProjectHandle(store, project_id, ConflictResolver(**resolver))


class TestMetadata:
    """Tests for metadata merging."""

    @pytest.mark.asyncio
    async def test_first_load_sets_metadata(self, store, project_id):
        handle = make_handle(store, project_id)
        assert await handle.update_metadata({"NAME": "test"}) is True
        assert (await handle.document())["metadata"] == {"NAME": "test"}

    @pytest.mark.asyncio
    async def test_md_metadata(self, store, project_id):
        handle = make_handle(store, project_id)
        await handle.update_metadata({"TEMP": 300}, md=0)
        assert (await handle.document())["mds"][0]["metadata"] == {"TEMP": 300}

    @pytest.mark.asyncio
    async def test_unchanged_metadata_is_not_written(self, store, project_id):
        handle = make_handle(store, project_id)
        await handle.update_metadata({"NAME": "test"})
        writes = store.writes
        assert await handle.update_metadata({"NAME": "test"}) is False
        assert store.writes == writes

    @pytest.mark.asyncio
    async def test_conflicting_field_overwritten(self, store, project_id):
        await make_handle(store, project_id).update_metadata({"NAME": "old", "KEEP": 1})
        handle = make_handle(store, project_id, overwrite=True)
        assert await handle.update_metadata({"NAME": "new", "EXTRA": 2}) is True
        assert (await handle.document())["metadata"] == {"NAME": "new", "KEEP": 1, "EXTRA": 2}

    @pytest.mark.asyncio
    async def test_conflicting_field_conserved(self, store, project_id):
        await make_handle(store, project_id).update_metadata({"NAME": "old"})
        handle = make_handle(store, project_id, conserve=True)
        assert await handle.update_metadata({"NAME": "new"}) is False
        assert (await handle.document())["metadata"] == {"NAME": "old"}


class TestReferencesAndTopology:
    """Tests for references and topology."""

    @pytest.mark.asyncio
    async def test_references_inserted_once(self, store, project_id):
        handle = make_handle(store, project_id)
        references = [{"uniprot": "P69905"}, {"uniprot": "P68871"}]
        assert await handle.load_references(references) == ["P69905", "P68871"]
        assert await handle.load_references(references) == []
        assert len(store.documents(REFERENCES)) == 2

    @pytest.mark.asyncio
    async def test_reference_without_uniprot(self, store, project_id):
        with pytest.raises(ValidationError, match="uniprot"):
            await make_handle(store, project_id).load_references([{"name": "nameless"}])

    @pytest.mark.asyncio
    async def test_identical_topology_skipped(self, store, project_id):
        handle = make_handle(store, project_id)
        assert await handle.load_topology({"atom_names": ["CA"]}) is True
        assert await handle.load_topology({"atom_names": ["CA"]}) is False
        assert len(store.documents(TOPOLOGIES)) == 1

    @pytest.mark.asyncio
    async def test_topology_replaced(self, store, project_id):
        await make_handle(store, project_id).load_topology({"atom_names": ["CA"]})
        handle = make_handle(store, project_id, overwrite=True)
        assert await handle.load_topology({"atom_names": ["N", "CA"]}) is True
        topologies = store.documents(TOPOLOGIES)
        assert len(topologies) == 1
        assert topologies[0]["atom_names"] == ["N", "CA"]
        assert topologies[0]["project"] == project_id

    @pytest.mark.asyncio
    async def test_provider_asked_for_different_topology(self, store, project_id):
        await make_handle(store, project_id).load_topology({"atom_names": ["CA"]})
        provider = StaticDecisionProvider(Decision.SKIP)
        handle = make_handle(store, project_id, provider=provider)
        assert await handle.load_topology({"atom_names": ["N"]}) is False
        assert len(provider.conflicts) == 1
        assert provider.conflicts[0].new["atom_names"] == ["N"]


class TestFiles:
    """Tests for file units."""

    @pytest.mark.asyncio
    async def test_load_file(self, store, project_id, tmp_path):
        source = tmp_path / "structure.pdb"
        source.write_bytes(b"ATOM\n" * 1000)
        handle = make_handle(store, project_id)
        blob_id = await handle.load_file("structure.pdb", 0, source)

        assert store.read_blob(blob_id) == source.read_bytes()
        blob = await store.find_blob(blob_id)
        assert blob["contentType"] == "chemical/x-pdb"
        assert blob["metadata"] == {"project": project_id, "md": 0}
        assert (await handle.document())["mds"][0]["files"] == [{"name": "structure.pdb", "id": blob_id}]

    @pytest.mark.asyncio
    async def test_forestall_without_existing_file(self, store, project_id):
        assert await make_handle(store, project_id).forestall_file("notes.txt") is True

    @pytest.mark.asyncio
    async def test_replacing_file_deletes_previous_blob(self, store, project_id, tmp_path):
        source = tmp_path / "notes.txt"
        source.write_text("first")
        first = await make_handle(store, project_id).load_file("notes.txt", None, source)

        handle = make_handle(store, project_id, overwrite=True)
        assert await handle.forestall_file("notes.txt") is True
        assert await store.find_blob(first) is None
        source.write_text("second")
        second = await handle.load_file("notes.txt", None, source)

        assert (await handle.document())["files"] == [{"name": "notes.txt", "id": second}]
        assert store.blob_count == 1

    @pytest.mark.asyncio
    async def test_existing_file_conserved(self, store, project_id, tmp_path):
        source = tmp_path / "notes.txt"
        source.write_text("first")
        await make_handle(store, project_id).load_file("notes.txt", None, source)
        assert await make_handle(store, project_id, conserve=True).forestall_file("notes.txt") is False
        assert store.blob_count == 1

    @pytest.mark.asyncio
    async def test_delete_missing_file(self, store, project_id):
        with pytest.raises(StoreError, match="not loaded"):
            await make_handle(store, project_id).delete_file("absent.txt")


class TestTrajectory:
    """Tests for trajectory re-encoding."""

    @pytest.mark.asyncio
    async def test_main_trajectory(self, store, project_id, tmp_path):
        source = tmp_path / "trajectory.dump"
        source.write_text(dump_text([[(0.1, 0.2, 0.3), (1.0, 2.0, 3.0)], [(0.5, 0.5, 0.5), (0.0, 0.0, -1.0)]]))
        handle = make_handle(store, project_id)
        metadata = await handle.load_trajectory("trajectory.bin", 0, source, main=True)

        assert metadata == {"project": project_id, "md": 0, "frames": 2, "atoms": 2}
        document = await handle.document()
        record = document["mds"][0]["files"][0]
        assert record["name"] == "trajectory.bin"
        assert (await store.find_blob(record["id"]))["metadata"]["frames"] == 2
        assert document["mds"][0]["frames"] == 2
        assert document["mds"][0]["atoms"] == 2

        data = store.read_blob(record["id"])
        assert len(data) == 2 * 2 * 12
        assert struct.unpack("<3f", data[12:24]) == pytest.approx((10.0, 20.0, 30.0))
        assert struct.unpack("<3f", data[36:48]) == pytest.approx((0.0, 0.0, -10.0))

    @pytest.mark.asyncio
    async def test_additional_trajectory_leaves_md_counts(self, store, project_id, tmp_path):
        source = tmp_path / "mdt.short.dump"
        source.write_text(dump_text([[(0.1, 0.2, 0.3)]]))
        handle = make_handle(store, project_id)
        await handle.load_trajectory("short.bin", 0, source)
        assert "frames" not in (await handle.document())["mds"][0]

    @pytest.mark.asyncio
    async def test_binary_trajectory_without_gromacs(self, store, project_id, tmp_path):
        source = tmp_path / "trajectory.xtc"
        source.write_bytes(b"\x00" * 16)
        with pytest.raises(ValidationError, match="gromacs"):
            await make_handle(store, project_id).load_trajectory("trajectory.bin", 0, source)
        assert store.blob_count == 0


class TestAnalyses:
    """Tests for analysis units."""

    @pytest.mark.asyncio
    async def test_load_and_replace(self, store, project_id):
        handle = make_handle(store, project_id, overwrite=True)
        assert await handle.forestall_analysis("fluctuation", 0) is True
        await handle.load_analysis("fluctuation", 0, {"data": [1]})
        assert await handle.forestall_analysis("fluctuation", 0) is True
        analysis_id = await handle.load_analysis("fluctuation", 0, {"data": [2]})

        analyses = store.documents(ANALYSES)
        assert len(analyses) == 1
        assert analyses[0]["value"] == {"data": [2]}
        assert (await handle.document())["mds"][0]["analyses"] == [{"name": "fluctuation", "id": analysis_id}]

    @pytest.mark.asyncio
    async def test_same_name_in_different_scopes(self, store, project_id):
        handle = make_handle(store, project_id, conserve=True)
        await handle.load_analysis("rgyr", 0, {"data": []})
        assert await handle.forestall_analysis("rgyr", None) is True
        assert await handle.forestall_analysis("rgyr", 0) is False


class TestChainsAndPublication:
    """Tests for chains and the published flag."""

    @pytest.mark.asyncio
    async def test_grouped_chain_key_stores_each_chain(self, store, project_id):
        handle = make_handle(store, project_id)
        assert await handle.load_chains("A, B", {"sequence": "MKT"}) == ["A", "B"]
        chains = store.documents(CHAINS)
        assert [c["name"] for c in chains] == ["A", "B"]
        assert all(c["sequence"] == "MKT" and c["project"] == project_id for c in chains)
        assert (await handle.document())["chains"] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_chains_replaced_all_together(self, store, project_id):
        handle = make_handle(store, project_id, overwrite=True)
        assert await handle.forestall_chains() is True
        await handle.load_chains("A, B", {"sequence": "MKT"})
        assert await handle.forestall_chains() is True
        assert store.documents(CHAINS) == []
        assert (await handle.document())["chains"] == []

    @pytest.mark.asyncio
    async def test_chains_conserved(self, store, project_id):
        await make_handle(store, project_id).load_chains("A", {"sequence": "MKT"})
        assert await make_handle(store, project_id, conserve=True).forestall_chains() is False

    @pytest.mark.asyncio
    async def test_set_published(self, store, project_id):
        handle = make_handle(store, project_id)
        assert await handle.set_published(True) is True
        assert await handle.set_published(True) is False
        assert (await handle.document())["published"] is True

    @pytest.mark.asyncio
    async def test_missing_project(self, store):
        with pytest.raises(StoreError, match="does not exist"):
            await make_handle(store, "0123456789abcdef01234567").document()
