"""
Project handle: the load operations of one remote project.

Every operation reads what it needs from the store and writes back with a
targeted update. Loads that may collide with existing remote units go
through the conflict resolver first ("forestall"), which deletes the
existing unit when it is to be replaced.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from mdloader.config.settings import LoaderSettings
from mdloader.exceptions import StoreError, UploadError, ValidationError
from mdloader.load.files import content_type
from mdloader.load.forestall import ConflictResolver
from mdloader.load.sequences import split_chain_key
from mdloader.load.trajectory import TrajectoryCodec, trajectory_lines
from mdloader.load.types import UnitIdentity
from mdloader.load.uploader import StreamingUploader, read_file_chunks
from mdloader.store.base import RemoteStore
from mdloader.utils.display import TransferProgress
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.project")


def _lookup(document: dict, path: str) -> Any:
    node: Any = document
    for step in path.split("."):
        if isinstance(node, list):
            index = int(step)
            node = node[index] if index < len(node) else None
        elif isinstance(node, dict):
            node = node.get(step)
        else:
            return None
        if node is None:
            return None
    return node


def _scope_path(md: int | None, field: str) -> str:
    return field if md is None else f"mds.{md}.{field}"


class ProjectHandle:
    """
    Load operations bound to one remote project.

    Args:
        store: Remote store owning the project
        project_id: Project id
        resolver: Conflict resolver gating every load
        settings: Loader settings (chunk sizes, batch sizes)
        uploader: Streaming uploader (default: built from settings)
        progress: Transfer progress display (default: disabled)
    """

    def __init__(
        self,
        store: RemoteStore,
        project_id: str,
        resolver: ConflictResolver,
        settings: LoaderSettings | None = None,
        uploader: StreamingUploader | None = None,
        progress: TransferProgress | None = None,
    ) -> None:
        self.store = store
        self.project_id = project_id
        self.resolver = resolver
        self.settings = settings or LoaderSettings()
        self.uploader = uploader or StreamingUploader(queue_size=self.settings.upload.queue_size)
        self.progress = progress or TransferProgress(enabled=False)

    async def document(self) -> dict:
        """Current remote project document."""
        project = await self.store.find_project(project_id=self.project_id)
        if project is None:
            raise StoreError(f"Project {self.project_id} does not exist", details={"project": self.project_id})
        return project

    async def _records(self, md: int | None, field: str) -> list[dict]:
        return _lookup(await self.document(), _scope_path(md, field)) or []

    async def _find_record(self, md: int | None, field: str, name: str) -> dict | None:
        return next((r for r in await self._records(md, field) if r.get("name") == name), None)

    # --- metadata ------------------------------------------------------------

    async def update_metadata(self, metadata: dict[str, Any], md: int | None = None) -> bool:
        """Merge metadata into the project (or MD run) metadata. Returns True if it changed."""
        path = _scope_path(md, "metadata")
        previous = _lookup(await self.document(), path)
        scope = UnitIdentity("metadata", "metadata", md).scope
        if not previous:
            if not metadata:
                return False
            await self.store.set_project_fields(self.project_id, {path: metadata})
            logger.info(f"Loaded {scope} metadata ({len(metadata)} fields)")
            return True
        changed = await self.resolver.merge_metadata(previous, metadata, md)
        if not changed:
            logger.info(f"{scope.capitalize()} metadata is already up to date")
            return False
        await self.store.set_project_fields(self.project_id, {path: previous})
        logger.info(f"Updated {scope} metadata")
        return True

    # --- references and topology --------------------------------------------

    async def load_references(self, references: list[dict[str, Any]]) -> list[str]:
        """Insert the references that are not stored yet. Returns the uniprot ids inserted."""
        inserted = []
        for reference in references:
            uniprot = reference.get("uniprot") if isinstance(reference, dict) else None
            if not uniprot:
                raise ValidationError("Reference without 'uniprot' field", details={"reference": reference})
            if await self.store.find_reference(uniprot) is not None:
                logger.debug(f"Reference {uniprot} is already loaded")
                continue
            await self.store.insert_reference(reference)
            inserted.append(uniprot)
            logger.info(f"Loaded reference {uniprot}")
        return inserted

    async def load_topology(self, topology: dict[str, Any]) -> bool:
        """Load the topology document, replacing an existing one if the resolver agrees."""
        new = {**topology, "project": self.project_id}
        existing = await self.store.find_topology(self.project_id)
        identical = existing is not None and {k: v for k, v in existing.items() if k != "_id"} == new
        proceed = await self.resolver.decide(
            UnitIdentity("topology", "topology"),
            existing,
            lambda: self.store.delete_topology(self.project_id),
            new=new,
            identical=identical,
        )
        if not proceed:
            return False
        topology_id = await self.store.insert_topology(new)
        logger.info(f"Loaded topology -> {topology_id}")
        return True

    # --- files ---------------------------------------------------------------

    async def forestall_file(self, name: str, md: int | None = None, kind: str = "file") -> bool:
        """Decide whether file name may be loaded in the scope, deleting the old one if replaced."""
        existing = await self._find_record(md, "files", name)
        return await self.resolver.decide(UnitIdentity(kind, name, md), existing, lambda: self.delete_file(name, md))

    async def delete_file(self, name: str, md: int | None = None) -> None:
        record = await self._find_record(md, "files", name)
        if record is None:
            raise StoreError(f"File {name} is not loaded ({UnitIdentity('file', name, md).scope})")
        await self.store.delete_blob(record["id"])
        await self.store.pull_project_item(self.project_id, _scope_path(md, "files"), name)
        logger.info(f"Deleted file {name} <- {record['id']}")

    async def _register_file(self, name: str, md: int | None, blob_id: str) -> None:
        if await self.store.find_blob(blob_id) is None:
            raise UploadError(name, f"blob {blob_id} not found after upload")
        await self.store.push_project_item(self.project_id, _scope_path(md, "files"), {"name": name, "id": blob_id})

    async def load_file(self, name: str, md: int | None, source: Path) -> str:
        """Stream a local file into a new blob and register it. Returns the blob id."""
        sink = await self.store.open_blob(
            name,
            content_type=content_type(name),
            metadata={"project": self.project_id, "md": md},
            chunk_size=self.settings.upload.sink_chunk_size,
        )
        total = Path(source).stat().st_size
        with self.progress.track(f"Loading {name}", total=total) as advance:
            written = await self.uploader.upload(
                read_file_chunks(source, self.settings.upload.read_chunk_size), sink, advance
            )
        await self._register_file(name, md, sink.blob_id)
        logger.info(f"Loaded file {name} -> {sink.blob_id} ({written} bytes)")
        return sink.blob_id

    async def load_trajectory(
        self, name: str, md: int, source: Path, gromacs_command: str | None = None, main: bool = False
    ) -> dict[str, Any]:
        """
        Re-encode a trajectory into binary coordinates and store it.

        The blob metadata records frame and atom counts; for the main
        trajectory they are also set on the MD run.
        """
        lines = trajectory_lines(source, gromacs_command)
        sink = await self.store.open_blob(
            name,
            content_type="application/octet-stream",
            metadata={"project": self.project_id, "md": md},
            chunk_size=self.settings.upload.sink_chunk_size,
        )
        with self.progress.track(f"Loading trajectory {Path(source).name} as {name}", unit="frames") as advance:
            codec = TrajectoryCodec(self.settings.trajectory.batch_atoms, on_frame=lambda _: advance(1))
            written = await self.uploader.upload(codec.encode(lines), sink)

        metadata = {
            "project": self.project_id,
            "md": md,
            "frames": codec.frames,
            "atoms": codec.atoms_per_frame,
        }
        await self.store.update_blob_metadata(sink.blob_id, metadata)
        await self._register_file(name, md, sink.blob_id)
        if main:
            await self.store.set_project_fields(
                self.project_id, {f"mds.{md}.frames": codec.frames, f"mds.{md}.atoms": codec.atoms_per_frame}
            )
        logger.info(
            f"Loaded trajectory {Path(source).name} as {name} -> {sink.blob_id} "
            f"({codec.frames} frames, {codec.atoms_per_frame} atoms, {written} bytes)"
        )
        return metadata

    # --- analyses ------------------------------------------------------------

    async def forestall_analysis(self, name: str, md: int | None = None) -> bool:
        existing = await self._find_record(md, "analyses", name)
        return await self.resolver.decide(
            UnitIdentity("analysis", name, md), existing, lambda: self.delete_analysis(name, md)
        )

    async def delete_analysis(self, name: str, md: int | None = None) -> None:
        await self.store.delete_analysis(self.project_id, md, name)
        await self.store.pull_project_item(self.project_id, _scope_path(md, "analyses"), name)
        logger.info(f"Deleted analysis {name} ({UnitIdentity('analysis', name, md).scope})")

    async def load_analysis(self, name: str, md: int | None, value: Any) -> str:
        analysis_id = await self.store.insert_analysis(
            {"name": name, "value": value, "project": self.project_id, "md": md}
        )
        await self.store.push_project_item(
            self.project_id, _scope_path(md, "analyses"), {"name": name, "id": analysis_id}
        )
        logger.info(f"Loaded analysis {name} -> {analysis_id}")
        return analysis_id

    # --- chains --------------------------------------------------------------

    async def forestall_chains(self) -> bool:
        """Chains are replaced all together: decide once for the whole set."""
        existing = (await self.document()).get("chains") or None
        return await self.resolver.decide(UnitIdentity("chains", "chains"), existing, self.delete_chains)

    async def delete_chains(self) -> None:
        await self.store.delete_chains(self.project_id)
        await self.store.set_project_fields(self.project_id, {"chains": []})
        logger.info("Deleted chains")

    async def load_chains(
        self, chain_key: str, annotation: dict[str, Any], exclude: set[str] | None = None
    ) -> list[str]:
        """Store one chain record per chain name of a (possibly grouped) key, except the excluded names."""
        names = [name for name in split_chain_key(chain_key) if name not in (exclude or ())]
        for name in names:
            chain_id = await self.store.insert_chain({"name": name, **annotation, "project": self.project_id})
            await self.store.push_project_item(self.project_id, "chains", name)
            logger.info(f"Loaded chain {name} -> {chain_id}")
        return names

    # --- publication ---------------------------------------------------------

    async def set_published(self, published: bool) -> bool:
        """Set the published flag. Returns False when it already had that value."""
        if (await self.document()).get("published") == published:
            return False
        await self.store.set_project_fields(self.project_id, {"published": published})
        logger.info(f"Project {self.project_id} {'published' if published else 'unpublished'}")
        return True
