"""
In-memory remote store for tests and dry runs.

Example:
    from mdloader.store.memory import InMemoryStore

    store = InMemoryStore()
    async with store:
        project_id = await store.create_project({"accession": None, "mds": []})
        sink = await store.open_blob("structure.pdb", content_type="chemical/x-pdb",
                                     metadata={"project": project_id, "md": 0}, chunk_size=4096)
        await sink.write(b"ATOM ...")
        await sink.close()
"""

from __future__ import annotations

import copy
import secrets
from collections import defaultdict
from typing import Any

from mdloader.exceptions import StoreError
from mdloader.store.base import ANALYSES, CHAINS, REFERENCES, TOPOLOGIES, BlobSink, RemoteStore


def _new_id() -> str:
    # Same shape as a MongoDB ObjectId so reference coercion treats it as an id
    return secrets.token_hex(12)


def _walk(document: Any, steps: list[str], create: bool = False) -> Any:
    node = document
    for step in steps:
        if isinstance(node, list):
            node = node[int(step)]
        elif isinstance(node, dict):
            if step not in node:
                if not create:
                    raise KeyError(step)
                node[step] = {}
            node = node[step]
        else:
            raise KeyError(step)
    return node


def set_path(document: dict, path: str, value: Any) -> None:
    """Set a dotted path inside a nested document, creating mappings on the way."""
    *parents, last = path.split(".")
    parent = _walk(document, parents, create=True)
    if isinstance(parent, list):
        parent[int(last)] = value
    else:
        parent[last] = value


def get_path(document: dict, path: str, default: Any = None) -> Any:
    try:
        return _walk(document, path.split("."))
    except (KeyError, IndexError, ValueError):
        return default


class InMemoryBlobSink(BlobSink):
    """Sink buffering blob content in memory until close()."""

    def __init__(self, store: InMemoryStore, filename: str, *, content_type: str, metadata: dict[str, Any]) -> None:
        super().__init__(filename, content_type=content_type, metadata=metadata)
        self._store = store
        self._id = _new_id()
        self._buffer = bytearray()
        self.closed = False
        self.aborted = False

    @property
    def blob_id(self) -> str:
        return self._id

    async def write(self, data: bytes) -> None:
        if self.closed or self.aborted:
            raise StoreError(f"Blob {self._id} is no longer writable")
        self._buffer += data
        self.length += len(data)

    async def close(self) -> str:
        self._store._blobs[self._id] = {
            "_id": self._id,
            "filename": self.filename,
            "length": self.length,
            "contentType": self.content_type,
            "metadata": dict(self.metadata),
        }
        self._store._blob_data[self._id] = bytes(self._buffer)
        self._store.writes += 1
        self.closed = True
        return self._id

    async def abort(self) -> None:
        self._buffer = bytearray()
        self.aborted = True


class InMemoryStore(RemoteStore):
    """
    In-memory remote store.

    Keeps every collection in dictionaries for the lifetime of the process.
    The ``writes`` counter tracks every mutating call, which lets tests
    assert that a run performed no writes at all.
    """

    def __init__(self) -> None:
        self._projects: dict[str, dict] = {}
        self._blobs: dict[str, dict] = {}
        self._blob_data: dict[str, bytes] = {}
        self._collections: dict[str, dict[str, dict]] = defaultdict(dict)
        self._aborts: dict[str, bool] = {}
        self.writes = 0

    def _project(self, project_id: str) -> dict:
        try:
            return self._projects[project_id]
        except KeyError:
            raise StoreError(f"Project {project_id} does not exist", details={"project": project_id}) from None

    def _insert(self, collection: str, document: dict[str, Any]) -> str:
        doc = copy.deepcopy(document)
        doc.setdefault("_id", _new_id())
        self._collections[collection][doc["_id"]] = doc
        self.writes += 1
        return doc["_id"]

    def _find(self, collection: str, **query: Any) -> dict | None:
        for doc in self._collections[collection].values():
            if all(doc.get(k) == v for k, v in query.items()):
                return copy.deepcopy(doc)
        return None

    def _delete(self, collection: str, **query: Any) -> int:
        docs = self._collections[collection]
        doomed = [key for key, doc in docs.items() if all(doc.get(k) == v for k, v in query.items())]
        for key in doomed:
            del docs[key]
        self.writes += 1
        return len(doomed)

    # --- projects ------------------------------------------------------------

    async def create_project(self, document: dict[str, Any]) -> str:
        project_id = _new_id()
        self._projects[project_id] = {**copy.deepcopy(document), "_id": project_id}
        self.writes += 1
        return project_id

    async def find_project(self, *, project_id: str | None = None, accession: str | None = None) -> dict | None:
        if project_id is not None:
            project = self._projects.get(project_id)
            return copy.deepcopy(project) if project is not None else None
        if accession is not None:
            for project in self._projects.values():
                if project.get("accession") == accession:
                    return copy.deepcopy(project)
        return None

    async def set_project_fields(self, project_id: str, fields: dict[str, Any]) -> None:
        project = self._project(project_id)
        for path, value in fields.items():
            set_path(project, path, copy.deepcopy(value))
        self.writes += 1

    async def push_project_item(self, project_id: str, path: str, item: Any) -> None:
        project = self._project(project_id)
        items = get_path(project, path)
        if items is None:
            items = []
            set_path(project, path, items)
        items.append(copy.deepcopy(item))
        self.writes += 1

    async def pull_project_item(self, project_id: str, path: str, name: str) -> None:
        project = self._project(project_id)
        items = get_path(project, path) or []
        items[:] = [item for item in items if not (isinstance(item, dict) and item.get("name") == name)]
        self.writes += 1

    # --- blobs ---------------------------------------------------------------

    async def open_blob(
        self, filename: str, *, content_type: str, metadata: dict[str, Any], chunk_size: int
    ) -> InMemoryBlobSink:
        return InMemoryBlobSink(self, filename, content_type=content_type, metadata=metadata)

    async def find_blob(self, blob_id: str) -> dict | None:
        blob = self._blobs.get(blob_id)
        return copy.deepcopy(blob) if blob is not None else None

    async def update_blob_metadata(self, blob_id: str, metadata: dict[str, Any]) -> None:
        if blob_id not in self._blobs:
            raise StoreError(f"Blob {blob_id} not found", details={"blob": blob_id})
        self._blobs[blob_id]["metadata"] = dict(metadata)
        self.writes += 1

    async def delete_blob(self, blob_id: str) -> None:
        if blob_id not in self._blobs:
            raise StoreError(f"Blob {blob_id} not found", details={"blob": blob_id})
        del self._blobs[blob_id]
        del self._blob_data[blob_id]
        self.writes += 1

    def read_blob(self, blob_id: str) -> bytes:
        """Return the stored content of a blob (for testing)."""
        return self._blob_data[blob_id]

    @property
    def blob_count(self) -> int:
        return len(self._blobs)

    # --- documents -----------------------------------------------------------

    async def find_topology(self, project_id: str) -> dict | None:
        return self._find(TOPOLOGIES, project=project_id)

    async def insert_topology(self, document: dict[str, Any]) -> str:
        return self._insert(TOPOLOGIES, document)

    async def delete_topology(self, project_id: str) -> None:
        self._delete(TOPOLOGIES, project=project_id)

    async def find_reference(self, uniprot: str) -> dict | None:
        return self._find(REFERENCES, uniprot=uniprot)

    async def insert_reference(self, document: dict[str, Any]) -> str:
        return self._insert(REFERENCES, document)

    async def insert_analysis(self, document: dict[str, Any]) -> str:
        return self._insert(ANALYSES, document)

    async def delete_analysis(self, project_id: str, md: int | None, name: str) -> None:
        self._delete(ANALYSES, project=project_id, md=md, name=name)

    async def insert_chain(self, document: dict[str, Any]) -> str:
        return self._insert(CHAINS, document)

    async def delete_chains(self, project_id: str) -> None:
        self._delete(CHAINS, project=project_id)

    def documents(self, collection: str) -> list[dict]:
        """All documents of a collection (for testing)."""
        return [copy.deepcopy(doc) for doc in self._collections[collection].values()]

    # --- abort flag ----------------------------------------------------------

    async def get_abort_flag(self, project_id: str) -> bool:
        return self._aborts.get(project_id, False)

    async def set_abort_flag(self, project_id: str, value: bool) -> None:
        self._aborts[project_id] = value
