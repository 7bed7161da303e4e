"""
Base remote store interface.

The remote store owns every project document and payload. The loader only
holds project ids and issues targeted operations; it never keeps a private
copy of a project that it writes back wholesale.

Implementations provided:
- MongoStore: MongoDB documents plus GridFS blobs (requires pymongo >= 4.13)
- InMemoryStore: in-process store for tests and dry runs

Project document layout::

    {
        "_id": <id>,
        "accession": None | "MCNS00001",
        "published": False,
        "metadata": {...},
        "mds": [{"name": "replica 1", "metadata": {...}, "files": [...], "analyses": [...]}, ...],
        "mdref": 0,
        "files": [{"name": "topology.tpr", "id": <blob id>}, ...],
        "analyses": [{"name": ..., "id": ...}, ...],
        "chains": ["A", "B", ...],
    }

Paths into the project document use dot notation ("mds.0.files"), with
integer steps indexing lists.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

# Collections names, shared by implementations
PROJECTS = "projects"
TOPOLOGIES = "topologies"
REFERENCES = "references"
ANALYSES = "analyses"
CHAINS = "chains"
ABORTS = "aborts"
BLOBS = "fs.files"


class BlobSink(ABC):
    """
    Writable destination of one streamed blob.

    write() awaits until the sink has accepted the data; callers must not
    issue the next write before the previous one returned.
    """

    def __init__(self, filename: str, *, content_type: str, metadata: dict[str, Any]) -> None:
        self.filename = filename
        self.content_type = content_type
        self.metadata = dict(metadata)
        self.length = 0

    @property
    @abstractmethod
    def blob_id(self) -> str:
        """Identifier the blob will be stored under."""
        ...

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """Append data to the blob."""
        ...

    @abstractmethod
    async def close(self) -> str:
        """Finalize the blob and return its identifier."""
        ...

    @abstractmethod
    async def abort(self) -> None:
        """Discard everything written so far."""
        ...


class RemoteStore(ABC):
    """
    Abstract base class for remote stores.

    Identifiers crossing this interface are plain strings.
    """

    # --- lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        """Open connections. No-op by default."""
        return None

    async def close(self) -> None:
        """Release connections. No-op by default."""
        return None

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # --- projects ------------------------------------------------------------

    @abstractmethod
    async def create_project(self, document: dict[str, Any]) -> str:
        """Insert a new project document and return its id."""
        ...

    @abstractmethod
    async def find_project(self, *, project_id: str | None = None, accession: str | None = None) -> dict | None:
        """Find a project by id or accession. Returns None if absent."""
        ...

    @abstractmethod
    async def set_project_fields(self, project_id: str, fields: dict[str, Any]) -> None:
        """Set fields of a project document. Keys are dotted paths."""
        ...

    @abstractmethod
    async def push_project_item(self, project_id: str, path: str, item: Any) -> None:
        """Append an item to the list at path, creating the list if missing."""
        ...

    @abstractmethod
    async def pull_project_item(self, project_id: str, path: str, name: str) -> None:
        """Remove items whose 'name' equals name from the list at path."""
        ...

    # --- blobs ---------------------------------------------------------------

    @abstractmethod
    async def open_blob(
        self, filename: str, *, content_type: str, metadata: dict[str, Any], chunk_size: int
    ) -> BlobSink:
        """Open a sink for a new blob."""
        ...

    @abstractmethod
    async def find_blob(self, blob_id: str) -> dict | None:
        """Return the blob descriptor ({_id, filename, length, contentType, metadata})."""
        ...

    @abstractmethod
    async def update_blob_metadata(self, blob_id: str, metadata: dict[str, Any]) -> None:
        """Replace the metadata of a stored blob."""
        ...

    @abstractmethod
    async def delete_blob(self, blob_id: str) -> None:
        """Delete a stored blob and its content."""
        ...

    # --- documents -----------------------------------------------------------

    @abstractmethod
    async def find_topology(self, project_id: str) -> dict | None: ...

    @abstractmethod
    async def insert_topology(self, document: dict[str, Any]) -> str: ...

    @abstractmethod
    async def delete_topology(self, project_id: str) -> None: ...

    @abstractmethod
    async def find_reference(self, uniprot: str) -> dict | None: ...

    @abstractmethod
    async def insert_reference(self, document: dict[str, Any]) -> str: ...

    @abstractmethod
    async def insert_analysis(self, document: dict[str, Any]) -> str: ...

    @abstractmethod
    async def delete_analysis(self, project_id: str, md: int | None, name: str) -> None: ...

    @abstractmethod
    async def insert_chain(self, document: dict[str, Any]) -> str: ...

    @abstractmethod
    async def delete_chains(self, project_id: str) -> None: ...

    # --- abort flag ----------------------------------------------------------

    @abstractmethod
    async def get_abort_flag(self, project_id: str) -> bool:
        """Whether a load of this project has been asked to stop."""
        ...

    @abstractmethod
    async def set_abort_flag(self, project_id: str, value: bool) -> None:
        """Set or clear the abort flag of a project."""
        ...
