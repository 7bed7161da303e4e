"""
MongoDB remote store.

Project, topology, reference, analysis and chain documents live in regular
collections; payloads are streamed into GridFS (fs.files / fs.chunks).
Uses the native asyncio client shipped with pymongo >= 4.13.

Example:
    store = MongoStore(uri="mongodb://localhost:27017/", database="mdposit")
    async with store:
        project = await store.find_project(accession="MCNS00001")
"""

from __future__ import annotations

import inspect
from typing import Any

from bson import ObjectId
from gridfs import AsyncGridFSBucket
from pymongo import AsyncMongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from mdloader.exceptions import StoreError
from mdloader.store.base import (
    ABORTS,
    ANALYSES,
    BLOBS,
    CHAINS,
    PROJECTS,
    REFERENCES,
    TOPOLOGIES,
    BlobSink,
    RemoteStore,
)
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.store.mongo")


def _oid(value: str | ObjectId) -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not ObjectId.is_valid(value):
        raise StoreError(f"Invalid object id: {value}", details={"id": value})
    return ObjectId(value)


def _export(document: dict | None) -> dict | None:
    """Convert ObjectIds at the document edges back to strings."""
    if document is None:
        return None
    result = dict(document)
    for key in ("_id", "project"):
        if isinstance(result.get(key), ObjectId):
            result[key] = str(result[key])
    metadata = result.get("metadata")
    if isinstance(metadata, dict) and isinstance(metadata.get("project"), ObjectId):
        result["metadata"] = {**metadata, "project": str(metadata["project"])}
    return result


def _with_project_oid(document: dict[str, Any]) -> dict[str, Any]:
    doc = dict(document)
    if doc.get("project") is not None:
        doc["project"] = _oid(doc["project"])
    return doc


class GridFSBlobSink(BlobSink):
    """Sink writing into a GridFS upload stream."""

    def __init__(self, store: MongoStore, stream: Any, filename: str, *, content_type: str, metadata: dict) -> None:
        super().__init__(filename, content_type=content_type, metadata=metadata)
        self._store = store
        self._stream = stream

    @property
    def blob_id(self) -> str:
        return str(self._stream._id)

    async def write(self, data: bytes) -> None:
        try:
            await self._stream.write(data)
        except PyMongoError as e:
            raise StoreError(f"GridFS write to {self.blob_id} failed: {e}") from e
        self.length += len(data)

    async def close(self) -> str:
        try:
            await self._stream.close()
            # GridFS upload streams take no content type; set it on the file document
            await self._store.db[BLOBS].update_one(
                {"_id": self._stream._id}, {"$set": {"contentType": self.content_type}}
            )
        except PyMongoError as e:
            raise StoreError(f"GridFS finalization of {self.blob_id} failed: {e}") from e
        return self.blob_id

    async def abort(self) -> None:
        # Drops the chunks already written for this file id
        try:
            await self._stream.abort()
        except PyMongoError as e:
            logger.warning(f"Could not discard partial blob {self.blob_id}: {e}")


class MongoStore(RemoteStore):
    """
    MongoDB implementation of the remote store.

    Args:
        uri: MongoDB connection URI
        database: Database name
        client_kwargs: Extra keyword arguments for AsyncMongoClient
    """

    def __init__(self, uri: str, database: str, **client_kwargs: Any) -> None:
        self.uri = uri
        self.database_name = database
        self.client_kwargs = client_kwargs
        self._client: AsyncMongoClient | None = None
        self._bucket: AsyncGridFSBucket | None = None

    async def connect(self) -> None:
        if self._client is not None:
            return
        self._client = AsyncMongoClient(self.uri, **self.client_kwargs)
        try:
            await self._client.admin.command("ping")
        except PyMongoError as e:
            await self._client.close()
            self._client = None
            raise StoreError(f"Cannot connect to MongoDB: {e}", details={"database": self.database_name}) from e
        self._bucket = AsyncGridFSBucket(self.db)
        logger.info(f"Connected to MongoDB database '{self.database_name}'")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self._bucket = None

    @property
    def db(self):
        if self._client is None:
            raise StoreError("MongoStore is not connected")
        return self._client[self.database_name]

    @property
    def bucket(self) -> AsyncGridFSBucket:
        if self._bucket is None:
            raise StoreError("MongoStore is not connected")
        return self._bucket

    # --- projects ------------------------------------------------------------

    async def create_project(self, document: dict[str, Any]) -> str:
        result = await self.db[PROJECTS].insert_one(dict(document))
        return str(result.inserted_id)

    async def find_project(self, *, project_id: str | None = None, accession: str | None = None) -> dict | None:
        if project_id is not None:
            if not ObjectId.is_valid(project_id):
                return None
            query: dict[str, Any] = {"_id": ObjectId(project_id)}
        elif accession is not None:
            query = {"accession": accession}
        else:
            return None
        return _export(await self.db[PROJECTS].find_one(query))

    async def _update_project(self, project_id: str, update: dict[str, Any]) -> None:
        result = await self.db[PROJECTS].find_one_and_update(
            {"_id": _oid(project_id)}, update, return_document=ReturnDocument.AFTER, projection={"_id": 1}
        )
        if result is None:
            raise StoreError(f"Project {project_id} does not exist", details={"project": project_id})

    async def set_project_fields(self, project_id: str, fields: dict[str, Any]) -> None:
        await self._update_project(project_id, {"$set": fields})

    async def push_project_item(self, project_id: str, path: str, item: Any) -> None:
        await self._update_project(project_id, {"$push": {path: item}})

    async def pull_project_item(self, project_id: str, path: str, name: str) -> None:
        await self._update_project(project_id, {"$pull": {path: {"name": name}}})

    # --- blobs ---------------------------------------------------------------

    async def open_blob(
        self, filename: str, *, content_type: str, metadata: dict[str, Any], chunk_size: int
    ) -> GridFSBlobSink:
        stored_metadata = _with_project_oid(metadata)
        stream = self.bucket.open_upload_stream(filename, chunk_size_bytes=chunk_size, metadata=stored_metadata)
        if inspect.isawaitable(stream):
            stream = await stream
        return GridFSBlobSink(self, stream, filename, content_type=content_type, metadata=metadata)

    async def find_blob(self, blob_id: str) -> dict | None:
        return _export(await self.db[BLOBS].find_one({"_id": _oid(blob_id)}))

    async def update_blob_metadata(self, blob_id: str, metadata: dict[str, Any]) -> None:
        result = await self.db[BLOBS].update_one(
            {"_id": _oid(blob_id)}, {"$set": {"metadata": _with_project_oid(metadata)}}
        )
        if result.matched_count == 0:
            raise StoreError(f"Blob {blob_id} not found", details={"blob": blob_id})

    async def delete_blob(self, blob_id: str) -> None:
        try:
            await self.bucket.delete(_oid(blob_id))
        except PyMongoError as e:
            raise StoreError(f"Cannot delete blob {blob_id}: {e}", details={"blob": blob_id}) from e

    # --- documents -----------------------------------------------------------

    async def find_topology(self, project_id: str) -> dict | None:
        return _export(await self.db[TOPOLOGIES].find_one({"project": _oid(project_id)}))

    async def insert_topology(self, document: dict[str, Any]) -> str:
        result = await self.db[TOPOLOGIES].insert_one(_with_project_oid(document))
        return str(result.inserted_id)

    async def delete_topology(self, project_id: str) -> None:
        await self.db[TOPOLOGIES].delete_one({"project": _oid(project_id)})

    async def find_reference(self, uniprot: str) -> dict | None:
        return _export(await self.db[REFERENCES].find_one({"uniprot": uniprot}))

    async def insert_reference(self, document: dict[str, Any]) -> str:
        result = await self.db[REFERENCES].insert_one(dict(document))
        return str(result.inserted_id)

    async def insert_analysis(self, document: dict[str, Any]) -> str:
        result = await self.db[ANALYSES].insert_one(_with_project_oid(document))
        return str(result.inserted_id)

    async def delete_analysis(self, project_id: str, md: int | None, name: str) -> None:
        await self.db[ANALYSES].delete_one({"project": _oid(project_id), "md": md, "name": name})

    async def insert_chain(self, document: dict[str, Any]) -> str:
        result = await self.db[CHAINS].insert_one(_with_project_oid(document))
        return str(result.inserted_id)

    async def delete_chains(self, project_id: str) -> None:
        await self.db[CHAINS].delete_many({"project": _oid(project_id)})

    # --- abort flag ----------------------------------------------------------

    async def get_abort_flag(self, project_id: str) -> bool:
        document = await self.db[ABORTS].find_one({"_id": _oid(project_id)})
        return bool(document and document.get("abort"))

    async def set_abort_flag(self, project_id: str, value: bool) -> None:
        await self.db[ABORTS].update_one({"_id": _oid(project_id)}, {"$set": {"abort": value}}, upsert=True)
