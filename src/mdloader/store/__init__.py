"""
Remote store implementations.

The store is selected by the ``store.type`` setting; dry runs always get an
in-memory store.
"""

from mdloader.config.settings import StoreSettings
from mdloader.store.base import BlobSink, RemoteStore
from mdloader.store.memory import InMemoryStore
from mdloader.store.mongo import MongoStore


def create_store(settings: StoreSettings, *, dry_run: bool = False) -> RemoteStore:
    """Build the remote store described by the settings."""
    if dry_run or settings.type == "memory":
        return InMemoryStore()
    return MongoStore(settings.uri, settings.database)


__all__ = [
    "BlobSink",
    "RemoteStore",
    "InMemoryStore",
    "MongoStore",
    "create_store",
]
