"""
Typed loader settings derived from a Config.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote_plus

from mdloader.config.loader import Config
from mdloader.exceptions import ConfigurationError

MiB = 1024 * 1024

STORE_TYPES = ("mongo", "memory")


def _default_mongo_uri() -> str:
    """Build a MongoDB URI from the DB_* environment variables."""
    server = os.getenv("DB_SERVER", "localhost")
    port = os.getenv("DB_PORT", "27017")
    user = os.getenv("DB_AUTH_USER")
    password = os.getenv("DB_AUTH_PASSWORD")
    credentials = ""
    if user:
        credentials = quote_plus(user)
        if password:
            credentials += ":" + quote_plus(password)
        credentials += "@"
    uri = f"mongodb://{credentials}{server}:{port}/"
    auth_source = os.getenv("DB_AUTHSOURCE")
    if auth_source:
        uri += f"?authSource={quote_plus(auth_source)}"
    return uri


@dataclass
class StoreSettings:
    type: str = "mongo"
    uri: str = field(default_factory=_default_mongo_uri)
    database: str = field(default_factory=lambda: os.getenv("DB_NAME", "mdloader"))


@dataclass
class UploadSettings:
    # Source read size; dominates throughput, tune per I/O stack
    read_chunk_size: int = 1 * MiB
    # Chunk size used by the blob sink (GridFS chunkSizeBytes)
    sink_chunk_size: int = 4 * MiB
    # Chunks buffered between the reader and the sink
    queue_size: int = 4


@dataclass
class TrajectorySettings:
    batch_atoms: int = 1000
    gromacs_command: str | None = None


@dataclass
class AnnotationSettings:
    poll_interval: float = 1.0
    status_interval: float = 30.0
    status_jitter: float = 10.0
    max_wait: float = 40 * 60.0
    email: str | None = None


@dataclass
class LoaderSettings:
    """All knobs the ingestion pipeline reads, with their defaults."""

    store: StoreSettings = field(default_factory=StoreSettings)
    upload: UploadSettings = field(default_factory=UploadSettings)
    trajectory: TrajectorySettings = field(default_factory=TrajectorySettings)
    annotations: AnnotationSettings = field(default_factory=AnnotationSettings)
    accession_prefix: str = "MCNS"
    logging: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        errors = []
        if self.store.type not in STORE_TYPES:
            errors.append(f"store.type must be one of {STORE_TYPES}, got '{self.store.type}'")
        for name in ("read_chunk_size", "sink_chunk_size", "queue_size"):
            if getattr(self.upload, name) < 1:
                errors.append(f"upload.{name} must be >= 1")
        if self.trajectory.batch_atoms < 1:
            errors.append("trajectory.batch_atoms must be >= 1")
        if self.annotations.poll_interval <= 0:
            errors.append("annotations.poll_interval must be > 0")
        if self.annotations.status_jitter < 0 or self.annotations.status_jitter > self.annotations.status_interval:
            errors.append("annotations.status_jitter must be between 0 and status_interval")
        if self.annotations.max_wait <= 0:
            errors.append("annotations.max_wait must be > 0")
        if not self.accession_prefix:
            errors.append("accession_prefix must not be empty")
        if errors:
            raise ConfigurationError("Invalid loader settings:\n" + "\n".join(errors), details={"errors": errors})

    @classmethod
    def from_config(cls, config: Config) -> LoaderSettings:
        """Build settings from a loaded Config, falling back to defaults."""
        try:
            return cls(
                store=StoreSettings(**_section(config, "store")),
                upload=UploadSettings(**_section(config, "upload")),
                trajectory=TrajectorySettings(**_section(config, "trajectory")),
                annotations=AnnotationSettings(**_section(config, "annotations")),
                accession_prefix=config.get("accession_prefix", "MCNS"),
                logging=dict(config.get("logging", {})),
            )
        except TypeError as e:
            # Unknown keys in a section
            raise ConfigurationError(f"Invalid loader settings: {e}") from e


def _section(config: Config, name: str) -> dict[str, Any]:
    return {k: v for k, v in (config.get(name) or {}).items() if v is not None}
