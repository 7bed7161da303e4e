"""
mdloader - Load MD simulation projects into a remote store.
"""

__version__ = "0.1.0"

# Programmatic API
from mdloader.core.api import abort, load, load_sync

# Exceptions
from mdloader.exceptions import (
    AnnotationError,
    ConfigurationError,
    LoadAborted,
    MdLoaderError,
    MdRunMismatchError,
    ProjectNotFoundError,
    RetryError,
    StoreError,
    TrajectoryDecodeError,
    TransportError,
    UploadError,
    ValidationError,
)
from mdloader.load.types import LoadOptions, LoadSummary, RunStatus

__all__ = [
    "__version__",
    "abort",
    "load",
    "load_sync",
    "LoadOptions",
    "LoadSummary",
    "RunStatus",
    "AnnotationError",
    "ConfigurationError",
    "LoadAborted",
    "MdLoaderError",
    "MdRunMismatchError",
    "ProjectNotFoundError",
    "RetryError",
    "StoreError",
    "TrajectoryDecodeError",
    "TransportError",
    "UploadError",
    "ValidationError",
]
