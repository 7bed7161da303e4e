"""
mdloader exception hierarchy.

All loader exceptions inherit from MdLoaderError so a caller can catch any
ingestion failure with a single base class while still telling validation
problems, transport failures and cancellation apart.

Hierarchy::

    MdLoaderError
    ├── ConfigurationError         - config loading, parsing, validation
    ├── ValidationError            - bad input, fatal, never retried
    │   ├── ProjectNotFoundError   - explicit project reference not found
    │   └── MdRunMismatchError     - MD run name/index mismatch on resume
    ├── LoadAborted                - remote abort flag observed at a checkpoint
    ├── TransportError             - filesystem / remote store I/O failure
    │   ├── StoreError             - remote store operation failed
    │   ├── UploadError            - streaming transfer failed
    │   └── TrajectoryDecodeError  - trajectory dump command failed
    ├── AnnotationError            - external annotation job failed
    └── RetryError                 - retry exhaustion for external calls
"""

from __future__ import annotations


class MdLoaderError(Exception):
    """Base exception for all mdloader errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(MdLoaderError):
    """Raised when configuration loading, parsing, or validation fails."""


# --- Validation --------------------------------------------------------------


class ValidationError(MdLoaderError):
    """Raised for malformed input: bad flag combinations, missing or unparseable files.

    Validation errors abort the run immediately and are never retried.
    """


class ProjectNotFoundError(ValidationError):
    """Raised when an explicitly referenced project does not exist remotely."""

    def __init__(self, reference: str) -> None:
        super().__init__(f"Project not found: {reference}", details={"reference": reference})
        self.reference = reference


class MdRunMismatchError(ValidationError):
    """Raised when local MD directories cannot be matched to the remote MD runs."""


# --- Cancellation ------------------------------------------------------------


class LoadAborted(MdLoaderError):
    """Raised by the abort monitor when the project's abort flag is set.

    Not a failure: the run stops without further mutation and is reported as
    incomplete. Everything committed before the checkpoint stays committed.
    """

    def __init__(self, project_id: str, checkpoint: str | None = None) -> None:
        where = f" before {checkpoint}" if checkpoint else ""
        super().__init__(
            f"Load of project {project_id} aborted{where}",
            details={"project": project_id, "checkpoint": checkpoint},
        )
        self.project_id = project_id
        self.checkpoint = checkpoint


# --- Transport ---------------------------------------------------------------


class TransportError(MdLoaderError):
    """Raised when filesystem or remote store I/O fails."""


class StoreError(TransportError):
    """Raised when a remote store operation fails."""


class UploadError(TransportError):
    """Raised when a blob cannot be finalized in the remote store."""

    def __init__(self, name: str, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(f"Upload of '{name}' failed: {message}", details={"name": name})
        self.name = name
        if cause is not None:
            self.__cause__ = cause


class TrajectoryDecodeError(TransportError):
    """Raised when the external trajectory dump command fails."""

    def __init__(self, path: str, returncode: int, stderr: str = "") -> None:
        super().__init__(
            f"Trajectory dump of '{path}' exited with code {returncode}",
            details={"path": path, "returncode": returncode, "stderr": stderr[-2000:]},
        )
        self.path = path
        self.returncode = returncode


# --- Annotations -------------------------------------------------------------


class AnnotationError(MdLoaderError):
    """Raised when an external chain annotation job fails or times out."""

    def __init__(self, chain: str, message: str) -> None:
        super().__init__(f"Annotation of chain '{chain}' failed: {message}", details={"chain": chain})
        self.chain = chain
        self.reason = message


# --- Retry -------------------------------------------------------------------


class RetryError(MdLoaderError):
    """Raised when all retry attempts are exhausted."""
