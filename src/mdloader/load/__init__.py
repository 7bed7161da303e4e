"""
Ingestion pipeline.

Loads a local MD project directory into the remote store, unit by unit,
with conflict resolution, streaming uploads, trajectory re-encoding,
cooperative aborts and background chain annotations.
"""

from mdloader.load.abort import AbortMonitor, request_abort
from mdloader.load.forestall import ConflictResolver, InteractiveDecisionProvider, StaticDecisionProvider
from mdloader.load.orchestrator import Loader
from mdloader.load.types import Decision, LoadOptions, LoadSummary, RunStatus, UnitIdentity

__all__ = [
    "AbortMonitor",
    "ConflictResolver",
    "Decision",
    "InteractiveDecisionProvider",
    "LoadOptions",
    "LoadSummary",
    "Loader",
    "RunStatus",
    "StaticDecisionProvider",
    "UnitIdentity",
    "request_abort",
]
