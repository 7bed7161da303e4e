"""
Programmatic API for mdloader.
"""

import asyncio
import contextlib
from pathlib import Path
from typing import Any

from mdloader.config.settings import LoaderSettings
from mdloader.exceptions import ProjectNotFoundError
from mdloader.load.abort import request_abort
from mdloader.load.annotations import AnnotationClient, EbiAnnotationClient
from mdloader.load.forestall import DecisionProvider
from mdloader.load.orchestrator import Loader
from mdloader.load.synchronizer import coerce_reference
from mdloader.load.types import LoadOptions, LoadSummary
from mdloader.store import RemoteStore, create_store
from mdloader.utils.async_utils import dual
from mdloader.utils.display import TransferProgress


@dual
async def load(
    source: Path | str,
    *,
    settings: LoaderSettings | None = None,
    store: RemoteStore | None = None,
    provider: DecisionProvider | None = None,
    annotation_client: AnnotationClient | None = None,
    progress: TransferProgress | None = None,
    **options: Any,
) -> LoadSummary:
    """
    Load a project directory, automatically works in both sync and async contexts.

    Args:
        source: Project directory
        settings: Loader settings (default: built-in defaults)
        store: Remote store; when omitted one is built from the settings,
            connected and closed around the run
        provider: Conflict decision provider (default: interactive prompt)
        annotation_client: Chain annotation client; when omitted an EBI
            client is used if ``annotations.email`` is configured
        progress: Transfer progress display
        **options: LoadOptions fields (project, conserve, overwrite, ...)

    Returns:
        Run summary

    Examples:
        # Sync usage (auto-detected)
        summary = load("/data/project", conserve=True)

        # Async usage (auto-detected)
        summary = await load("/data/project", overwrite=True)
    """
    load_options = LoadOptions(source=Path(source), **options)
    settings = settings or LoaderSettings()

    async with contextlib.AsyncExitStack() as stack:
        if store is None:
            store = create_store(settings.store, dry_run=load_options.dry_run)
            await stack.enter_async_context(store)
        if annotation_client is None and not load_options.skip_chains and settings.annotations.email:
            annotation_client = await stack.enter_async_context(EbiAnnotationClient(settings.annotations))

        loader = Loader(
            load_options,
            settings,
            store,
            provider=provider,
            annotation_client=annotation_client,
            progress=progress,
        )
        return await loader.run()


@dual
async def abort(
    project: str,
    *,
    settings: LoaderSettings | None = None,
    store: RemoteStore | None = None,
) -> str:
    """
    Ask the running load of a project to stop at its next checkpoint.

    Returns:
        Id of the project whose abort flag was set
    """
    settings = settings or LoaderSettings()
    async with contextlib.AsyncExitStack() as stack:
        if store is None:
            store = create_store(settings.store)
            await stack.enter_async_context(store)
        reference = coerce_reference(project, settings.accession_prefix)
        document = await store.find_project(project_id=reference.project_id, accession=reference.accession)
        if document is None:
            raise ProjectNotFoundError(project)
        project_id = str(document["_id"])
        await request_abort(store, project_id)
        return project_id


def load_sync(source: Path | str, **kwargs: Any) -> LoadSummary:
    """
    Synchronous wrapper for load().

    Always runs the load on a fresh event loop, so it cannot be called from
    a running one.
    """
    return asyncio.run(load.__wrapped__(source, **kwargs))
