"""
Ingestion orchestrator.

Runs one load of a project directory against the remote store:

1. validate options, classify and filter local files
2. resolve the target project and its MD runs
3. submit chain annotation jobs (they run in the background)
4. project phases: metadata, references, topology, files
5. per MD run, in order: metadata, trajectories, files, analyses
6. collect the annotation jobs, then set the published flag

The abort flag is checked before every phase and every unit. Each phase
commits on its own; an aborted or failed run is resumed by running it again.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any

from mdloader.config.settings import LoaderSettings
from mdloader.exceptions import LoadAborted, ValidationError
from mdloader.load.abort import AbortMonitor
from mdloader.load.annotations import AnnotationClient, ChainAnnotationPoller
from mdloader.load.classifier import (
    MdFiles,
    PathFilter,
    ProjectFiles,
    classify_md,
    classify_project,
    find_md_directories,
)
from mdloader.load.files import (
    directory_to_md_name,
    file_load_name,
    load_json,
    load_yaml_or_json,
    name_analysis,
    trajectory_load_name,
)
from mdloader.load.forestall import ConflictResolver, DecisionProvider
from mdloader.load.project import ProjectHandle
from mdloader.load.sequences import group_identical, read_chain_sequences, split_chain_key
from mdloader.load.synchronizer import ProjectSynchronizer
from mdloader.load.trace import ProjectTrace
from mdloader.load.trajectory import find_gromacs_command, needs_gromacs
from mdloader.load.types import LoadOptions, LoadSummary, RunStatus, UnitIdentity
from mdloader.load.uploader import StreamingUploader
from mdloader.store.base import RemoteStore
from mdloader.utils.display import TransferProgress
from mdloader.utils.logging import get_logger

logger = get_logger("mdloader.load.orchestrator")


def _filter_files(files: ProjectFiles | MdFiles, path_filter: PathFilter) -> None:
    """Drop, in place, every classified file the filter rejects."""
    for f in fields(files):
        if f.name == "directory":
            continue
        value = getattr(files, f.name)
        if isinstance(value, list):
            setattr(files, f.name, [p for p in value if path_filter.allows(p)])
        elif value is not None and not path_filter.allows(value):
            setattr(files, f.name, None)


def _require(path: Path, parse=load_json) -> Any:
    """Parse a document that exists locally; a parse failure is fatal."""
    document = parse(path)
    if document is None:
        raise ValidationError(f"Cannot load {path.name}: file is empty or malformed", details={"path": str(path)})
    return document


class Loader:
    """
    One ingestion run.

    Args:
        options: Run options
        settings: Loader settings
        store: Connected remote store
        provider: Decision provider for conflicts (default: interactive)
        annotation_client: Chain annotation client; None disables annotations
        progress: Transfer progress display
    """

    def __init__(
        self,
        options: LoadOptions,
        settings: LoaderSettings,
        store: RemoteStore,
        *,
        provider: DecisionProvider | None = None,
        annotation_client: AnnotationClient | None = None,
        progress: TransferProgress | None = None,
    ) -> None:
        self.options = options
        self.settings = settings
        self.store = store
        self.provider = provider
        self.annotation_client = annotation_client
        self.progress = progress or TransferProgress(enabled=False)

    # --- preparation ---------------------------------------------------------

    def _classify(self) -> tuple[ProjectFiles, list[MdFiles]]:
        options = self.options
        project_files = classify_project(options.source)
        if options.skip_mds:
            directories: list[Path] = []
        elif options.md_directories is not None:
            directories = list(options.md_directories)
        else:
            directories = find_md_directories(options.source)
        md_files = [classify_md(directory) for directory in directories]

        path_filter = PathFilter(options.source, options.include, options.exclude)
        for files in [project_files, *md_files]:
            _filter_files(files, path_filter)
        logger.info(f"Found {len(project_files.uploadables)} project files and {len(md_files)} MD directories")
        return project_files, md_files

    def _gromacs_command(self, md_files: list[MdFiles]) -> str | None:
        if self.options.skip_trajectories:
            return None
        if not any(needs_gromacs(path) for files in md_files for path in files.all_trajectories):
            return None
        command = find_gromacs_command(self.options.gromacs_command or self.settings.trajectory.gromacs_command)
        logger.debug(f"Using gromacs command '{command}'")
        return command

    # --- run -----------------------------------------------------------------

    async def run(self) -> LoadSummary:
        """
        Load the project directory.

        Returns a summary whose status is ABORTED when the abort flag stopped
        the run. Validation and transport errors propagate.
        """
        options = self.options
        options.validate()
        resolver = ConflictResolver(conserve=options.conserve, overwrite=options.overwrite, provider=self.provider)
        project_files, md_files = self._classify()
        gromacs_command = self._gromacs_command(md_files)

        trace = ProjectTrace(options.source, read_only=options.dry_run)
        synchronizer = ProjectSynchronizer(self.store, trace, self.settings.accession_prefix)
        result = await synchronizer.resolve(options.project)
        summary = LoadSummary(project_id=result.project_id, created=result.created, accession=result.accession)

        md_indices = await synchronizer.sync_md_runs(
            result.project_id, [directory_to_md_name(files.directory) for files in md_files]
        )

        handle = ProjectHandle(
            self.store,
            result.project_id,
            resolver,
            self.settings,
            uploader=StreamingUploader(queue_size=self.settings.upload.queue_size),
            progress=self.progress,
        )
        monitor = AbortMonitor(self.store, result.project_id)
        poller: ChainAnnotationPoller | None = None
        try:
            poller = await self._submit_chains(handle, monitor, md_files, summary)
            await self._load_project(handle, monitor, project_files, summary)
            for md, files in zip(md_indices, md_files):
                await self._load_md(handle, monitor, md, files, gromacs_command, summary)
            if poller is not None:
                await monitor.check("chain annotations")
                await poller.collect()
            if options.published is not None:
                await monitor.check("publication")
                await handle.set_published(options.published)
        except LoadAborted as e:
            summary.status = RunStatus.ABORTED
            summary.checkpoint = e.checkpoint
            logger.warning(f"Load of project {result.project_id} aborted before {e.checkpoint}")
        finally:
            if poller is not None:
                await poller.close()

        if summary.completed:
            logger.info(
                f"Project {result.project_id} loaded: {len(summary.loaded)} units loaded, "
                f"{len(summary.skipped)} skipped"
            )
        return summary

    # --- chains --------------------------------------------------------------

    async def _submit_chains(
        self, handle: ProjectHandle, monitor: AbortMonitor, md_files: list[MdFiles], summary: LoadSummary
    ) -> ChainAnnotationPoller | None:
        if self.options.skip_chains:
            return None
        if self.annotation_client is None:
            logger.warning("No annotation service configured (annotations.email), chains will not be annotated")
            return None
        structure = next((files.structure for files in md_files if files.structure is not None), None)
        if structure is None:
            logger.warning("No structure file found, chains will not be annotated")
            return None

        await monitor.check("chains")
        sequences = group_identical(await read_chain_sequences(structure))
        if not sequences:
            logger.warning(f"No protein chains found in {structure}")
            return None
        existing: set[str] = set()
        if not await handle.forestall_chains():
            existing = set((await handle.document()).get("chains") or [])
            sequences = {
                key: sequence for key, sequence in sequences.items() if not set(split_chain_key(key)) <= existing
            }
            if not sequences:
                return None
            logger.info(f"Completing missing chains: {'; '.join(sequences)}")

        async def persist(chain_key: str, annotation: dict[str, Any]) -> None:
            summary.chains.extend(await handle.load_chains(chain_key, annotation, exclude=existing))

        poller = ChainAnnotationPoller(
            self.annotation_client, monitor, persist, self.settings.annotations.poll_interval
        )
        for chain_key, sequence in sequences.items():
            poller.submit(chain_key, sequence)
        logger.info(f"Submitted annotation jobs for chains: {'; '.join(sequences)}")
        return poller

    # --- project phases ------------------------------------------------------

    async def _load_project(
        self, handle: ProjectHandle, monitor: AbortMonitor, files: ProjectFiles, summary: LoadSummary
    ) -> None:
        await monitor.check("project metadata")
        metadata = self._project_metadata(files)
        if metadata is not None:
            await handle.update_metadata(metadata)

        await monitor.check("references")
        if files.references is not None:
            references = _require(files.references)
            if not isinstance(references, list):
                raise ValidationError(f"{files.references.name} must hold a list of references")
            await handle.load_references(references)

        await monitor.check("topology")
        if files.topology is not None:
            topology = _require(files.topology)
            if not isinstance(topology, dict):
                raise ValidationError(f"{files.topology.name} must hold a topology document")
            self._record(summary, UnitIdentity("topology", "topology"), await handle.load_topology(topology))

        if self.options.skip_files:
            return
        for path in files.uploadables:
            await self._load_file(handle, monitor, path, None, summary)

    def _project_metadata(self, files: ProjectFiles) -> dict[str, Any] | None:
        if files.metadata is not None:
            source = files.metadata
            metadata = _require(source)
        elif files.inputs is not None:
            source = files.inputs
            metadata = _require(source, load_yaml_or_json)
            if isinstance(metadata, dict):
                # Per MD run inputs are not project metadata
                metadata = {k: v for k, v in metadata.items() if k != "mds"}
        else:
            logger.warning("No project metadata file found")
            return None
        if not isinstance(metadata, dict):
            raise ValidationError(f"{source.name} must hold a metadata mapping")
        return metadata

    # --- MD phases -----------------------------------------------------------

    async def _load_md(
        self,
        handle: ProjectHandle,
        monitor: AbortMonitor,
        md: int,
        files: MdFiles,
        gromacs_command: str | None,
        summary: LoadSummary,
    ) -> None:
        logger.info(f"Loading MD {md} from {files.directory}")
        await monitor.check(f"MD {md} metadata")
        if files.metadata is not None:
            metadata = _require(files.metadata)
            if not isinstance(metadata, dict):
                raise ValidationError(f"{files.metadata.name} must hold a metadata mapping")
            await handle.update_metadata(metadata, md)

        if not self.options.skip_trajectories:
            for path in files.all_trajectories:
                unit = UnitIdentity("trajectory", trajectory_load_name(path.name), md)
                await monitor.check(str(unit))
                proceed = await handle.forestall_file(unit.name, md, kind="trajectory")
                if proceed:
                    await handle.load_trajectory(
                        unit.name, md, path, gromacs_command, main=path == files.main_trajectory
                    )
                self._record(summary, unit, proceed)

        if not self.options.skip_files:
            for path in files.uploadables:
                await self._load_file(handle, monitor, path, md, summary)

        if not self.options.skip_analyses:
            for path in files.analyses:
                name = name_analysis(path.name)
                if name is None:
                    logger.warning(f"Unknown analysis file {path.name}, skipping")
                    continue
                unit = UnitIdentity("analysis", name, md)
                await monitor.check(str(unit))
                value = _require(path)
                proceed = await handle.forestall_analysis(name, md)
                if proceed:
                    await handle.load_analysis(name, md, value)
                self._record(summary, unit, proceed)

    # --- helpers -------------------------------------------------------------

    async def _load_file(
        self, handle: ProjectHandle, monitor: AbortMonitor, path: Path, md: int | None, summary: LoadSummary
    ) -> None:
        unit = UnitIdentity("file", file_load_name(path.name), md)
        await monitor.check(str(unit))
        proceed = await handle.forestall_file(unit.name, md)
        if proceed:
            await handle.load_file(unit.name, md, path)
        self._record(summary, unit, proceed)

    @staticmethod
    def _record(summary: LoadSummary, unit: UnitIdentity, loaded: bool) -> None:
        (summary.loaded if loaded else summary.skipped).append(str(unit))
