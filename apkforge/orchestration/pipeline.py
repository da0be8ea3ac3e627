"""
Phase orchestration for apkforge.

Drives a project through its lifecycle:

    uploaded -> extracted -> analyzing -> analyzed -> setup ->
    setup-complete -> building -> completed | error

Every phase for a project id runs under that id's lock. Automatic
continuations go through ``PhaseQueue``; only queued runs chain to the next
phase. Progress never decreases within a run. A new run starts when a phase
is entered from ``completed`` or ``error``.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from ..core.config import Config, PipelineConfig
from ..core.exceptions import (
    ApkForgeError,
    CorruptArchiveError,
    PhaseStateError,
    PhaseStepError,
    ProjectNotFoundError,
)
from ..core.logging import bound_context, get_logger
from ..core.types import PhaseName, ProjectId
from ..models.analysis import ProjectAnalysis
from ..models.build import BuildResult, SetupDetails, SetupResult, StepResult, StopResult
from ..models.project import LogLevel, Project, ProjectCreate, ProjectStatus
from ..services.analysis import FrameworkAnalyzer
from ..services.build import ArtifactPackager, BuildService
from ..services.ingestion import UploadValidator, format_file_size
from ..services.setup import SETUP_STEPS, SetupService
from ..services.tooling import ToolProbe
from ..storage import InMemoryProjectRepository, LocalFileStore, ProjectRepository
from .tasks import PhaseQueue

logger = get_logger(__name__)

STOP_UNSUPPORTED = "Stopping a running phase is not supported yet; the current phase will run to completion"


def project_name_from_filename(filename: str) -> str:
    return filename[:-4] if filename.lower().endswith(".zip") else filename


class PhaseOrchestrator:
    """Runs project phases and maintains the status state machine."""

    def __init__(
        self,
        repository: ProjectRepository,
        file_store: LocalFileStore,
        validator: UploadValidator,
        analyzer: FrameworkAnalyzer,
        setup_service: SetupService,
        build_service: BuildService,
        config: PipelineConfig | None = None,
    ) -> None:
        self.repository = repository
        self.file_store = file_store
        self.validator = validator
        self.analyzer = analyzer
        self.setup_service = setup_service
        self.build_service = build_service
        self.config = config or PipelineConfig()
        self.queue = PhaseQueue(self._run_queued)
        self._locks: dict[ProjectId, asyncio.Lock] = {}

    @classmethod
    def from_config(
        cls,
        config: Config,
        repository: ProjectRepository | None = None,
        tool_probe: ToolProbe | None = None,
    ) -> PhaseOrchestrator:
        """Wire an orchestrator and its services from configuration."""
        file_store = LocalFileStore(config.storage.uploads_path, config.storage.builds_path)
        probe = tool_probe or ToolProbe(config.tools)
        return cls(
            repository=repository or InMemoryProjectRepository(),
            file_store=file_store,
            validator=UploadValidator(config.upload),
            analyzer=FrameworkAnalyzer(file_store),
            setup_service=SetupService(file_store, probe),
            build_service=BuildService(
                file_store,
                probe,
                ArtifactPackager(config.packaging),
                attempt_native_build=config.pipeline.attempt_native_build,
            ),
            config=config.pipeline,
        )

    def _lock(self, project_id: ProjectId) -> asyncio.Lock:
        return self._locks.setdefault(project_id, asyncio.Lock())

    async def _require(self, project_id: ProjectId) -> Project:
        project = await self.repository.get(project_id)
        if project is None:
            raise ProjectNotFoundError(message="Project not found", project_id=project_id)
        return project

    async def _log(self, project_id: ProjectId, message: str, level: LogLevel = LogLevel.INFO) -> None:
        await self.repository.add_log(project_id, level, message)

    async def _log_step_result(self, project_id: ProjectId, result: StepResult | BuildResult) -> None:
        for line in result.logs:
            await self._log(project_id, line)
        for line in result.warnings:
            await self._log(project_id, line, LogLevel.WARNING)
        for line in result.errors:
            await self._log(project_id, line, LogLevel.ERROR)

    async def _update(
        self,
        project_id: ProjectId,
        *,
        status: ProjectStatus | None = None,
        progress: int | None = None,
        restart: bool = False,
        **changes: Any,
    ) -> Project:
        """Apply a state change, keeping progress non-decreasing within a run."""
        current = await self._require(project_id)
        if status is not None:
            changes["status"] = status
        if progress is not None:
            changes["progress"] = progress if restart else max(progress, current.progress)
        updated = await self.repository.update(project_id, **changes)
        if updated is None:
            raise ProjectNotFoundError(message="Project not found", project_id=project_id)
        if status is not None and status != current.status:
            logger.info("Project status changed", old=current.status.value, new=status.value, progress=updated.progress)
        return updated

    async def _fail(self, project_id: ProjectId, message: str) -> None:
        """Move to ``error``, keeping the current progress."""
        if await self.repository.get(project_id) is None:
            return
        await self._log(project_id, message, LogLevel.ERROR)
        await self._update(project_id, status=ProjectStatus.ERROR)

    @asynccontextmanager
    async def _phase(self, project_id: ProjectId, phase: PhaseName) -> AsyncIterator[Project]:
        """Serialize a phase on the project lock and fail the project on unexpected errors."""
        await self._require(project_id)
        async with self._lock(project_id):
            with bound_context(project_id=project_id, phase=phase.value):
                try:
                    project = await self._require(project_id)
                except ProjectNotFoundError:
                    self._locks.pop(project_id, None)
                    raise
                try:
                    yield project
                except (ProjectNotFoundError, PhaseStateError):
                    raise
                except PhaseStepError as e:
                    await self._fail(project_id, f"{phase.value.capitalize()} failed: {e.message}")
                    raise
                except Exception as e:
                    logger.exception("Phase failed", error=str(e))
                    await self._fail(project_id, f"{phase.value.capitalize()} failed: {e}")
                    raise PhaseStepError(
                        message=str(e) or type(e).__name__,
                        phase=phase.value,
                        step="unexpected",
                        cause=e,
                    ) from e

    async def ingest_upload(self, filename: str, data: bytes, content_type: str | None = None) -> Project:
        """Validate, store and extract an uploaded archive.

        Raises:
            ValidationError: If the upload is rejected (no record is created)
            CorruptArchiveError: If extraction fails (project moves to ``error``)
            OSError: If the upload cannot be stored (project moves to ``error``)
        """
        self.validator.ensure_valid(filename, len(data), data[:4], content_type)
        project = await self.repository.create(
            ProjectCreate(
                name=project_name_from_filename(filename),
                original_file_name=filename,
                file_size=len(data),
                progress=10,
            )
        )
        project_id = project.id

        async with self._lock(project_id):
            with bound_context(project_id=project_id, phase="upload"):
                logger.info("Upload received", filename=filename, size=len(data))
                await self._log(project_id, f"File upload started: {filename} ({format_file_size(len(data))})")
                try:
                    saved = await self.file_store.save_upload(data, filename)
                    await self._log(project_id, f"File saved successfully: {saved.name}")
                    await self._update(project_id, status=ProjectStatus.UPLOADED, progress=15)

                    project_dir = await self.file_store.project_directory(project_id)
                    await self._log(project_id, "Extracting ZIP file...")
                    extracted = await self.file_store.extract_archive(saved, project_dir)
                except CorruptArchiveError as e:
                    await self._fail(project_id, f"ZIP extraction failed: {e.message}")
                    raise
                except OSError as e:
                    await self._fail(project_id, f"Upload failed: {e}")
                    raise

                await self._log(project_id, f"ZIP file extracted successfully ({extracted} entries)")
                project = await self._update(project_id, status=ProjectStatus.EXTRACTED, progress=25)

        if self.config.auto_continue:
            await self._log(project_id, "Automatically starting project analysis...")
            self.queue.enqueue(project_id, PhaseName.ANALYZE)
        return project

    async def analyze(self, project_id: ProjectId, *, chain: bool = False) -> ProjectAnalysis:
        """Analyze the project's working directory and store the result."""
        async with self._phase(project_id, PhaseName.ANALYZE) as project:
            await self._update(
                project_id, status=ProjectStatus.ANALYZING, progress=30, restart=project.status.is_terminal
            )
            await self._log(project_id, "Starting project analysis...")

            project_dir = await self.file_store.project_directory(project_id)
            analysis = await self.analyzer.analyze(project_dir)
            valid = analysis.has_valid_structure

            await self._update(
                project_id,
                status=ProjectStatus.ANALYZED if valid else ProjectStatus.ERROR,
                progress=50 if valid else None,
                framework=analysis.framework,
                analysis=analysis,
            )
            await self._log(
                project_id,
                f"Analysis complete. Framework: {analysis.framework.value}",
                LogLevel.INFO if valid else LogLevel.ERROR,
            )
            for warning in analysis.warnings:
                await self._log(project_id, warning, LogLevel.WARNING)
            for error in analysis.errors:
                await self._log(project_id, error, LogLevel.ERROR)

        if chain and valid:
            await self._continue(project_id, PhaseName.SETUP, "Automatically starting project setup...")
        return analysis

    async def setup(self, project_id: ProjectId, *, chain: bool = False) -> SetupResult:
        """Run the four setup steps. Each step is gated on the previous one.

        Raises:
            PhaseStateError: If the project has not been analyzed
        """
        async with self._phase(project_id, PhaseName.SETUP) as project:
            if project.analysis is None:
                raise PhaseStateError(
                    message="Project must be analyzed first",
                    project_id=project_id,
                    status=project.status.value,
                )
            analysis = project.analysis

            await self._update(project_id, status=ProjectStatus.SETUP, progress=25, restart=project.status.is_terminal)
            await self._log(project_id, "Starting comprehensive project setup...")
            project_dir = await self.file_store.project_directory(project_id)

            details = SetupDetails()
            total = len(SETUP_STEPS)
            for index, step in enumerate(SETUP_STEPS, start=1):
                await self._log(project_id, f"STEP {index}/{total}: {step.title}...")
                await self._update(project_id, progress=step.progress)
                try:
                    outcome = await self.setup_service.run_step(step, project_dir, analysis)
                except PhaseStepError as e:
                    outcome = StepResult(success=False, errors=[e.message])
                    logger.warning("Setup step failed", step=step.key, error=str(e))

                await self._log_step_result(project_id, outcome)
                setattr(details, step.key, outcome.success)
                if not outcome.success:
                    reason = "; ".join(outcome.errors) or "unknown error"
                    await self._log(project_id, f"STEP {index}/{total} failed: {reason}", LogLevel.ERROR)
                    await self._update(project_id, status=ProjectStatus.ERROR)
                    return SetupResult(
                        success=False,
                        message=f"{step.title} failed",
                        details=details,
                        errors=outcome.errors,
                        failed_step=step.key,
                    )
                await self._log(project_id, f"STEP {index}/{total} completed")

            await self._log(
                project_id,
                "Project setup completed successfully: dependencies installed, missing files created, "
                "SDKs checked and build tools ready",
            )
            await self._update(project_id, status=ProjectStatus.SETUP_COMPLETE, progress=65)

        if chain:
            await self._continue(project_id, PhaseName.BUILD, "Automatically starting APK build...")
        return SetupResult(success=True, message="Project setup completed successfully", details=details)

    async def build(self, project_id: ProjectId, *, chain: bool = False) -> BuildResult:
        """Re-analyze, build and package the project."""
        async with self._phase(project_id, PhaseName.BUILD) as project:
            await self._update(
                project_id, status=ProjectStatus.BUILDING, progress=65, restart=project.status.is_terminal
            )
            await self._log(project_id, "Starting APK build...")

            project_dir = await self.file_store.project_directory(project_id)
            analysis = await self.analyzer.analyze(project_dir)
            await self._update(project_id, framework=analysis.framework, analysis=analysis)
            await self._log(project_id, f"Project re-analyzed. Framework: {analysis.framework.value}")

            async def on_progress(progress: int, message: str) -> None:
                await self._update(project_id, progress=progress)
                await self._log(project_id, message)

            result = await self.build_service.build(project_dir, analysis, on_progress)
            await self._log_step_result(project_id, result)

            if result.success:
                await self._update(
                    project_id,
                    status=ProjectStatus.COMPLETED,
                    progress=100,
                    apk_path=result.apk_path,
                    apk_size=result.apk_size,
                )
                await self._log(project_id, "APK build completed successfully!")
            else:
                await self._log(project_id, "Build process failed", LogLevel.ERROR)
                await self._update(project_id, status=ProjectStatus.ERROR)
        return result

    async def stop(self, project_id: ProjectId) -> StopResult:
        """Placeholder for cancelling a running phase. Always reports ``stopped=False``."""
        await self._require(project_id)
        logger.warning("Stop requested but not supported", project_id=project_id)
        await self._log(project_id, STOP_UNSUPPORTED, LogLevel.WARNING)
        return StopResult(stopped=False, message=STOP_UNSUPPORTED)

    async def delete(self, project_id: ProjectId) -> bool:
        """Delete the working directory, the logs and the record."""
        if await self.repository.get(project_id) is None:
            return False
        deleted = False
        async with self._lock(project_id):
            if await self.repository.get(project_id) is not None:
                await self.file_store.delete_directory(self.file_store.project_path(project_id))
                await self.repository.clear_logs(project_id)
                await self.repository.delete(project_id)
                logger.info("Project deleted", project_id=project_id)
                deleted = True
        self._locks.pop(project_id, None)
        return deleted

    async def _continue(self, project_id: ProjectId, phase: PhaseName, message: str) -> None:
        await self._log(project_id, message)
        self.queue.enqueue(project_id, phase)

    async def _run_queued(self, project_id: ProjectId, phase: PhaseName) -> None:
        project = await self.repository.get(project_id)
        if project is None:
            logger.info("Skipping queued phase for deleted project")
            return
        if project.status.is_terminal:
            logger.info("Skipping queued phase, project is terminal", status=project.status.value)
            return

        runners = {
            PhaseName.ANALYZE: self.analyze,
            PhaseName.SETUP: self.setup,
            PhaseName.BUILD: self.build,
        }
        try:
            await runners[phase](project_id, chain=True)
        except ApkForgeError as e:
            logger.warning("Automatic phase failed", error=str(e))

    async def wait_idle(self, project_id: ProjectId) -> None:
        """Wait for every queued phase of a project, including chained ones."""
        await self.queue.join(project_id)

    async def shutdown(self) -> None:
        await self.queue.shutdown()
