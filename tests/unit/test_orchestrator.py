"""Unit tests for phase orchestration."""

import asyncio

import pytest

from apkforge.core.config import PipelineConfig
from apkforge.core.exceptions import (
    CorruptArchiveError,
    PhaseStateError,
    PhaseStepError,
    ProjectNotFoundError,
    ValidationError,
)
from apkforge.core.types import PhaseName
from apkforge.models import Framework, LogLevel, ProjectStatus
from apkforge.orchestration import PhaseOrchestrator, PhaseQueue, project_name_from_filename
from apkforge.storage import InMemoryProjectRepository

HAPPY_PATH = [
    ProjectStatus.UPLOADED,
    ProjectStatus.EXTRACTED,
    ProjectStatus.ANALYZING,
    ProjectStatus.ANALYZED,
    ProjectStatus.SETUP,
    ProjectStatus.SETUP_COMPLETE,
    ProjectStatus.BUILDING,
    ProjectStatus.COMPLETED,
]


class RecordingRepository(InMemoryProjectRepository):
    """In-memory repository remembering every (status, progress) it stored."""

    def __init__(self):
        super().__init__()
        self.history = []

    async def create(self, data):
        project = await super().create(data)
        self.history.append((project.status, project.progress))
        return project

    async def update(self, project_id, **changes):
        project = await super().update(project_id, **changes)
        if project is not None:
            self.history.append((project.status, project.progress))
        return project

    def statuses(self):
        seen = []
        for status, _ in self.history:
            if not seen or seen[-1] != status:
                seen.append(status)
        return seen


@pytest.fixture
def recording_repository():
    return RecordingRepository()


@pytest.fixture
async def manual(config, recording_repository):
    """Orchestrator that does not chain phases after upload."""
    config.pipeline = PipelineConfig(auto_continue=False)
    orch = PhaseOrchestrator.from_config(config, repository=recording_repository)
    yield orch
    await orch.shutdown()


async def _messages(orchestrator, project_id, level=None):
    entries = await orchestrator.repository.list_logs(project_id)
    return [e.message for e in entries if level is None or e.level == level]


def test_project_name_from_filename():
    assert project_name_from_filename("demo.zip") == "demo"
    assert project_name_from_filename("Demo.ZIP") == "Demo"
    assert project_name_from_filename("demo.zip.bak") == "demo.zip.bak"


@pytest.mark.asyncio
class TestAutomaticPipeline:
    """Tests for the chained upload, analysis, setup and build flow."""

    async def test_flutter_upload_reaches_completed(self, config, recording_repository, flutter_zip):
        orchestrator = PhaseOrchestrator.from_config(config, repository=recording_repository)
        try:
            project = await orchestrator.ingest_upload("demo.zip", flutter_zip, "application/zip")
            assert project.status == ProjectStatus.EXTRACTED
            assert project.progress == 25

            await orchestrator.wait_idle(project.id)
            final = await orchestrator.repository.get(project.id)
        finally:
            await orchestrator.shutdown()

        assert final.status == ProjectStatus.COMPLETED
        assert final.progress == 100
        assert final.framework == Framework.FLUTTER
        assert final.apk_size > 0
        assert recording_repository.statuses() == HAPPY_PATH

        progress = [p for _, p in recording_repository.history]
        assert progress == sorted(progress)

    async def test_generic_upload_reaches_completed(self, orchestrator, generic_zip):
        project = await orchestrator.ingest_upload("notes.zip", generic_zip)
        await orchestrator.wait_idle(project.id)

        final = await orchestrator.repository.get(project.id)
        assert final.status == ProjectStatus.COMPLETED
        assert final.framework == Framework.GENERIC

    async def test_logs_record_every_step_start_and_outcome(self, orchestrator, flutter_zip):
        project = await orchestrator.ingest_upload("demo.zip", flutter_zip)
        await orchestrator.wait_idle(project.id)

        messages = await _messages(orchestrator, project.id)
        for index in range(1, 5):
            assert any(m.startswith(f"STEP {index}/4: ") for m in messages)
            assert f"STEP {index}/4 completed" in messages
        assert messages[0].startswith("File upload started: demo.zip")
        assert "Analysis complete. Framework: flutter" in messages
        assert "APK build completed successfully!" in messages

    async def test_invalid_analysis_stops_the_chain(self, orchestrator, make_zip):
        archive = make_zip({"package.json": "{broken", "metro.config.js": ""})
        project = await orchestrator.ingest_upload("broken.zip", archive)
        await orchestrator.wait_idle(project.id)

        final = await orchestrator.repository.get(project.id)
        assert final.status == ProjectStatus.ERROR
        assert final.analysis is not None
        assert not final.analysis.has_valid_structure

    async def test_queued_phase_skips_terminal_project(self, manual, flutter_zip, monkeypatch):
        project = await manual.ingest_upload("demo.zip", flutter_zip)
        await manual.repository.update(project.id, status=ProjectStatus.ERROR)

        async def fail_if_called(project_dir):
            raise AssertionError("analysis should not run")

        monkeypatch.setattr(manual.analyzer, "analyze", fail_if_called)
        await manual._run_queued(project.id, PhaseName.ANALYZE)

        assert (await manual.repository.get(project.id)).status == ProjectStatus.ERROR

    async def test_queued_phase_skips_deleted_project(self, manual):
        await manual._run_queued(999, PhaseName.ANALYZE)
        assert await manual.repository.list_all() == []


@pytest.mark.asyncio
class TestUpload:
    """Tests for upload ingestion."""

    async def test_rejected_upload_creates_no_record(self, orchestrator):
        with pytest.raises(ValidationError):
            await orchestrator.ingest_upload("notes.zip", b"plain text, not a zip")

        assert await orchestrator.repository.list_all() == []

    async def test_corrupt_archive_moves_project_to_error(self, orchestrator):
        with pytest.raises(CorruptArchiveError):
            await orchestrator.ingest_upload("broken.zip", b"PK\x03\x04" + b"\x00" * 64)

        [project] = await orchestrator.repository.list_all()
        assert project.status == ProjectStatus.ERROR
        errors = await _messages(orchestrator, project.id, LogLevel.ERROR)
        assert errors[0].startswith("ZIP extraction failed")

    async def test_encrypted_archive_moves_project_to_error(self, orchestrator, encrypted_zip):
        with pytest.raises(CorruptArchiveError):
            await orchestrator.ingest_upload("secret.zip", encrypted_zip)

        [project] = await orchestrator.repository.list_all()
        assert project.status == ProjectStatus.ERROR
        assert project.progress == 15

    async def test_disk_failure_moves_project_to_error(self, orchestrator, flutter_zip, monkeypatch):
        async def full_disk(data, name):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(orchestrator.file_store, "save_upload", full_disk)
        with pytest.raises(OSError):
            await orchestrator.ingest_upload("demo.zip", flutter_zip)

        [project] = await orchestrator.repository.list_all()
        assert project.status == ProjectStatus.ERROR

    async def test_upload_without_auto_continue(self, manual, flutter_zip):
        project = await manual.ingest_upload("demo.zip", flutter_zip)
        await manual.wait_idle(project.id)

        stored = await manual.repository.get(project.id)
        assert stored.status == ProjectStatus.EXTRACTED
        assert stored.name == "demo"
        assert stored.original_file_name == "demo.zip"
        assert stored.file_size == len(flutter_zip)
        assert (manual.file_store.project_path(project.id) / "lib" / "main.dart").exists()


@pytest.mark.asyncio
class TestPhases:
    """Tests for phases triggered one at a time."""

    async def test_manual_phases(self, manual, flutter_zip):
        project = await manual.ingest_upload("demo.zip", flutter_zip)

        analysis = await manual.analyze(project.id)
        assert analysis.framework == Framework.FLUTTER
        assert analysis.build_config.version_code == 5
        assert (await manual.repository.get(project.id)).status == ProjectStatus.ANALYZED

        setup = await manual.setup(project.id)
        assert setup.success
        assert setup.details.dependencies and setup.details.build_tools
        assert (await manual.repository.get(project.id)).status == ProjectStatus.SETUP_COMPLETE

        build = await manual.build(project.id)
        assert build.success
        stored = await manual.repository.get(project.id)
        assert stored.status == ProjectStatus.COMPLETED
        assert stored.apk_path == build.apk_path

        # Manual phases never chain
        assert not manual.queue.is_busy(project.id)

    async def test_setup_requires_analysis(self, manual, flutter_zip):
        project = await manual.ingest_upload("demo.zip", flutter_zip)

        with pytest.raises(PhaseStateError) as exc_info:
            await manual.setup(project.id)

        assert exc_info.value.message == "Project must be analyzed first"
        assert (await manual.repository.get(project.id)).status == ProjectStatus.EXTRACTED

    async def test_unknown_project(self, manual):
        with pytest.raises(ProjectNotFoundError):
            await manual.analyze(42)
        with pytest.raises(ProjectNotFoundError):
            await manual.stop(42)

    async def test_unknown_project_leaves_no_lock_behind(self, manual):
        """Test requests for unknown ids do not accumulate per-project locks."""
        for project_id in range(100, 150):
            for phase in (manual.analyze, manual.setup, manual.build):
                with pytest.raises(ProjectNotFoundError):
                    await phase(project_id)
            assert not await manual.delete(project_id)

        assert manual._locks == {}

    async def test_restart_after_completion_resets_progress(self, manual, flutter_zip, recording_repository):
        project = await manual.ingest_upload("demo.zip", flutter_zip)
        await manual.analyze(project.id)
        await manual.setup(project.id)
        await manual.build(project.id)

        await manual.analyze(project.id)

        stored = await manual.repository.get(project.id)
        assert stored.status == ProjectStatus.ANALYZED
        assert stored.progress == 50
        assert (ProjectStatus.ANALYZING, 30) in recording_repository.history

    async def test_progress_never_decreases_within_a_run(self, manual, flutter_zip, recording_repository):
        project = await manual.ingest_upload("demo.zip", flutter_zip)
        await manual.analyze(project.id)
        await manual.setup(project.id)

        # Setup's nominal 25 is clamped to the 50 reached by analysis
        assert (ProjectStatus.SETUP, 25) not in recording_repository.history
        assert (ProjectStatus.SETUP, 50) in recording_repository.history

    async def test_setup_step_failure(self, manual, flutter_zip, monkeypatch):
        project = await manual.ingest_upload("demo.zip", flutter_zip)
        await manual.analyze(project.id)
        original = manual.setup_service.run_step

        async def failing_step(step, project_dir, analysis):
            if step.key == "sdk_setup":
                raise PhaseStepError(message="sdkmanager crashed", phase="setup", step=step.key)
            return await original(step, project_dir, analysis)

        monkeypatch.setattr(manual.setup_service, "run_step", failing_step)
        result = await manual.setup(project.id)

        assert not result.success
        assert result.message == "Setting up required SDKs failed"
        assert result.errors == ["sdkmanager crashed"]
        assert result.details.dependencies and result.details.missing_files
        assert not result.details.sdk_setup and not result.details.build_tools

        stored = await manual.repository.get(project.id)
        assert stored.status == ProjectStatus.ERROR
        assert stored.progress == 50
        errors = await _messages(manual, project.id, LogLevel.ERROR)
        assert "STEP 3/4 failed: sdkmanager crashed" in errors

    async def test_setup_materializes_missing_files(self, manual, make_zip):
        project = await manual.ingest_upload("demo.zip", make_zip({"pubspec.yaml": "name: demo\n"}))
        analysis = await manual.analyze(project.id)
        assert analysis.missing_files == ["lib/main.dart"]

        await manual.setup(project.id)
        assert (manual.file_store.project_path(project.id) / "lib" / "main.dart").exists()

        # Re-analysis no longer reports the file
        assert (await manual.analyze(project.id)).missing_files == []

    async def test_unexpected_build_failure(self, manual, flutter_zip, monkeypatch):
        project = await manual.ingest_upload("demo.zip", flutter_zip)
        await manual.analyze(project.id)
        await manual.setup(project.id)

        async def crash(*args, **kwargs):
            raise RuntimeError("out of memory")

        monkeypatch.setattr(manual.build_service, "build", crash)
        with pytest.raises(PhaseStepError) as exc_info:
            await manual.build(project.id)

        assert exc_info.value.phase == "build"
        stored = await manual.repository.get(project.id)
        assert stored.status == ProjectStatus.ERROR
        assert stored.progress == 65

    async def test_packaging_fallback_still_completes(self, manual, flutter_zip, monkeypatch):
        project = await manual.ingest_upload("demo.zip", flutter_zip)
        await manual.analyze(project.id)
        await manual.setup(project.id)

        def broken(*args, **kwargs):
            raise RuntimeError("aapt2 crashed")

        monkeypatch.setattr(manual.build_service.packager, "_write_artifact", broken)
        result = await manual.build(project.id)

        assert result.success
        assert result.apk_size > 0
        warnings = await _messages(manual, project.id, LogLevel.WARNING)
        assert "Full packaging failed - fallback artifact created from project files" in warnings


@pytest.mark.asyncio
class TestConcurrency:
    """Tests for per-project serialization."""

    async def test_same_project_phases_never_interleave(self, manual, flutter_zip, monkeypatch):
        project = await manual.ingest_upload("demo.zip", flutter_zip)
        events = []
        original = manual.analyzer.analyze

        async def slow_analyze(project_dir):
            events.append("start")
            await asyncio.sleep(0.05)
            result = await original(project_dir)
            events.append("end")
            return result

        monkeypatch.setattr(manual.analyzer, "analyze", slow_analyze)
        await asyncio.gather(manual.analyze(project.id), manual.analyze(project.id))

        assert events == ["start", "end", "start", "end"]

    async def test_different_projects_run_concurrently(self, manual, flutter_zip, monkeypatch):
        first = await manual.ingest_upload("one.zip", flutter_zip)
        second = await manual.ingest_upload("two.zip", flutter_zip)
        events = []
        original = manual.analyzer.analyze

        async def slow_analyze(project_dir):
            events.append("start")
            await asyncio.sleep(0.05)
            result = await original(project_dir)
            events.append("end")
            return result

        monkeypatch.setattr(manual.analyzer, "analyze", slow_analyze)
        await asyncio.gather(manual.analyze(first.id), manual.analyze(second.id))

        assert events[:2] == ["start", "start"]

    async def test_delete_waits_for_running_phase(self, manual, flutter_zip, monkeypatch):
        project = await manual.ingest_upload("demo.zip", flutter_zip)
        original = manual.analyzer.analyze

        async def slow_analyze(project_dir):
            await asyncio.sleep(0.05)
            return await original(project_dir)

        monkeypatch.setattr(manual.analyzer, "analyze", slow_analyze)
        analysis, deleted = await asyncio.gather(manual.analyze(project.id), manual.delete(project.id))

        assert analysis.framework == Framework.FLUTTER
        assert deleted
        assert await manual.repository.get(project.id) is None


@pytest.mark.asyncio
class TestControl:
    """Tests for stop and delete."""

    async def test_stop_is_a_logged_no_op(self, manual, flutter_zip):
        project = await manual.ingest_upload("demo.zip", flutter_zip)

        result = await manual.stop(project.id)

        assert result.stopped is False
        assert result.message
        assert await _messages(manual, project.id, LogLevel.WARNING) == [result.message]
        assert (await manual.repository.get(project.id)).status == ProjectStatus.EXTRACTED

    async def test_delete_removes_everything(self, manual, flutter_zip):
        project = await manual.ingest_upload("demo.zip", flutter_zip)
        directory = manual.file_store.project_path(project.id)
        assert directory.exists()

        assert await manual.delete(project.id)

        assert not directory.exists()
        assert await manual.repository.get(project.id) is None
        assert await manual.repository.list_logs(project.id) == []

    async def test_delete_unknown(self, manual):
        assert not await manual.delete(123)


@pytest.mark.asyncio
class TestPhaseQueue:
    """Tests for the per-project phase queue."""

    async def test_runs_phases_in_order_per_project(self):
        seen = []

        async def handler(project_id, phase):
            await asyncio.sleep(0.01)
            seen.append((project_id, phase))

        queue = PhaseQueue(handler)
        queue.enqueue(1, PhaseName.ANALYZE)
        queue.enqueue(1, PhaseName.SETUP)
        queue.enqueue(2, PhaseName.BUILD)
        assert queue.is_busy(1) and queue.is_busy(2)

        await queue.join_all()

        assert [phase for pid, phase in seen if pid == 1] == [PhaseName.ANALYZE, PhaseName.SETUP]
        assert (2, PhaseName.BUILD) in seen
        assert not queue.is_busy(1)

    async def test_handler_crash_does_not_stop_worker(self):
        seen = []

        async def handler(project_id, phase):
            if phase == PhaseName.ANALYZE:
                raise RuntimeError("boom")
            seen.append(phase)

        queue = PhaseQueue(handler)
        queue.enqueue(1, PhaseName.ANALYZE)
        queue.enqueue(1, PhaseName.SETUP)
        await queue.join(1)

        assert seen == [PhaseName.SETUP]

    async def test_shutdown_rejects_new_work(self):
        started = asyncio.Event()

        async def handler(project_id, phase):
            started.set()
            await asyncio.sleep(10)

        queue = PhaseQueue(handler)
        queue.enqueue(1, PhaseName.ANALYZE)
        await started.wait()

        await queue.shutdown()

        assert not queue.is_busy(1)
        assert not queue.enqueue(1, PhaseName.SETUP)
