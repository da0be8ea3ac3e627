"""Projects router."""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse

from ...core.exceptions import CorruptArchiveError, ProjectNotFoundError
from ...core.logging import get_logger
from ...models.common import utcnow
from ...models.project import Project
from ...orchestration import PhaseOrchestrator
from ..deps import get_orchestrator

logger = get_logger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])

APK_MEDIA_TYPE = "application/vnd.android.package-archive"


def _error(status_code: int, error: str, code: str | None = None, **extra: object) -> JSONResponse:
    body: dict[str, object] = {"error": error}
    if code:
        body["code"] = code
    body.update(extra)
    body["timestamp"] = utcnow().isoformat()
    return JSONResponse(status_code=status_code, content=body)


def _no_file() -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "No file provided"})


async def _project_or_404(orchestrator: PhaseOrchestrator, project_id: int) -> Project:
    project = await orchestrator.repository.get(project_id)
    if project is None:
        raise ProjectNotFoundError(message="Project not found", project_id=project_id)
    return project


@router.post("/validate")
async def validate_upload(
    file: UploadFile | None = File(default=None),
    orchestrator: PhaseOrchestrator = Depends(get_orchestrator),
):
    """Report whether a file would be accepted, without storing it."""
    if file is None:
        return _no_file()
    data = await file.read()
    report = orchestrator.validator.validate(file.filename or "", len(data), data[:4], file.content_type)
    return report.to_wire()


@router.post("/upload")
async def upload_project(
    file: UploadFile | None = File(default=None),
    orchestrator: PhaseOrchestrator = Depends(get_orchestrator),
):
    """Store and extract an archive, then start the automatic pipeline."""
    if file is None:
        return _no_file()
    data = await file.read()
    try:
        project = await orchestrator.ingest_upload(file.filename or "", data, file.content_type)
    except CorruptArchiveError as e:
        logger.warning("Archive extraction failed", filename=file.filename, error=e.message)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to extract ZIP file", "EXTRACTION_FAILED",
                      details=e.message)
    except OSError as e:
        logger.error("Upload storage failed", filename=file.filename, error=str(e))
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to upload file", "UPLOAD_FAILED",
                      details=str(e))

    return {
        "project": project.to_wire(),
        "message": "File uploaded and extracted successfully - automatic processing started",
        "nextStep": "automatic_analysis",
    }


@router.get("")
async def list_projects(orchestrator: PhaseOrchestrator = Depends(get_orchestrator)) -> list[dict]:
    return [project.to_wire() for project in await orchestrator.repository.list_all()]


@router.get("/{project_id}")
async def get_project(project_id: int, orchestrator: PhaseOrchestrator = Depends(get_orchestrator)) -> dict:
    return (await _project_or_404(orchestrator, project_id)).to_wire()


@router.post("/{project_id}/analyze")
async def analyze_project(project_id: int, orchestrator: PhaseOrchestrator = Depends(get_orchestrator)) -> dict:
    """Run analysis for this request and return the result."""
    analysis = await orchestrator.analyze(project_id)
    return {"analysis": analysis.to_wire()}


@router.post("/{project_id}/setup")
async def setup_project(project_id: int, orchestrator: PhaseOrchestrator = Depends(get_orchestrator)):
    """Run the four setup steps for this request."""
    result = await orchestrator.setup(project_id)
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": result.message, "details": result.errors},
        )
    return result.to_wire()


@router.post("/{project_id}/build")
async def build_project(project_id: int, orchestrator: PhaseOrchestrator = Depends(get_orchestrator)) -> dict:
    result = await orchestrator.build(project_id)
    return {"buildResult": result.to_wire()}


@router.post("/{project_id}/stop")
async def stop_project(project_id: int, orchestrator: PhaseOrchestrator = Depends(get_orchestrator)) -> dict:
    return (await orchestrator.stop(project_id)).to_wire()


@router.get("/{project_id}/download")
async def download_artifact(project_id: int, orchestrator: PhaseOrchestrator = Depends(get_orchestrator)):
    """Stream the built artifact as an attachment."""
    project = await _project_or_404(orchestrator, project_id)
    if not project.has_artifact or not await orchestrator.file_store.exists(Path(project.apk_path)):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "APK not found"})

    return FileResponse(
        project.apk_path,
        media_type=APK_MEDIA_TYPE,
        filename=f"{project.name}-release.apk",
    )


@router.get("/{project_id}/logs")
async def list_logs(project_id: int, orchestrator: PhaseOrchestrator = Depends(get_orchestrator)) -> list[dict]:
    return [entry.to_wire() for entry in await orchestrator.repository.list_logs(project_id)]


@router.delete("/{project_id}/logs")
async def clear_logs(project_id: int, orchestrator: PhaseOrchestrator = Depends(get_orchestrator)) -> dict:
    removed = await orchestrator.repository.clear_logs(project_id)
    logger.info("Build logs cleared", project_id=project_id, removed=removed)
    return {"success": True}


@router.delete("/{project_id}")
async def delete_project(project_id: int, orchestrator: PhaseOrchestrator = Depends(get_orchestrator)) -> dict:
    """Delete the working directory, logs and record."""
    if not await orchestrator.delete(project_id):
        raise ProjectNotFoundError(message="Project not found", project_id=project_id)
    return {"success": True}
