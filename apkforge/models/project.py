"""
Project and build-log records.

Project is owned by the project repository and mutated only through merge
updates. Build log entries are append-only.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import Field

from .analysis import Framework, ProjectAnalysis
from .common import ApiModel, utcnow


class ProjectStatus(str, Enum):
    """Lifecycle states of a project."""

    UPLOADED = "uploaded"
    EXTRACTED = "extracted"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    SETUP = "setup"
    SETUP_COMPLETE = "setup-complete"
    BUILDING = "building"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (ProjectStatus.COMPLETED, ProjectStatus.ERROR)


class LogLevel(str, Enum):
    """Severity of a build log entry."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ProjectCreate(ApiModel):
    """Fields supplied when a project record is first created."""

    name: str
    original_file_name: str
    file_size: int = Field(ge=0)
    status: ProjectStatus = ProjectStatus.UPLOADED
    progress: int = Field(default=0, ge=0, le=100)


class Project(ApiModel):
    """One user-submitted mobile project moving through the pipeline."""

    id: int
    name: str
    original_file_name: str
    file_size: int = Field(ge=0)
    framework: Framework | None = None
    status: ProjectStatus = ProjectStatus.UPLOADED
    progress: int = Field(default=0, ge=0, le=100)
    analysis: ProjectAnalysis | None = None
    apk_path: str | None = None
    apk_size: int | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def has_artifact(self) -> bool:
        """An artifact path has been recorded by a successful build."""
        return bool(self.apk_path)


class BuildLogEntry(ApiModel):
    """A single user-facing log line for a project."""

    id: int
    project_id: int
    level: LogLevel = LogLevel.INFO
    message: str
    timestamp: datetime = Field(default_factory=utcnow)
