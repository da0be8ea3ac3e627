"""
Phase result models.

Returned by the upload validator, the setup steps and the build phase, and
serialized directly into HTTP responses.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from .common import ApiModel, utcnow


class FileInfo(ApiModel):
    """Metadata about an uploaded file."""

    name: str
    size: int
    type: str = "application/zip"
    last_modified: datetime = Field(default_factory=utcnow)


class ValidationReport(ApiModel):
    """Outcome of validating an upload."""

    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    file_info: FileInfo | None = None
    zip_valid: bool = True


class StepResult(ApiModel):
    """Outcome of one setup step.

    ``logs`` are informational lines, ``warnings`` and ``errors`` are
    appended at their own level. A missing tool never flips ``success``.
    """

    success: bool = True
    logs: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class SetupDetails(ApiModel):
    """Per-step success flags of a setup run."""

    dependencies: bool = False
    missing_files: bool = False
    sdk_setup: bool = False
    build_tools: bool = False


class SetupResult(ApiModel):
    """Outcome of the whole setup phase."""

    success: bool
    message: str
    details: SetupDetails = Field(default_factory=SetupDetails)
    errors: list[str] = Field(default_factory=list)
    failed_step: str | None = Field(default=None, exclude=True)


class BuildResult(ApiModel):
    """Outcome of the build phase."""

    success: bool = False
    apk_path: str | None = None
    apk_size: int | None = None
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    logs: list[str] = Field(default_factory=list)


class StopResult(ApiModel):
    """Response to a stop request."""

    stopped: bool = False
    message: str
