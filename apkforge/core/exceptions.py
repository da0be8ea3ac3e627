"""
Custom exception hierarchy for apkforge.

All exceptions inherit from ApkForgeError to enable consistent error handling
across the pipeline. Each exception type includes context for debugging and logging.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ApkForgeError(Exception):
    """Base exception for all apkforge errors."""

    message: str
    context: dict[str, Any] = field(default_factory=dict)
    cause: Exception | None = None

    def __str__(self) -> str:
        ctx = f" | context: {self.context}" if self.context else ""
        cause = f" | caused by: {self.cause}" if self.cause else ""
        return f"{self.message}{ctx}{cause}"


@dataclass
class ValidationError(ApkForgeError):
    """Raised when an uploaded file is rejected.

    ``errors`` holds every itemized reason so callers can render them all.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        if self.errors:
            return f"Validation failed: {'; '.join(self.errors)}"
        return f"Validation failed: {super().__str__()}"


@dataclass
class AnalysisError(ApkForgeError):
    """Raised inside the analyzer for a content problem in a project tree.

    Never escapes ``FrameworkAnalyzer.analyze``; it is folded into the
    analysis result's error list.
    """

    file_path: str = ""


@dataclass
class PhaseStepError(ApkForgeError):
    """Raised when a phase step fails internally (not a missing tool)."""

    phase: str = ""
    step: str = ""

    def __str__(self) -> str:
        return f"[{self.phase}:{self.step}] {super().__str__()}"


@dataclass
class PhaseStateError(ApkForgeError):
    """Raised when a phase is invoked before its preconditions hold."""

    project_id: int = 0
    status: str = ""


@dataclass
class ProjectNotFoundError(ApkForgeError):
    """Raised when a project id is unknown."""

    project_id: int = 0


@dataclass
class ToolUnavailableError(ApkForgeError):
    """Raised when a required external tool is not available."""

    tool_name: str = ""
    install_hint: str = ""

    def __str__(self) -> str:
        hint = f" Install hint: {self.install_hint}" if self.install_hint else ""
        return f"Tool '{self.tool_name}' not available.{hint}"


@dataclass
class CorruptArchiveError(ApkForgeError):
    """Raised when an uploaded archive cannot be parsed."""

    archive_path: str = ""


@dataclass
class ArtifactPackagingError(ApkForgeError):
    """Raised when no artifact could be written at all."""

    artifact_path: str = ""
