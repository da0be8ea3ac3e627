"""Core infrastructure components for apkforge."""

from .config import Config, get_config
from .exceptions import (
    ApkForgeError,
    AnalysisError,
    ArtifactPackagingError,
    CorruptArchiveError,
    PhaseStateError,
    PhaseStepError,
    ProjectNotFoundError,
    ToolUnavailableError,
    ValidationError,
)
from .logging import bound_context, get_logger, setup_logging
from .types import PhaseName, ProjectId

__all__ = [
    "Config",
    "get_config",
    "ApkForgeError",
    "AnalysisError",
    "ArtifactPackagingError",
    "CorruptArchiveError",
    "PhaseStateError",
    "PhaseStepError",
    "ProjectNotFoundError",
    "ToolUnavailableError",
    "ValidationError",
    "bound_context",
    "get_logger",
    "setup_logging",
    "PhaseName",
    "ProjectId",
]
