"""Data models for apkforge."""

from .analysis import (
    ANALYSIS_SCHEMA_VERSION,
    AndroidBuildConfig,
    BuildConfig,
    BuildConfigBase,
    CordovaBuildConfig,
    FlutterBuildConfig,
    Framework,
    GenericBuildConfig,
    ProjectAnalysis,
    ProjectStats,
    ReactNativeBuildConfig,
    SourceStructure,
)
from .build import (
    BuildResult,
    FileInfo,
    SetupDetails,
    SetupResult,
    StepResult,
    StopResult,
    ValidationReport,
)
from .common import ApiModel, utcnow
from .project import BuildLogEntry, LogLevel, Project, ProjectCreate, ProjectStatus

__all__ = [
    # Analysis
    "ANALYSIS_SCHEMA_VERSION",
    "AndroidBuildConfig",
    "BuildConfig",
    "BuildConfigBase",
    "CordovaBuildConfig",
    "FlutterBuildConfig",
    "Framework",
    "GenericBuildConfig",
    "ProjectAnalysis",
    "ProjectStats",
    "ReactNativeBuildConfig",
    "SourceStructure",
    # Phase results
    "BuildResult",
    "FileInfo",
    "SetupDetails",
    "SetupResult",
    "StepResult",
    "StopResult",
    "ValidationReport",
    # Records
    "ApiModel",
    "BuildLogEntry",
    "LogLevel",
    "Project",
    "ProjectCreate",
    "ProjectStatus",
    "utcnow",
]
