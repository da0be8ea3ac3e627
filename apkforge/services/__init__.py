"""Services package for apkforge."""

from .analysis import FrameworkAnalyzer
from .build import ArtifactPackager, BuildService
from .ingestion import UploadValidator
from .setup import SetupService
from .tooling import ToolProbe

__all__ = [
    "UploadValidator",
    "FrameworkAnalyzer",
    "ToolProbe",
    "SetupService",
    "BuildService",
    "ArtifactPackager",
]
