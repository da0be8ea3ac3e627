"""Framework detection and project analysis."""

from .service import FrameworkAnalyzer, ProjectTree, detect_framework

__all__ = ["FrameworkAnalyzer", "ProjectTree", "detect_framework"]
