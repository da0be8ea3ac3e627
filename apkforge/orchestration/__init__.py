"""Pipeline orchestration for apkforge."""

from .pipeline import PhaseOrchestrator, project_name_from_filename
from .tasks import PhaseQueue

__all__ = ["PhaseOrchestrator", "PhaseQueue", "project_name_from_filename"]
