"""
Project repository interface.

Defines the abstract contract for project records and their build logs,
enabling pluggable backends (in-memory, embedded database, etc.).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..models.project import BuildLogEntry, LogLevel, Project, ProjectCreate


class ProjectRepository(ABC):
    """Abstract store for projects and their append-only log streams."""

    @abstractmethod
    async def create(self, data: ProjectCreate) -> Project:
        """Create a project record.

        Ids are assigned in increasing order. Timestamps are set to now.
        """
        ...

    @abstractmethod
    async def get(self, project_id: int) -> Project | None:
        """Return a copy of the project, or None if unknown."""
        ...

    @abstractmethod
    async def update(self, project_id: int, **changes: Any) -> Project | None:
        """Merge ``changes`` into the stored project.

        Only supplied fields change and ``updated_at`` is always refreshed.

        Returns:
            The updated project, or None if the id is unknown

        Raises:
            ValueError: If a field name is unknown or a value is invalid
        """
        ...

    @abstractmethod
    async def delete(self, project_id: int) -> bool:
        """Delete a project and its logs. Returns True if it existed."""
        ...

    @abstractmethod
    async def list_all(self) -> list[Project]:
        """All projects in creation order."""
        ...

    @abstractmethod
    async def add_log(self, project_id: int, level: LogLevel, message: str) -> BuildLogEntry:
        """Append a log entry for a project."""
        ...

    @abstractmethod
    async def list_logs(self, project_id: int) -> list[BuildLogEntry]:
        """Log entries of a project in insertion order."""
        ...

    @abstractmethod
    async def clear_logs(self, project_id: int) -> int:
        """Remove every log entry of a project. Returns how many were removed."""
        ...
