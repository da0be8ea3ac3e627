"""In-memory project repository, the default backend and the test fake."""

from __future__ import annotations

import asyncio
from itertools import count
from typing import Any

from ..core.logging import get_logger
from ..models.common import utcnow
from ..models.project import BuildLogEntry, LogLevel, Project, ProjectCreate
from .interface import ProjectRepository

logger = get_logger(__name__)

_IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})


class InMemoryProjectRepository(ProjectRepository):
    """Dict-backed repository. Callers always receive copies."""

    def __init__(self) -> None:
        self._projects: dict[int, Project] = {}
        self._logs: dict[int, list[BuildLogEntry]] = {}
        self._project_ids = count(1)
        self._log_ids = count(1)
        self._lock = asyncio.Lock()

    async def create(self, data: ProjectCreate) -> Project:
        async with self._lock:
            now = utcnow()
            project = Project(
                id=next(self._project_ids),
                created_at=now,
                updated_at=now,
                **data.model_dump(),
            )
            self._projects[project.id] = project
            logger.debug("Project created", project_id=project.id, name=project.name)
            return project.model_copy(deep=True)

    async def get(self, project_id: int) -> Project | None:
        project = self._projects.get(project_id)
        return project.model_copy(deep=True) if project else None

    async def update(self, project_id: int, **changes: Any) -> Project | None:
        unknown = set(changes) - (set(Project.model_fields) - _IMMUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown or read-only project fields: {sorted(unknown)}")

        async with self._lock:
            current = self._projects.get(project_id)
            if current is None:
                return None
            merged = current.model_dump()
            merged.update(changes)
            merged["updated_at"] = utcnow()
            # Re-validate so bad values never reach the store
            project = Project.model_validate(merged)
            self._projects[project_id] = project
            return project.model_copy(deep=True)

    async def delete(self, project_id: int) -> bool:
        async with self._lock:
            self._logs.pop(project_id, None)
            return self._projects.pop(project_id, None) is not None

    async def list_all(self) -> list[Project]:
        return [p.model_copy(deep=True) for p in self._projects.values()]

    async def add_log(self, project_id: int, level: LogLevel, message: str) -> BuildLogEntry:
        entry = BuildLogEntry(
            id=next(self._log_ids),
            project_id=project_id,
            level=LogLevel(level),
            message=message,
        )
        self._logs.setdefault(project_id, []).append(entry)
        return entry.model_copy()

    async def list_logs(self, project_id: int) -> list[BuildLogEntry]:
        return [e.model_copy() for e in self._logs.get(project_id, [])]

    async def clear_logs(self, project_id: int) -> int:
        return len(self._logs.pop(project_id, []))
