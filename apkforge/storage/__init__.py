"""Storage abstraction for apkforge."""

from .interface import ProjectRepository
from .local import FileStat, LocalFileStore
from .memory import InMemoryProjectRepository

__all__ = ["ProjectRepository", "InMemoryProjectRepository", "LocalFileStore", "FileStat"]
