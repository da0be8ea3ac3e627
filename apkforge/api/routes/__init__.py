"""HTTP routers."""

from . import health, projects

__all__ = ["health", "projects"]
