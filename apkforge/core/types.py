"""
Core type definitions for apkforge.

Type aliases and enums shared by the orchestrator and its task queue.
"""

from __future__ import annotations

from enum import Enum

# Type aliases
ProjectId = int


class PhaseName(str, Enum):
    """Phases that can be triggered by a request or queued as a continuation."""

    ANALYZE = "analyze"
    SETUP = "setup"
    BUILD = "build"
