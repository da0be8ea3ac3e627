"""External tool invocation."""

from .service import ToolOutcome, ToolProbe, ToolStatus

__all__ = ["ToolOutcome", "ToolProbe", "ToolStatus"]
