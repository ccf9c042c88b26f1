"""
Data models for toolrun.
"""

from .tool import ToolSpec
from .execution import ExecutionResult, FetchedArchive, NO_TERMINATION

__all__ = [
    "ToolSpec",
    "ExecutionResult",
    "FetchedArchive",
    "NO_TERMINATION"
]
