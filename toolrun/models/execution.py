"""
Execution and download result models.
"""

from pathlib import Path
from typing import Optional, List
from pydantic import BaseModel, Field

from ..errors import NonZeroExit

# Status of in-process work that finished without asking to terminate.
NO_TERMINATION = None


class ExecutionResult(BaseModel):
    """Outcome of running a child process or a unit of in-process work."""
    command: List[str] = Field(default_factory=list, description="Command line; empty for in-process work")
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")
    exit_code: Optional[int] = Field(
        None,
        description="Child exit code or trapped termination code; None if no termination was requested"
    )
    duration_seconds: float = Field(default=0.0, description="Elapsed wall-clock time")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "command": ["lc", "--format", "json", "."],
                "stdout": "[]",
                "stderr": "",
                "exit_code": 0,
                "duration_seconds": 0.42
            }
        }

    @property
    def succeeded(self) -> bool:
        return self.exit_code in (NO_TERMINATION, 0)

    def require_success(self) -> "ExecutionResult":
        """Raise NonZeroExit with the captured stderr unless the exit code is zero."""
        if not self.succeeded:
            raise NonZeroExit(self)
        return self


class FetchedArchive(BaseModel):
    """A downloaded tool archive on local disk."""
    url: str = Field(..., description="Source URL")
    path: Path = Field(..., description="Local file holding the archive")
    from_cache: bool = Field(default=False, description="True if served from the local download cache")

    class Config:
        frozen = True
