"""
Exception types raised while resolving, bootstrapping and running tools,
and while capturing the process's own output channels.
"""

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .models.execution import ExecutionResult


class ToolError(Exception):
    """Base class for failures a caller can log and recover from."""

    def __init__(self, message: str, tool: Optional[str] = None):
        super().__init__(message)
        self.tool = tool


class UnsupportedPlatform(ToolError):
    """No bootstrap target exists for the running operating system."""


class ToolUnavailable(ToolError):
    """The tool could not be fetched, extracted or found after bootstrap."""


class VersionMismatch(ToolError):
    """A freshly bootstrapped tool still does not report the required version."""

    def __init__(self, tool: str, required: str, found: str):
        super().__init__(
            f"{tool} reports version '{found}' after bootstrap, but '{required}' is required.",
            tool=tool
        )
        self.required = required
        self.found = found


class ProcessLaunchError(ToolError):
    """The executable could not be started."""

    def __init__(self, command: List[str], reason: str, tool: Optional[str] = None):
        super().__init__(f"Unable to start '{' '.join(command)}': {reason}", tool=tool)
        self.command = command
        self.reason = reason


class NonZeroExit(ToolError):
    """The child ran to completion but reported failure."""

    def __init__(self, result: "ExecutionResult", tool: Optional[str] = None):
        command = " ".join(result.command) or "<in-process work>"
        message = f"'{command}' failed with exit code {result.exit_code}"
        if result.stderr.strip():
            message += f":\n{result.stderr.rstrip()}"
        super().__init__(message, tool=tool)
        self.result = result
        self.exit_code = result.exit_code
        self.stderr = result.stderr


class Timeout(ToolError, TimeoutError):
    """The child exceeded its time budget and was killed."""

    def __init__(self,
                 command: List[str],
                 timeout: float,
                 stdout: str = "",
                 stderr: str = "",
                 tool: Optional[str] = None):
        super().__init__(f"'{' '.join(command)}' timed out after {timeout} seconds", tool=tool)
        self.command = command
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr


class CaptureError(RuntimeError):
    """A capture scope was used in a way that would lose output."""


class ChannelRestoreError(SystemError):
    """A global output channel could not be restored; the process state is corrupt."""
