"""
toolrun: run external tools and in-process scripts with complete output capture.
"""

from .errors import (
    ToolError,
    UnsupportedPlatform,
    ToolUnavailable,
    VersionMismatch,
    ProcessLaunchError,
    NonZeroExit,
    Timeout,
    CaptureError,
    ChannelRestoreError,
)
from .models import ToolSpec, ExecutionResult, NO_TERMINATION
from .core import (
    CaptureScope,
    TerminationTrap,
    capture_stdout,
    capture_stderr,
    trap_termination,
    run_captured,
    ProcessRunner,
    ToolBootstrapper,
    ToolInvoker,
    RuleEvaluator,
)

__version__ = "0.1.0"
