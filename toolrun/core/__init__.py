"""
Core modules for toolrun.
"""

from .capture import (
    CaptureScope,
    TerminationTrap,
    capture_stdout,
    capture_stderr,
    trap_termination,
    run_captured,
)
from .process import ProcessRunner
from .bootstrap import ToolBootstrapper
from .invoker import ToolInvoker
from .evaluator import RuleEvaluator

__all__ = [
    "CaptureScope",
    "TerminationTrap",
    "capture_stdout",
    "capture_stderr",
    "trap_termination",
    "run_captured",
    "ProcessRunner",
    "ToolBootstrapper",
    "ToolInvoker",
    "RuleEvaluator"
]
