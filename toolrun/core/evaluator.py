"""
Evaluation of rule scripts inside a capture scope.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..models.execution import ExecutionResult
from .capture import SYS_MODE, run_captured


class RuleEvaluator:
    """Executes Python rule source with bindings, capturing its output and trapping exit requests."""

    def __init__(self, mode: str = SYS_MODE):
        """
        Initialize the evaluator.

        Args:
            mode: Capture mode passed to the capture scopes ("sys" or "fd")
        """
        self.logger = logging.getLogger(__name__)
        self.mode = mode

    def evaluate(self,
                 source: str,
                 bindings: Optional[Dict[str, Any]] = None,
                 filename: str = "<rules>") -> ExecutionResult:
        """
        Run rule source.

        Args:
            source: Python source of the rules
            bindings: Names made available to the rules as globals
            filename: Name reported in tracebacks

        Returns:
            Captured output and the exit code the rules requested, if any

        Raises:
            SyntaxError: if the rules do not compile
            Exception: anything the rules raise other than an exit request
        """
        code = compile(source, filename, "exec")
        namespace: Dict[str, Any] = {"__name__": "__rules__", "__file__": filename}
        namespace.update(bindings or {})

        self.logger.info(f"Evaluating rules from {filename}")
        result = run_captured(lambda: exec(code, namespace), mode=self.mode)

        if result.exit_code is not None:
            self.logger.info(f"Rules in {filename} requested exit with code {result.exit_code}")
        return result

    def evaluate_file(self, rules_file: Union[str, Path], bindings: Optional[Dict[str, Any]] = None) -> ExecutionResult:
        """Run the rules stored in rules_file."""
        rules_file = Path(rules_file)
        return self.evaluate(rules_file.read_text(), bindings, filename=str(rules_file))
