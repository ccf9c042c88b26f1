#!/usr/bin/env python3
"""
Main entry point for toolrun - resolve, bootstrap and run external tools, evaluate rule scripts.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from toolrun.catalog import get_tool
from toolrun.core import RuleEvaluator, ToolInvoker
from toolrun.errors import ToolError
from toolrun.utils.logging import setup_root_logger
from config.settings import Settings


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run external tools at a pinned version and evaluate rule scripts"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from settings)"
    )

    parser.add_argument(
        "--install-root",
        type=Path,
        help="Directory bootstrapped tools are installed to"
    )

    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Always download tool archives instead of using the local cache"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    ensure = subparsers.add_parser("ensure", help="Make a tool available at its required version")
    ensure.add_argument("tool", help="Tool name")

    version = subparsers.add_parser("version", help="Print the version a tool reports")
    version.add_argument("tool", help="Tool name")

    run = subparsers.add_parser("run", help="Run a tool, printing its captured output")
    run.add_argument("tool", help="Tool name")
    run.add_argument("--working-dir", type=Path, help="Working directory of the tool")
    run.add_argument("--timeout", type=float, help="Timeout in seconds")
    run.add_argument("args", nargs=argparse.REMAINDER, help="Arguments passed to the tool")

    evaluate = subparsers.add_parser("evaluate", help="Evaluate a rules script")
    evaluate.add_argument("rules_file", type=Path, help="Python rules script")
    evaluate.add_argument("--result", type=Path, help="JSON file bound to the name 'result'")

    return parser.parse_args(argv)


def load_settings(args) -> Settings:
    """Load settings from the environment and apply command line overrides."""
    settings = Settings()
    if args.install_root:
        settings.tools.install_root = args.install_root
    if args.no_cache:
        settings.download.use_cache = False
    if args.log_level:
        settings.logging.level = args.log_level
    return settings


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    settings = load_settings(args)

    setup_root_logger(
        settings.logging.file_path,
        settings.logging.level,
        settings.logging.format,
        settings.logging.max_file_size_mb,
        settings.logging.backup_count
    )
    logger = logging.getLogger(__name__)

    try:
        if args.command == "evaluate":
            bindings = {}
            if args.result:
                bindings["result"] = json.loads(args.result.read_text())
            result = RuleEvaluator().evaluate_file(args.rules_file, bindings)
            sys.stdout.write(result.stdout)
            sys.stderr.write(result.stderr)
            return result.exit_code or 0

        try:
            spec = get_tool(args.tool)
        except KeyError as e:
            logger.error(e.args[0])
            return 2
        invoker = ToolInvoker.from_settings(settings)

        if args.command == "ensure":
            print(invoker.ensure_available(spec))
            return 0

        if args.command == "version":
            print(invoker.version(spec))
            return 0

        tool_args = args.args[1:] if args.args[:1] == ["--"] else args.args
        result = invoker.run(spec, tool_args, working_dir=args.working_dir, timeout=args.timeout)
        sys.stdout.write(result.stdout)
        sys.stderr.write(result.stderr)
        logger.info(f"{spec.name} exited with {result.exit_code} after {result.duration_seconds:.2f} seconds")
        return result.exit_code

    except ToolError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
