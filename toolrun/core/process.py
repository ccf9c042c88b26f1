"""
Child process execution with full capture of stdout and stderr.
"""

import asyncio
import contextlib
import logging
import os
import subprocess
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from ..errors import ProcessLaunchError, Timeout
from ..models.execution import ExecutionResult
from .drain import StreamDrain, decode_output

PathLike = Union[str, Path]


class ProcessRunner:
    """Runs a command as a child process and captures both of its output streams."""

    def __init__(self, default_timeout: Optional[float] = None):
        """
        Initialize the process runner.

        Args:
            default_timeout: Timeout in seconds applied when a call passes none
        """
        self.logger = logging.getLogger(__name__)
        self.default_timeout = default_timeout

    def _prepare(self, command: Sequence[PathLike],
                 working_dir: Optional[PathLike],
                 env: Optional[Dict[str, str]]):
        argv = [str(part) for part in command]
        cwd = str(working_dir) if working_dir else None
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)
        self.logger.debug(f"Running '{' '.join(argv)}' in '{cwd or os.getcwd()}'")
        return argv, cwd, full_env

    def execute(self,
                command: Sequence[PathLike],
                working_dir: Optional[PathLike] = None,
                env: Optional[Dict[str, str]] = None,
                timeout: Optional[float] = None) -> ExecutionResult:
        """
        Run a command to completion.

        Both streams are drained concurrently from the moment the process starts;
        only once both reached end-of-stream is the exit status collected.

        Args:
            command: Executable followed by its arguments
            working_dir: Working directory of the child
            env: Extra environment variables, merged over the current environment
            timeout: Seconds before the child is killed and Timeout is raised

        Returns:
            Execution result with captured output, exit code and duration
        """
        argv, cwd, full_env = self._prepare(command, working_dir, env)
        timeout = timeout if timeout is not None else self.default_timeout

        start = time.monotonic()
        try:
            process = subprocess.Popen(
                argv,
                cwd=cwd,
                env=full_env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE
            )
        except OSError as e:
            raise ProcessLaunchError(argv, e.strerror or str(e)) from e

        stdout_drain = StreamDrain(process.stdout, name=f"stdout-{process.pid}")
        stderr_drain = StreamDrain(process.stderr, name=f"stderr-{process.pid}")
        stdout_drain.start()
        stderr_drain.start()

        deadline = start + timeout if timeout is not None else None
        timed_out = False
        try:
            for drain in (stdout_drain, stderr_drain):
                drain.join(None if deadline is None else max(0.0, deadline - time.monotonic()))
                if drain.is_alive():
                    timed_out = True
                    break

            if not timed_out:
                try:
                    process.wait(None if deadline is None else max(0.0, deadline - time.monotonic()))
                except subprocess.TimeoutExpired:
                    timed_out = True

            if timed_out:
                self.logger.warning(f"'{' '.join(argv)}' exceeded {timeout} seconds, killing it")
                process.kill()
                process.wait()
                # Grandchildren may still hold the pipes open; bound the wait for partial output.
                stdout_drain.join(5)
                stderr_drain.join(5)
                raise Timeout(argv, timeout, stdout_drain.text(), stderr_drain.text())
        finally:
            if process.poll() is None:
                process.kill()
                process.wait()
            for stream, drain in ((process.stdout, stdout_drain), (process.stderr, stderr_drain)):
                # A drain still blocked in read() owns its pipe until the last writer exits.
                if not drain.is_alive():
                    stream.close()

        duration = time.monotonic() - start
        result = ExecutionResult(
            command=argv,
            stdout=stdout_drain.text(),
            stderr=stderr_drain.text(),
            exit_code=process.returncode,
            duration_seconds=duration
        )
        self.logger.debug(f"'{argv[0]}' exited with {result.exit_code} after {duration:.2f} seconds")
        return result

    async def execute_async(self,
                            command: Sequence[PathLike],
                            working_dir: Optional[PathLike] = None,
                            env: Optional[Dict[str, str]] = None,
                            timeout: Optional[float] = None) -> ExecutionResult:
        """Asyncio variant of execute() with the same capture and timeout contract."""
        argv, cwd, full_env = self._prepare(command, working_dir, env)
        timeout = timeout if timeout is not None else self.default_timeout

        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=cwd,
                env=full_env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise ProcessLaunchError(argv, e.strerror or str(e)) from e

        stdout_chunks: List[bytes] = []
        stderr_chunks: List[bytes] = []

        async def _drain(stream: asyncio.StreamReader, sink: List[bytes]):
            while True:
                chunk = await stream.read(64 * 1024)
                if not chunk:
                    break
                sink.append(chunk)

        async def _collect():
            await asyncio.gather(
                _drain(process.stdout, stdout_chunks),
                _drain(process.stderr, stderr_chunks)
            )
            return await process.wait()

        try:
            returncode = await asyncio.wait_for(_collect(), timeout=timeout)
        except asyncio.TimeoutError:
            self.logger.warning(f"'{' '.join(argv)}' exceeded {timeout} seconds, killing it")
            if process.returncode is None:
                process.kill()
            await process.wait()
            # Pick up whatever the child wrote before it was killed.
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    asyncio.gather(
                        _drain(process.stdout, stdout_chunks),
                        _drain(process.stderr, stderr_chunks)
                    ),
                    timeout=5
                )
            raise Timeout(
                argv,
                timeout,
                decode_output(b"".join(stdout_chunks)),
                decode_output(b"".join(stderr_chunks))
            )

        duration = time.monotonic() - start
        return ExecutionResult(
            command=argv,
            stdout=decode_output(b"".join(stdout_chunks)),
            stderr=decode_output(b"".join(stderr_chunks)),
            exit_code=returncode,
            duration_seconds=duration
        )
