"""
Capture of the process's own output channels and trapping of termination requests.

Both sys.stdout and sys.stderr are process-wide. A CaptureScope swaps one of
them for an in-memory sink for the duration of a ``with`` block and restores the
original on every exit path. In ``fd`` mode the OS-level descriptor is
redirected as well, so output of child processes and C extensions that write to
descriptor 1 or 2 directly is captured too.

A TerminationTrap turns ``sys.exit()``, ``exit()``, ``quit()`` and ``os._exit()``
issued by the wrapped work into a reported exit code instead of ending the host.
"""

import contextlib
import io
import logging
import os
import sys
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from ..errors import CaptureError, ChannelRestoreError
from ..models.execution import ExecutionResult, NO_TERMINATION
from .drain import StreamDrain

logger = logging.getLogger(__name__)

STDOUT = "stdout"
STDERR = "stderr"
SYS_MODE = "sys"
FD_MODE = "fd"

_FILENOS = {STDOUT: 1, STDERR: 2}

# Bound on waiting for descriptor writers (e.g. lingering grandchildren) at teardown.
_DRAIN_JOIN_TIMEOUT = 10.0


# Shared by all channel guards so a waiting thread can see who waits on whom.
_GUARD_STATE = threading.Condition()
_WAITING: Dict[int, "_ChannelGuard"] = {}


class _ChannelGuard:
    """
    Allows a single active scope per channel.

    Re-entry from the owning thread is rejected. A thread that would close a
    wait cycle (stdout and stderr nested in opposite orders on two threads) is
    rejected as well; every other contender waits for the owner to leave.
    """

    def __init__(self, channel: str):
        self.channel = channel
        self._owner: Optional[int] = None

    def _closes_cycle(self, me: int) -> bool:
        owner = self._owner
        seen = set()
        while owner is not None and owner not in seen:
            if owner == me:
                return True
            seen.add(owner)
            blocked_on = _WAITING.get(owner)
            owner = blocked_on._owner if blocked_on is not None else None
        return False

    def acquire(self):
        me = threading.get_ident()
        with _GUARD_STATE:
            if self._owner == me:
                raise CaptureError(f"sys.{self.channel} is already being captured by this thread.")
            while self._owner is not None:
                if self._closes_cycle(me):
                    raise CaptureError(
                        f"sys.{self.channel} is captured by a thread waiting on a channel this thread holds."
                    )
                _WAITING[me] = self
                try:
                    _GUARD_STATE.wait()
                finally:
                    del _WAITING[me]
            self._owner = me

    def release(self):
        with _GUARD_STATE:
            self._owner = None
            _GUARD_STATE.notify_all()


_GUARDS = {name: _ChannelGuard(name) for name in _FILENOS}


class _MemorySink(io.TextIOBase):
    """Text sink that collects writes from any thread in order."""

    def __init__(self, encoding: str = "utf-8"):
        super().__init__()
        self._parts: List[str] = []
        self._lock = threading.Lock()
        self._encoding = encoding

    @property
    def encoding(self):
        return self._encoding

    @property
    def errors(self):
        return "strict"

    def writable(self) -> bool:
        return True

    def isatty(self) -> bool:
        return False

    def write(self, s: str) -> int:
        if not isinstance(s, str):
            raise TypeError(f"write() argument must be str, not {type(s).__name__}")
        with self._lock:
            self._parts.append(s)
        return len(s)

    def getvalue(self) -> str:
        with self._lock:
            return "".join(self._parts)


class CaptureScope:
    """
    Redirects one global output channel into memory for the duration of a ``with`` block.

    The captured text is available as ``scope.text`` once the block has exited,
    including when the block raised.

    Args:
        channel: "stdout" or "stderr"
        mode: "sys" replaces only the Python-level stream, "fd" also redirects the OS descriptor
    """

    def __init__(self, channel: str = STDOUT, mode: str = SYS_MODE):
        if channel not in _FILENOS:
            raise ValueError(f"Unknown channel '{channel}', expected 'stdout' or 'stderr'.")
        if mode not in (SYS_MODE, FD_MODE):
            raise ValueError(f"Unknown capture mode '{mode}', expected 'sys' or 'fd'.")
        self.channel = channel
        self.mode = mode
        self.text = ""
        self._guard = _GUARDS[channel]
        self._original: Any = None
        self._replacement: Any = None
        self._sink: Optional[_MemorySink] = None
        self._saved_fd: Optional[int] = None
        self._read_fd: Optional[int] = None
        self._drain: Optional[StreamDrain] = None

    def __enter__(self) -> "CaptureScope":
        self._guard.acquire()
        try:
            self._original = getattr(sys, self.channel)
            _flush(self._original)
            if self.mode == FD_MODE:
                self._install_fd()
            else:
                self._sink = _MemorySink()
                self._replacement = self._sink
            setattr(sys, self.channel, self._replacement)
        except BaseException:
            self._guard.release()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if getattr(sys, self.channel) is not self._replacement:
                logger.warning(f"sys.{self.channel} was replaced inside a capture scope; restoring the original.")
            setattr(sys, self.channel, self._original)
            if self.mode == FD_MODE:
                self._uninstall_fd()
            else:
                self.text = self._sink.getvalue()
        finally:
            self._guard.release()
        return False

    def _install_fd(self):
        fileno = _FILENOS[self.channel]
        self._saved_fd = os.dup(fileno)
        self._read_fd, write_fd = os.pipe()
        try:
            os.dup2(write_fd, fileno)
        except OSError:
            os.close(self._saved_fd)
            os.close(self._read_fd)
            raise
        finally:
            os.close(write_fd)
        self._drain = StreamDrain(self._read_fd, name=f"capture-{self.channel}")
        self._drain.start()
        self._replacement = io.TextIOWrapper(
            open(fileno, "wb", closefd=False),
            encoding="utf-8",
            errors="replace",
            line_buffering=True
        )

    def _uninstall_fd(self):
        fileno = _FILENOS[self.channel]
        close_error: Optional[Exception] = None
        try:
            self._replacement.close()
        except (OSError, ValueError) as e:
            close_error = e
        try:
            # Closes the pipe's last write end held by this process.
            os.dup2(self._saved_fd, fileno)
        except OSError as e:
            raise ChannelRestoreError(f"Unable to restore descriptor {fileno} for {self.channel}: {e}") from e
        finally:
            os.close(self._saved_fd)

        self._drain.join(_DRAIN_JOIN_TIMEOUT)
        if self._drain.is_alive():
            logger.warning(f"A process still holds the captured {self.channel} pipe open; returning partial output.")
        else:
            os.close(self._read_fd)
        self.text = self._drain.text()

        if close_error is not None:
            raise ChannelRestoreError(
                f"Descriptor {fileno} was restored but the capture stream for {self.channel} "
                f"failed to close: {close_error}"
            ) from close_error


def _flush(stream):
    flush = getattr(stream, "flush", None)
    if flush is None:
        return
    with contextlib.suppress(OSError, ValueError):
        flush()


def capture_stdout(work: Callable[[], Any], mode: str = SYS_MODE) -> str:
    """Run work and return everything it wrote to stdout."""
    with CaptureScope(STDOUT, mode) as scope:
        work()
    return scope.text


def capture_stderr(work: Callable[[], Any], mode: str = SYS_MODE) -> str:
    """Run work and return everything it wrote to stderr."""
    with CaptureScope(STDERR, mode) as scope:
        work()
    return scope.text


class TerminationRequested(SystemExit):
    """Raised in place of os._exit() while a TerminationTrap is active."""


class _ExitInterceptor:
    """Reference-counted replacement of os._exit shared by all active traps."""

    def __init__(self):
        self._lock = threading.Lock()
        self._depth = 0
        self._original: Optional[Callable[[int], Any]] = None

    @staticmethod
    def _intercept(code):
        raise TerminationRequested(code)

    def install(self):
        with self._lock:
            if self._depth == 0:
                self._original = os._exit
                os._exit = self._intercept
            self._depth += 1

    def uninstall(self):
        with self._lock:
            self._depth -= 1
            if self._depth == 0:
                os._exit = self._original
                self._original = None


_INTERCEPTOR = _ExitInterceptor()


def normalize_exit_code(code: Any) -> int:
    """Map a SystemExit code to the status the interpreter would have exited with."""
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    print(code, file=sys.stderr)
    return 1


class TerminationTrap:
    """
    Context manager that converts termination requests into ``exit_code``.

    ``exit_code`` stays NO_TERMINATION (None) when the block completes normally.
    """

    def __init__(self):
        self.exit_code: Optional[int] = NO_TERMINATION

    def __enter__(self) -> "TerminationTrap":
        _INTERCEPTOR.install()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        _INTERCEPTOR.uninstall()
        if exc_type is not None and issubclass(exc_type, SystemExit):
            self.exit_code = normalize_exit_code(exc.code)
            logger.debug(f"Trapped termination request with code {self.exit_code}")
            return True
        return False


def trap_termination(work: Callable[[], Any]) -> Optional[int]:
    """Run work; return the exit code it requested or None if it completed."""
    with TerminationTrap() as trap:
        work()
    return trap.exit_code


def run_captured(work: Callable[[], Any], mode: str = SYS_MODE) -> ExecutionResult:
    """Run work with both channels captured and termination trapped."""
    start = time.monotonic()
    with CaptureScope(STDOUT, mode) as out, CaptureScope(STDERR, mode) as err:
        with TerminationTrap() as trap:
            work()
    return ExecutionResult(
        stdout=out.text,
        stderr=err.text,
        exit_code=trap.exit_code,
        duration_seconds=time.monotonic() - start
    )
