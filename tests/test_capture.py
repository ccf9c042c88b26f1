"""
Tests for CaptureScope and TerminationTrap - redirecting the process's own output and trapping exits.
"""

import os
import subprocess
import sys
import threading

import pytest

from toolrun.core.capture import (
    CaptureScope,
    TerminationTrap,
    capture_stderr,
    capture_stdout,
    run_captured,
    trap_termination,
)
from toolrun.errors import CaptureError, ChannelRestoreError
from toolrun.models.execution import NO_TERMINATION

# Results in more than 64k being written, the pipe buffer limit on Linux.
NUMBER_OF_LINES = 10000


def captured_lines(text: str):
    # The last printed line has a newline, resulting in a trailing blank entry.
    lines = text.split("\n")
    assert lines[-1] == ""
    return lines[:-1]


class TestRedirection:
    """Redirecting sys.stdout and sys.stderr into memory."""

    def test_stdout_only(self) -> None:
        stdout = capture_stdout(lambda: [print(f"stdout: {i}") for i in range(1, NUMBER_OF_LINES + 1)])

        lines = captured_lines(stdout)
        assert len(lines) == NUMBER_OF_LINES
        assert lines[-1] == f"stdout: {NUMBER_OF_LINES}"

    def test_stderr_only(self) -> None:
        stderr = capture_stderr(
            lambda: [print(f"stderr: {i}", file=sys.stderr) for i in range(1, NUMBER_OF_LINES + 1)]
        )

        lines = captured_lines(stderr)
        assert len(lines) == NUMBER_OF_LINES
        assert lines[-1] == f"stderr: {NUMBER_OF_LINES}"

    def test_stdout_and_stderr_at_the_same_time(self) -> None:
        captured = {}

        def work():
            for i in range(1, NUMBER_OF_LINES + 1):
                print(f"stdout: {i}")
                print(f"stderr: {i}", file=sys.stderr)

        def capture_both():
            captured["stderr"] = capture_stderr(work)

        stdout = capture_stdout(capture_both)

        assert captured_lines(stdout) == [f"stdout: {i}" for i in range(1, NUMBER_OF_LINES + 1)]
        assert captured_lines(captured["stderr"]) == [f"stderr: {i}" for i in range(1, NUMBER_OF_LINES + 1)]

    def test_channels_are_restored_after_a_fault(self) -> None:
        original_stdout, original_stderr = sys.stdout, sys.stderr

        def fail():
            print("partial")
            raise ValueError("boom")

        with pytest.raises(ValueError):
            capture_stdout(fail)
        with pytest.raises(ValueError):
            capture_stderr(fail)

        assert sys.stdout is original_stdout
        assert sys.stderr is original_stderr

    def test_scope_keeps_partial_text_after_a_fault(self) -> None:
        scope = CaptureScope("stdout")

        with pytest.raises(RuntimeError):
            with scope:
                print("before the fault")
                raise RuntimeError("fault")

        assert scope.text == "before the fault\n"

    def test_untrapped_exit_restores_channel_and_propagates(self) -> None:
        original = sys.stdout

        with pytest.raises(SystemExit):
            capture_stdout(lambda: sys.exit(3))

        assert sys.stdout is original

    def test_writes_from_other_threads_are_captured(self) -> None:
        def worker(n):
            for i in range(1000):
                print(f"worker {n}: {i}")

        def work():
            threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        lines = captured_lines(capture_stdout(work))

        assert len(lines) == 4000
        for n in range(4):
            assert [line for line in lines if line.startswith(f"worker {n}:")] == \
                [f"worker {n}: {i}" for i in range(1000)]

    def test_independent_channels_on_concurrent_threads(self) -> None:
        barrier = threading.Barrier(2, timeout=30)
        captured = {}

        def capture_out():
            def work():
                barrier.wait()
                for i in range(NUMBER_OF_LINES):
                    print(f"out {i}")
            captured["stdout"] = capture_stdout(work)

        def capture_err():
            def work():
                barrier.wait()
                for i in range(NUMBER_OF_LINES):
                    print(f"err {i}", file=sys.stderr)
            captured["stderr"] = capture_stderr(work)

        threads = [threading.Thread(target=capture_out), threading.Thread(target=capture_err)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(60)

        assert captured_lines(captured["stdout"]) == [f"out {i}" for i in range(NUMBER_OF_LINES)]
        assert captured_lines(captured["stderr"]) == [f"err {i}" for i in range(NUMBER_OF_LINES)]

    def test_same_channel_reentry_is_rejected(self) -> None:
        original = sys.stdout

        with pytest.raises(CaptureError):
            capture_stdout(lambda: capture_stdout(lambda: print("inner")))

        assert sys.stdout is original

    def test_same_channel_from_another_thread_waits(self) -> None:
        entered = threading.Event()
        release = threading.Event()
        captured = {}

        def first():
            def work():
                print("first")
                entered.set()
                release.wait(30)
            captured["first"] = capture_stdout(work)

        def second():
            captured["second"] = capture_stdout(lambda: print("second"))

        t1 = threading.Thread(target=first)
        t1.start()
        assert entered.wait(30)
        t2 = threading.Thread(target=second)
        t2.start()
        t2.join(0.5)
        assert t2.is_alive()
        release.set()
        t1.join(30)
        t2.join(30)

        assert captured == {"first": "first\n", "second": "second\n"}

    def test_opposite_nesting_on_two_threads_does_not_deadlock(self) -> None:
        barrier = threading.Barrier(2, timeout=30)
        original_stdout, original_stderr = sys.stdout, sys.stderr
        outcomes = {}

        def nest(name, outer, inner):
            def work():
                barrier.wait()
                inner(lambda: None)
            try:
                outer(work)
                outcomes[name] = "captured"
            except CaptureError:
                outcomes[name] = "rejected"

        threads = [
            threading.Thread(target=nest, args=("out-then-err", capture_stdout, capture_stderr)),
            threading.Thread(target=nest, args=("err-then-out", capture_stderr, capture_stdout)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(30)

        assert not any(thread.is_alive() for thread in threads)
        assert sorted(outcomes.values()) == ["captured", "rejected"]
        assert sys.stdout is original_stdout
        assert sys.stderr is original_stderr

    def test_unknown_channel(self) -> None:
        with pytest.raises(ValueError):
            CaptureScope("stdin")


@pytest.mark.skipif(sys.platform == "win32", reason="descriptor redirection is exercised on POSIX only")
class TestDescriptorRedirection:
    """Redirecting the OS-level descriptors as well."""

    def test_child_process_output_is_captured(self) -> None:
        stdout = capture_stdout(
            lambda: subprocess.run([sys.executable, "-c", "print('from child')"], check=True),
            mode="fd"
        )

        assert stdout == "from child\n"

    def test_python_and_child_writes_keep_their_order(self) -> None:
        def work():
            print("before")
            subprocess.run([sys.executable, "-c", "import sys; sys.stderr.write('child\\n')"], check=True)
            print("after", file=sys.stderr)

        stderr = capture_stderr(work, mode="fd")

        assert stderr == "child\nafter\n"

    def test_large_output(self) -> None:
        stdout = capture_stdout(
            lambda: [print(f"stdout: {i}") for i in range(1, NUMBER_OF_LINES + 1)],
            mode="fd"
        )

        lines = captured_lines(stdout)
        assert len(lines) == NUMBER_OF_LINES
        assert lines[-1] == f"stdout: {NUMBER_OF_LINES}"

    def test_descriptor_is_restored(self) -> None:
        before = os.fstat(1)
        original = sys.stdout

        with pytest.raises(KeyError):
            capture_stdout(lambda: {}["missing"], mode="fd")

        after = os.fstat(1)
        assert (before.st_dev, before.st_ino) == (after.st_dev, after.st_ino)
        assert sys.stdout is original

    def test_descriptor_is_restored_when_stream_fails_to_close(self) -> None:
        before = os.fstat(1)

        class CloseFails:
            def __init__(self, inner):
                self.inner = inner

            def write(self, s):
                return self.inner.write(s)

            def flush(self):
                self.inner.flush()

            def close(self):
                self.inner.close()
                raise OSError("no space left on device")

        scope = CaptureScope("stdout", mode="fd")
        with pytest.raises(ChannelRestoreError):
            with scope:
                sys.stdout = scope._replacement = CloseFails(scope._replacement)
                print("kept")

        after = os.fstat(1)
        assert (before.st_dev, before.st_ino) == (after.st_dev, after.st_ino)
        assert scope.text == "kept\n"


class TestTerminationTrap:
    """Converting exit requests into reported codes."""

    def test_exit_code_is_trapped_and_host_continues(self) -> None:
        code = trap_termination(lambda: sys.exit(42))
        still_running = True

        assert code == 42
        assert still_running

    def test_normal_completion_returns_sentinel(self) -> None:
        assert trap_termination(lambda: None) is NO_TERMINATION

    def test_exit_without_code_is_zero(self) -> None:
        assert trap_termination(sys.exit) == 0

    def test_builtin_exit_is_trapped(self) -> None:
        def work():
            raise SystemExit(9)

        assert trap_termination(work) == 9

    def test_message_exit_reports_one_and_writes_message(self) -> None:
        captured = {}

        def work():
            captured["code"] = trap_termination(lambda: sys.exit("fatal problem"))

        stderr = capture_stderr(work)

        assert captured["code"] == 1
        assert stderr == "fatal problem\n"

    def test_os_exit_is_trapped_and_restored(self) -> None:
        original = os._exit

        code = trap_termination(lambda: os._exit(7))

        assert code == 7
        assert os._exit is original

    def test_interceptor_is_removed_after_a_fault(self) -> None:
        original = os._exit

        with pytest.raises(ZeroDivisionError):
            trap_termination(lambda: 1 / 0)

        assert os._exit is original

    def test_nested_traps(self) -> None:
        original = os._exit
        inner = {}

        def outer_work():
            inner["code"] = trap_termination(lambda: os._exit(3))
            assert os._exit is not original
            sys.exit(4)

        assert trap_termination(outer_work) == 4
        assert inner["code"] == 3
        assert os._exit is original

    def test_trap_context_manager(self) -> None:
        with TerminationTrap() as trap:
            sys.exit(11)

        assert trap.exit_code == 11


class TestComposition:
    """Capturing output and trapping termination of the same unit of work."""

    def test_capture_while_trapping_exit(self) -> None:
        result = {}

        def work():
            for i in range(1, NUMBER_OF_LINES + 1):
                print(f"stdout: {i}")
            sys.exit(42)

        stdout = capture_stdout(lambda: result.update(code=trap_termination(work)))

        assert result["code"] == 42
        lines = captured_lines(stdout)
        assert len(lines) == NUMBER_OF_LINES
        assert lines[-1] == f"stdout: {NUMBER_OF_LINES}"

    def test_run_captured(self) -> None:
        def work():
            print("to stdout")
            print("to stderr", file=sys.stderr)
            sys.exit(2)

        result = run_captured(work)

        assert result.stdout == "to stdout\n"
        assert result.stderr == "to stderr\n"
        assert result.exit_code == 2
        assert result.command == []
        assert not result.succeeded

    def test_run_captured_without_exit(self) -> None:
        result = run_captured(lambda: print("hello"))

        assert result.stdout == "hello\n"
        assert result.exit_code is NO_TERMINATION
        assert result.succeeded
        assert result.require_success() is result
