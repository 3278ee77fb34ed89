"""Errors raised by process streams.

Every stream ends either with an exit message or by raising one of these. They
all derive from ``ProcessError`` so callers can catch the whole family, and the
system and timeout errors additionally derive from the matching builtin
(``OSError`` and ``TimeoutError``).
"""

from __future__ import annotations

import errno as errno_module
import subprocess
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from process_stream.process_handle import ProcessHandle


class ProcessError(Exception):
    """Base class for errors raised by process streams."""


def _describe_exit(exit_code: int | None, signal: str | None) -> str:
    if exit_code is not None:
        return f"exit code {exit_code}"
    return f"signal {signal}"


class ProcessExitError(ProcessError):
    """The process ran and ended in a state judged unsuccessful.

    ``stderr`` only holds the complete standard error when raised by the
    accumulating helpers (``run_command()``, ``run_command_detailed()``); the
    streaming helpers attach a truncated prefix. ``stdout`` is ``None`` unless
    raised by an accumulating helper.
    """

    def __init__(
        self,
        exit_code: int | None,
        signal: str | None,
        process: ProcessHandle | None,
        stderr: str,
        stdout: str | None = None,
        command: str | None = None,
        args: list[str] | None = None,
    ) -> None:
        if process is not None:
            command = process.command if command is None else command
            args = process.args if args is None else args
        self.exit_code = exit_code
        self.signal = signal
        self.process = process
        self.stderr = stderr
        self.stdout = stdout
        self.command = command or ""
        self.command_args = list(args or [])
        command_line = subprocess.list2cmdline([self.command, *self.command_args])
        message = f'"{self.command}" failed with {_describe_exit(exit_code, signal)}\n\n{stderr}\n\n{command_line}'
        super().__init__(message)


class ProcessSystemError(ProcessError, OSError):
    """The process could not be spawned, or a syscall on it failed.

    Carries the OS error details (``errno``, ``code``, ``strerror``,
    ``filename``/``path``, ``syscall``) plus the originating command.
    """

    def __init__(
        self,
        error: OSError,
        command: str,
        args: list[str],
        process: ProcessHandle | None = None,
        syscall: str = "spawn",
    ) -> None:
        super().__init__(error.errno, error.strerror or str(error), error.filename)
        self.code = errno_module.errorcode.get(error.errno, "") if error.errno is not None else ""
        self.path = error.filename
        self.syscall = syscall
        self.command = command
        self.command_args = list(args)
        self.process = process

    def __str__(self) -> str:
        target = self.path if self.path is not None else self.command
        code = f" [{self.code}]" if self.code else ""
        return f"{self.syscall} {target}{code}: {self.strerror}"


class MaxBufferExceededError(ProcessError):
    """A stream produced more bytes than its ``max_buffer`` allows."""

    def __init__(self, stream_name: str) -> None:
        super().__init__(f"{stream_name} maxBuffer exceeded")
        self.stream_name = stream_name


class ProcessTimeoutError(ProcessError, TimeoutError):
    """The process did not finish before its deadline and was killed."""

    def __init__(self, timeout: float, command: str) -> None:
        super().__init__(f'"{command}" timed out after {timeout}s')
        self.timeout = timeout
        self.command = command
