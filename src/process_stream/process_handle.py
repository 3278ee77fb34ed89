"""Capability wrapper around a live OS process.

``ProcessHandle`` is the only object in the package that touches the
platform's process object. It exposes the pid, the standard streams as async
chunk iterators, exit/close notifications and ``kill()``. Faults on the
process's own pipes are logged here and never propagated, so a broken pipe
after the consumer stopped reading cannot crash the host.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import subprocess
import sys
import time
from collections.abc import AsyncGenerator, Callable, Mapping
from pathlib import Path

from process_stream.messages import ExitMessage

logger = logging.getLogger(__name__)

# Bytes requested per read from a pipe.
CHUNK_SIZE = 64 * 1024


class ProcessHandle:
    """A running process owned by a single process stream.

    Create instances with ``await ProcessHandle.spawn(...)``.
    """

    def __init__(self, proc: asyncio.subprocess.Process, command: str, args: list[str]) -> None:
        self._proc = proc
        self.command = command
        self.args = args
        self.was_killed = False
        self.timed_out = False
        self._start_time = time.monotonic()
        self._end_time: float | None = None
        self._stdout_eof = asyncio.Event()
        self._stderr_eof = asyncio.Event()
        # Watch for exit from the moment the process exists so no notification is missed.
        self._exit_task: asyncio.Task[ExitMessage] = asyncio.ensure_future(self._watch_exit())

    @classmethod
    async def spawn(
        cls,
        command: str,
        args: list[str],
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ProcessHandle:
        """Start ``command`` with all three standard streams piped.

        Raises:
            OSError: If the process cannot be created (missing binary, bad cwd, ...).
        """
        full_env = None
        if env is not None:
            full_env = os.environ.copy()
            full_env.update(env)
        proc = await asyncio.create_subprocess_exec(
            os.path.expanduser(command),
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd is not None else None,
            env=full_env,
        )
        handle = cls(proc, command, args)
        logger.debug("Spawned pid=%s: %s", handle.pid, handle.get_command_str())
        return handle

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    @property
    def finished(self) -> bool:
        return self._exit_task.done()

    @property
    def start_time(self) -> float:
        """``time.monotonic()`` at spawn."""
        return self._start_time

    @property
    def duration(self) -> float | None:
        """Seconds between spawn and exit, or None while still running."""
        if self._end_time is None:
            return None
        return self._end_time - self._start_time

    def get_command_str(self) -> str:
        return subprocess.list2cmdline([self.command, *self.args])

    async def _watch_exit(self) -> ExitMessage:
        returncode = await self._proc.wait()
        self._end_time = time.monotonic()
        return ExitMessage.from_returncode(returncode)

    def add_exit_callback(self, callback: Callable[[ExitMessage], None]) -> None:
        """Run ``callback`` with the exit message once the process terminates."""

        def _on_done(task: asyncio.Task[ExitMessage]) -> None:
            if not task.cancelled() and task.exception() is None:
                callback(task.result())

        self._exit_task.add_done_callback(_on_done)

    async def wait_exit(self) -> ExitMessage:
        """Wait for the process to terminate."""
        return await asyncio.shield(self._exit_task)

    async def wait_close(self) -> ExitMessage:
        """Wait for exit *and* for stdout and stderr to be fully drained."""
        await self._stdout_eof.wait()
        await self._stderr_eof.wait()
        return await self.wait_exit()

    def stdout_chunks(self) -> AsyncGenerator[bytes, None]:
        return self._read_chunks("stdout", self._proc.stdout, self._stdout_eof)

    def stderr_chunks(self) -> AsyncGenerator[bytes, None]:
        return self._read_chunks("stderr", self._proc.stderr, self._stderr_eof)

    async def _read_chunks(
        self, stream_name: str, stream: asyncio.StreamReader | None, eof: asyncio.Event
    ) -> AsyncGenerator[bytes, None]:
        if stream is None:
            eof.set()
            return
        while True:
            try:
                data = await stream.read(CHUNK_SIZE)
            except (OSError, ValueError) as e:
                self._log_stream_error(stream_name, e)
                break
            if not data:
                break
            yield data
        eof.set()

    async def write_stdin(self, data: str | bytes) -> None:
        stdin = self._proc.stdin
        if stdin is None or stdin.is_closing():
            return
        payload = data.encode("utf-8") if isinstance(data, str) else data
        try:
            stdin.write(payload)
            await stdin.drain()
        except (OSError, ValueError, RuntimeError) as e:
            self._log_stream_error("stdin", e)

    async def end_stdin(self) -> None:
        stdin = self._proc.stdin
        if stdin is None or stdin.is_closing():
            return
        try:
            stdin.close()
            await stdin.wait_closed()
        except (OSError, ValueError, RuntimeError) as e:
            self._log_stream_error("stdin", e)

    def kill(self, signal_name: str | None = None) -> None:
        """Send ``signal_name`` (default ``SIGTERM``) to the process.

        Killing a process that already exited is not an error.
        """
        self.was_killed = True
        if self.returncode is not None:
            return
        try:
            if signal_name and sys.platform != "win32":
                self._proc.send_signal(getattr(signal, signal_name))
            else:
                self._proc.terminate()
        except ProcessLookupError:
            logger.debug("Process %s already exited", self.pid)

    def _log_stream_error(self, stream_name: str, error: BaseException) -> None:
        logger.error(
            "stream error on stream %s with command: %s error: %s",
            stream_name,
            self.get_command_str(),
            error,
        )

    def __repr__(self) -> str:
        return f"ProcessHandle(pid={self.pid}, command={self.get_command_str()!r})"

