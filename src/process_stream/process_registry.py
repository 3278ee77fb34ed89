"""Registry of active processes and a bounded history of completed calls."""

from __future__ import annotations

import contextlib
import logging
import subprocess
import threading
import time
import warnings
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from process_stream.process_handle import ProcessHandle

MAX_LOGGED_CALLS = 100
NUM_PRESERVED_HISTORY_CALLS = 50
HISTORY_STRIPPED_MARKER = "... history stripped ..."


@dataclass(frozen=True)
class LoggedCall:
    """A completed process call."""

    command: str
    duration: int  # milliseconds
    time: datetime

    def __str__(self) -> str:
        return f"{self.duration}ms: {self.command}"


class ProcessRegistry:
    """Thread-safe registry of running processes and of recent completed calls.

    The call history has a fixed capacity: once it grows past ``max_calls`` it
    is trimmed to the newest ``preserved_calls`` entries behind a marker entry.
    Every recorded call is also logged at INFO on the injected logger.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        max_calls: int = MAX_LOGGED_CALLS,
        preserved_calls: int = NUM_PRESERVED_HISTORY_CALLS,
    ) -> None:
        self._lock = threading.RLock()
        self._processes: list[ProcessHandle] = []
        self._calls: list[LoggedCall] = []
        self._logger = logger if logger is not None else logging.getLogger(__name__)
        self._max_calls = max_calls
        self._preserved_calls = preserved_calls

    def register(self, proc: ProcessHandle) -> None:
        """Register a running process."""
        with self._lock:
            if proc not in self._processes:
                self._processes.append(proc)

    def unregister(self, proc: ProcessHandle) -> None:
        """Unregister a process."""
        with self._lock, contextlib.suppress(ValueError):
            self._processes.remove(proc)

    def list_active(self) -> list[ProcessHandle]:
        """List all active processes."""
        with self._lock:
            return [p for p in self._processes if not p.finished]

    def log_call(self, duration_ms: int, command: str, args: list[str]) -> LoggedCall:
        """Record a completed call, trimming the history when it is full."""
        entry = LoggedCall(
            command=subprocess.list2cmdline([command, *args]),
            duration=duration_ms,
            time=datetime.now(),
        )
        with self._lock:
            # Trim only once in a while to avoid shifting the list on every call.
            if len(self._calls) > self._max_calls:
                del self._calls[: len(self._calls) - self._preserved_calls]
                self._calls.insert(0, LoggedCall(command=HISTORY_STRIPPED_MARKER, duration=0, time=datetime.now()))
            self._calls.append(entry)
        self._logger.info("%s", entry)
        return entry

    @property
    def logged_calls(self) -> list[LoggedCall]:
        with self._lock:
            return list(self._calls)

    def clear_history(self) -> None:
        with self._lock:
            self._calls.clear()

    def dump_active(self) -> None:
        """Dump information about active processes."""
        active: list[ProcessHandle] = self.list_active()
        if not active:
            warnings.warn("No active subprocesses", UserWarning, stacklevel=2)
            return

        warnings.warn("Active subprocess commands:", UserWarning, stacklevel=2)

        now = time.monotonic()
        for idx, p in enumerate(active, 1):
            started = now - p.start_time
            warnings.warn(
                f"  {idx}. cmd={p.get_command_str()} pid={p.pid} duration={started:.1f}s killed={p.was_killed}",
                UserWarning,
                stacklevel=2,
            )


# Global singleton instance for convenient access
ProcessRegistrySingleton = ProcessRegistry()
