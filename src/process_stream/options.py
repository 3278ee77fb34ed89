"""Options accepted by the process stream functions."""

from __future__ import annotations

import dataclasses
import signal
from collections.abc import AsyncIterable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from process_stream.exit_classifier import ExitErrorPredicate

# Ceiling on bytes accepted per output stream before the process is aborted.
DEFAULT_MAX_BUFFER = 100 * 1024 * 1024
# Characters of stderr kept to give context to exit errors.
DEFAULT_EXIT_ERROR_BUFFER_SIZE = 2000

ProcessInput = Union[str, bytes, Iterable[str], AsyncIterable[str]]


def _validate_signal_name(name: str) -> None:
    if name not in signal.Signals.__members__:
        error_msg = f"Unknown signal name: {name!r}"
        raise ValueError(error_msg)


@dataclass(frozen=True)
class ProcessOptions:
    """Configuration for spawning and observing a process.

    Attributes:
        cwd: Working directory. ``None`` inherits the current one.
        env: Variables layered over the inherited environment.
        input: Text written to stdin; stdin is closed once it is exhausted. It is
            consumed by every subscription, so a one-shot iterator (e.g. an async
            generator) only feeds the first process; pass a string or a list to
            re-run with the same input.
        max_buffer: Maximum bytes accepted per output stream.
        timeout: Seconds before the process is killed. ``None`` disables it.
        kill_tree_when_done: Also kill descendants when the stream is cancelled.
        kill_tree_signal: Signal name used for killing, e.g. ``"SIGKILL"``.
        is_exit_error: Predicate deciding which exits are failures.
        split_by_lines: Emit output line by line instead of raw chunks.
        exit_error_buffer_size: Characters of stderr attached to exit errors.
        dont_log: Skip recording the call in the call history.
    """

    cwd: str | Path | None = None
    env: Mapping[str, str] | None = None
    input: ProcessInput | None = None
    max_buffer: int | None = DEFAULT_MAX_BUFFER
    timeout: float | None = None
    kill_tree_when_done: bool = False
    kill_tree_signal: str | None = None
    is_exit_error: ExitErrorPredicate | None = None
    split_by_lines: bool = True
    exit_error_buffer_size: int = DEFAULT_EXIT_ERROR_BUFFER_SIZE
    dont_log: bool = False

    def __post_init__(self) -> None:
        if self.env is not None:
            # Snapshot the mapping so later changes by the caller are not picked up.
            object.__setattr__(self, "env", dict(self.env))
        if self.max_buffer is not None and self.max_buffer < 0:
            error_msg = f"max_buffer must be non-negative, got {self.max_buffer}"
            raise ValueError(error_msg)
        if self.timeout is not None and self.timeout < 0:
            error_msg = f"timeout must be non-negative, got {self.timeout}"
            raise ValueError(error_msg)
        if self.exit_error_buffer_size < 0:
            error_msg = f"exit_error_buffer_size must be non-negative, got {self.exit_error_buffer_size}"
            raise ValueError(error_msg)
        if self.kill_tree_signal:
            _validate_signal_name(self.kill_tree_signal)

    def replace(self, **overrides: Any) -> ProcessOptions:
        return dataclasses.replace(self, **overrides)

    @classmethod
    def create(cls, options: ProcessOptions | None = None, **overrides: Any) -> ProcessOptions:
        """Combine an optional options object with keyword overrides."""
        base = options if options is not None else cls()
        return base.replace(**overrides) if overrides else base
