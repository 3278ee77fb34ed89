"""Message types emitted by process streams."""

from __future__ import annotations

import signal
from dataclasses import dataclass
from typing import Literal, Union


@dataclass(frozen=True)
class StdoutMessage:
    """A chunk (or line) of standard output."""

    data: str
    kind: Literal["stdout"] = "stdout"


@dataclass(frozen=True)
class StderrMessage:
    """A chunk (or line) of standard error."""

    data: str
    kind: Literal["stderr"] = "stderr"


@dataclass(frozen=True)
class ExitMessage:
    """Terminal message of a process stream.

    Exactly one of ``exit_code`` and ``signal`` is set. Killing a process yields
    a ``None`` exit code and the name of the signal, e.g. ``"SIGTERM"``.
    """

    exit_code: int | None
    signal: str | None
    kind: Literal["exit"] = "exit"

    @classmethod
    def from_returncode(cls, returncode: int) -> ExitMessage:
        """Build an exit message from an asyncio/subprocess return code."""
        if returncode < 0:
            try:
                name = signal.Signals(-returncode).name
            except ValueError:
                name = f"SIG{-returncode}"
            return cls(exit_code=None, signal=name)
        return cls(exit_code=returncode, signal=None)


ProcessMessage = Union[StdoutMessage, StderrMessage, ExitMessage]


@dataclass(frozen=True)
class DetailedProcessResult:
    """Accumulated result of ``run_command_detailed()``."""

    stdout: str
    stderr: str
    exit_code: int | None
