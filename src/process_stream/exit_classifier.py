"""Decide whether a process exit counts as a failure."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from process_stream.errors import ProcessExitError
from process_stream.messages import ExitMessage

if TYPE_CHECKING:
    from process_stream.process_handle import ProcessHandle

# Delivered to a child for debugger/IPC handshakes; it does not mean the process ended.
# A process that really dies from it never produces an exit message, so streams
# over such processes should also set a ``timeout``.
IPC_SIGNAL = "SIGUSR1"

ExitErrorPredicate = Callable[[ExitMessage], bool]


def is_exit_error_default(event: ExitMessage) -> bool:
    return event.exit_code != 0


def is_real_exit(event: ExitMessage) -> bool:
    """False for exits by ``IPC_SIGNAL``, which streams keep waiting through.

    A process that is actually killed by ``IPC_SIGNAL`` therefore leaves its
    stream open until it is cancelled or its ``timeout`` elapses.
    """
    return event.signal != IPC_SIGNAL


def exit_event_to_message(event: ExitMessage) -> str:
    """Return a string suitable for including in displayed error messages."""
    if event.exit_code is not None:
        return f"exit code {event.exit_code}"
    return f"signal {event.signal}"


def classify_exit(
    event: ExitMessage,
    process: ProcessHandle | None,
    is_exit_error: ExitErrorPredicate | None,
    stderr: str,
    stdout: str | None = None,
) -> ExitMessage:
    """Return ``event`` when it is a success, otherwise raise ``ProcessExitError``.

    Args:
        event: The terminal exit message.
        process: The process the event belongs to, used for the error context.
        is_exit_error: Failure predicate. ``None`` means exit code != 0.
        stderr: Captured (possibly truncated) standard error.
        stdout: Full standard output, only known to accumulating callers.

    Raises:
        ProcessExitError: If the predicate judges the exit a failure.
    """
    predicate = is_exit_error if is_exit_error is not None else is_exit_error_default
    if predicate(event):
        raise ProcessExitError(event.exit_code, event.signal, process, stderr, stdout)
    return event
