"""Merge a process's stdout, stderr and exit into one ordered message stream."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator, AsyncIterable, Callable

from process_stream.exit_classifier import ExitErrorPredicate, classify_exit, is_real_exit
from process_stream.messages import ExitMessage, ProcessMessage, StderrMessage, StdoutMessage
from process_stream.options import DEFAULT_EXIT_ERROR_BUFFER_SIZE
from process_stream.process_handle import ProcessHandle
from process_stream.stream_utils import (
    decode_stream,
    limit_buffer_size,
    merge,
    split_stream,
    take_while_inclusive,
)

logger = logging.getLogger(__name__)


class StderrCapture:
    """Keeps the first ``size`` characters of stderr, then stops accumulating."""

    def __init__(self, size: int) -> None:
        self._size = size
        self._parts: list[str] = []
        self._length = 0

    @property
    def full(self) -> bool:
        return self._length >= self._size

    def append(self, data: str) -> None:
        if self.full:
            return
        chunk = data[: self._size - self._length]
        self._parts.append(chunk)
        self._length += len(chunk)

    @property
    def value(self) -> str:
        return "".join(self._parts)


def _text_stream(
    chunks: AsyncIterable[bytes], max_buffer: int | None, stream_name: str, split_by_lines: bool
) -> AsyncGenerator[str, None]:
    text = decode_stream(limit_buffer_size(chunks, max_buffer, stream_name))
    return split_stream(text) if split_by_lines else text


async def _tagged(source: AsyncIterable[str], make: Callable[[str], ProcessMessage]) -> AsyncGenerator[ProcessMessage, None]:
    async for data in source:
        yield make(data)


async def _wait_for_real_close(proc: ProcessHandle) -> ExitMessage:
    event = await proc.wait_close()
    if not is_real_exit(event):
        logger.debug("Ignoring %s for pid %s", event.signal, proc.pid)
        # The stream only ends on a genuine exit.
        await asyncio.Event().wait()
    return event


def _is_not_terminal(message: ProcessMessage) -> bool:
    return message.kind != "exit"


def get_output_stream(
    proc: ProcessHandle,
    *,
    split_by_lines: bool = True,
    max_buffer: int | None = None,
    is_exit_error: ExitErrorPredicate | None = None,
    exit_error_buffer_size: int = DEFAULT_EXIT_ERROR_BUFFER_SIZE,
) -> AsyncGenerator[ProcessMessage, None]:
    """Create a stream of stdout, stderr and exit messages from a process.

    Output is split by line unless ``split_by_lines`` is False. Each stream is
    limited to ``max_buffer`` bytes (``MaxBufferExceededError``). The exit
    message is derived from the process closing, so all output has been
    emitted before it, and it is passed through ``is_exit_error``; failures
    raise ``ProcessExitError`` carrying the first ``exit_error_buffer_size``
    characters of stderr.

    This intentionally does not kill the process when the stream is closed;
    ``spawn()`` does that.
    """

    async def _events() -> AsyncGenerator[ProcessMessage, None]:
        stdout = _tagged(_text_stream(proc.stdout_chunks(), max_buffer, "stdout", split_by_lines), StdoutMessage)
        stderr = _tagged(_text_stream(proc.stderr_chunks(), max_buffer, "stderr", split_by_lines), StderrMessage)
        captured_stderr = StderrCapture(exit_error_buffer_size)

        # Start listening for the close immediately, but only emit it once output has drained.
        close_task = asyncio.ensure_future(_wait_for_real_close(proc))
        try:
            async with contextlib.aclosing(merge(stdout, stderr)) as output:
                async for message in output:
                    if message.kind == "stderr":
                        captured_stderr.append(message.data)
                    yield message
            event = await close_task
        finally:
            close_task.cancel()
        yield classify_exit(event, proc, is_exit_error, captured_stderr.value)

    return take_while_inclusive(_events(), _is_not_terminal)
