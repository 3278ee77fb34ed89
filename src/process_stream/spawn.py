"""Spawn-on-subscribe, kill-on-cancel process streams.

``spawn()`` returns a ``ProcessStream`` that, each time it is iterated:

1. creates the process (``ProcessSystemError`` if that fails),
2. yields its ``ProcessHandle`` exactly once,
3. completes when the process exits.

Leaving the iteration early (``break`` with ``open()``, ``aclose()``, task
cancellation) kills the process, and its descendants when
``kill_tree_when_done`` is set. If ``timeout`` elapses first the process is
killed at the deadline and ``ProcessTimeoutError`` is raised once the kill
has been delivered.

The handle stream does not raise ``ProcessExitError``; it ends on the exit
event so callers never interact with a dead process. Compose it with
``get_output_stream()`` (see ``observe_process()``) to classify exits.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import AsyncGenerator, AsyncIterable, Sequence
from typing import Any

from process_stream.errors import ProcessSystemError, ProcessTimeoutError
from process_stream.exit_classifier import is_real_exit
from process_stream.messages import ExitMessage
from process_stream.options import ProcessInput, ProcessOptions
from process_stream.process_handle import ProcessHandle
from process_stream.process_registry import ProcessRegistrySingleton
from process_stream.process_utils import get_process_tree_info, kill_process
from process_stream.stream_utils import ProcessStream

logger = logging.getLogger(__name__)


def spawn(
    command: str,
    args: Sequence[str] | None = None,
    options: ProcessOptions | None = None,
    **overrides: Any,
) -> ProcessStream[ProcessHandle]:
    """Create a stream that spawns ``command`` when iterated and yields its handle.

    Example:
        async with spawn("python", ["-i"]).open() as processes:
            async for proc in processes:
                await proc.write_stdin("print(1)\\n")
    """
    process_options = ProcessOptions.create(options, **overrides)
    arg_list = list(args or [])
    return ProcessStream(functools.partial(create_process_stream, command, arg_list, process_options))


def _on_exit(proc: ProcessHandle, options: ProcessOptions, event: ExitMessage) -> None:
    ProcessRegistrySingleton.unregister(proc)
    logger.debug("pid=%s finished with %s", proc.pid, event)
    if not options.dont_log:
        duration = proc.duration or 0.0
        ProcessRegistrySingleton.log_call(round(duration * 1000), proc.command, proc.args)


def _kill(proc: ProcessHandle, options: ProcessOptions, kill_tasks: list[asyncio.Task[None]]) -> None:
    task = kill_process(proc, options.kill_tree_when_done, options.kill_tree_signal)
    if task is not None:
        kill_tasks.append(task)


async def _wait_for_kills(kill_tasks: list[asyncio.Task[None]]) -> None:
    """Wait for tree kills to finish; their failures are already logged."""
    if kill_tasks:
        await asyncio.shield(asyncio.gather(*kill_tasks, return_exceptions=True))


def _on_deadline(
    proc: ProcessHandle,
    options: ProcessOptions,
    timed_out: asyncio.Event,
    kill_tasks: list[asyncio.Task[None]],
) -> None:
    timed_out.set()
    if proc.finished or proc.was_killed:
        return
    proc.timed_out = True
    logger.warning("Killing timed out process: %s", proc.get_command_str())
    logger.debug("Process tree at timeout:\n%s", get_process_tree_info(proc.pid))
    _kill(proc, options, kill_tasks)


async def _write_input(proc: ProcessHandle, source: ProcessInput) -> None:
    """Write ``source`` to stdin, then close stdin."""
    if isinstance(source, (str, bytes)):
        await proc.write_stdin(source)
    elif isinstance(source, AsyncIterable):
        async for data in source:
            await proc.write_stdin(data)
    else:
        for data in source:
            await proc.write_stdin(data)
    await proc.end_stdin()


async def _wait_for_real_exit(proc: ProcessHandle) -> ExitMessage:
    event = await proc.wait_exit()
    if not is_real_exit(event):
        await asyncio.Event().wait()
    return event


async def _wait_until_done(
    proc: ProcessHandle,
    options: ProcessOptions,
    timed_out: asyncio.Event,
    input_task: asyncio.Task[None] | None,
    kill_tasks: list[asyncio.Task[None]],
) -> None:
    """Wait for the process to exit, surfacing deadline and input failures."""
    exit_task = asyncio.ensure_future(_wait_for_real_exit(proc))
    deadline_task = asyncio.ensure_future(timed_out.wait())
    waiters: set[asyncio.Future[Any]] = {exit_task, deadline_task}
    if input_task is not None:
        waiters.add(input_task)
    try:
        while True:
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            if timed_out.is_set():
                # The timeout is only reported once the process is gone.
                await _wait_for_kills(kill_tasks)
                raise ProcessTimeoutError(options.timeout or 0, proc.command)
            if exit_task in done:
                return
            if input_task is not None and input_task in done:
                # Re-raises errors from the caller's input iterable.
                input_task.result()
                waiters.discard(input_task)
    finally:
        exit_task.cancel()
        deadline_task.cancel()


async def create_process_stream(
    command: str, args: list[str], options: ProcessOptions
) -> AsyncGenerator[ProcessHandle, None]:
    """The generator behind ``spawn()``; a new process per call.

    Closing it early does not return until the process, and its tree when
    ``kill_tree_when_done`` is set, has been signalled.
    """
    try:
        proc = await ProcessHandle.spawn(command, args, cwd=options.cwd, env=options.env)
    except OSError as e:
        raise ProcessSystemError(e, command, args) from e

    ProcessRegistrySingleton.register(proc)
    proc.add_exit_callback(functools.partial(_on_exit, proc, options))

    loop = asyncio.get_running_loop()
    timed_out = asyncio.Event()
    kill_tasks: list[asyncio.Task[None]] = []
    timer = (
        loop.call_later(options.timeout, _on_deadline, proc, options, timed_out, kill_tasks)
        if options.timeout
        else None
    )
    input_task = asyncio.ensure_future(_write_input(proc, options.input)) if options.input is not None else None

    finished = False
    try:
        yield proc
        await _wait_until_done(proc, options, timed_out, input_task, kill_tasks)
        finished = True
    finally:
        if timer is not None:
            timer.cancel()
        if input_task is not None and not input_task.done():
            input_task.cancel()
        if not finished and not proc.was_killed and not proc.finished:
            logger.debug("Stream for pid=%s closed early, killing it", proc.pid)
            _kill(proc, options, kill_tasks)
        await _wait_for_kills(kill_tasks)
