"""High-level helpers for running commands.

- ``run_command()`` runs a command and returns its stdout.
- ``run_command_detailed()`` also returns stderr and the exit code.
- ``observe_process()`` streams stdout/stderr lines and the exit message.
- ``observe_process_raw()`` streams unsplit chunks.

All of them spawn the process when awaited/iterated, kill it when the caller
stops early, and raise ``ProcessExitError`` for unsuccessful exits (by
default, a non-zero exit code), ``ProcessSystemError`` when the process cannot
be spawned, ``MaxBufferExceededError`` when output exceeds ``max_buffer`` and
``ProcessTimeoutError`` when ``timeout`` elapses.

Example:
    async with observe_process("tail", ["-f", path]).open() as events:
        async for event in events:
            if event.kind == "stdout":
                print(event.data, end="")
"""

from __future__ import annotations

import contextlib
import functools
import shlex
import sys
from collections.abc import AsyncGenerator, Sequence
from typing import Any

from process_stream.errors import ProcessExitError, ProcessTimeoutError
from process_stream.messages import DetailedProcessResult, ProcessMessage
from process_stream.options import ProcessOptions
from process_stream.output_stream import get_output_stream
from process_stream.spawn import create_process_stream
from process_stream.stream_utils import ProcessStream, ignore_elements, merge


async def _observe(command: str, args: list[str], options: ProcessOptions) -> AsyncGenerator[ProcessMessage, None]:
    async with contextlib.aclosing(create_process_stream(command, args, options)) as processes:
        proc = await anext(processes)
        output = get_output_stream(
            proc,
            split_by_lines=options.split_by_lines,
            max_buffer=options.max_buffer,
            is_exit_error=options.is_exit_error,
            exit_error_buffer_size=options.exit_error_buffer_size,
        )
        # The process stream keeps running alongside the output so its timeout and
        # input errors end the merged stream too.
        try:
            async with contextlib.aclosing(merge(output, ignore_elements(processes))) as events:
                async for event in events:
                    yield event
        except ProcessExitError:
            # Being killed at the deadline is reported as the timeout, whichever arrives first.
            if proc.timed_out:
                raise ProcessTimeoutError(options.timeout or 0, command) from None
            raise


def observe_process(
    command: str,
    args: Sequence[str] | None = None,
    options: ProcessOptions | None = None,
    **overrides: Any,
) -> ProcessStream[ProcessMessage]:
    """Stream stdout and stderr line by line, followed by the exit message.

    Exit errors raised here carry a truncated stderr and no stdout, since the
    process may be long-running. Use ``run_command_detailed()`` for the full
    output.
    """
    process_options = ProcessOptions.create(options, **overrides)
    return ProcessStream(functools.partial(_observe, command, list(args or []), process_options))


def observe_process_raw(
    command: str,
    args: Sequence[str] | None = None,
    options: ProcessOptions | None = None,
    **overrides: Any,
) -> ProcessStream[ProcessMessage]:
    """Identical to ``observe_process()``, but doesn't buffer by line."""
    process_options = ProcessOptions.create(options, **overrides).replace(split_by_lines=False)
    return ProcessStream(functools.partial(_observe, command, list(args or []), process_options))


async def run_command_detailed(
    command: str,
    args: Sequence[str] | None = None,
    options: ProcessOptions | None = None,
    **overrides: Any,
) -> DetailedProcessResult:
    """Run a command and return its accumulated stdout, stderr and exit code.

    Raises:
        ProcessExitError: With the complete stdout and stderr attached.
    """
    stdout: list[str] = []
    stderr: list[str] = []
    exit_code: int | None = None
    try:
        async with observe_process(command, args, options, **overrides).open() as events:
            async for event in events:
                if event.kind == "stdout":
                    stdout.append(event.data)
                elif event.kind == "stderr":
                    stderr.append(event.data)
                else:
                    exit_code = event.exit_code
    except ProcessExitError as error:
        raise ProcessExitError(
            error.exit_code,
            error.signal,
            error.process,
            "".join(stderr),
            "".join(stdout),
            command=error.command,
            args=error.command_args,
        ) from None
    return DetailedProcessResult(stdout="".join(stdout), stderr="".join(stderr), exit_code=exit_code)


async def run_command(
    command: str,
    args: Sequence[str] | None = None,
    options: ProcessOptions | None = None,
    **overrides: Any,
) -> str:
    """Run a command and return its stdout.

    Example:
        listing = await run_command("ps", ["-e", "-o", "pid,comm"])
    """
    result = await run_command_detailed(command, args, options, **overrides)
    return result.stdout


def scriptify_command(
    command: str,
    args: Sequence[str] | None = None,
    options: ProcessOptions | None = None,
) -> tuple[str, list[str], ProcessOptions]:
    """Rewrite a command to run under ``script`` so it sees a terminal.

    Example:
        await run_command(*scriptify_command("hg", ["diff"]))
    """
    arg_list = list(args or [])
    process_options = options if options is not None else ProcessOptions()
    if sys.platform == "darwin":
        # On macOS, script takes the program and its arguments as trailing varargs.
        return "script", ["-q", "/dev/null", command, *arg_list], process_options
    # On Linux, script takes a single -c string; pin the shell so the quoting is predictable.
    joined = shlex.join([command, *arg_list])
    env = {**(process_options.env or {}), "SHELL": "/bin/bash"}
    return "script", ["-q", "/dev/null", "-c", joined], process_options.replace(env=env)
