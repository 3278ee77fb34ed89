#!/usr/bin/env python3
"""Process utilities for killing processes and process trees."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys

import psutil

from process_stream.process_handle import ProcessHandle
from process_stream.process_tree import ProcessTable, get_descendants_of_process

logger = logging.getLogger(__name__)

# Background kill tasks, referenced until they finish.
_pending_kills: set[asyncio.Task[None]] = set()


def get_process_tree_info(pid: int) -> str:
    """Get information about a process and its children."""
    try:
        process = psutil.Process(pid)
        info = [f"Process {pid} ({process.name()})"]
        info.append(f"Status: {process.status()}")
        info.append(f"CPU Times: {process.cpu_times()}")
        info.append(f"Memory: {process.memory_info()}")

        children = process.children(recursive=True)
        if children:
            info.append("\nChild processes:")
            for child in children:
                info.append(f"  Child {child.pid} ({child.name()})")
                info.append(f"    Status: {child.status()}")

        return "\n".join(info)
    except (OSError, psutil.Error):
        return f"Could not get process info for PID {pid}"


def memory_usage_per_pid(pids: list[int]) -> dict[int, int]:
    """Resident memory in KiB for each pid that could be inspected."""
    usage: dict[int, int] = {}
    for pid in pids:
        try:
            usage[pid] = psutil.Process(pid).memory_info().rss // 1024
        except (OSError, psutil.Error):
            continue
    return usage


def get_absolute_binary_path_for_pid(pid: int) -> str | None:
    """Fully qualified path of the executable running as ``pid``, if it can be found."""
    try:
        return psutil.Process(pid).exe() or None
    except (OSError, psutil.Error):
        return None


def kill_pid(pid: int, signal_name: str | None = None) -> None:
    """Send ``signal_name`` (default ``SIGTERM``) to ``pid``; an already exited pid is ignored."""
    sig = getattr(signal, signal_name) if signal_name else signal.SIGTERM
    try:
        os.kill(pid, sig)
    except ProcessLookupError:
        logger.debug("Process %s already exited", pid)


async def kill_unix_process_tree(
    pid: int, signal_name: str | None = None, table: ProcessTable | None = None
) -> list[int]:
    """Kill ``pid`` and its descendants, deepest first.

    Children are signalled before their parents so none of them is reparented
    to init (and missed) in between.

    Returns:
        The pids that were signalled, in order.
    """
    descendants = await get_descendants_of_process(pid, table)
    killed: list[int] = []
    for info in reversed(descendants):
        kill_pid(info.pid, signal_name)
        killed.append(info.pid)
    return killed


async def kill_windows_process_tree(pid: int) -> None:
    """Kill ``pid`` and its descendants with ``taskkill``.

    Raises:
        ProcessExitError: If taskkill reports a failure.
    """
    # Import here to avoid circular imports during module load
    from process_stream.commands import run_command  # noqa: PLC0415

    await run_command("taskkill", ["/pid", str(pid), "/T", "/F"], dont_log=True)


async def _kill_process_tree(proc: ProcessHandle, kill_tree_signal: str | None) -> None:
    if sys.platform == "win32":
        await kill_windows_process_tree(proc.pid)
        return
    killed: list[int] = []
    try:
        killed = await kill_unix_process_tree(proc.pid, kill_tree_signal)
    finally:
        if proc.pid not in killed:
            # The root must not outlive an incomplete snapshot.
            proc.kill(kill_tree_signal)


def _log_kill_failure(task: asyncio.Task[None]) -> None:
    _pending_kills.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("Killing process %s failed: %s", task.get_name(), error)


def kill_process(proc: ProcessHandle, kill_tree: bool, kill_tree_signal: str | None = None) -> asyncio.Task[None] | None:
    """Kill a process and, optionally, its descendants.

    A plain kill happens immediately and returns ``None``. A tree kill needs a
    process table snapshot, so it runs in a task which is returned; callers
    await it before moving on. Its failures are logged rather than raised.
    """
    if not kill_tree:
        proc.kill(kill_tree_signal)
        return None
    proc.was_killed = True
    task = asyncio.ensure_future(_kill_process_tree(proc, kill_tree_signal))
    task.set_name(str(proc.pid))
    _pending_kills.add(task)
    task.add_done_callback(_log_kill_failure)
    return task
