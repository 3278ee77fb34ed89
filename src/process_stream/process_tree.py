"""Process table snapshots and parent/child reconstruction.

A snapshot is taken by running the platform's process listing tool and parsing
its plain-text table (``ps`` on POSIX, ``wmic`` on Windows). When neither tool
is available, psutil is used instead. The strategy is chosen once, by
capability, and every query takes a fresh snapshot.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import re
import shutil
import sys
from collections import defaultdict
from dataclasses import dataclass
from typing import Protocol

import psutil

logger = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(r"\r*\n")


@dataclass(frozen=True)
class ProcessTreeNode:
    """One row of a process table snapshot."""

    pid: int
    parent_pid: int
    command: str
    command_with_args: str


class ProcessTable(Protocol):
    """Source of process table snapshots."""

    async def snapshot(self) -> list[ProcessTreeNode]: ...


def _table_rows(output: str) -> list[list[str]]:
    """Split tabular output into whitespace-delimited columns, dropping the header."""
    lines = _LINE_SPLIT.split(output.strip())[1:]
    return [line.split() for line in lines if line.strip()]


def parse_ps_output(ps_output: str, args_output: str | None = None) -> list[ProcessTreeNode]:
    """Parse ``ps -o ppid,pid,comm`` output, optionally joined with ``ps -o pid,args``.

    Rows whose id columns are not integers are skipped.
    """
    with_args: dict[int, str] = {}
    if args_output is not None:
        for columns in _table_rows(args_output):
            try:
                with_args[int(columns[0])] = " ".join(columns[1:])
            except ValueError:
                continue

    nodes: list[ProcessTreeNode] = []
    for columns in _table_rows(ps_output):
        if len(columns) < 2:
            continue
        try:
            parent_pid = int(columns[0])
            pid = int(columns[1])
        except ValueError:
            logger.debug("Skipping malformed ps row: %s", columns)
            continue
        command = " ".join(columns[2:])
        nodes.append(
            ProcessTreeNode(
                pid=pid,
                parent_pid=parent_pid,
                command=command,
                command_with_args=with_args.get(pid, command),
            )
        )
    return nodes


def parse_wmic_output(wmic_output: str) -> list[ProcessTreeNode]:
    """Parse ``wmic PROCESS GET ParentProcessId,ProcessId,Name`` output.

    wmic orders columns alphabetically (Name, ParentProcessId, ProcessId) and
    names may contain spaces, so the ids are read from the end of each row.
    """
    nodes: list[ProcessTreeNode] = []
    for columns in _table_rows(wmic_output):
        if len(columns) < 3:
            continue
        try:
            parent_pid = int(columns[-2])
            pid = int(columns[-1])
        except ValueError:
            logger.debug("Skipping malformed wmic row: %s", columns)
            continue
        command = " ".join(columns[:-2])
        nodes.append(ProcessTreeNode(pid=pid, parent_pid=parent_pid, command=command, command_with_args=command))
    return nodes


class PsProcessTable:
    """Snapshot via two concurrent ``ps`` invocations (POSIX)."""

    async def snapshot(self) -> list[ProcessTreeNode]:
        # Import here to avoid circular imports during module load
        from process_stream.commands import run_command  # noqa: PLC0415

        commands, with_args = await asyncio.gather(
            run_command("ps", ["-A", "-o", "ppid,pid,comm"], dont_log=True),
            run_command("ps", ["-A", "-ww", "-o", "pid,args"], dont_log=True),
        )
        return parse_ps_output(commands, with_args)


class WmicProcessTable:
    """Snapshot via ``wmic`` (Windows)."""

    async def snapshot(self) -> list[ProcessTreeNode]:
        # Import here to avoid circular imports during module load
        from process_stream.commands import run_command  # noqa: PLC0415

        stdout = await run_command("wmic.exe", ["PROCESS", "GET", "ParentProcessId,ProcessId,Name"], dont_log=True)
        return parse_wmic_output(stdout)


class PsutilProcessTable:
    """Snapshot via psutil, for hosts without a usable listing tool."""

    async def snapshot(self) -> list[ProcessTreeNode]:
        nodes: list[ProcessTreeNode] = []
        for proc in psutil.process_iter(["pid", "ppid", "name", "cmdline"]):
            info = proc.info
            name = info.get("name") or ""
            cmdline = info.get("cmdline") or []
            nodes.append(
                ProcessTreeNode(
                    pid=info["pid"],
                    parent_pid=info.get("ppid") or 0,
                    command=name,
                    command_with_args=" ".join(cmdline) if cmdline else name,
                )
            )
        return nodes


class StaticProcessTable:
    """A fixed snapshot, e.g. one parsed from previously captured output."""

    def __init__(self, nodes: list[ProcessTreeNode]) -> None:
        self._nodes = list(nodes)

    async def snapshot(self) -> list[ProcessTreeNode]:
        return list(self._nodes)


@functools.cache
def get_default_process_table() -> ProcessTable:
    """Pick the snapshot strategy for this host."""
    if sys.platform == "win32":
        if shutil.which("wmic") is not None:
            return WmicProcessTable()
    elif shutil.which("ps") is not None:
        return PsProcessTable()
    logger.debug("No process listing tool found, using psutil")
    return PsutilProcessTable()


async def ps_tree(table: ProcessTable | None = None) -> list[ProcessTreeNode]:
    """Take a fresh snapshot of the process table."""
    table = table if table is not None else get_default_process_table()
    return await table.snapshot()


async def get_children_of_process(pid: int, table: ProcessTable | None = None) -> list[ProcessTreeNode]:
    processes = await ps_tree(table)
    return [info for info in processes if info.parent_pid == pid]


def descendants_from_snapshot(pid: int, processes: list[ProcessTreeNode]) -> list[ProcessTreeNode]:
    """Breadth-first walk from ``pid``; the root comes first and depth never decreases."""
    root: ProcessTreeNode | None = None
    pid_to_children: defaultdict[int, list[ProcessTreeNode]] = defaultdict(list)
    for info in processes:
        if info.pid == pid:
            root = info
        # pid 0 may list itself as its own parent on some platforms
        if info.pid != info.parent_pid:
            pid_to_children[info.parent_pid].append(info)

    descendants = [] if root is None else [root]
    seen = {pid}
    # Appending while iterating keeps the list sorted by depth.
    for info in descendants:
        for child in pid_to_children.get(info.pid, ()):
            if child.pid not in seen:
                seen.add(child.pid)
                descendants.append(child)
    return descendants


async def get_descendants_of_process(pid: int, table: ProcessTable | None = None) -> list[ProcessTreeNode]:
    """Get ``pid`` and all of its descendants, sorted by increasing depth.

    Returns an empty list when ``pid`` is not in the process table.
    """
    return descendants_from_snapshot(pid, await ps_tree(table))
