"""Spawn-on-subscribe async streams of process output with kill-on-cancel semantics."""

from __future__ import annotations

__version__ = "1.0.0"

from process_stream.commands import (
    observe_process,
    observe_process_raw,
    run_command,
    run_command_detailed,
    scriptify_command,
)
from process_stream.errors import (
    MaxBufferExceededError,
    ProcessError,
    ProcessExitError,
    ProcessSystemError,
    ProcessTimeoutError,
)
from process_stream.exit_classifier import IPC_SIGNAL, exit_event_to_message, is_exit_error_default, is_real_exit
from process_stream.messages import DetailedProcessResult, ExitMessage, ProcessMessage, StderrMessage, StdoutMessage
from process_stream.options import DEFAULT_EXIT_ERROR_BUFFER_SIZE, DEFAULT_MAX_BUFFER, ProcessOptions
from process_stream.output_stream import get_output_stream
from process_stream.process_handle import ProcessHandle
from process_stream.process_registry import ProcessRegistry, ProcessRegistrySingleton
from process_stream.process_tree import ProcessTreeNode, get_children_of_process, get_descendants_of_process, ps_tree
from process_stream.process_utils import (
    get_absolute_binary_path_for_pid,
    get_process_tree_info,
    kill_process,
    kill_unix_process_tree,
    kill_windows_process_tree,
    memory_usage_per_pid,
)
from process_stream.spawn import spawn
from process_stream.stream_utils import ProcessStream

__all__ = [
    "DEFAULT_EXIT_ERROR_BUFFER_SIZE",
    "DEFAULT_MAX_BUFFER",
    "IPC_SIGNAL",
    "DetailedProcessResult",
    "ExitMessage",
    "MaxBufferExceededError",
    "ProcessError",
    "ProcessExitError",
    "ProcessHandle",
    "ProcessMessage",
    "ProcessOptions",
    "ProcessRegistry",
    "ProcessRegistrySingleton",
    "ProcessStream",
    "ProcessSystemError",
    "ProcessTimeoutError",
    "ProcessTreeNode",
    "StderrMessage",
    "StdoutMessage",
    "exit_event_to_message",
    "get_absolute_binary_path_for_pid",
    "get_children_of_process",
    "get_descendants_of_process",
    "get_output_stream",
    "get_process_tree_info",
    "is_exit_error_default",
    "is_real_exit",
    "kill_process",
    "kill_unix_process_tree",
    "kill_windows_process_tree",
    "memory_usage_per_pid",
    "observe_process",
    "observe_process_raw",
    "ps_tree",
    "run_command",
    "run_command_detailed",
    "scriptify_command",
    "spawn",
]
