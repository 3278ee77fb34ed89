"""Command line entry point: run or observe a command, or print a process tree."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from process_stream.commands import observe_process, observe_process_raw, run_command_detailed
from process_stream.errors import ProcessError, ProcessExitError, ProcessSystemError, ProcessTimeoutError
from process_stream.options import ProcessOptions
from process_stream.process_tree import get_descendants_of_process
from process_stream.process_utils import memory_usage_per_pid

logger = logging.getLogger(__name__)

EXIT_TIMEOUT = 124
EXIT_NOT_FOUND = 127


def _options(args: argparse.Namespace) -> ProcessOptions:
    return ProcessOptions(timeout=args.timeout, kill_tree_when_done=args.kill_tree)


def _failure_code(error: ProcessError) -> int:
    if isinstance(error, ProcessExitError):
        return error.exit_code if error.exit_code else 1
    if isinstance(error, ProcessTimeoutError):
        return EXIT_TIMEOUT
    if isinstance(error, ProcessSystemError):
        return EXIT_NOT_FOUND
    return 1


async def _run(args: argparse.Namespace) -> int:
    try:
        result = await run_command_detailed(args.cmd, args.args, _options(args))
    except ProcessExitError as e:
        sys.stdout.write(e.stdout or "")
        sys.stderr.write(e.stderr)
        return _failure_code(e)
    sys.stdout.write(result.stdout)
    sys.stderr.write(result.stderr)
    return 0


async def _observe(args: argparse.Namespace) -> int:
    observe = observe_process_raw if args.raw else observe_process
    async with observe(args.cmd, args.args, _options(args)).open() as events:
        async for event in events:
            if event.kind == "exit":
                print(f"exit: code={event.exit_code} signal={event.signal}")
            else:
                data = event.data if event.data.endswith("\n") else event.data + "\n"
                sys.stdout.write(f"{event.kind}: {data}")
                sys.stdout.flush()
    return 0


async def _tree(args: argparse.Namespace) -> int:
    descendants = await get_descendants_of_process(args.pid)
    if not descendants:
        print(f"No process with pid {args.pid}", file=sys.stderr)
        return 1
    memory = memory_usage_per_pid([info.pid for info in descendants])
    print(f"{'PID':>8} {'PPID':>8} {'RSS(KiB)':>10}  COMMAND")
    for info in descendants:
        rss = memory.get(info.pid, "?")
        print(f"{info.pid:>8} {info.parent_pid:>8} {rss!s:>10}  {info.command_with_args}")
    return 0


def _add_process_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--timeout", type=float, default=None, help="Kill the command after SECONDS")
    parser.add_argument("--kill-tree", action="store_true", help="Also kill descendants when stopping the command")
    parser.add_argument("cmd", help="Program to run")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the program")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="process-stream", description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run a command and print its output")
    _add_process_arguments(run_parser)

    observe_parser = subparsers.add_parser("observe", help="Print each output message as it arrives")
    observe_parser.add_argument("--raw", action="store_true", help="Print chunks instead of lines")
    _add_process_arguments(observe_parser)

    tree_parser = subparsers.add_parser("tree", help="Print a process and its descendants")
    tree_parser.add_argument("pid", type=int)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
    handlers = {"run": _run, "observe": _observe, "tree": _tree}
    if args.command is None:
        parser.print_help()
        return 0
    try:
        return asyncio.run(handlers[args.command](args))
    except ProcessError as e:
        print(f"Error: {e}", file=sys.stderr)
        return _failure_code(e)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
