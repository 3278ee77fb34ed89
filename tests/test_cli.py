"""Test command line interface (CLI)."""

import os
import subprocess
import sys
import unittest


def run_cli(*args):
    return subprocess.run(  # noqa: S603
        [sys.executable, "-m", "process_stream.cli", *args],
        capture_output=True,
        text=True,
        check=False,
    )


class TestCLI(unittest.TestCase):
    """Test command line interface functionality."""

    def test_imports(self) -> None:
        """Test command line interface (CLI)."""
        result = run_cli()
        self.assertEqual(result.returncode, 0)
        self.assertIn("process-stream", result.stdout)

    def test_run_passes_exit_code(self) -> None:
        """The run command prints stdout and exits with the command's code."""
        result = run_cli("run", sys.executable, "-c", "print('hi'); raise SystemExit(3)")
        self.assertEqual(result.returncode, 3)
        self.assertIn("hi", result.stdout)

    def test_observe_prints_messages(self) -> None:
        """The observe command tags each message with its kind."""
        result = run_cli("observe", sys.executable, "-c", "print('line')")
        self.assertEqual(result.returncode, 0)
        self.assertIn("stdout: line", result.stdout)
        self.assertIn("exit: code=0", result.stdout)

    @unittest.skipIf(sys.platform == "win32", "POSIX process table")
    def test_tree_lists_process(self) -> None:
        """The tree command lists the given pid."""
        result = run_cli("tree", str(os.getpid()))
        self.assertEqual(result.returncode, 0)
        self.assertIn(str(os.getpid()), result.stdout)


if __name__ == "__main__":
    unittest.main()
