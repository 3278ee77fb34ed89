"""Unit tests for the process registry and call history."""

import logging
import unittest

from process_stream.process_registry import HISTORY_STRIPPED_MARKER, LoggedCall, ProcessRegistry


class TestCallHistory(unittest.TestCase):
    """Test the bounded history of completed calls."""

    def test_history_is_trimmed_behind_marker(self):
        """Past capacity, only the newest calls are kept behind a marker entry."""
        registry = ProcessRegistry(max_calls=10, preserved_calls=5)
        for i in range(1, 13):
            registry.log_call(i, "cmd", [str(i)])

        calls = registry.logged_calls
        self.assertEqual(calls[0].command, HISTORY_STRIPPED_MARKER)
        self.assertEqual([c.command for c in calls[1:]], [f"cmd {i}" for i in range(7, 13)])

    def test_history_below_capacity_is_untouched(self):
        registry = ProcessRegistry(max_calls=10, preserved_calls=5)
        for i in range(10):
            registry.log_call(i, "cmd", [])
        self.assertEqual(len(registry.logged_calls), 10)
        registry.clear_history()
        self.assertEqual(registry.logged_calls, [])

    def test_calls_are_logged_to_injected_logger(self):
        """Each call is logged at INFO as duration and command line."""
        registry = ProcessRegistry(logger=logging.getLogger("tests.registry"))
        with self.assertLogs("tests.registry", level="INFO") as cm:
            entry = registry.log_call(5, "echo", ["hello world"])
        self.assertEqual(str(entry), '5ms: echo "hello world"')
        self.assertIn('5ms: echo "hello world"', cm.output[0])

    def test_logged_call_str(self):
        self.assertEqual(str(LoggedCall(command="ls -la", duration=12, time=None)), "12ms: ls -la")


class TestActiveProcesses(unittest.TestCase):
    """Test tracking of active processes."""

    def test_dump_without_processes_warns(self):
        with self.assertWarns(UserWarning):
            ProcessRegistry().dump_active()

    def test_unregister_unknown_process_is_ignored(self):
        registry = ProcessRegistry()
        registry.unregister(object())
        self.assertEqual(registry.list_active(), [])


if __name__ == "__main__":
    unittest.main()
