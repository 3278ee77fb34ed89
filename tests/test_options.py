"""Unit tests for options, exit messages and command rewriting."""

import sys
import unittest
from unittest import mock

from process_stream.commands import scriptify_command
from process_stream.errors import ProcessExitError
from process_stream.exit_classifier import (
    classify_exit,
    exit_event_to_message,
    is_exit_error_default,
    is_real_exit,
)
from process_stream.messages import ExitMessage
from process_stream.options import DEFAULT_MAX_BUFFER, ProcessOptions


class TestProcessOptions(unittest.TestCase):
    """Test option defaults and validation."""

    def test_defaults(self):
        options = ProcessOptions()
        self.assertEqual(options.max_buffer, DEFAULT_MAX_BUFFER)
        self.assertIsNone(options.timeout)
        self.assertTrue(options.split_by_lines)
        self.assertFalse(options.kill_tree_when_done)

    def test_invalid_values_are_rejected(self):
        for overrides in ({"max_buffer": -1}, {"timeout": -0.5}, {"exit_error_buffer_size": -1}):
            with self.subTest(overrides=overrides), self.assertRaises(ValueError):
                ProcessOptions(**overrides)

    def test_signal_name_validation(self):
        with self.assertRaises(ValueError):
            ProcessOptions(kill_tree_signal="SIGNOPE")
        self.assertEqual(ProcessOptions(kill_tree_signal="SIGTERM").kill_tree_signal, "SIGTERM")

    def test_env_is_copied(self):
        """Changing the caller's mapping later does not affect the options."""
        env = {"A": "1"}
        options = ProcessOptions(env=env)
        env["A"] = "2"
        self.assertEqual(options.env, {"A": "1"})

    def test_create_merges_overrides(self):
        base = ProcessOptions(cwd="/tmp", timeout=5)
        options = ProcessOptions.create(base, timeout=10, dont_log=True)
        self.assertEqual((options.cwd, options.timeout, options.dont_log), ("/tmp", 10, True))
        self.assertEqual(base.timeout, 5)
        self.assertIs(ProcessOptions.create(base), base)


class TestExitMessages(unittest.TestCase):
    """Test exit message construction and classification."""

    def test_from_returncode(self):
        self.assertEqual(ExitMessage.from_returncode(2), ExitMessage(exit_code=2, signal=None))
        self.assertEqual(ExitMessage.from_returncode(-15), ExitMessage(exit_code=None, signal="SIGTERM"))

    def test_exit_event_to_message(self):
        self.assertEqual(exit_event_to_message(ExitMessage(exit_code=1, signal=None)), "exit code 1")
        self.assertEqual(exit_event_to_message(ExitMessage(exit_code=None, signal="SIGKILL")), "signal SIGKILL")

    def test_default_predicate(self):
        self.assertFalse(is_exit_error_default(ExitMessage(exit_code=0, signal=None)))
        self.assertTrue(is_exit_error_default(ExitMessage(exit_code=1, signal=None)))
        self.assertTrue(is_exit_error_default(ExitMessage(exit_code=None, signal="SIGTERM")))

    def test_ipc_signal_is_not_a_real_exit(self):
        self.assertFalse(is_real_exit(ExitMessage(exit_code=None, signal="SIGUSR1")))
        self.assertTrue(is_real_exit(ExitMessage(exit_code=None, signal="SIGTERM")))
        self.assertTrue(is_real_exit(ExitMessage(exit_code=0, signal=None)))

    def test_classify_exit(self):
        success = ExitMessage(exit_code=0, signal=None)
        self.assertIs(classify_exit(success, None, None, ""), success)
        with self.assertRaises(ProcessExitError) as ctx:
            classify_exit(ExitMessage(exit_code=4, signal=None), None, None, "oops")
        self.assertEqual(ctx.exception.exit_code, 4)
        self.assertEqual(ctx.exception.stderr, "oops")


class TestScriptifyCommand(unittest.TestCase):
    """Test rewriting commands to run under script."""

    def test_macos_form(self):
        with mock.patch.object(sys, "platform", "darwin"):
            command, args, _ = scriptify_command("hg", ["diff", "-r", "tip"])
        self.assertEqual(command, "script")
        self.assertEqual(args, ["-q", "/dev/null", "hg", "diff", "-r", "tip"])

    def test_linux_form(self):
        options = ProcessOptions(env={"FOO": "bar"})
        with mock.patch.object(sys, "platform", "linux"):
            command, args, new_options = scriptify_command("hg", ["log", "-k", "two words"], options)
        self.assertEqual(command, "script")
        self.assertEqual(args, ["-q", "/dev/null", "-c", "hg log -k 'two words'"])
        self.assertEqual(new_options.env, {"FOO": "bar", "SHELL": "/bin/bash"})
        self.assertIsNone(options.env.get("SHELL"))


if __name__ == "__main__":
    unittest.main()
