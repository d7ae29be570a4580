"""Unit tests for Command building, serialization and validation."""

import os
import stat
import sys
import tempfile
import unittest
from pathlib import Path

from shell_process import Command, CommandError, default_search_path, find_executable


class TestFindExecutable(unittest.TestCase):
    """Test binary resolution against an explicit search path."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.bin_dir = Path(self._tmp.name)
        self.tool = self.bin_dir / "mytool"
        self.tool.write_text("#!/bin/sh\necho tool\n")
        self.tool.chmod(self.tool.stat().st_mode | stat.S_IXUSR)

    def tearDown(self):
        self._tmp.cleanup()

    def test_found_in_search_path(self):
        self.assertEqual(find_executable("mytool", [str(self.bin_dir)]), str(self.tool))

    def test_search_path_order(self):
        with tempfile.TemporaryDirectory() as other:
            shadow = Path(other) / "mytool"
            shadow.write_text("")
            found = find_executable("mytool", [other, str(self.bin_dir)])
        self.assertEqual(found, str(shadow))

    def test_not_found(self):
        self.assertIsNone(find_executable("mytool", []))
        self.assertIsNone(find_executable("no_such_tool_12345", [str(self.bin_dir)]))

    def test_existing_path_wins(self):
        self.assertEqual(find_executable(str(self.tool), []), str(self.tool))

    def test_directory_is_not_a_binary(self):
        self.assertIsNone(find_executable(str(self.bin_dir), []))

    def test_default_search_path(self):
        environ = {"PATH": os.pathsep.join(["/a", "", "/b"])}
        self.assertEqual(default_search_path(environ), ["/a", "/b"])
        self.assertEqual(default_search_path({}), [])

    def test_command_uses_injected_search_path(self):
        cmd = Command("mytool", search_path=[str(self.bin_dir)])
        self.assertEqual(cmd.binary, str(self.tool))
        cmd.validate()


class TestValidate(unittest.TestCase):
    """Test Command.validate failures and successes."""

    def test_validate_empty_binary(self):
        cmd = Command("  \t ")
        self.assertIsNone(cmd.binary)
        with self.assertRaises(CommandError):
            cmd.validate()

    def test_validate_unknown_binary(self):
        cmd = Command("this_command_does_not_exist_12345")
        with self.assertRaises(CommandError):
            cmd.validate()

    def test_validate_non_file_binary(self):
        cmd = Command(os.path.dirname(os.path.abspath(__file__)))
        with self.assertRaises(CommandError):
            cmd.validate()

    def test_validate_non_executable_binary(self):
        with tempfile.NamedTemporaryFile(suffix=".txt") as handle:
            os.chmod(handle.name, 0o644)
            cmd = Command(handle.name)
            with self.assertRaisesRegex(CommandError, "not executable"):
                cmd.validate()

    def test_validate_multiple_nargs(self):
        cmd = Command.make(sys.executable).with_options({"--n1": ["a", "b"], "--n2": [1, 2]})
        with self.assertRaisesRegex(CommandError, "Multiple nargs"):
            cmd.validate()

    def test_validate(self):
        Command(sys.executable).validate()

    def test_validate_path_command(self):
        Command("ls").validate()


class TestSerialize(unittest.TestCase):
    """Test command line rendering."""

    def setUp(self):
        self.ls = Command("ls").binary
        assert self.ls is not None

    def test_binary_is_absolute(self):
        self.assertTrue(os.path.isabs(self.ls))
        self.assertTrue(self.ls.endswith("ls"))

    def test_serialize_no_args_no_opts(self):
        self.assertEqual(Command("ls").serialize(), self.ls)

    def test_serialize_with_args(self):
        cmd = Command.make("ls").with_args(["a", "b", "c"])
        self.assertEqual(cmd.serialize(), f"{self.ls} a b c")

    def test_with_args_varargs(self):
        cmd = Command.make("sleep").with_args(5)
        self.assertTrue(cmd.serialize().endswith("sleep 5"))

    def test_serialize_with_opts(self):
        opts = {"--long": None, "--array": ["f", "g"], "--single": "z"}
        cmd = Command.make("ls").with_options(opts)
        self.assertEqual(cmd.serialize(), f"{self.ls} --long --single z --array f g")

    def test_serialize(self):
        opts = {"--long": None, "--array": ["f", "g"], "--single": "z"}
        cmd = Command("ls", ["a", "b", "c"], opts)
        self.assertEqual(cmd.serialize(), f"{self.ls} a b c --long --single z --array f g")

    def test_serialize_positional_options(self):
        cmd = Command.make("ls").with_options(["-l", "-a"])
        self.assertEqual(cmd.serialize(), f"{self.ls} -l -a")

    def test_serialize_boolean_options(self):
        cmd = Command.make("ls").with_options({"--all": True, "--color": False, "--width": 80})
        self.assertEqual(cmd.serialize(), f"{self.ls} --all --width 80")

    def test_serialize_nameless_option(self):
        cmd = Command(sys.executable, [], {"--": ["/tmp/1.txt", "/tmp/2.txt"]})
        self.assertEqual(cmd.serialize(), f"{os.path.abspath(sys.executable)} -- /tmp/1.txt /tmp/2.txt")

    def test_serialize_collapses_whitespace(self):
        cmd = Command("ls", ["", "a  ", "  b"], {"-x": "  "})
        self.assertEqual(cmd.serialize(), f"{self.ls} a b -x")

    def test_exec_prefix_is_stripped(self):
        cmd = Command("exec ls")
        self.assertEqual(cmd.binary, self.ls)
        self.assertEqual(str(cmd), f"Command [{self.ls}]")

    def test_string_options_rejected(self):
        with self.assertRaises(TypeError):
            Command("ls", options="-l")  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
