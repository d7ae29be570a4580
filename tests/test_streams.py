"""Unit tests for stream targets and non-blocking pipe reads."""

import os
import tempfile
import unittest
from pathlib import Path

from shell_process.streams import PIPE, FileSpec, OpenedTargets, PipeReader, set_nonblocking, validate_target


class TestTargets(unittest.TestCase):
    def test_pipe_is_singleton(self):
        self.assertIs(type(PIPE)(), PIPE)
        self.assertEqual(repr(PIPE), "PIPE")

    def test_validate_target(self):
        with tempfile.TemporaryFile() as handle:
            for target in (PIPE, FileSpec("/dev/null"), 1, handle):
                self.assertIs(validate_target(target), target)
        with self.assertRaises(TypeError):
            validate_target("/dev/null")

    def test_opened_targets_close_files(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "out.txt"
            opened = OpenedTargets((PIPE, FileSpec(path, "w"), 2))
            handle = opened.arguments[1]

            self.assertEqual(opened.arguments[2], 2)
            self.assertFalse(handle.closed)
            opened.close()
            self.assertTrue(handle.closed)
            self.assertTrue(path.exists())

    def test_opened_targets_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            OpenedTargets((FileSpec("/nonexistent/dir/file"), PIPE, PIPE))


class TestPipeReader(unittest.TestCase):
    def setUp(self):
        read_fd, self.write_fd = os.pipe()
        self.stream = os.fdopen(read_fd, "rb", buffering=0)
        set_nonblocking(self.stream)
        self.reader = PipeReader(self.stream)

    def tearDown(self):
        self.reader.close()
        try:
            os.close(self.write_fd)
        except OSError:
            pass

    def test_empty_pipe_does_not_block(self):
        self.assertEqual(self.reader.read_available(), "")
        self.assertFalse(self.reader.eof)

    def test_reads_available_data(self):
        os.write(self.write_fd, b"hello\n")
        self.assertEqual(self.reader.read_available(), "hello\n")
        self.assertEqual(self.reader.read_available(), "")

    def test_large_write(self):
        payload = b"x" * 20000
        os.write(self.write_fd, payload)
        self.assertEqual(len(self.reader.read_available()), 20000)

    def test_multibyte_split(self):
        encoded = "é".encode()
        os.write(self.write_fd, encoded[:1])
        self.assertEqual(self.reader.read_available(), "")
        os.write(self.write_fd, encoded[1:])
        self.assertEqual(self.reader.read_available(), "é")

    def test_eof(self):
        os.write(self.write_fd, b"last")
        os.close(self.write_fd)
        self.assertEqual(self.reader.read_available(), "last")
        self.assertTrue(self.reader.eof)
        self.assertEqual(self.reader.read_available(), "")

    def test_closed_stream(self):
        self.reader.close()
        self.assertEqual(self.reader.read_available(), "")


if __name__ == "__main__":
    unittest.main()
