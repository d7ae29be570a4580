"""Unit tests for BatchExecutor."""

import sys
import time
import unittest

from shell_process import AccumulatingOutputHandler, BatchExecutor, Command, Process, ProcessError, ProcessState


class TestBatchExecutor(unittest.TestCase):
    def test_concurrency_never_exceeds_batch_size(self):
        processes = [Process.make(Command("sleep", [0.2])) for _ in range(7)]
        executor = BatchExecutor(*processes, batch_size=3)
        executor.start()

        self.assertLessEqual(executor.peak_concurrency, 3)
        self.assertEqual(executor.peak_concurrency, 3)
        self.assertFalse(executor.has_alive())
        for process in processes:
            self.assertEqual(process.state, ProcessState.COMPLETED)
            self.assertEqual(process.exit_code, 0)

    def test_observed_concurrency(self):
        alive_counts = []
        processes = []

        def observe():
            alive_counts.append(sum(1 for p in processes if p.state is ProcessState.RUNNING))

        for _ in range(6):
            process = Process.make(Command("sleep", [0.1])).on_success(observe)
            processes.append(process)

        BatchExecutor(*processes, batch_size=2).start()
        self.assertEqual(len(alive_counts), 6)
        self.assertTrue(all(count <= 2 for count in alive_counts))

    def test_slots_are_refilled(self):
        processes = [Process.make(Command("sleep", [0.3])) for _ in range(4)]
        start = time.time()
        BatchExecutor(*processes, batch_size=2).start()
        elapsed = time.time() - start

        self.assertGreaterEqual(elapsed, 0.6)
        self.assertLess(elapsed, 1.2)

    def test_fifo_admission(self):
        handler = AccumulatingOutputHandler()
        processes = [Process.make(Command("echo", [i]), handler) for i in range(5)]
        BatchExecutor(*processes, batch_size=1).start()

        self.assertEqual(handler.read_stdout_lines(), ["0", "1", "2", "3", "4"])

    def test_finished_in_completion_order(self):
        slow = Process.make(Command("sleep", [0.5]))
        fast = Process.make(Command("true"))
        executor = BatchExecutor(slow, fast, batch_size=2)
        executor.start()

        self.assertEqual(executor.finished(), [fast, slow])
        self.assertEqual(executor.processes(), [fast.id, slow.id])

    def test_large_output_is_drained(self):
        code = "'import sys; sys.stdout.write(\"x\" * 200000)'"
        handlers = [AccumulatingOutputHandler() for _ in range(4)]
        processes = [Process(Command(sys.executable, ["-c", code]), output_handler=h) for h in handlers]
        executor = BatchExecutor(*processes, batch_size=2)

        start = time.time()
        executor.start()

        self.assertLess(time.time() - start, 10)
        self.assertEqual(len(executor.finished()), 4)
        for handler in handlers:
            self.assertEqual(len(handler.read_stdout()), 200000)

    def test_invalid_batch_size(self):
        with self.assertRaises(ValueError):
            BatchExecutor(batch_size=0)

    def test_error_kills_running_processes(self):
        failing = Process.make(Command("false"))
        sleeping = Process.make(Command("sleep", [5])).on_error(lambda p: None)
        waiting = Process.make(Command("true"))
        executor = BatchExecutor(sleeping, failing, waiting, batch_size=2)

        start = time.time()
        with self.assertRaises(ProcessError) as cm:
            executor.start()

        self.assertLess(time.time() - start, 5)
        self.assertIs(cm.exception.process, failing)
        self.assertEqual(sleeping.state, ProcessState.KILLED)
        self.assertEqual(len(executor), 3)


if __name__ == "__main__":
    unittest.main()
