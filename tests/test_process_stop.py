import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

_IGNORE_TERM = (
    "import signal, sys, time\n"
    "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
    "print('ready', flush=True)\n"
    "time.sleep(60)\n"
)
_SLEEPER = "import time\nprint('ready', flush=True)\ntime.sleep(60)\n"


def _spawn(code: str) -> subprocess.Popen:
    p = subprocess.Popen([sys.executable, "-c", code], stdout=subprocess.PIPE, text=True)
    assert p.stdout is not None
    assert p.stdout.readline().strip() == "ready"
    return p


class TestPidFiles(unittest.TestCase):
    def test_absent_or_garbage_means_no_process(self) -> None:
        from missionctl.kernel.process import read_live_pid, read_pid

        with tempfile.TemporaryDirectory() as td:
            pid_path = Path(td) / "pid"
            self.assertEqual(read_pid(pid_path), 0)
            pid_path.write_text("not-a-pid\n", encoding="utf-8")
            self.assertEqual(read_pid(pid_path), 0)
            self.assertEqual(read_live_pid(pid_path), 0)
            self.assertFalse(pid_path.exists())


class TestPidAlive(unittest.TestCase):
    def test_exited_unreaped_child_counts_as_dead(self) -> None:
        import time

        from missionctl.kernel.process import pid_alive

        p = subprocess.Popen([sys.executable, "-c", "pass"])
        # Never reaped through Popen.
        deadline = time.monotonic() + 10.0
        while pid_alive(p.pid) and time.monotonic() < deadline:
            time.sleep(0.05)
        self.assertFalse(pid_alive(p.pid))

    def test_zombie_of_another_parent_counts_as_dead(self) -> None:
        from unittest import mock

        import psutil

        from missionctl.kernel import process

        fake = mock.Mock()
        fake.is_running.return_value = True
        fake.status.return_value = psutil.STATUS_ZOMBIE
        with mock.patch.object(process.psutil, "Process", return_value=fake) as ctor:
            # Our own pid is never our child, so only psutil decides.
            self.assertFalse(process.pid_alive(os.getpid()))
        ctor.assert_called_once_with(os.getpid())

    def test_foreign_process_we_cannot_inspect_counts_as_alive(self) -> None:
        from unittest import mock

        import psutil

        from missionctl.kernel import process

        with mock.patch.object(process.psutil, "Process", side_effect=psutil.AccessDenied(os.getpid())):
            self.assertTrue(process.pid_alive(os.getpid()))

    def test_vanished_process_counts_as_dead(self) -> None:
        from unittest import mock

        import psutil

        from missionctl.kernel import process

        with mock.patch.object(process.psutil, "Process", side_effect=psutil.NoSuchProcess(os.getpid())):
            self.assertFalse(process.pid_alive(os.getpid()))

    def test_running_process_is_alive(self) -> None:
        from missionctl.kernel.process import pid_alive

        self.assertTrue(pid_alive(os.getpid()))


class TestStopProcess(unittest.TestCase):
    def test_missing_pid_file_is_already_stopped(self) -> None:
        from missionctl.kernel.process import stop_process

        with tempfile.TemporaryDirectory() as td:
            self.assertEqual(stop_process(Path(td) / "pid"), "not_running")

    def test_stale_pid_is_removed_and_stop_is_idempotent(self) -> None:
        from missionctl.kernel.process import stop_process, write_pid

        p = subprocess.Popen([sys.executable, "-c", "pass"])
        p.wait(timeout=10)
        with tempfile.TemporaryDirectory() as td:
            pid_path = Path(td) / "pid"
            write_pid(pid_path, p.pid)
            self.assertEqual(stop_process(pid_path), "not_running")
            self.assertFalse(pid_path.exists())
            self.assertEqual(stop_process(pid_path), "not_running")

    def test_sigterm_stops_cooperative_process(self) -> None:
        from missionctl.kernel.process import pid_alive, stop_process, write_pid

        p = _spawn(_SLEEPER)
        try:
            with tempfile.TemporaryDirectory() as td:
                pid_path = Path(td) / "pid"
                write_pid(pid_path, p.pid)
                self.assertEqual(stop_process(pid_path, timeout_s=5.0, tick_s=0.05), "terminated")
                self.assertFalse(pid_path.exists())
                self.assertFalse(pid_alive(p.pid))
        finally:
            if p.poll() is None:
                p.kill()
            p.stdout.close()

    def test_process_ignoring_sigterm_is_killed_at_deadline(self) -> None:
        from missionctl.kernel.process import pid_alive, stop_process, write_pid

        p = _spawn(_IGNORE_TERM)
        try:
            with tempfile.TemporaryDirectory() as td:
                pid_path = Path(td) / "pid"
                write_pid(pid_path, p.pid)
                self.assertEqual(stop_process(pid_path, timeout_s=0.5, tick_s=0.05), "killed")
                self.assertFalse(pid_path.exists())
                self.assertFalse(pid_alive(p.pid))
        finally:
            if p.poll() is None:
                p.kill()
            p.stdout.close()


if __name__ == "__main__":
    unittest.main()
