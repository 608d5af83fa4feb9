import asyncio
import os
import subprocess
import sys
import unittest
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))

from pimonitor_telemetry import SnapshotAssembler, StartupError
from pimonitor_telemetry import probe as probe_module
from pimonitor_telemetry.probe import core_usage_between

CpuTimes = namedtuple("scputimes", "user nice system idle iowait")
LinuxCpuTimes = namedtuple("scputimes", "user nice system idle iowait irq softirq steal guest guest_nice")


class PsutilProbeTests(unittest.TestCase):
    def test_live_snapshot(self):
        if probe_module.psutil is None:
            self.skipTest("psutil not installed")
        assembler = SnapshotAssembler.create(gpio_enabled=False, gpu_enabled=False)
        try:
            snap = assembler.collect()
        finally:
            assembler.close()
        self.assertGreater(snap.cpu.cores, 0)
        self.assertEqual(len(snap.cpu.core_usage), snap.cpu.cores)
        self.assertTrue(0.0 <= snap.cpu.usage_percent <= 100.0)
        self.assertGreater(snap.memory.total_bytes, 0)
        self.assertLessEqual(snap.memory.available_bytes, snap.memory.total_bytes)
        for disk in snap.storage:
            self.assertLessEqual(disk.available_bytes, disk.total_bytes)
        self.assertIsNone(snap.gpio)
        self.assertTrue(snap.system.hostname)

    def test_missing_commands_are_remembered(self):
        if probe_module.psutil is None:
            self.skipTest("psutil not installed")
        probe = probe_module.PsutilProbe(gpu_enabled=False)
        self.assertIsNone(probe.run_command(["pimonitor-no-such-tool", "--version"]))
        self.assertIn("pimonitor-no-such-tool", probe._missing_commands)
        self.assertIsNone(probe.read_text("/nonexistent/pimonitor/file"))
        probe.close()

    def test_startup_error_without_psutil(self):
        original = probe_module.psutil
        probe_module.psutil = None
        try:
            with self.assertRaises(StartupError):
                probe_module.PsutilProbe()
        finally:
            probe_module.psutil = original


class CoreUsageBetweenTests(unittest.TestCase):
    def test_busy_fraction_per_core(self):
        previous = [CpuTimes(10, 0, 0, 90, 0), CpuTimes(0, 0, 0, 100, 0)]
        current = [CpuTimes(60, 0, 0, 140, 0), CpuTimes(0, 0, 0, 200, 0)]
        self.assertEqual(core_usage_between(previous, current), [50.0, 0.0])

    def test_iowait_counts_as_idle(self):
        previous = [CpuTimes(0, 0, 0, 0, 0)]
        current = [CpuTimes(25, 0, 0, 50, 25)]
        self.assertEqual(core_usage_between(previous, current), [25.0])

    def test_guest_time_not_counted_twice(self):
        previous = [LinuxCpuTimes(0, 0, 0, 0, 0, 0, 0, 0, 0, 0)]
        current = [LinuxCpuTimes(50, 0, 0, 50, 0, 0, 0, 0, 40, 0)]
        self.assertEqual(core_usage_between(previous, current), [50.0])

    def test_no_elapsed_time_reads_zero(self):
        same = [CpuTimes(10, 0, 0, 90, 0)]
        self.assertEqual(core_usage_between(same, same), [0.0])


class PsutilCpuWindowTests(unittest.TestCase):
    def setUp(self):
        if probe_module.psutil is None:
            self.skipTest("psutil not installed")

    def test_each_collector_keeps_its_own_window_on_a_shared_worker(self):
        t0 = [CpuTimes(0, 0, 0, 100, 0)]
        t1 = [CpuTimes(50, 0, 0, 150, 0)]
        t2 = [CpuTimes(150, 0, 0, 150, 0)]
        with mock.patch.object(probe_module.psutil, "cpu_times", side_effect=[t0, t0, t1, t1, t2]):
            first = probe_module.PsutilProbe(gpu_enabled=False)
            second = probe_module.PsutilProbe(gpu_enabled=False)
            with ThreadPoolExecutor(max_workers=1) as worker:
                worker.submit(first.refresh).result()
                worker.submit(second.refresh).result()
                self.assertEqual(first.per_core_usage(), [50.0])
                self.assertEqual(second.per_core_usage(), [50.0])
                worker.submit(first.refresh).result()
        self.assertEqual(first.per_core_usage(), [100.0])
        self.assertEqual(second.per_core_usage(), [50.0])


class LoadedHostTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        if probe_module.psutil is None:
            self.skipTest("psutil not installed")
        burners = min(os.cpu_count() or 1, 4)
        self.burners = [
            subprocess.Popen([sys.executable, "-c", "while True: pass"]) for _ in range(burners)
        ]

    def tearDown(self):
        for proc in getattr(self, "burners", []):
            proc.kill()
            proc.wait()

    async def test_worker_thread_collection_sees_load(self):
        producer_side = SnapshotAssembler.create(gpio_enabled=False, gpu_enabled=False)
        request_side = SnapshotAssembler.create(gpio_enabled=False, gpu_enabled=False)
        try:
            await asyncio.sleep(0.5)
            first_tick = await asyncio.to_thread(producer_side.collect)
            self.assertGreater(first_tick.cpu.usage_percent, 0.0)

            with ThreadPoolExecutor(max_workers=1) as worker:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(worker, producer_side.collect)
                await asyncio.sleep(0.5)
                await loop.run_in_executor(worker, request_side.collect)
                tick = await loop.run_in_executor(worker, producer_side.collect)
            self.assertGreater(tick.cpu.usage_percent, 0.0)
        finally:
            producer_side.close()
            request_side.close()


if __name__ == "__main__":
    unittest.main()
