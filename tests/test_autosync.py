import asyncio

from db_case import DatabaseTestCase

from db import catalog
from db.errors import SyncSourceError
from utils.autosync import AutoSync


class AutoSyncTestCase(DatabaseTestCase):
    async def test_trigger_reconciles_and_reports(self):
        reports = []

        async def loader():
            return [{"Special ID": "AS1", "Class Name": "Synced"}]

        sync = AutoSync(loader, interval=60, on_report=reports.append)
        report = await sync.trigger()

        self.assertEqual(report.processed_count, 1)
        self.assertEqual(reports, [report])
        self.assertIs(sync.last_report, report)
        self.assertEqual((await catalog.get_class_by_special_id("AS1")).class_name, "Synced")
        self.assertEqual(sync.status()["last_report"]["processedCount"], 1)

    async def test_overlapping_trigger_is_skipped(self):
        release = asyncio.Event()
        calls = 0

        async def slow_loader():
            nonlocal calls
            calls += 1
            await release.wait()
            return []

        sync = AutoSync(slow_loader, interval=60)
        first = asyncio.create_task(sync.trigger())
        await asyncio.sleep(0)
        self.assertTrue(sync.is_running)

        self.assertIsNone(await sync.trigger())
        release.set()
        report = await first

        self.assertEqual(calls, 1)
        self.assertEqual(report.processed_count, 0)
        self.assertFalse(sync.is_running)

    async def test_source_error_is_recorded_and_raised(self):
        async def broken_loader():
            raise SyncSourceError("Sheet could not be reached.")

        sync = AutoSync(broken_loader, interval=60)
        with self.assertRaises(SyncSourceError):
            await sync.trigger()
        self.assertEqual(sync.last_error, "Sheet could not be reached.")
        self.assertFalse(sync.is_running)

    async def test_loop_runs_until_stopped(self):
        ran = asyncio.Event()

        async def loader():
            ran.set()
            return []

        sync = AutoSync(loader, interval=0.01)
        sync.start()
        sync.start()
        self.assertTrue(sync.is_started)

        await asyncio.wait_for(ran.wait(), timeout=5)
        await sync.stop()
        self.assertFalse(sync.is_started)
        await sync.stop()

    async def test_loop_survives_failed_ticks(self):
        attempts = 0
        done = asyncio.Event()

        async def flaky_loader():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise SyncSourceError("temporary")
            return []

        sync = AutoSync(flaky_loader, interval=0.01, on_report=lambda report: done.set())
        sync.start()
        await asyncio.wait_for(done.wait(), timeout=5)
        await sync.stop()
        self.assertIsNone(sync.last_error)

    async def test_oversized_number_does_not_stop_the_loop(self):
        done = asyncio.Event()

        async def loader():
            return [{"Special ID": "OV1", "Class Name": "Huge", "Class Quantity": "1e20"}]

        sync = AutoSync(loader, interval=0.01, on_report=lambda report: done.set())
        sync.start()
        await asyncio.wait_for(done.wait(), timeout=5)
        self.assertTrue(sync.is_started)
        await sync.stop()
        self.assertFalse(sync.is_started)

    async def test_unexpected_error_is_logged_and_stop_is_clean(self):
        attempts = 0
        recovered = asyncio.Event()

        async def loader():
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise RuntimeError("boom")
            recovered.set()
            return []

        sync = AutoSync(loader, interval=0.01)
        with self.assertLogs("utils.autosync", level="ERROR"):
            sync.start()
            await asyncio.wait_for(recovered.wait(), timeout=5)
        self.assertTrue(sync.is_started)
        await sync.stop()
        self.assertFalse(sync.is_started)
