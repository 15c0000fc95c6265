import asyncio
import unittest

from codemanage.models import Project
from codemanage.scan_cache import ScanCache


def _project(slug: str) -> Project:
    return Project(slug=slug, name=slug, path=f"/code/{slug}", lastModified="2024-01-01T00:00:00.000Z")


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _CountingScan:
    def __init__(self, delay: float = 0.0) -> None:
        self.calls = 0
        self.delay = delay
        self.fail_next = False
        self.release: asyncio.Event | None = None

    async def __call__(self) -> list[Project]:
        self.calls += 1
        if self.release is not None:
            await self.release.wait()
        elif self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("scan failed")
        return [_project(f"proj-{self.calls}")]


class ScanCacheTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.clock = _FakeClock()
        self.scan = _CountingScan()
        self.cache = ScanCache(scan=self.scan, ttl_seconds=10.0, clock=self.clock)

    async def test_fresh_snapshot_is_served_without_rescanning(self) -> None:
        first = await self.cache.get_projects()
        self.clock.now += 9.9
        second = await self.cache.get_projects()

        self.assertIs(first, second)
        self.assertEqual(self.scan.calls, 1)
        self.assertTrue(self.cache.is_fresh)

    async def test_expired_snapshot_triggers_new_scan(self) -> None:
        await self.cache.get_projects()
        self.clock.now += 10.0
        self.assertFalse(self.cache.is_fresh)

        projects = await self.cache.get_projects()

        self.assertEqual(self.scan.calls, 2)
        self.assertEqual(projects[0].slug, "proj-2")

    async def test_concurrent_callers_share_one_scan(self) -> None:
        self.scan.delay = 0.05

        results = await asyncio.gather(*(self.cache.get_projects() for _ in range(20)))

        self.assertEqual(self.scan.calls, 1)
        self.assertTrue(all(result is results[0] for result in results))
        self.assertFalse(self.cache.scan_in_flight)

    async def test_failed_scan_is_not_cached(self) -> None:
        self.scan.fail_next = True
        with self.assertRaises(RuntimeError):
            await self.cache.get_projects()
        self.assertFalse(self.cache.scan_in_flight)
        self.assertIsNone(self.cache.snapshot_age)

        projects = await self.cache.get_projects()

        self.assertEqual(self.scan.calls, 2)
        self.assertEqual(projects[0].slug, "proj-2")

    async def test_invalidate_forces_rescan(self) -> None:
        await self.cache.get_projects()
        self.cache.invalidate()
        self.assertFalse(self.cache.is_fresh)

        await self.cache.get_projects()

        self.assertEqual(self.scan.calls, 2)

    async def test_invalidation_during_scan_discards_result(self) -> None:
        self.scan.release = asyncio.Event()
        pending = asyncio.create_task(self.cache.get_projects())
        await asyncio.sleep(0)
        self.assertTrue(self.cache.scan_in_flight)

        self.cache.invalidate()
        self.scan.release.set()
        stale = await pending

        self.assertEqual(stale[0].slug, "proj-1")
        self.assertFalse(self.cache.is_fresh)

        self.scan.release = None
        fresh = await self.cache.get_projects()
        self.assertEqual(fresh[0].slug, "proj-2")

    async def test_callers_after_invalidation_start_a_new_scan(self) -> None:
        self.scan.release = asyncio.Event()
        before = asyncio.create_task(self.cache.get_projects())
        await asyncio.sleep(0)

        self.cache.invalidate()
        after = [asyncio.create_task(self.cache.get_projects()) for _ in range(3)]
        await asyncio.sleep(0)
        self.scan.release.set()
        stale = await before
        results = await asyncio.gather(*after)

        self.assertEqual(self.scan.calls, 2)
        self.assertEqual(stale[0].slug, "proj-1")
        self.assertTrue(all(result[0].slug == "proj-2" for result in results))
        self.assertTrue(self.cache.is_fresh)
        self.assertFalse(self.cache.scan_in_flight)

        self.scan.release = None
        cached = await self.cache.get_projects()
        self.assertEqual(cached[0].slug, "proj-2")
        self.assertEqual(self.scan.calls, 2)

    async def test_cancelled_caller_does_not_cancel_shared_scan(self) -> None:
        self.scan.release = asyncio.Event()
        first = asyncio.create_task(self.cache.get_projects())
        second = asyncio.create_task(self.cache.get_projects())
        await asyncio.sleep(0)

        first.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await first
        self.scan.release.set()
        projects = await second

        self.assertEqual(self.scan.calls, 1)
        self.assertEqual(projects[0].slug, "proj-1")
        self.assertTrue(self.cache.is_fresh)


if __name__ == "__main__":
    unittest.main()
