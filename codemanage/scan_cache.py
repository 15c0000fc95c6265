"""Time-boxed cache around the project scan, with in-flight request coalescing.

All callers that arrive while a scan is running await the same task, so a
burst of requests costs one filesystem walk. The check-and-set of the
in-flight task happens without an ``await`` in between, which makes it atomic
on the event loop.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from codemanage import config
from codemanage.models import Project
from codemanage.scanner import scan_all_projects

logger = logging.getLogger("codemanage.scan_cache")


@dataclass
class _CacheEntry:
    projects: list[Project]
    timestamp: float


class ScanCache:
    """Caches one project list snapshot and shares a single in-flight scan."""

    def __init__(
        self,
        scan: Callable[[], Awaitable[list[Project]]] = scan_all_projects,
        ttl_seconds: float = config.SCAN_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._scan = scan
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: Optional[_CacheEntry] = None
        self._inflight: Optional[asyncio.Task[list[Project]]] = None
        self._inflight_generation = -1
        self._generation = 0

    @property
    def is_fresh(self) -> bool:
        return self._entry is not None and self._clock() - self._entry.timestamp < self.ttl_seconds

    @property
    def snapshot_age(self) -> Optional[float]:
        if self._entry is None:
            return None
        return self._clock() - self._entry.timestamp

    @property
    def scan_in_flight(self) -> bool:
        return self._inflight is not None

    async def get_projects(self) -> list[Project]:
        if self._entry is not None and self.is_fresh:
            return self._entry.projects

        # A scan started before the last invalidation is never joined
        if self._inflight is None or self._inflight_generation != self._generation:
            self._inflight_generation = self._generation
            self._inflight = asyncio.ensure_future(self._run_scan(self._generation))

        # A caller that goes away must not cancel the scan other callers share
        return await asyncio.shield(self._inflight)

    async def _run_scan(self, generation: int) -> list[Project]:
        try:
            projects = await self._scan()
        except Exception:
            logger.exception("Project scan failed")
            raise
        finally:
            if self._inflight_generation == generation:
                self._inflight = None

        if generation == self._generation:
            self._entry = _CacheEntry(projects=projects, timestamp=self._clock())
        else:
            logger.debug("Cache invalidated during scan, result not cached")
        return projects

    def invalidate(self) -> None:
        """Drop the snapshot so the next request triggers a fresh scan."""
        self._entry = None
        self._generation += 1


project_cache = ScanCache()


async def get_cached_projects() -> list[Project]:
    return await project_cache.get_projects()


def invalidate_project_cache() -> None:
    project_cache.invalidate()
