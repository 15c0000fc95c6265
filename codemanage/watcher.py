"""File watcher service using watchfiles.

Watches the code base root and invalidates the project scan cache when
project folders appear, disappear or move, or when a marker file such as
``package.json`` appears in or vanishes from a root-level folder. Other edits
inside a project are left to the cache TTL.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from watchfiles import Change, awatch

from codemanage import config
from codemanage.scan_cache import invalidate_project_cache
from codemanage.scanner import PROJECT_INDICATORS, is_suite_directory

logger = logging.getLogger("codemanage.watcher")

# Changes deeper than <root>/<status or suite folder>/<project> are ignored
LAYOUT_DEPTH = 2


def _is_grouping_folder(name: str) -> bool:
    return name in config.FOLDER_TO_STATUS or is_suite_directory(name)


def is_layout_change(change: Change, path: Path, root: Path) -> bool:
    if change not in (Change.added, Change.deleted):
        return False
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        return False
    if not parts or len(parts) > LAYOUT_DEPTH:
        return False
    if parts[0].startswith("."):
        return False
    if len(parts) == 1:
        return True
    # Inside a root-level project only a marker file changes the layout
    if parts[1] in PROJECT_INDICATORS:
        return True
    return _is_grouping_folder(parts[0]) and not parts[1].startswith(".")


class FileWatcher:
    """Watches the code base root and calls ``on_change`` when projects appear or vanish."""

    def __init__(self, on_change: Callable[[], None] = invalidate_project_cache):
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._running = False
        self._on_change = on_change

    async def start(self, root: Path) -> None:
        """Start watching ``root`` in a background task."""
        if self._running:
            logger.warning("File watcher already running")
            return
        if not root.is_dir():
            logger.warning(f"Code base {root} does not exist, watcher has nothing to monitor")
            return

        self._running = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop(root))
        logger.info(f"File watcher started for {root}")

    async def stop(self) -> None:
        """Stop the file watcher."""
        self._running = False
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("File watcher stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def _classify_changes(self, changes: set[tuple[Change, str]], root: Path) -> list[Path]:
        return [Path(raw) for change, raw in changes if is_layout_change(change, Path(raw), root)]

    async def _watch_loop(self, root: Path) -> None:
        try:
            async for changes in awatch(root, stop_event=self._stop_event):
                if not self._running:
                    break
                layout_changes = self._classify_changes(changes, root)
                if layout_changes:
                    logger.info(f"Detected {len(layout_changes)} project layout changes, invalidating scan cache")
                    self._on_change()
        except asyncio.CancelledError:
            logger.info("File watcher task cancelled")
        except Exception as e:
            logger.error(f"File watcher error: {e}")
        finally:
            self._running = False


# Singleton instance
file_watcher = FileWatcher()
