"""Project discovery over the code base directory.

The walker looks at three kinds of places below the root:

* root-level directories, which must carry a project marker file;
* ``*_suite`` directories, whose children are grouped under a suite label and
  must also carry a marker;
* status folders (``_icebox``, ``_old``, ...), whose children are all projects.

Detectors for a directory run concurrently in worker threads. Unreadable
subtrees contribute no projects; a scan never fails because of one bad folder.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from pathlib import Path
from typing import Any, Callable

from codemanage import config
from codemanage.detectors import (
    GitInfo,
    detect_tech_stack,
    extract_description,
    format_timestamp,
    get_dependencies,
    get_git_info,
    get_last_modified,
    get_scripts,
    get_version,
)
from codemanage.models import Project
from codemanage.observability import record_scan, start_span
from codemanage.parsers.reports import scan_bugs, scan_code_quality

logger = logging.getLogger("codemanage.scanner")

IGNORED_FOLDERS = frozenset({
    "node_modules",
    ".git",
    "__pycache__",
    ".next",
    "dist",
    "build",
    ".obsidian",
    ".stfolder",
    ".pytest_cache",
    ".codemachine",
    ".claude",
})

# Files or directories that mark a project root
PROJECT_INDICATORS = (
    "package.json",
    "pyproject.toml",
    "requirements.txt",
    "Cargo.toml",
    "go.mod",
    "Makefile",
    ".git",
    "VERSION",
)

SUITE_SUFFIX = "_suite"
SYNC_CONFLICT_PREFIX = ".sync-conflict"

_SLUG_INVALID_RE = re.compile(r"[^a-z0-9]+")

# name -> (detector, value used when the detector fails)
_DETECTORS: dict[str, tuple[Callable[[Path], Any], Callable[[], Any]]] = {
    "tech_stack": (detect_tech_stack, list),
    "description": (extract_description, lambda: None),
    "git": (get_git_info, GitInfo),
    "version": (get_version, lambda: None),
    "scripts": (get_scripts, lambda: None),
    "dependencies": (get_dependencies, lambda: None),
    "last_modified": (get_last_modified, lambda: format_timestamp(time.time())),
    "bugs": (scan_bugs, lambda: None),
    "rcodegen": (scan_code_quality, lambda: None),
}


def slugify(name: str) -> str:
    return _SLUG_INVALID_RE.sub("-", name.lower()).strip("-")


def is_project_directory(dir_path: Path) -> bool:
    for indicator in PROJECT_INDICATORS:
        try:
            if (dir_path / indicator).exists():
                return True
        except OSError:
            continue
    return False


def determine_status(project_path: Path, root: Path | None = None) -> str:
    """Return the status implied by the shallowest status folder in the path."""
    base = Path(root) if root is not None else config.CODE_BASE_PATH
    try:
        parts = Path(project_path).relative_to(base).parts
    except ValueError:
        return "active"
    for part in parts:
        status = config.FOLDER_TO_STATUS.get(part)
        if status:
            return status
    return "active"


def is_suite_directory(name: str) -> bool:
    return name.endswith(SUITE_SUFFIX)


def format_suite_name(dir_name: str) -> str:
    """``builder_suite`` -> ``Builder``, ``app_email4ai_suite`` -> ``App Email4ai``."""
    base = dir_name[: -len(SUITE_SUFFIX)] if dir_name.endswith(SUITE_SUFFIX) else dir_name
    return " ".join(word[:1].upper() + word[1:] for word in base.split("_"))


def _list_directories(dir_path: Path) -> list[Path]:
    """Child directories sorted by name; symlinks are not followed."""
    try:
        with os.scandir(dir_path) as entries:
            names = [entry.name for entry in entries if entry.is_dir(follow_symlinks=False)]
    except OSError as exc:
        logger.debug("Skipping unreadable directory %s: %s", dir_path, exc)
        return []
    return [dir_path / name for name in sorted(names)]


async def _run_detectors(project_path: Path) -> dict[str, Any]:
    names = list(_DETECTORS)
    results = await asyncio.gather(
        *(asyncio.to_thread(_DETECTORS[name][0], project_path) for name in names),
        return_exceptions=True,
    )
    values: dict[str, Any] = {}
    for name, result in zip(names, results):
        if isinstance(result, Exception):
            logger.warning("Detector %s failed for %s: %s", name, project_path, result)
            values[name] = _DETECTORS[name][1]()
        elif isinstance(result, BaseException):
            raise result
        else:
            values[name] = result
    return values


async def scan_project(
    project_path: Path,
    require_indicators: bool = True,
    suite: str | None = None,
    root: Path | None = None,
) -> Project | None:
    project_path = Path(project_path)
    name = project_path.name

    if name in IGNORED_FOLDERS or name.startswith(SYNC_CONFLICT_PREFIX):
        return None
    if not await asyncio.to_thread(project_path.is_dir):
        return None
    if require_indicators and not await asyncio.to_thread(is_project_directory, project_path):
        return None

    detected = await _run_detectors(project_path)
    git_info: GitInfo = detected["git"]

    return Project(
        slug=slugify(name),
        name=name,
        path=str(project_path),
        suite=suite,
        description=detected["description"],
        status=determine_status(project_path, root),
        techStack=detected["tech_stack"],
        version=detected["version"],
        lastModified=detected["last_modified"],
        gitBranch=git_info.branch,
        gitRemote=git_info.remote,
        hasGit=git_info.has_git,
        dependencies=detected["dependencies"],
        scripts=detected["scripts"],
        bugs=detected["bugs"],
        rcodegen=detected["rcodegen"],
    )


class _ProjectCollector:
    """Accumulates scan results and resolves slug collisions with suite prefixes."""

    def __init__(self) -> None:
        self.projects: list[Project] = []
        self._seen_slugs: set[str] = set()

    def add(self, project: Project) -> None:
        if project.slug in self._seen_slugs:
            existing = next((p for p in self.projects if p.slug == project.slug), None)
            if existing is not None and existing.suite:
                self._seen_slugs.discard(existing.slug)
                existing.slug = f"{slugify(existing.suite)}--{existing.slug}"
                self._seen_slugs.add(existing.slug)
            if project.suite:
                project.slug = f"{slugify(project.suite)}--{project.slug}"
            elif project.status != "active":
                project.slug = f"{project.status}--{project.slug}"
            base_slug, counter = project.slug, 2
            while project.slug in self._seen_slugs:
                project.slug = f"{base_slug}-{counter}"
                counter += 1
            logger.debug("Slug collision resolved to %s for %s", project.slug, project.path)
        self._seen_slugs.add(project.slug)
        self.projects.append(project)


def _is_candidate(name: str, skip_names: frozenset[str]) -> bool:
    if name in IGNORED_FOLDERS or name in skip_names:
        return False
    if name.startswith(".") or name.startswith("__"):
        return False
    return not is_suite_directory(name)


async def _scan_level(
    collector: _ProjectCollector,
    dir_path: Path,
    root: Path,
    require_indicators: bool,
    suite: str | None = None,
    skip_names: frozenset[str] = frozenset(),
) -> None:
    children = await asyncio.to_thread(_list_directories, dir_path)
    candidates = [child for child in children if _is_candidate(child.name, skip_names)]
    results = await asyncio.gather(
        *(scan_project(child, require_indicators, suite, root) for child in candidates),
        return_exceptions=True,
    )
    for child, result in zip(candidates, results):
        if isinstance(result, Exception):
            logger.warning("Failed to scan %s: %s", child, result)
            continue
        if isinstance(result, BaseException):
            raise result
        if result is not None:
            collector.add(result)


async def scan_all_projects(root: Path | None = None) -> list[Project]:
    """Walk the code base and return every project, most recently modified first."""
    base = Path(root) if root is not None else config.CODE_BASE_PATH
    started = time.perf_counter()
    collector = _ProjectCollector()
    status_folders = tuple(config.FOLDER_TO_STATUS)

    try:
        with start_span("codemanage.scan", {"root": str(base)}):
            # Root level: markers required; suites and status folders are handled below
            await _scan_level(collector, base, base, True, skip_names=frozenset(status_folders))

            for entry in await asyncio.to_thread(_list_directories, base):
                if is_suite_directory(entry.name):
                    await _scan_level(collector, entry, base, True, suite=format_suite_name(entry.name))

            # Location in a status folder is evidence enough
            for folder_name in status_folders:
                status_path = base / folder_name
                if await asyncio.to_thread(status_path.is_dir):
                    await _scan_level(collector, status_path, base, False)
    except Exception:
        record_scan("error", (time.perf_counter() - started) * 1000)
        raise

    projects = sorted(collector.projects, key=lambda p: p.lastModified, reverse=True)
    duration_ms = (time.perf_counter() - started) * 1000
    record_scan("success", duration_ms, project_count=len(projects))
    logger.info("Scanned %s: %d projects in %.0fms", base, len(projects), duration_ms)
    return projects
