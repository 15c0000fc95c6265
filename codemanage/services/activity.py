"""Git activity aggregation across scanned projects.

Both collectors fan out one ``git log`` per project through ``work_map`` with
a small worker pool, so a code base with dozens of repositories never has
more than a handful of git processes running. A project whose git call fails
is skipped; the others still count.
"""
from __future__ import annotations

import logging
import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from codemanage import config
from codemanage.git import parse_numstat_line, spawn_git
from codemanage.models import CommitInfo, Project, VelocityDataPoint
from codemanage.work import work_map

logger = logging.getLogger("codemanage.activity")

GIT_LOG_TIMEOUT_SECONDS = 15.0
COMMITS_PER_PROJECT = 50
COMMITS_LIMIT_MIN = 1
COMMITS_LIMIT_MAX = 500
COMMITS_LIMIT_DEFAULT = 50
COMMITS_CACHE_TTL_SECONDS = 30.0

VELOCITY_DAYS_MIN = 1
VELOCITY_DAYS_MAX = 365
VELOCITY_DAYS_DEFAULT = 30
VELOCITY_CACHE_TTL_SECONDS = 60.0
VELOCITY_CACHE_MAX_ENTRIES = 10

COMMIT_MARKER = "COMMIT_START"
_DATE_LINE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class _Cached:
    data: list
    timestamp: float


_commits_cache: Optional[_Cached] = None
_velocity_cache: "OrderedDict[int, _Cached]" = OrderedDict()


def clear_activity_cache() -> None:
    global _commits_cache
    _commits_cache = None
    _velocity_cache.clear()


def clamp(value: Optional[int], minimum: int, maximum: int, default: int) -> int:
    if value is None:
        return default
    return min(max(int(value), minimum), maximum)


def _commit_epoch(value: str) -> float:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def parse_commit_log(stdout: str, project: Project) -> list[CommitInfo]:
    """Parse ``git log --numstat`` output written with the COMMIT_START format."""
    commits: list[CommitInfo] = []
    for block in stdout.split(COMMIT_MARKER):
        lines = block.strip().split("\n")
        if len(lines) < 4:
            continue
        commit_hash, message, author, authored_at = (line.strip() for line in lines[:4])

        added = removed = 0
        for line in lines[4:]:
            stats = parse_numstat_line(line)
            if stats:
                added += stats[0]
                removed += stats[1]

        commits.append(CommitInfo(
            hash=commit_hash,
            message=message,
            author=author,
            date=authored_at,
            project=project.name,
            projectSlug=project.slug,
            linesAdded=added,
            linesRemoved=removed,
        ))
    return commits


def parse_velocity_log(stdout: str) -> dict[str, tuple[int, int]]:
    """Sum numstat lines per ``--date=short`` day."""
    per_day: dict[str, tuple[int, int]] = {}
    current_date = ""
    for line in stdout.split("\n"):
        trimmed = line.strip()
        if not trimmed:
            continue
        if _DATE_LINE_RE.match(trimmed):
            current_date = trimmed
            continue
        stats = parse_numstat_line(trimmed)
        if stats and current_date:
            added, removed = per_day.get(current_date, (0, 0))
            per_day[current_date] = (added + stats[0], removed + stats[1])
    return per_day


async def _git_log_commits(project: Project) -> list[CommitInfo]:
    stdout = await spawn_git(
        [
            "log",
            "--numstat",
            "-n", str(COMMITS_PER_PROJECT),
            f"--pretty=format:{COMMIT_MARKER}%n%H%n%s%n%an%n%aI",
            "--no-merges",
        ],
        project.path,
        timeout_seconds=GIT_LOG_TIMEOUT_SECONDS,
    )
    return parse_commit_log(stdout, project)


async def _git_log_velocity(project: Project, days: int) -> dict[str, tuple[int, int]]:
    stdout = await spawn_git(
        [
            "log",
            "--numstat",
            f"--since={days} days ago",
            "--pretty=format:%ad",
            "--date=short",
        ],
        project.path,
        timeout_seconds=GIT_LOG_TIMEOUT_SECONDS,
    )
    return parse_velocity_log(stdout)


def _log_failures(results, projects: list[Project], operation: str) -> None:
    for result in results:
        if result.error is not None:
            logger.info(
                "Skipping %s for %s: %s",
                operation,
                projects[result.index].slug,
                result.error,
            )


async def collect_commits(projects: list[Project], limit: Optional[int] = None) -> list[CommitInfo]:
    """Most recent commits across all git projects, newest first."""
    global _commits_cache
    limit = clamp(limit, COMMITS_LIMIT_MIN, COMMITS_LIMIT_MAX, COMMITS_LIMIT_DEFAULT)

    now = time.monotonic()
    if _commits_cache and now - _commits_cache.timestamp < COMMITS_CACHE_TTL_SECONDS:
        return _commits_cache.data[:limit]

    git_projects = [project for project in projects if project.hasGit]
    results = await work_map(git_projects, _git_log_commits, workers=config.ACTIVITY_GIT_WORKERS)
    _log_failures(results, git_projects, "commit history")

    commits: list[CommitInfo] = []
    for result in results:
        if result.value:
            commits.extend(result.value)
    commits.sort(key=lambda commit: _commit_epoch(commit.date), reverse=True)

    _commits_cache = _Cached(data=commits, timestamp=time.monotonic())
    return commits[:limit]


async def collect_velocity(
    projects: list[Project],
    days: Optional[int] = None,
    today: Optional[date] = None,
) -> list[VelocityDataPoint]:
    """Lines added/removed per day over the last ``days`` days, oldest first."""
    days = clamp(days, VELOCITY_DAYS_MIN, VELOCITY_DAYS_MAX, VELOCITY_DAYS_DEFAULT)

    cached = _velocity_cache.get(days)
    if cached and time.monotonic() - cached.timestamp < VELOCITY_CACHE_TTL_SECONDS:
        return cached.data

    end = today or datetime.now(timezone.utc).date()
    totals: dict[str, list[int]] = {
        (end - timedelta(days=offset)).isoformat(): [0, 0] for offset in range(days)
    }

    git_projects = [project for project in projects if project.hasGit]

    async def _collect(project: Project) -> dict[str, tuple[int, int]]:
        return await _git_log_velocity(project, days)

    results = await work_map(git_projects, _collect, workers=config.ACTIVITY_GIT_WORKERS)
    _log_failures(results, git_projects, "velocity")

    # Merge sequentially once every worker is done
    for result in results:
        if not result.value:
            continue
        for day, (added, removed) in result.value.items():
            bucket = totals.get(day)
            if bucket is not None:
                bucket[0] += added
                bucket[1] += removed

    data = [
        VelocityDataPoint(date=day, linesAdded=added, linesRemoved=removed)
        for day, (added, removed) in sorted(totals.items())
    ]

    if days not in _velocity_cache and len(_velocity_cache) >= VELOCITY_CACHE_MAX_ENTRIES:
        _velocity_cache.popitem(last=False)
    _velocity_cache[days] = _Cached(data=data, timestamp=time.monotonic())
    return data
