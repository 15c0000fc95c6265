"""Per-project detectors.

Each detector inspects one project directory and extracts one fact. They are
synchronous, side-effect free and never raise for filesystem problems: a
missing, unreadable or malformed input means the fact is absent.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from codemanage.parsers.manifests import (
    read_cargo_toml,
    read_package_json,
    read_pyproject,
    read_requirements,
    read_text_file,
)

MAX_TECH_STACK = 5
DESCRIPTION_MAX_LENGTH = 200
README_NAMES = ("README.md", "readme.md", "Readme.md", "README.txt", "README")

# (dependency, label, priority) in detection order
_PACKAGE_FRAMEWORKS: tuple[tuple[str, str, int], ...] = (
    ("next", "Next.js", 10),
    ("react", "React", 9),
    ("vue", "Vue", 9),
    ("svelte", "Svelte", 9),
    ("express", "Express", 8),
    ("fastify", "Fastify", 8),
    ("electron", "Electron", 9),
    ("tailwindcss", "Tailwind", 7),
    ("typescript", "TypeScript", 6),
)
_PYTHON_FRAMEWORKS: tuple[tuple[str, str, int], ...] = (
    ("fastapi", "FastAPI", 8),
    ("django", "Django", 8),
    ("flask", "Flask", 8),
)

_GITDIR_RE = re.compile(r"^gitdir:\s*(.+)\s*$", re.MULTILINE)
_HEAD_BRANCH_RE = re.compile(r"ref: refs/heads/(.+)")
_ORIGIN_URL_RE = re.compile(r'\[remote "origin"\][^\[]*url\s*=\s*(.+)')


@dataclass(frozen=True)
class GitInfo:
    has_git: bool = False
    branch: str | None = None
    remote: str | None = None


def format_timestamp(epoch_seconds: float) -> str:
    """Format a POSIX timestamp as ISO-8601 UTC with millisecond precision."""
    dt = datetime.fromtimestamp(epoch_seconds, timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _uses_python_framework(dependencies: dict[str, str], framework: str) -> bool:
    return any(name == framework or name.startswith(f"{framework}-") for name in dependencies)


def detect_tech_stack(project_path: Path) -> list[str]:
    detections: list[tuple[str, int]] = []

    package = read_package_json(project_path)
    if package is not None:
        all_deps = package.all_dependencies
        for dependency, label, priority in _PACKAGE_FRAMEWORKS:
            if dependency in all_deps:
                detections.append((label, priority))
        if not detections:
            detections.append(("Node.js", 5))

    python_deps: dict[str, str] | None = None
    if (project_path / "pyproject.toml").exists():
        pyproject = read_pyproject(project_path)
        python_deps = pyproject.dependencies if pyproject else {}
    elif (project_path / "requirements.txt").exists():
        requirements = read_requirements(project_path)
        python_deps = requirements.dependencies if requirements else {}
    if python_deps is not None:
        detections.append(("Python", 10))
        for framework, label, priority in _PYTHON_FRAMEWORKS:
            if _uses_python_framework(python_deps, framework):
                detections.append((label, priority))

    if (project_path / "Cargo.toml").exists():
        detections.append(("Rust", 10))
    if (project_path / "go.mod").exists():
        detections.append(("Go", 10))

    # sorted() is stable, so equal priorities keep detection order
    ranked = sorted(detections, key=lambda item: item[1], reverse=True)
    stack: list[str] = []
    for label, _ in ranked:
        if label not in stack:
            stack.append(label)
    return stack[:MAX_TECH_STACK]


def _readme_summary(content: str) -> str | None:
    description = ""
    found_content = False
    for line in content.split("\n"):
        trimmed = line.strip()
        if not trimmed:
            if found_content:
                break
            continue
        if trimmed.startswith(("#", "![", "[")):
            continue
        found_content = True
        description = f"{description} {trimmed}" if description else trimmed
        if len(description) > DESCRIPTION_MAX_LENGTH:
            break

    if not description:
        return None
    if len(description) > DESCRIPTION_MAX_LENGTH:
        return description[:DESCRIPTION_MAX_LENGTH] + "..."
    return description


def extract_description(project_path: Path) -> str | None:
    package = read_package_json(project_path)
    if package and package.description:
        return package.description

    pyproject = read_pyproject(project_path)
    if pyproject and pyproject.description:
        return pyproject.description

    cargo = read_cargo_toml(project_path)
    if cargo and cargo.description:
        return cargo.description

    for readme_name in README_NAMES:
        content = read_text_file(project_path / readme_name)
        if not content:
            continue
        summary = _readme_summary(content)
        if summary:
            return summary
    return None


def _resolve_git_dir(project_path: Path) -> Path | None:
    git_path = project_path / ".git"
    try:
        if not git_path.exists():
            return None
        if not git_path.is_file():
            return git_path
    except OSError:
        return None

    # Worktrees and submodules keep a ".git" file pointing at the real git dir
    content = read_text_file(git_path)
    match = _GITDIR_RE.search(content or "")
    if not match:
        return git_path
    return (project_path / match.group(1).strip()).resolve(strict=False)


def get_git_info(project_path: Path) -> GitInfo:
    git_dir = _resolve_git_dir(project_path)
    if git_dir is None:
        return GitInfo(has_git=False)

    branch = None
    head = read_text_file(git_dir / "HEAD")
    if head:
        match = _HEAD_BRANCH_RE.search(head)
        if match:
            branch = match.group(1).strip()

    remote = None
    git_config = read_text_file(git_dir / "config")
    if git_config:
        match = _ORIGIN_URL_RE.search(git_config)
        if match:
            remote = match.group(1).strip()

    return GitInfo(has_git=True, branch=branch, remote=remote)


def get_version(project_path: Path) -> str | None:
    version_file = read_text_file(project_path / "VERSION")
    if version_file:
        first_line = version_file.strip().split("\n")[0].strip()
        if first_line:
            return first_line

    package = read_package_json(project_path)
    if package and package.version:
        return package.version

    pyproject = read_pyproject(project_path)
    if pyproject and pyproject.version:
        return pyproject.version

    cargo = read_cargo_toml(project_path)
    if cargo and cargo.version:
        return cargo.version

    return None


def get_dependencies(project_path: Path) -> dict[str, str] | None:
    package = read_package_json(project_path)
    if package is not None:
        return package.dependencies or None

    pyproject = read_pyproject(project_path)
    if pyproject and pyproject.dependencies:
        return pyproject.dependencies

    cargo = read_cargo_toml(project_path)
    if cargo and cargo.dependencies:
        return cargo.dependencies
    return None


def get_scripts(project_path: Path) -> dict[str, str] | None:
    package = read_package_json(project_path)
    if package is not None:
        return package.scripts or None

    pyproject = read_pyproject(project_path)
    if pyproject and pyproject.scripts:
        return pyproject.scripts
    return None


def get_last_modified(project_path: Path) -> str:
    try:
        return format_timestamp(project_path.stat().st_mtime)
    except OSError:
        return format_timestamp(datetime.now(timezone.utc).timestamp())
