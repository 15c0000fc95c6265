"""Mutating project actions that change where a project lives on disk."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from codemanage import config
from codemanage import project_store
from codemanage.project_store import ProjectMetadataStore
from codemanage.scan_cache import invalidate_project_cache
from codemanage.scanner import is_suite_directory

logger = logging.getLogger("codemanage.actions")


class PathOutsideRootError(ValueError):
    """The requested path does not resolve inside the code base root."""


def _is_under(path: Path, root: Path) -> bool:
    try:
        path.resolve(strict=False).relative_to(root.resolve(strict=False))
        return True
    except ValueError:
        return False


def status_directory(status: str, root: Optional[Path] = None) -> Path:
    base = root if root is not None else config.CODE_BASE_PATH
    folder = config.STATUS_FOLDERS.get(status)
    return base / folder if folder else base


def move_project(
    slug: str,
    project_path: str | Path,
    new_status: str,
    root: Optional[Path] = None,
    store: Optional[ProjectMetadataStore] = None,
) -> Path:
    """Move a project directory into the folder for ``new_status`` and record the status."""
    if new_status not in config.STATUS_FOLDERS:
        raise ValueError(f"Unknown status: {new_status}")

    base = root if root is not None else config.CODE_BASE_PATH
    source = Path(project_path).expanduser()
    if not _is_under(source, base) or source.resolve(strict=False) == base.resolve(strict=False):
        raise PathOutsideRootError(f"Path outside code base: {project_path}")
    if source.name in config.FOLDER_TO_STATUS or is_suite_directory(source.name):
        raise ValueError(f"Not a project directory: {source.name}")
    if not source.is_dir():
        raise FileNotFoundError(f"Project directory not found: {project_path}")

    target_dir = status_directory(new_status, base)
    target = target_dir / source.name
    if target.exists():
        raise FileExistsError(f"A project named {source.name} already exists in {target_dir}")

    target_dir.mkdir(parents=True, exist_ok=True)
    source.rename(target)
    logger.info("Moved project %s from %s to %s", slug, source, target)

    (store or project_store.metadata_store).set_project_metadata(slug, {"status": new_status})
    invalidate_project_cache()
    return target
