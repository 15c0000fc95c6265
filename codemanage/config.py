"""code-manage configuration."""
import logging
import os
from pathlib import Path

logger = logging.getLogger("codemanage.config")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


# Status -> folder name under the code base. "active" lives at the root level.
DEFAULT_STATUS_FOLDERS: dict[str, str | None] = {
    "active": None,
    "crawlers": "_crawlers",
    "research": "_research_and_demos",
    "tools": "_tools",
    "icebox": "_icebox",
    "archived": "_old",
}


def _env_status_folders(name: str) -> dict[str, str | None]:
    """Parse ``status=folder,status=folder`` overrides on top of the defaults."""
    folders = dict(DEFAULT_STATUS_FOLDERS)
    raw = os.getenv(name)
    if not raw:
        return folders
    for pair in raw.split(","):
        if not pair.strip():
            continue
        status, sep, folder = pair.partition("=")
        status = status.strip().lower()
        folder = folder.strip()
        if not sep or status not in folders or status == "active" or not folder or "/" in folder:
            logger.warning("Ignoring invalid %s entry: %r", name, pair)
            continue
        folders[status] = folder
    return folders


# Root directory holding every managed project
CODE_BASE_PATH = Path(os.getenv("CODE_BASE_PATH", "~/code")).expanduser().resolve(strict=False)
CONFIG_FILENAME = os.getenv("CODE_MANAGE_CONFIG_FILENAME", ".code-manage.json")

STATUS_FOLDERS = _env_status_folders("CODE_MANAGE_STATUS_FOLDERS")
FOLDER_TO_STATUS: dict[str, str] = {
    folder: status for status, folder in STATUS_FOLDERS.items() if folder
}

# Scan cache
SCAN_CACHE_TTL_SECONDS = _env_float("CODE_MANAGE_SCAN_CACHE_TTL_SECONDS", 10.0)

# Git subprocess limits
GIT_TIMEOUT_SECONDS = _env_float("CODE_MANAGE_GIT_TIMEOUT_SECONDS", 30.0)
GIT_MAX_OUTPUT_BYTES = _env_int("CODE_MANAGE_GIT_MAX_OUTPUT_BYTES", 5 * 1024 * 1024)
ACTIVITY_GIT_WORKERS = _env_int("CODE_MANAGE_ACTIVITY_GIT_WORKERS", 3)

# Background watcher that invalidates the scan cache on layout changes
WATCH_ENABLED = _env_bool("CODE_MANAGE_WATCH_ENABLED", False)

LOG_LEVEL = os.getenv("CODE_MANAGE_LOG_LEVEL", "INFO").upper()

OTEL_ENABLED = _env_bool("CODE_MANAGE_OTEL_ENABLED", False)
OTEL_ENDPOINT = os.getenv("CODE_MANAGE_OTEL_ENDPOINT", "http://localhost:4318")
OTEL_SERVICE_NAME = os.getenv("CODE_MANAGE_OTEL_SERVICE_NAME", "code-manage")
PROM_PORT = _env_int("CODE_MANAGE_PROM_PORT", 0)

# Server settings
HOST = os.getenv("CODE_MANAGE_HOST", "127.0.0.1")
PORT = _env_int("CODE_MANAGE_PORT", 8000)

# CORS
FRONTEND_ORIGIN = os.getenv("CODE_MANAGE_FRONTEND_ORIGIN", "http://localhost:3000")
