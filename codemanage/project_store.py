"""Project metadata overrides persisted in one JSON file at the code base root.

Reads never fail: a missing or malformed file yields the default config.
Writes are plain read-modify-write without a file lock, so two concurrent
writers can lose an update. That is acceptable for a single local user.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from codemanage import config
from codemanage.models import AppSettings, CodeManageConfig, Project, ProjectMetadata

logger = logging.getLogger("codemanage.store")


def default_config() -> CodeManageConfig:
    return CodeManageConfig()


def _partial_fields(partial: Mapping[str, Any] | ProjectMetadata | AppSettings | Any) -> dict[str, Any]:
    if hasattr(partial, "model_dump"):
        return partial.model_dump(exclude_unset=True)
    return dict(partial)


class ProjectMetadataStore:
    """Reads and writes the ``.code-manage.json`` override file."""

    def __init__(self, storage_path: Path):
        self.storage_path = storage_path

    def read_config(self) -> CodeManageConfig:
        """Load the config, merging it over defaults."""
        try:
            content = self.storage_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return default_config()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read config file {self.storage_path}: {e}")
            return default_config()

        try:
            data = json.loads(content) if content.strip() else {}
        except ValueError as e:
            logger.warning(f"Ignoring invalid config file {self.storage_path}: {e}")
            return default_config()
        if not isinstance(data, dict):
            return default_config()

        projects: dict[str, ProjectMetadata] = {}
        raw_projects = data.get("projects")
        if isinstance(raw_projects, dict):
            for slug, raw in raw_projects.items():
                try:
                    projects[str(slug)] = ProjectMetadata.model_validate(raw)
                except ValidationError as e:
                    logger.error(f"Failed to load metadata for {slug}: {e}")

        settings = AppSettings()
        raw_settings = data.get("settings")
        if isinstance(raw_settings, dict):
            try:
                settings = AppSettings.model_validate({**settings.model_dump(), **raw_settings})
            except ValidationError as e:
                logger.error(f"Failed to load settings, using defaults: {e}")

        return CodeManageConfig(projects=projects, settings=settings)

    def write_config(self, code_config: CodeManageConfig) -> None:
        payload = code_config.model_dump(exclude_none=True)
        self.storage_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    def get_project_metadata(self, slug: str) -> Optional[ProjectMetadata]:
        return self.read_config().projects.get(slug)

    def set_project_metadata(self, slug: str, metadata: Mapping[str, Any] | ProjectMetadata) -> ProjectMetadata:
        """Merge the given fields into the slug's entry, creating it if needed."""
        code_config = self.read_config()
        existing = code_config.projects.get(slug) or ProjectMetadata()
        merged = ProjectMetadata.model_validate({
            **existing.model_dump(exclude_none=True),
            **_partial_fields(metadata),
        })
        code_config.projects[slug] = merged
        self.write_config(code_config)
        logger.info(f"Updated metadata for project: {slug}")
        return merged

    def update_settings(self, settings: Mapping[str, Any] | AppSettings) -> AppSettings:
        code_config = self.read_config()
        code_config.settings = AppSettings.model_validate({
            **code_config.settings.model_dump(),
            **{key: value for key, value in _partial_fields(settings).items() if value is not None},
        })
        self.write_config(code_config)
        return code_config.settings


def apply_metadata(
    project: Project,
    metadata: ProjectMetadata | None,
    include_details: bool = False,
) -> Project:
    """Layer an override over a derived project. Empty override values are ignored."""
    if metadata is None:
        return project.model_copy(update={"starred": False})

    update: dict[str, Any] = {
        "status": metadata.status or project.status,
        "name": metadata.customName or project.name,
        "description": metadata.customDescription or project.description,
        "starred": bool(metadata.starred),
    }
    if include_details:
        update["tags"] = metadata.tags
        update["notes"] = metadata.notes
    return project.model_copy(update=update)


def merge_projects(projects: Iterable[Project], code_config: CodeManageConfig) -> list[Project]:
    return [apply_metadata(project, code_config.projects.get(project.slug)) for project in projects]


# Global instance stored beside the projects it describes
metadata_store = ProjectMetadataStore(config.CODE_BASE_PATH / config.CONFIG_FILENAME)


def read_config() -> CodeManageConfig:
    return metadata_store.read_config()


def get_project_metadata(slug: str) -> Optional[ProjectMetadata]:
    return metadata_store.get_project_metadata(slug)


def set_project_metadata(slug: str, metadata: Mapping[str, Any] | ProjectMetadata) -> ProjectMetadata:
    return metadata_store.set_project_metadata(slug, metadata)


def update_settings(settings: Mapping[str, Any] | AppSettings) -> AppSettings:
    return metadata_store.update_settings(settings)
