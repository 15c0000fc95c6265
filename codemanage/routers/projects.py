"""API router for scanned projects and their overrides."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from codemanage import project_store
from codemanage.models import (
    PROJECT_STATUSES,
    MoveProjectRequest,
    Project,
    ProjectListResponse,
    UpdateProjectRequest,
)
from codemanage.scan_cache import get_cached_projects, invalidate_project_cache
from codemanage.services.project_actions import PathOutsideRootError, move_project

logger = logging.getLogger("codemanage.projects")

projects_router = APIRouter(prefix="/api/projects", tags=["projects"])
actions_router = APIRouter(prefix="/api/actions", tags=["actions"])


def _matches_search(project: Project, needle: str) -> bool:
    if needle in project.name.lower():
        return True
    if project.description and needle in project.description.lower():
        return True
    return any(needle in tech.lower() for tech in project.techStack)


@projects_router.get("", response_model=ProjectListResponse)
async def list_projects(
    status: Optional[str] = Query(None, description="Only return projects with this status"),
    search: Optional[str] = Query(None, description="Substring filter over name, description and tech stack"),
):
    """List scanned projects with overrides applied."""
    if status and status not in PROJECT_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Must be one of: {', '.join(PROJECT_STATUSES)}",
        )

    try:
        all_projects = await get_cached_projects()
    except Exception as e:
        logger.error(f"Error scanning projects: {e}")
        raise HTTPException(status_code=500, detail="Failed to scan projects")

    projects = project_store.merge_projects(all_projects, project_store.read_config())
    counts = {key: sum(1 for p in projects if p.status == key) for key in PROJECT_STATUSES}

    if status:
        projects = [p for p in projects if p.status == status]
    needle = (search or "").strip().lower()
    if needle:
        projects = [p for p in projects if _matches_search(p, needle)]

    projects.sort(key=lambda p: (not p.starred, p.name.lower()))
    return ProjectListResponse(projects=projects, counts=counts)


@projects_router.get("/{slug}", response_model=Project)
async def get_project(slug: str):
    """Get one project, including its tags and notes."""
    projects = await get_cached_projects()
    project = next((p for p in projects if p.slug == slug), None)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project_store.apply_metadata(
        project,
        project_store.get_project_metadata(slug),
        include_details=True,
    )


@projects_router.patch("/{slug}")
async def update_project(slug: str, body: UpdateProjectRequest):
    """Store override metadata (rename, re-tag, star, status) for a project."""
    try:
        project_store.set_project_metadata(slug, body)
    except OSError as e:
        logger.error(f"Error updating project {slug}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update project")
    invalidate_project_cache()
    return {"success": True}


@actions_router.post("/move")
async def move_project_action(body: MoveProjectRequest):
    """Move a project directory into another status folder."""
    try:
        target = move_project(body.slug, body.projectPath, body.newStatus)
    except PathOutsideRootError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except FileExistsError:
        raise HTTPException(
            status_code=409,
            detail="A project with this name already exists in the target location",
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        logger.error(f"Failed to move project {body.slug}: {e}")
        raise HTTPException(status_code=500, detail="Failed to move project")
    return {"success": True, "newPath": str(target)}
