"""API router for git activity across projects."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Query

from codemanage.scan_cache import get_cached_projects
from codemanage.services import activity

activity_router = APIRouter(prefix="/api/activity", tags=["activity"])


@activity_router.get("/commits")
async def get_recent_commits(limit: Optional[int] = Query(None, description="Maximum commits to return")):
    projects = await get_cached_projects()
    commits = await activity.collect_commits(projects, limit)
    return {"commits": commits}


@activity_router.get("/velocity")
async def get_velocity(days: Optional[int] = Query(None, description="Number of days to cover")):
    projects = await get_cached_projects()
    data = await activity.collect_velocity(projects, days)
    return {"data": data}
