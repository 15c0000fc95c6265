"""API router for dashboard settings stored in the override file."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException

from codemanage import project_store
from codemanage.models import AppSettings, UpdateSettingsRequest

settings_router = APIRouter(prefix="/api/settings", tags=["settings"])


@settings_router.get("", response_model=AppSettings)
def get_settings():
    return project_store.read_config().settings


@settings_router.patch("", response_model=AppSettings)
def patch_settings(body: UpdateSettingsRequest):
    try:
        return project_store.update_settings(body)
    except OSError as e:
        raise HTTPException(status_code=500, detail=f"Failed to save settings: {e}")
