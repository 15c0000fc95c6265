"""Code Manage FastAPI backend, main application entry point."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codemanage import config
from codemanage.routers.activity import activity_router
from codemanage.routers.projects import actions_router, projects_router
from codemanage.routers.settings import settings_router
from codemanage.scan_cache import project_cache
from codemanage.watcher import file_watcher
from codemanage.observability import initialize as initialize_observability, shutdown as shutdown_observability

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger("codemanage")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info(f"Code Manage backend starting up, code base: {config.CODE_BASE_PATH}")
    initialize_observability(app)

    if config.WATCH_ENABLED:
        await file_watcher.start(config.CODE_BASE_PATH)

    yield

    logger.info("Code Manage backend shutting down")
    await file_watcher.stop()
    shutdown_observability(app)


app = FastAPI(
    title="Code Manage API",
    description="Discovers projects under a code base directory and reports their metadata",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS for the dashboard dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(projects_router)
app.include_router(actions_router)
app.include_router(activity_router)
app.include_router(settings_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "codeBasePath": str(config.CODE_BASE_PATH),
        "scanCache": {
            "fresh": project_cache.is_fresh,
            "ageSeconds": project_cache.snapshot_age,
            "scanInFlight": project_cache.scan_in_flight,
        },
        "watcher": "running" if file_watcher.is_running else "stopped",
    }


def run() -> None:
    import uvicorn

    uvicorn.run("codemanage.main:app", host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
