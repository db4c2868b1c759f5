"""Health check endpoint."""

from fastapi import APIRouter
import platform
import sys

from reportflow.config import settings
from reportflow.api.v1 import workflows as workflows_api

router = APIRouter()


@router.get("/health")
async def health_check():
    """Service health, backend mode, and system info."""
    tracker = workflows_api.get_tracker()
    return {
        "status": "healthy" if tracker is not None else "starting",
        "backend_mode": settings.backend_mode,
        "active_workflows": tracker.active_count() if tracker is not None else 0,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
