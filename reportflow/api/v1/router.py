"""Aggregate all v1 API routers."""

from fastapi import APIRouter
from reportflow.api.v1.health import router as health_router
from reportflow.api.v1.workflows import router as workflows_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(health_router, tags=["health"])
v1_router.include_router(workflows_router, tags=["workflows"])
