"""Report Workflow Service - FastAPI application."""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reportflow.config import Settings, settings
from reportflow.api.v1.router import v1_router
from reportflow.api.v1.health import router as health_root_router
from reportflow.api.v1 import workflows as workflows_api
from reportflow.clients.assessment import HttpAssessmentEngine, RuleBasedAssessmentEngine
from reportflow.clients.processor import HttpDocumentProcessor, SimulatedDocumentProcessor
from reportflow.clients.storage import InMemoryStorage, SupabaseStorage
from reportflow.db.record_store import InMemoryRecordStore, SupabaseRecordStore
from reportflow.db.supabase_client import get_supabase
from reportflow.logging import get_logger
from reportflow.workflows.pipeline import WorkflowOptions
from reportflow.workflows.tracker import ReportWorkflowTracker

logger = get_logger("reportflow.main")


def build_tracker(config: Settings) -> ReportWorkflowTracker:
    """Wire the tracker's collaborators for the configured backend mode."""
    options = WorkflowOptions.from_settings(config)

    if config.backend_mode == "supabase":
        return ReportWorkflowTracker(
            record_store=SupabaseRecordStore(get_supabase),
            storage=SupabaseStorage(get_supabase, config.storage_bucket),
            processor=HttpDocumentProcessor(config.processor_api_url, config.processor_api_key),
            engine=HttpAssessmentEngine(config.assessment_api_url, config.assessment_api_key),
            options=options,
        )

    if config.backend_mode != "simulated":
        raise ValueError(f"Unknown backend mode: {config.backend_mode!r}")

    return ReportWorkflowTracker(
        record_store=InMemoryRecordStore(),
        storage=InMemoryStorage(),
        processor=SimulatedDocumentProcessor(config.simulated_processor_polls),
        engine=RuleBasedAssessmentEngine(),
        options=options,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("Starting Report Workflow Service on port %d", settings.compute_port)
    logger.info("Backend mode: %s", settings.backend_mode)

    tracker = build_tracker(settings)
    workflows_api.set_tracker(tracker)
    logger.info("Workflow tracker ready")

    yield

    logger.info("Shutting down Report Workflow Service")
    await tracker.shutdown(settings.shutdown_timeout_seconds)
    workflows_api.set_tracker(None)


app = FastAPI(
    title="Report Workflow Service",
    description="Upload, process, assess and report pipeline for recorded sessions",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS - allow frontend dev server and any configured origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(health_root_router, tags=["health"])  # GET /health at root
app.include_router(v1_router)  # All /api/v1/* endpoints


def run():
    uvicorn.run("reportflow.main:app", host="0.0.0.0", port=settings.compute_port)
