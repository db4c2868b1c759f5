"""Report workflow API - upload a recording, poll and cancel workflows."""

import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel

from reportflow.auth.supabase_auth import verify_jwt
from reportflow.config import settings
from reportflow.db.fields import convert_keys, to_camel_case
from reportflow.logging import get_logger
from reportflow.workflows.errors import WorkflowInputError
from reportflow.workflows.models import SourceFile, SubjectInfo, Workflow
from reportflow.workflows.persistence import REPORTS_TABLE

router = APIRouter()
logger = get_logger("reportflow.api.workflows")

# Set by main.py during lifespan
_tracker = None

_ALLOWED_EXTENSIONS = {".edf", ".eeg", ".bdf"}
_CHUNK_BYTES = 1024 * 1024


def set_tracker(tracker):
    global _tracker
    _tracker = tracker


def get_tracker():
    return _tracker


def _require_tracker():
    if _tracker is None:
        raise HTTPException(status_code=503, detail="Workflow tracker not initialized")
    return _tracker


class WorkflowStartResponse(BaseModel):
    workflow_id: str
    status: str
    message: str


class CancelResponse(BaseModel):
    workflow_id: str
    cancelled: bool
    status: str


def _workflow_response(workflow: Workflow) -> dict:
    body = workflow.to_record()
    body["progress"] = workflow.progress
    return body


async def _read_upload(file: UploadFile) -> bytes:
    """Read the upload in 1 MB chunks, stopping at the configured size limit."""
    chunks = []
    total = 0
    while True:
        chunk = await file.read(_CHUNK_BYTES)
        if not chunk:
            break
        total += len(chunk)
        if total > settings.max_upload_bytes:
            limit_mb = settings.max_upload_bytes // (1024 * 1024)
            raise HTTPException(status_code=413, detail=f"File too large (max {limit_mb} MB)")
        chunks.append(chunk)
    return b"".join(chunks)


# ---------------------------------------------------------------------------
# POST /workflows
# ---------------------------------------------------------------------------

@router.post("/workflows", response_model=WorkflowStartResponse)
async def start_workflow(
    file: UploadFile = File(...),
    subject_id: str = Form(...),
    subject_name: str = Form(""),
    tenant_id: str = Form(...),
    subject_age: Optional[int] = Form(None),
    subject_gender: Optional[str] = Form(None),
    user=Depends(verify_jwt),
):
    """Accept a recording upload and start its report workflow."""
    tracker = _require_tracker()

    filename = file.filename or ""
    ext = os.path.splitext(filename)[1].lower()
    if ext not in _ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type '{ext or filename}'. Allowed: {sorted(_ALLOWED_EXTENSIONS)}",
        )

    content = await _read_upload(file)
    source = SourceFile(
        name=filename,
        content=content,
        content_type=file.content_type or "application/octet-stream",
    )
    subject = SubjectInfo(
        id=subject_id,
        name=subject_name,
        age=subject_age,
        gender=subject_gender,
    )

    try:
        workflow_id = await tracker.start_workflow(source, subject, tenant_id)
    except WorkflowInputError as e:
        raise HTTPException(status_code=400, detail=str(e))

    logger.info("Upload %s (%d bytes) started workflow %s", filename, len(content), workflow_id)
    return WorkflowStartResponse(
        workflow_id=workflow_id,
        status="started",
        message="Workflow started. Poll GET /api/v1/workflows/{id} for progress.",
    )


# ---------------------------------------------------------------------------
# GET /workflows/{id}, POST /workflows/{id}/cancel
# ---------------------------------------------------------------------------

@router.get("/workflows/{workflow_id}")
async def get_workflow(workflow_id: str, user=Depends(verify_jwt)):
    tracker = _require_tracker()
    workflow = await tracker.get_status(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return _workflow_response(workflow)


@router.post("/workflows/{workflow_id}/cancel", response_model=CancelResponse)
async def cancel_workflow(workflow_id: str, user=Depends(verify_jwt)):
    """Cancel a running workflow. Finished workflows are left unchanged."""
    tracker = _require_tracker()
    workflow = await tracker.get_status(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Workflow not found")

    cancelled = await tracker.cancel(workflow_id)
    current = await tracker.get_status(workflow_id) or workflow
    return CancelResponse(
        workflow_id=workflow_id,
        cancelled=cancelled,
        status=current.status.value,
    )


# ---------------------------------------------------------------------------
# GET /tenants/{tenant_id}/workflows
# ---------------------------------------------------------------------------

@router.get("/tenants/{tenant_id}/workflows")
async def list_tenant_workflows(tenant_id: str, user=Depends(verify_jwt)):
    tracker = _require_tracker()
    workflows = await tracker.list_tenant_workflows(tenant_id)
    return {
        "tenant_id": tenant_id,
        "count": len(workflows),
        "workflows": [_workflow_response(w) for w in workflows],
    }


# ---------------------------------------------------------------------------
# GET /reports/{report_id}
# ---------------------------------------------------------------------------

@router.get("/reports/{report_id}")
async def get_report(report_id: str, user=Depends(verify_jwt)):
    """Return the report row with camelCase top-level keys for the dashboard."""
    tracker = _require_tracker()
    report = await tracker.find_record(REPORTS_TABLE, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")
    return convert_keys(report, to_camel_case)
