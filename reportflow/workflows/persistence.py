"""Best-effort persistence of workflow snapshots and report progress.

Writes here never raise. Each call reports a PersistenceResult and the
caller decides what a failed write means for the workflow.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from reportflow.db.record_store import RecordStore
from reportflow.logging import get_logger
from reportflow.workflows.models import Workflow

logger = get_logger("reportflow.workflows.persistence")

WORKFLOWS_TABLE = "workflows"
REPORTS_TABLE = "reports"


@dataclass
class PersistenceResult:
    ok: bool
    error: Optional[str] = None
    record: Optional[Dict[str, Any]] = None

    @classmethod
    def failed(cls, exc: Exception) -> "PersistenceResult":
        return cls(ok=False, error=f"{type(exc).__name__}: {exc}")


class WorkflowRecorder:
    """Writes workflow snapshots and report updates to the record store."""

    def __init__(self, record_store: RecordStore):
        self._store = record_store

    @property
    def store(self) -> RecordStore:
        return self._store

    async def create(self, workflow: Workflow) -> PersistenceResult:
        try:
            record = await self._store.add(WORKFLOWS_TABLE, workflow.to_record())
        except Exception as e:
            logger.warning("Could not save workflow %s: %s", workflow.id, e)
            return PersistenceResult.failed(e)
        return PersistenceResult(ok=True, record=record)

    async def snapshot(self, workflow: Workflow) -> PersistenceResult:
        try:
            record = await self._store.update(WORKFLOWS_TABLE, workflow.id, workflow.to_record())
        except Exception as e:
            logger.warning("Could not update workflow %s: %s", workflow.id, e)
            return PersistenceResult.failed(e)
        if record is None:
            return PersistenceResult(ok=False, error="workflow snapshot not found in store")
        return PersistenceResult(ok=True, record=record)

    async def load(self, workflow_id: str) -> Optional[Workflow]:
        record = await self._store.find_by_id(WORKFLOWS_TABLE, workflow_id)
        if record is None:
            return None
        return Workflow.model_validate(record)

    async def create_report(self, report: Dict[str, Any]) -> PersistenceResult:
        try:
            record = await self._store.add(REPORTS_TABLE, report)
        except Exception as e:
            logger.error("Failed to create report entry: %s", e)
            return PersistenceResult.failed(e)
        return PersistenceResult(ok=True, record=record)

    async def update_report(
        self,
        report_id: Optional[str],
        report_data: Dict[str, Any],
        status: str = "processing",
    ) -> PersistenceResult:
        """Merge `report_data` into the report's JSON payload."""
        if not report_id:
            return PersistenceResult(ok=False, error="no report id")
        try:
            current = await self._store.find_by_id(REPORTS_TABLE, report_id) or {}
            merged = {**(current.get("report_data") or {}), **report_data}
            results = {
                **((current.get("report_data") or {}).get("results") or {}),
                **(report_data.get("results") or {}),
            }
            if results:
                merged["results"] = results
            record = await self._store.update(
                REPORTS_TABLE,
                report_id,
                {"status": status, "report_data": merged},
            )
        except Exception as e:
            logger.warning("Could not update report %s: %s", report_id, e)
            return PersistenceResult.failed(e)
        if record is None:
            return PersistenceResult(ok=False, error=f"report {report_id} not found")
        return PersistenceResult(ok=True, record=record)

    async def record_progress(
        self,
        report_id: Optional[str],
        processing_status: str,
        processing_step: str,
        progress: int,
        **extra: Any,
    ) -> PersistenceResult:
        return await self.update_report(
            report_id,
            {
                "processing_status": processing_status,
                "processing_step": processing_step,
                "progress": progress,
                **extra,
            },
        )
