"""Workflow record and per-stage result models."""

import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from reportflow.workflows.errors import InvalidTransitionError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str) -> str:
    """`<prefix>_<epoch ms>_<9 base36 chars>`"""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class WorkflowStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.CANCELLED}
)


class StepStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class StepName(str, Enum):
    UPLOAD = "upload"
    PROCESS = "process"
    ANALYZE = "analyze"
    PLAN = "plan"
    FINALIZE = "finalize"


STEP_ORDER: List[StepName] = list(StepName)


class SubjectInfo(BaseModel):
    """The patient / supervisor a recording belongs to."""
    id: str
    name: str = ""
    age: Optional[int] = None
    gender: Optional[str] = None


@dataclass
class SourceFile:
    """An uploaded recording held in memory for the duration of a workflow."""
    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


# ---------------------------------------------------------------------------
# Stage outputs
# ---------------------------------------------------------------------------

class UploadOutput(BaseModel):
    id: str
    file_name: str
    file_size: int
    file_type: str = "EDF"
    storage_path: str
    storage_url: str
    uploaded_at: datetime = Field(default_factory=utc_now)


class ProcessOutput(BaseModel):
    job_id: str
    report: Dict[str, Any]


class AnalysisOutput(BaseModel):
    report_id: str
    standardized_report: Dict[str, Any] = Field(default_factory=dict)
    risk_assessment: Dict[str, Any] = Field(default_factory=dict)
    recommendations: List[Any] = Field(default_factory=list)


class CarePlanOutput(BaseModel):
    id: str
    analysis_report_id: str
    care_plan: Dict[str, Any]
    created_at: datetime = Field(default_factory=utc_now)


class FinalizeOutput(BaseModel):
    report_id: Optional[str] = None
    total_processing_time: int
    completed_steps: int
    quality_score: int
    completed_at: datetime = Field(default_factory=utc_now)


class WorkflowResults(BaseModel):
    """One typed slot per stage, filled when that stage completes."""
    report_id: Optional[str] = None
    upload: Optional[UploadOutput] = None
    process: Optional[ProcessOutput] = None
    analyze: Optional[AnalysisOutput] = None
    plan: Optional[CarePlanOutput] = None
    finalize: Optional[FinalizeOutput] = None

    def get(self, step: StepName) -> Optional[BaseModel]:
        return getattr(self, step.value)

    def set(self, step: StepName, output: BaseModel) -> None:
        setattr(self, step.value, output)


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

class StepState(BaseModel):
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def start(self) -> None:
        if self.status != StepStatus.PENDING:
            raise InvalidTransitionError(f"Cannot start step in status {self.status.value}")
        self.status = StepStatus.PROCESSING
        self.started_at = utc_now()

    def complete(self) -> None:
        if self.status != StepStatus.PROCESSING:
            raise InvalidTransitionError(f"Cannot complete step in status {self.status.value}")
        self.status = StepStatus.COMPLETED
        self.completed_at = utc_now()

    def fail(self, error: str) -> None:
        if self.status != StepStatus.PROCESSING:
            raise InvalidTransitionError(f"Cannot fail step in status {self.status.value}")
        self.status = StepStatus.FAILED
        self.error = error


def _initial_steps() -> Dict[StepName, StepState]:
    return {name: StepState() for name in STEP_ORDER}


class Workflow(BaseModel):
    """Tracks one end-to-end run of the five-stage report sequence."""
    id: str = Field(default_factory=lambda: generate_id("workflow"))
    subject_id: str
    subject_name: str = ""
    tenant_id: str
    file_name: str
    file_size: int = 0
    status: WorkflowStatus = WorkflowStatus.STARTED
    steps: Dict[StepName, StepState] = Field(default_factory=_initial_steps)
    results: WorkflowResults = Field(default_factory=WorkflowResults)
    started_at: datetime = Field(default_factory=utc_now)
    estimated_completion: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    error: Optional[str] = None
    persistence_failures: int = 0

    @field_validator("steps")
    @classmethod
    def _order_steps(cls, steps: Dict[StepName, StepState]) -> Dict[StepName, StepState]:
        """Stored snapshots (JSONB) lose key order; rebuild in stage order."""
        return {name: steps.get(name, StepState()) for name in STEP_ORDER}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def progress(self) -> int:
        done = sum(1 for s in self.steps.values() if s.status == StepStatus.COMPLETED)
        return round(100 * done / len(STEP_ORDER))

    def failed_step_count(self) -> int:
        return sum(1 for s in self.steps.values() if s.status == StepStatus.FAILED)

    def start_step(self, name: StepName) -> None:
        """Move a step to processing; every earlier step must be completed."""
        for earlier in STEP_ORDER[: STEP_ORDER.index(name)]:
            if self.steps[earlier].status != StepStatus.COMPLETED:
                raise InvalidTransitionError(
                    f"Cannot start {name.value} before {earlier.value} completes"
                )
        self.steps[name].start()

    def complete_step(self, name: StepName, output: BaseModel) -> None:
        self.steps[name].complete()
        self.results.set(name, output)

    def fail_step(self, name: StepName, error: str) -> None:
        self.steps[name].fail(error)

    def mark_completed(self) -> bool:
        if self.is_terminal:
            return False
        self.status = WorkflowStatus.COMPLETED
        self.completed_at = utc_now()
        return True

    def mark_failed(self, error: str) -> bool:
        if self.is_terminal:
            return False
        self.status = WorkflowStatus.FAILED
        self.error = error
        self.failed_at = utc_now()
        return True

    def cancel(self) -> bool:
        if self.is_terminal:
            return False
        self.status = WorkflowStatus.CANCELLED
        self.cancelled_at = utc_now()
        return True

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
