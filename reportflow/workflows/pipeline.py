"""Pipeline definitions - StageContext, Activity, RetryPolicy, WorkflowStep."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel

from reportflow.clients.assessment import AssessmentEngine
from reportflow.clients.processor import DocumentProcessor
from reportflow.clients.storage import ObjectStorage
from reportflow.config import Settings
from reportflow.db.record_store import RecordStore
from reportflow.workflows.models import SourceFile, StepName, SubjectInfo, Workflow
from reportflow.workflows.persistence import WorkflowRecorder


@dataclass
class RetryPolicy:
    """Retry policy for workflow steps. The default runs a stage once."""

    max_attempts: int = 1
    backoff_seconds: float = 0.0


@dataclass
class WorkflowOptions:
    """Tunables the stages and runner read."""

    poll_interval_seconds: float = 5.0
    max_wait_seconds: float = 300.0
    estimated_duration_minutes: int = 8
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    failed_step_penalty: int = 20
    time_threshold_seconds: int = 600
    time_penalty: int = 10

    @classmethod
    def from_settings(cls, settings: Settings) -> "WorkflowOptions":
        return cls(
            poll_interval_seconds=settings.processor_poll_interval_seconds,
            max_wait_seconds=settings.processor_max_wait_seconds,
            estimated_duration_minutes=settings.estimated_duration_minutes,
            retry_policy=RetryPolicy(
                max_attempts=max(1, settings.stage_max_attempts),
                backoff_seconds=settings.stage_retry_backoff_seconds,
            ),
            failed_step_penalty=settings.quality_failed_step_penalty,
            time_threshold_seconds=settings.quality_time_threshold_seconds,
            time_penalty=settings.quality_time_penalty,
        )


@dataclass
class StageContext:
    """Everything a stage needs: the live workflow, its inputs and collaborators."""

    workflow: Workflow
    file: SourceFile
    subject: SubjectInfo
    storage: ObjectStorage
    processor: DocumentProcessor
    engine: AssessmentEngine
    recorder: WorkflowRecorder
    options: WorkflowOptions

    @property
    def store(self) -> RecordStore:
        return self.recorder.store

    @property
    def report_id(self) -> Optional[str]:
        return self.workflow.results.report_id


# A stage takes the previous stage's output (None for the first) and returns its own.
Activity = Callable[[StageContext, Optional[BaseModel]], Awaitable[BaseModel]]


@dataclass
class WorkflowStep:
    """A single stage in the report pipeline."""

    name: StepName
    activity: Activity
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
