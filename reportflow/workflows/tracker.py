"""In-process report workflow tracker.

Starts each workflow as its own asyncio task on the running event loop and
keeps the live workflow state in an owned WorkflowStore. Nothing here is
shared across processes: a status query on another instance only sees the
last persisted snapshot.
"""

import asyncio
import functools
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Iterator, List, Optional

from pydantic import ValidationError

from reportflow.clients.assessment import AssessmentEngine
from reportflow.clients.processor import DocumentProcessor
from reportflow.clients.storage import ObjectStorage
from reportflow.db.record_store import RecordStore
from reportflow.logging import get_logger
from reportflow.workflows.dispatcher import WorkflowDispatcher
from reportflow.workflows.errors import WorkflowInputError
from reportflow.workflows.models import SourceFile, SubjectInfo, Workflow
from reportflow.workflows.notifications import LogNotifier, WorkflowNotifier
from reportflow.workflows.persistence import WORKFLOWS_TABLE, WorkflowRecorder
from reportflow.workflows.pipeline import StageContext, WorkflowOptions, WorkflowStep
from reportflow.workflows.runner import WorkflowRunner
from reportflow.workflows.stages import default_steps

logger = get_logger("reportflow.workflows.tracker")


class WorkflowStore:
    """Live workflows owned by one tracker, keyed by workflow id."""

    def __init__(self):
        self._workflows: Dict[str, Workflow] = {}

    def put(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow

    def get(self, workflow_id: str) -> Optional[Workflow]:
        return self._workflows.get(workflow_id)

    def values(self) -> Iterator[Workflow]:
        return iter(list(self._workflows.values()))

    def __contains__(self, workflow_id: str) -> bool:
        return workflow_id in self._workflows

    def __len__(self) -> int:
        return len(self._workflows)


@dataclass
class WorkflowHandle:
    """A started workflow and the task running its stages."""
    workflow_id: str
    task: asyncio.Task

    async def wait(self) -> Workflow:
        return await self.task


class ReportWorkflowTracker(WorkflowDispatcher):
    """Sequences the five report stages for each submitted file."""

    def __init__(
        self,
        record_store: RecordStore,
        storage: ObjectStorage,
        processor: DocumentProcessor,
        engine: AssessmentEngine,
        store: Optional[WorkflowStore] = None,
        notifier: Optional[WorkflowNotifier] = None,
        options: Optional[WorkflowOptions] = None,
        steps: Optional[List[WorkflowStep]] = None,
    ):
        self._options = options or WorkflowOptions()
        self._store = store if store is not None else WorkflowStore()
        self._recorder = WorkflowRecorder(record_store)
        self._storage = storage
        self._processor = processor
        self._engine = engine
        self._runner = WorkflowRunner(
            steps or default_steps(self._options.retry_policy),
            self._recorder,
            notifier or LogNotifier(),
        )
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def store(self) -> WorkflowStore:
        return self._store

    def active_count(self) -> int:
        return len(self._tasks)

    async def start_workflow(
        self, file: SourceFile, subject: SubjectInfo, tenant_id: str
    ) -> str:
        handle = await self.submit(file, subject, tenant_id)
        return handle.workflow_id

    async def submit(
        self, file: SourceFile, subject: SubjectInfo, tenant_id: str
    ) -> WorkflowHandle:
        """Create and persist the workflow, then run its stages in the background.

        Returns before any stage has started.
        """
        _validate_inputs(file, subject, tenant_id)

        workflow = Workflow(
            subject_id=subject.id,
            subject_name=subject.name,
            tenant_id=tenant_id,
            file_name=file.name,
            file_size=file.size,
        )
        workflow.estimated_completion = workflow.started_at + timedelta(
            minutes=self._options.estimated_duration_minutes
        )
        self._store.put(workflow)

        created = await self._recorder.create(workflow)
        if not created.ok:
            workflow.persistence_failures += 1
            logger.info("Workflow %s will continue without database tracking", workflow.id)

        ctx = StageContext(
            workflow=workflow,
            file=file,
            subject=subject,
            storage=self._storage,
            processor=self._processor,
            engine=self._engine,
            recorder=self._recorder,
            options=self._options,
        )
        task = asyncio.create_task(self._runner.run(ctx), name=f"workflow-{workflow.id}")
        self._tasks[workflow.id] = task
        task.add_done_callback(functools.partial(self._on_task_done, workflow.id))

        logger.info("Started workflow %s for tenant %s", workflow.id, tenant_id)
        return WorkflowHandle(workflow_id=workflow.id, task=task)

    def _on_task_done(self, workflow_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(workflow_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Workflow task %s crashed: %s", workflow_id, exc, exc_info=exc)

    async def wait(self, workflow_id: str) -> Optional[Workflow]:
        """Await a running workflow. Returns its state once the run ends."""
        task = self._tasks.get(workflow_id)
        if task is not None:
            await asyncio.wait([task])
        return self._store.get(workflow_id)

    async def get_status(self, workflow_id: str) -> Optional[Workflow]:
        workflow = self._store.get(workflow_id)
        if workflow is not None:
            return workflow
        try:
            return await self._recorder.load(workflow_id)
        except Exception as e:
            logger.error("Failed to get workflow status for %s: %s", workflow_id, e)
            return None

    async def find_record(self, table: str, record_id: str) -> Optional[dict]:
        try:
            return await self._recorder.store.find_by_id(table, record_id)
        except Exception as e:
            logger.error("Failed to read %s %s: %s", table, record_id, e)
            return None

    async def cancel(self, workflow_id: str) -> bool:
        """Mark a live workflow cancelled.

        The stage already running is not interrupted; the next stage does
        not start. Terminal workflows are left as they are.
        """
        workflow = self._store.get(workflow_id)
        if workflow is None or not workflow.cancel():
            return False
        await self._runner.persist(workflow)
        logger.info("Workflow cancelled: %s", workflow_id)
        return True

    async def list_tenant_workflows(self, tenant_id: str) -> List[Workflow]:
        """Persisted workflows for a tenant with live copies overlaid, newest first."""
        try:
            records = await self._recorder.store.find_by(WORKFLOWS_TABLE, "tenant_id", tenant_id)
        except Exception as e:
            logger.error("Failed to get tenant workflows for %s: %s", tenant_id, e)
            return []

        by_id: Dict[str, Workflow] = {}
        for record in records:
            try:
                workflow = Workflow.model_validate(record)
            except ValidationError as e:
                logger.warning("Skipping unreadable workflow record %s: %s", record.get("id"), e)
                continue
            by_id[workflow.id] = workflow

        for workflow in self._store.values():
            if workflow.tenant_id == tenant_id:
                by_id[workflow.id] = workflow

        return sorted(by_id.values(), key=lambda w: w.started_at, reverse=True)

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        tasks = list(self._tasks.values())
        if tasks:
            logger.info("Waiting for %d running workflow(s)", len(tasks))
            _, pending = await asyncio.wait(tasks, timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("Cancelled %d workflow(s) at shutdown", len(pending))

        await self._processor.aclose()
        await self._engine.aclose()


def _validate_inputs(file: Optional[SourceFile], subject: Optional[SubjectInfo], tenant_id: str) -> None:
    if file is None or not file.name:
        raise WorkflowInputError("A recording file is required")
    if subject is None or not subject.id:
        raise WorkflowInputError("Subject id is required")
    if not tenant_id:
        raise WorkflowInputError("Tenant id is required")
