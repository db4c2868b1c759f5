"""Runner - drives a workflow's stages in order and records every transition."""

import asyncio
from typing import List, Optional

from pydantic import BaseModel

from reportflow.logging import get_logger
from reportflow.workflows.models import StepName, StepStatus, Workflow
from reportflow.workflows.notifications import WorkflowNotifier
from reportflow.workflows.persistence import PersistenceResult, WorkflowRecorder
from reportflow.workflows.pipeline import StageContext, WorkflowStep


class StepFailed(Exception):
    """Internal signal: a stage exhausted its attempts and the run must stop."""


class WorkflowRunner:
    """Runs pipeline steps strictly in sequence for one workflow at a time.

    - The workflow status is checked before each step; a cancelled workflow
      does not start its next step.
    - A step that raises (after its retry policy is exhausted) is marked
      failed, the workflow is marked failed and no later step runs.
    - Snapshots are persisted after every transition. Write failures are
      counted on the workflow and never stop the run.
    - Notifier errors are logged and never stop the run.
    """

    def __init__(
        self,
        steps: List[WorkflowStep],
        recorder: WorkflowRecorder,
        notifier: WorkflowNotifier,
    ) -> None:
        self._steps = steps
        self._recorder = recorder
        self._notifier = notifier
        self._logger = get_logger("reportflow.workflows.runner")

    async def persist(self, workflow: Workflow) -> PersistenceResult:
        result = await self._recorder.snapshot(workflow)
        if not result.ok:
            workflow.persistence_failures += 1
            self._logger.warning(
                "Snapshot of workflow %s not persisted (%d so far): %s",
                workflow.id, workflow.persistence_failures, result.error,
            )
        return result

    async def _notify(self, event: str, send, workflow: Workflow, payload) -> None:
        try:
            await send(workflow, payload)
        except Exception as e:
            self._logger.warning(
                "Notifier failed for %s workflow %s: %s", event, workflow.id, e, exc_info=e
            )

    async def run(self, ctx: StageContext) -> Workflow:
        workflow = ctx.workflow
        previous: Optional[BaseModel] = None
        current: Optional[StepName] = None

        self._logger.info(
            "Starting workflow %s for subject %s (%s)",
            workflow.id, workflow.subject_id, workflow.file_name,
        )

        try:
            for step in self._steps:
                if workflow.is_terminal:
                    self._logger.info(
                        "Workflow %s is %s; not starting %s",
                        workflow.id, workflow.status.value, step.name.value,
                    )
                    return workflow
                current = step.name
                previous = await self._execute_step(ctx, step, previous)
                current = None
        except StepFailed:
            return workflow
        except asyncio.CancelledError:
            if current is not None and workflow.steps[current].status == StepStatus.PROCESSING:
                workflow.fail_step(current, "Cancelled before completion")
            workflow.cancel()
            await self.persist(workflow)
            raise

        if workflow.mark_completed():
            await self.persist(workflow)
            self._logger.info("Workflow %s completed", workflow.id)
            report_id = workflow.results.finalize.report_id if workflow.results.finalize else None
            await self._notify("completed", self._notifier.notify_completed, workflow, {"id": report_id})
        return workflow

    async def _execute_step(
        self, ctx: StageContext, step: WorkflowStep, previous: Optional[BaseModel]
    ) -> BaseModel:
        workflow = ctx.workflow
        name = step.name
        policy = step.retry_policy

        workflow.start_step(name)
        await self.persist(workflow)
        self._logger.info("Workflow %s: %s started", workflow.id, name.value)

        last_error: Optional[Exception] = None
        for attempt in range(1, policy.max_attempts + 1):
            try:
                output = await step.activity(ctx, previous)
                break
            except Exception as exc:
                last_error = exc
                self._logger.warning(
                    "Workflow %s: %s attempt %d/%d failed: %s",
                    workflow.id, name.value, attempt, policy.max_attempts, exc,
                )
                if attempt < policy.max_attempts and policy.backoff_seconds > 0:
                    await asyncio.sleep(policy.backoff_seconds * attempt)
        else:
            message = str(last_error) or type(last_error).__name__
            workflow.fail_step(name, message)
            failed = workflow.mark_failed(message)
            await self.persist(workflow)
            if failed:
                self._logger.error(
                    "Workflow %s failed at %s: %s",
                    workflow.id, name.value, message, exc_info=last_error,
                )
                await self._notify("failed", self._notifier.notify_failed, workflow, message)
            else:
                self._logger.info(
                    "Workflow %s is %s; %s ended with: %s",
                    workflow.id, workflow.status.value, name.value, message,
                )
            raise StepFailed(message)

        workflow.complete_step(name, output)
        await self.persist(workflow)
        await self._recorder.update_report(
            workflow.results.report_id,
            {"results": {name.value: output.model_dump(mode="json")}},
            status="completed" if name == StepName.FINALIZE else "processing",
        )
        self._logger.info("Workflow %s: %s completed", workflow.id, name.value)
        return output
