"""Workflow completion / failure notifications."""

from typing import Any, Dict, Protocol

from reportflow.logging import get_logger
from reportflow.workflows.models import Workflow
from reportflow.workflows.scoring import processing_time_seconds


class WorkflowNotifier(Protocol):
    """Protocol for notifier implementations."""

    async def notify_completed(self, workflow: Workflow, report: Dict[str, Any]) -> None:
        ...

    async def notify_failed(self, workflow: Workflow, error: str) -> None:
        ...


class LogNotifier:
    """Writes notifications to the service log."""

    def __init__(self) -> None:
        self._logger = get_logger("reportflow.workflows.notifications")

    async def notify_completed(self, workflow: Workflow, report: Dict[str, Any]) -> None:
        self._logger.info(
            "Report completed for %s (workflow %s, report %s, %ss)",
            workflow.subject_name or workflow.subject_id,
            workflow.id,
            report.get("id"),
            processing_time_seconds(workflow.started_at),
        )

    async def notify_failed(self, workflow: Workflow, error: str) -> None:
        self._logger.error("Workflow %s failed: %s", workflow.id, error)
