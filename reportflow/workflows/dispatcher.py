"""Workflow dispatcher interface."""

from abc import ABC, abstractmethod
from typing import List, Optional

from reportflow.workflows.models import SourceFile, SubjectInfo, Workflow


class WorkflowDispatcher(ABC):
    """Abstract interface for starting and tracking report workflows."""

    @abstractmethod
    async def start_workflow(
        self, file: SourceFile, subject: SubjectInfo, tenant_id: str
    ) -> str:
        """Start a workflow in the background. Returns workflow_id."""
        ...

    @abstractmethod
    async def get_status(self, workflow_id: str) -> Optional[Workflow]:
        """Get current state of a workflow."""
        ...

    @abstractmethod
    async def cancel(self, workflow_id: str) -> bool:
        """Request cancellation. Returns True if the workflow was cancelled."""
        ...

    @abstractmethod
    async def list_tenant_workflows(self, tenant_id: str) -> List[Workflow]:
        ...

    @abstractmethod
    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Wait for running workflows, then cancel whatever is left."""
        ...
