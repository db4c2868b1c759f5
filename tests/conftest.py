"""Shared fixtures and fakes for the workflow tracker tests."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from reportflow.clients.assessment import RuleBasedAssessmentEngine
from reportflow.clients.processor import SimulatedDocumentProcessor
from reportflow.clients.storage import InMemoryStorage
from reportflow.db.record_store import InMemoryRecordStore
from reportflow.workflows.models import SourceFile, SubjectInfo
from reportflow.workflows.pipeline import WorkflowOptions
from reportflow.workflows.tracker import ReportWorkflowTracker


TENANT_ID = "clinic-1"
SUBJECT_ID = "patient-1"


class FlakyRecordStore(InMemoryRecordStore):
    """In-memory store whose writes to chosen tables always raise."""

    def __init__(self, failing_tables: List[str]):
        super().__init__()
        self.failing_tables = set(failing_tables)

    async def add(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        if table in self.failing_tables:
            raise ConnectionError(f"{table} unavailable")
        return await super().add(table, record)

    async def update(self, table: str, record_id: str, patch: Dict[str, Any]):
        if table in self.failing_tables:
            raise ConnectionError(f"{table} unavailable")
        return await super().update(table, record_id, patch)


class FirstReportInsertFailsStore(InMemoryRecordStore):
    """Loses the first insert into `reports`; later inserts succeed."""

    def __init__(self):
        super().__init__()
        self.report_inserts = 0

    async def add(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        if table == "reports":
            self.report_inserts += 1
            if self.report_inserts == 1:
                raise ConnectionError("reports unavailable")
        return await super().add(table, record)


class YieldingRecordStore(InMemoryRecordStore):
    """Yields to the event loop between a read and the caller's next write."""

    async def find_by_id(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        row = await super().find_by_id(table, record_id)
        await asyncio.sleep(0)
        return row


class GatedProcessor(SimulatedDocumentProcessor):
    """Holds every status poll until `release` is set."""

    def __init__(self, fail_with: Optional[str] = None):
        super().__init__(polls_until_complete=1, fail_with=fail_with)
        self.polling = asyncio.Event()
        self.release = asyncio.Event()

    async def poll_status(self, job_id: str) -> Dict[str, Any]:
        self.polling.set()
        await self.release.wait()
        return await super().poll_status(job_id)


class FailingEngine(RuleBasedAssessmentEngine):
    """Assessment engine whose analysis call always fails."""

    def __init__(self):
        self.calls = 0

    async def analyze(self, result, subject):
        self.calls += 1
        raise RuntimeError("assessment service unavailable")


class ExplodingNotifier:
    async def notify_completed(self, workflow, report):
        raise RuntimeError("mail relay down")

    async def notify_failed(self, workflow, error):
        raise RuntimeError("mail relay down")


class RecordingNotifier:
    def __init__(self):
        self.completed = []
        self.failed = []

    async def notify_completed(self, workflow, report):
        self.completed.append((workflow.id, report))

    async def notify_failed(self, workflow, error):
        self.failed.append((workflow.id, error))


@pytest.fixture
def record_store():
    store = InMemoryRecordStore()
    store.seed("tenants", {"id": TENANT_ID, "name": "North Clinic", "reports_used": 0})
    store.seed("subjects", {"id": SUBJECT_ID, "full_name": "Ada Lovelace"})
    return store


@pytest.fixture
def recording():
    return SourceFile(name="session-01.edf", content=b"0" * 2048)


@pytest.fixture
def subject():
    return SubjectInfo(id=SUBJECT_ID, name="Ada Lovelace", age=42, gender="female")


@pytest.fixture
def fast_options():
    return WorkflowOptions(poll_interval_seconds=0, max_wait_seconds=5)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def make_tracker(record_store, fast_options, notifier):
    """Factory for trackers over the in-memory backend; shut down after the test."""
    trackers = []

    def factory(store=None, processor=None, engine=None, options=None, notifier_override=None):
        tracker = ReportWorkflowTracker(
            record_store=store if store is not None else record_store,
            storage=InMemoryStorage(),
            processor=processor or SimulatedDocumentProcessor(polls_until_complete=2),
            engine=engine or RuleBasedAssessmentEngine(),
            notifier=notifier_override or notifier,
            options=options or fast_options,
        )
        trackers.append(tracker)
        return tracker

    yield factory

    for tracker in trackers:
        await tracker.shutdown(timeout=1.0)
