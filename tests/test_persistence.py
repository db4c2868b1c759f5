"""Tests for WorkflowRecorder persistence results."""

import pytest

from reportflow.db.record_store import InMemoryRecordStore
from reportflow.workflows.models import Workflow
from reportflow.workflows.persistence import WorkflowRecorder

from conftest import FlakyRecordStore


def _workflow() -> Workflow:
    return Workflow(subject_id="p1", tenant_id="c1", file_name="a.edf")


@pytest.mark.asyncio
async def test_snapshot_of_unsaved_workflow_is_not_ok():
    recorder = WorkflowRecorder(InMemoryRecordStore())

    result = await recorder.snapshot(_workflow())

    assert result.ok is False
    assert "not found" in result.error


@pytest.mark.asyncio
async def test_create_then_load():
    recorder = WorkflowRecorder(InMemoryRecordStore())
    workflow = _workflow()

    created = await recorder.create(workflow)
    loaded = await recorder.load(workflow.id)

    assert created.ok
    assert loaded.id == workflow.id
    assert await recorder.load("workflow_missing") is None


@pytest.mark.asyncio
async def test_store_errors_become_failed_results():
    recorder = WorkflowRecorder(FlakyRecordStore(failing_tables=["workflows", "reports"]))

    created = await recorder.create(_workflow())
    report = await recorder.create_report({"status": "processing"})

    assert created.ok is False
    assert created.error.startswith("ConnectionError")
    assert report.ok is False


@pytest.mark.asyncio
async def test_update_report_merges_payload_and_results():
    store = InMemoryRecordStore()
    recorder = WorkflowRecorder(store)
    created = await recorder.create_report({
        "status": "processing",
        "report_data": {"title": "session", "progress": 20},
    })
    report_id = created.record["id"]

    await recorder.update_report(report_id, {"results": {"upload": {"id": "f1"}}})
    await recorder.record_progress(report_id, "pid_processing", "Processing", 40)
    await recorder.update_report(report_id, {"results": {"process": {"job_id": "pid_1"}}}, status="completed")

    row = await store.find_by_id("reports", report_id)
    assert row["status"] == "completed"
    assert row["report_data"]["title"] == "session"
    assert row["report_data"]["progress"] == 40
    assert row["report_data"]["processing_status"] == "pid_processing"
    assert row["report_data"]["results"] == {
        "upload": {"id": "f1"},
        "process": {"job_id": "pid_1"},
    }


@pytest.mark.asyncio
async def test_update_report_without_id_is_not_ok():
    recorder = WorkflowRecorder(InMemoryRecordStore())

    result = await recorder.update_report(None, {"progress": 40})

    assert result.ok is False
