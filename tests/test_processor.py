"""Tests for the document processor clients and the polling loop."""

import httpx
import pytest

from reportflow.clients.processor import HttpDocumentProcessor, SimulatedDocumentProcessor
from reportflow.workflows.errors import ProcessingFailedError, ProcessingTimeoutError
from reportflow.workflows.stages import wait_for_processing


@pytest.mark.asyncio
async def test_simulated_job_completes_after_configured_polls():
    processor = SimulatedDocumentProcessor(polls_until_complete=2)
    job = await processor.submit("a.edf", b"abc", {"subject_id": "p1"})

    first = await processor.poll_status(job["job_id"])
    second = await processor.poll_status(job["job_id"])

    assert job["job_id"].startswith("pid_")
    assert first["status"] == "processing"
    assert first["progress"] == 50
    assert second["status"] == "completed"
    assert second["progress"] == 100


@pytest.mark.asyncio
async def test_simulated_result_requires_completion():
    processor = SimulatedDocumentProcessor(polls_until_complete=3)
    job = await processor.submit("a.edf", b"abc", {})

    with pytest.raises(RuntimeError, match="not ready"):
        await processor.fetch_result(job["job_id"])


@pytest.mark.asyncio
async def test_simulated_result_carries_findings():
    processor = SimulatedDocumentProcessor(polls_until_complete=1)
    job = await processor.submit("a.edf", b"abc", {"subject_id": "p1", "subject_name": "Ada"})
    await processor.poll_status(job["job_id"])

    report = await processor.fetch_result(job["job_id"])

    assert report["subject"] == {"id": "p1", "name": "Ada"}
    assert report["findings"]["dominant_frequency"] == "10.2 Hz"


@pytest.mark.asyncio
async def test_unknown_job_poll_raises():
    with pytest.raises(KeyError):
        await SimulatedDocumentProcessor().poll_status("pid_missing")


@pytest.mark.asyncio
async def test_wait_returns_completed_status():
    processor = SimulatedDocumentProcessor(polls_until_complete=3)
    job = await processor.submit("a.edf", b"abc", {})

    status = await wait_for_processing(processor, job["job_id"], poll_interval=0, max_wait=5)

    assert status["status"] == "completed"
    assert processor.jobs[job["job_id"]]["polls"] == 3


@pytest.mark.asyncio
async def test_wait_raises_on_failed_job():
    processor = SimulatedDocumentProcessor(polls_until_complete=1, fail_with="bad montage")
    job = await processor.submit("a.edf", b"abc", {})

    with pytest.raises(ProcessingFailedError, match="bad montage"):
        await wait_for_processing(processor, job["job_id"], poll_interval=0, max_wait=5)


@pytest.mark.asyncio
async def test_wait_times_out():
    processor = SimulatedDocumentProcessor(polls_until_complete=10_000)
    job = await processor.submit("a.edf", b"abc", {})

    with pytest.raises(ProcessingTimeoutError):
        await wait_for_processing(processor, job["job_id"], poll_interval=0.01, max_wait=0.03)


@pytest.mark.asyncio
async def test_http_processor_round_trip():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, request.headers.get("authorization")))
        if request.method == "POST" and request.url.path == "/v1/jobs":
            return httpx.Response(200, json={"jobId": "pid_1", "status": "processing"})
        if request.url.path == "/v1/jobs/pid_1":
            return httpx.Response(200, json={"status": "completed", "progress": 100})
        if request.url.path == "/v1/jobs/pid_1/report":
            return httpx.Response(200, json={"job_id": "pid_1", "findings": {}})
        return httpx.Response(404)

    processor = HttpDocumentProcessor(
        "https://processor.test/v1", api_key="secret", transport=httpx.MockTransport(handler)
    )
    try:
        job = await processor.submit("a.edf", b"abc", {"subject_id": "p1", "age": None})
        status = await processor.poll_status(job["job_id"])
        report = await processor.fetch_result(job["job_id"])
    finally:
        await processor.aclose()

    assert job["job_id"] == "pid_1"
    assert status == {"status": "completed", "progress": 100, "message": ""}
    assert report["job_id"] == "pid_1"
    assert seen[0] == ("POST", "/v1/jobs", "Bearer secret")


@pytest.mark.asyncio
async def test_http_processor_raises_on_error_status():
    processor = HttpDocumentProcessor(
        "https://processor.test/v1",
        transport=httpx.MockTransport(lambda request: httpx.Response(503)),
    )
    try:
        with pytest.raises(httpx.HTTPStatusError):
            await processor.poll_status("pid_1")
    finally:
        await processor.aclose()
