"""Document processor clients (submit / poll / fetch result).

The processor accepts a raw recording, runs its own analysis asynchronously
and exposes a job id to poll. Two implementations:

- HttpDocumentProcessor: REST client over httpx.
- SimulatedDocumentProcessor: in-process stand-in that reports completion
  after a fixed number of polls and returns a canned findings report.
"""

import random
import string
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from reportflow.logging import get_logger

logger = get_logger("reportflow.clients.processor")


class DocumentProcessor(ABC):
    """Abstract interface for the external document processor."""

    @abstractmethod
    async def submit(
        self, file_name: str, content: bytes, meta: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Submit a file for processing. Returns at least {"job_id"}."""
        ...

    @abstractmethod
    async def poll_status(self, job_id: str) -> Dict[str, Any]:
        """Returns {"status", "progress", "message"}.

        status is one of "processing", "completed", "failed".
        """
        ...

    @abstractmethod
    async def fetch_result(self, job_id: str) -> Dict[str, Any]:
        """Download the structured result of a completed job."""
        ...

    async def aclose(self) -> None:
        return None


class HttpDocumentProcessor(DocumentProcessor):
    """REST client for the hosted processor API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def submit(
        self, file_name: str, content: bytes, meta: Dict[str, Any]
    ) -> Dict[str, Any]:
        logger.info("Submitting %s to document processor", file_name)
        response = await self._client.post(
            "/jobs",
            files={"file": (file_name, content, "application/octet-stream")},
            data={k: str(v) for k, v in meta.items() if v is not None},
        )
        response.raise_for_status()
        body = response.json()
        return {"job_id": body.get("job_id") or body["jobId"], **body}

    async def poll_status(self, job_id: str) -> Dict[str, Any]:
        response = await self._client.get(f"/jobs/{job_id}")
        response.raise_for_status()
        body = response.json()
        return {
            "status": body.get("status", "processing"),
            "progress": body.get("progress", 0),
            "message": body.get("message", ""),
        }

    async def fetch_result(self, job_id: str) -> Dict[str, Any]:
        response = await self._client.get(f"/jobs/{job_id}/report")
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()


def _job_suffix() -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=9))


class SimulatedDocumentProcessor(DocumentProcessor):
    """Completes every job after `polls_until_complete` status checks."""

    def __init__(self, polls_until_complete: int = 2, fail_with: Optional[str] = None):
        self._polls_until_complete = max(1, polls_until_complete)
        self._fail_with = fail_with
        self.jobs: Dict[str, Dict[str, Any]] = {}

    async def submit(
        self, file_name: str, content: bytes, meta: Dict[str, Any]
    ) -> Dict[str, Any]:
        job_id = f"pid_{int(time.time() * 1000)}_{_job_suffix()}"
        self.jobs[job_id] = {
            "job_id": job_id,
            "file_name": file_name,
            "file_size": len(content),
            "subject_id": meta.get("subject_id"),
            "subject_name": meta.get("subject_name"),
            "tenant_id": meta.get("tenant_id"),
            "submitted_at": datetime.now(timezone.utc).isoformat(),
            "status": "processing",
            "polls": 0,
        }
        return {"job_id": job_id, "status": "processing", "estimated_time": "5-10 minutes"}

    async def poll_status(self, job_id: str) -> Dict[str, Any]:
        job = self.jobs.get(job_id)
        if job is None:
            raise KeyError(f"Job not found: {job_id}")

        job["polls"] += 1
        if job["polls"] >= self._polls_until_complete:
            if self._fail_with:
                job["status"] = "failed"
                job["message"] = self._fail_with
            else:
                job["status"] = "completed"
                job["message"] = "Analysis completed successfully"
                job["completed_at"] = datetime.now(timezone.utc).isoformat()

        progress = 100 if job["status"] == "completed" else int(
            100 * job["polls"] / self._polls_until_complete
        )
        return {
            "status": job["status"],
            "progress": progress,
            "message": job.get("message", "Processing EEG data..."),
        }

    async def fetch_result(self, job_id: str) -> Dict[str, Any]:
        job = self.jobs.get(job_id)
        if job is None or job["status"] != "completed":
            raise RuntimeError(f"Report not ready or job not found: {job_id}")

        return {
            "job_id": job_id,
            "report_type": "P&ID Pro Analysis",
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "subject": {"id": job["subject_id"], "name": job["subject_name"]},
            "findings": {
                "dominant_frequency": "10.2 Hz",
                "alpha_blocking_response": "Normal",
                "asymmetry_index": "0.15",
                "artifact_percentage": "12%",
                "recording_quality": "Good",
            },
            "recommendations": [
                "Continue monitoring alpha wave patterns",
                "Consider follow-up in 3 months",
                "Review medication effects on EEG patterns",
            ],
            "processing_details": {
                "algorithm": "P&ID Pro v2.1",
                "data_points": 125000,
                "epochs": 250,
            },
        }
