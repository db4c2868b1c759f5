"""Workflow metrics: elapsed processing time and quality score."""

from datetime import datetime
from typing import Iterable, Optional

from reportflow.workflows.models import StepState, StepStatus, utc_now


# Default penalties
FAILED_STEP_PENALTY = 20
TIME_THRESHOLD_SECONDS = 600
TIME_PENALTY = 10


def processing_time_seconds(started_at: datetime, now: Optional[datetime] = None) -> int:
    """Wall-clock seconds since the workflow started, rounded."""
    end = now or utc_now()
    return round((end - started_at).total_seconds())


def quality_score(
    steps: Iterable[StepState],
    elapsed_seconds: float,
    failed_step_penalty: int = FAILED_STEP_PENALTY,
    time_threshold_seconds: int = TIME_THRESHOLD_SECONDS,
    time_penalty: int = TIME_PENALTY,
) -> int:
    """Score a workflow run out of 100.

    Starts at 100, loses `failed_step_penalty` per failed step and a flat
    `time_penalty` when the run took longer than the threshold. Never
    below 0.
    """
    score = 100
    for step in steps:
        if step.status == StepStatus.FAILED:
            score -= failed_step_penalty

    if elapsed_seconds > time_threshold_seconds:
        score -= time_penalty

    return max(0, score)
