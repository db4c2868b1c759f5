"""Tests for quality score and processing time."""

from datetime import datetime, timedelta, timezone

import pytest

from reportflow.workflows.models import StepState, StepStatus
from reportflow.workflows.scoring import processing_time_seconds, quality_score


def _steps(failed: int, total: int = 5):
    return [
        StepState(status=StepStatus.FAILED if i < failed else StepStatus.COMPLETED)
        for i in range(total)
    ]


@pytest.mark.parametrize("failed,expected", [(0, 100), (1, 80), (3, 40)])
def test_score_loses_twenty_per_failed_step(failed, expected):
    assert quality_score(_steps(failed), elapsed_seconds=120) == expected


@pytest.mark.parametrize("failed,expected", [(0, 90), (1, 70), (3, 30)])
def test_score_time_penalty_past_threshold(failed, expected):
    assert quality_score(_steps(failed), elapsed_seconds=601) == expected


def test_score_at_threshold_has_no_time_penalty():
    assert quality_score(_steps(0), elapsed_seconds=600) == 100


def test_score_never_negative():
    assert quality_score(_steps(5), elapsed_seconds=10_000) == 0


def test_score_uses_configured_penalties():
    score = quality_score(
        _steps(1), elapsed_seconds=31,
        failed_step_penalty=5, time_threshold_seconds=30, time_penalty=50,
    )
    assert score == 45


def test_pending_steps_do_not_count_as_failed():
    steps = [StepState(), StepState(status=StepStatus.PROCESSING)]
    assert quality_score(steps, elapsed_seconds=0) == 100


def test_processing_time_is_rounded_seconds():
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert processing_time_seconds(start, start + timedelta(seconds=90.6)) == 91
