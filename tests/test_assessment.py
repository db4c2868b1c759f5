"""Tests for the rule-based assessment engine."""

import pytest

from reportflow.clients.assessment import (
    RuleBasedAssessmentEngine,
    analyze_brain_waves,
    assess_risk,
    build_care_plan,
    build_recommendations,
    categorize_risk,
    detect_abnormalities,
)
from reportflow.workflows.models import SubjectInfo


@pytest.mark.parametrize("score,level", [(0, "Low"), (3, "Low"), (4, "Medium"), (6, "Medium"), (7, "High")])
def test_categorize_risk(score, level):
    assert categorize_risk(score) == level


def test_detect_abnormalities():
    assert detect_abnormalities(10.0, 0.1) == []
    assert detect_abnormalities(7.5, 0.4) == [
        "Slow alpha variant",
        "Significant hemispheric asymmetry",
    ]


def test_brain_waves_parse_findings_with_units():
    waves = analyze_brain_waves({"dominant_frequency": "10.2 Hz", "asymmetry_index": "0.15"})

    assert waves["alpha"]["frequency"] == 10.2
    assert waves["alpha"]["symmetry"] == "Normal"
    assert waves["connectivity"]["left_right"] == 0.85
    assert waves["abnormalities"] == []


def test_brain_waves_fall_back_on_unparseable_findings():
    waves = analyze_brain_waves({"dominant_frequency": "n/a"})
    assert waves["alpha"]["frequency"] == 10.0


def test_healthy_adult_is_low_risk():
    waves = analyze_brain_waves({"dominant_frequency": "10.2 Hz", "asymmetry_index": "0.15"})
    risk = assess_risk(waves, SubjectInfo(id="p1", age=40))

    assert risk["total_score"] == 0
    assert risk["risk_level"] == "Low"
    assert risk["follow_up_required"] is False


def test_older_subject_with_slow_asymmetric_alpha_is_high_risk():
    waves = analyze_brain_waves({"dominant_frequency": "7.5 Hz", "asymmetry_index": "0.4"})
    risk = assess_risk(waves, SubjectInfo(id="p1", age=70))

    # age 2 + slow alpha 3 + asymmetry 2 + two abnormalities
    assert risk["total_score"] == 9
    assert risk["risk_level"] == "High"
    assert risk["urgency"] == "High"
    assert "Advanced age" in risk["risk_factors"]


def test_recommendations_by_level():
    low = build_recommendations({"risk_level": "Low"})
    high = build_recommendations({"risk_level": "High"})

    assert [r["type"] for r in low] == ["lifestyle", "monitoring"]
    assert [r["priority"] for r in high] == [1, 2, 3, 4]


def test_care_plan_monitoring_frequency():
    assert build_care_plan({"risk_level": "High"})["monitoring"]["frequency"] == "Every 3 months"
    assert build_care_plan({"risk_level": "Medium"})["monitoring"]["frequency"] == "Every 4 months"
    assert build_care_plan({})["monitoring"]["frequency"] == "Every 6 months"


@pytest.mark.asyncio
async def test_engine_analyze_shape():
    engine = RuleBasedAssessmentEngine()
    subject = SubjectInfo(id="p1", name="Ada", age=40)

    analysis = await engine.analyze({"job_id": "pid_1", "findings": {}}, subject)

    assert set(analysis) == {"standardized_report", "risk_assessment", "recommendations", "metadata"}
    assert analysis["standardized_report"]["header"]["subject_id"] == "p1"
    assert analysis["metadata"]["source_job_id"] == "pid_1"

    plan = await engine.generate_care_plan(analysis["risk_assessment"], subject)
    assert plan["interventions"]


@pytest.mark.parametrize("reported", ["0 Hz", "0", "-3.5 Hz"])
def test_non_positive_frequency_falls_back_to_default(reported):
    waves = analyze_brain_waves({"dominant_frequency": reported})

    assert waves["alpha"]["frequency"] == 10.0
    assert waves["beta"]["ratio"] == 1.5


@pytest.mark.asyncio
async def test_engine_analyze_survives_zero_frequency():
    analysis = await RuleBasedAssessmentEngine().analyze(
        {"findings": {"dominant_frequency": "0 Hz"}}, SubjectInfo(id="p1")
    )
    assert analysis["risk_assessment"]["risk_level"] == "Low"
