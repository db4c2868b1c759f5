"""Assessment engine clients.

Turns a processed recording report into a standardized clinical report,
risk assessment and recommendations, and derives a care plan from the
risk assessment.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from reportflow.logging import get_logger
from reportflow.workflows.models import SubjectInfo

logger = get_logger("reportflow.clients.assessment")

ALGORITHM_VERSION = "AIMS v3.2.1"


class AssessmentEngine(ABC):
    """Abstract interface for the external assessment engine."""

    @abstractmethod
    async def analyze(self, result: Dict[str, Any], subject: SubjectInfo) -> Dict[str, Any]:
        """Returns {"standardized_report", "risk_assessment", "recommendations", "metadata"}."""
        ...

    @abstractmethod
    async def generate_care_plan(
        self, risk_assessment: Dict[str, Any], subject: SubjectInfo
    ) -> Dict[str, Any]:
        ...

    async def aclose(self) -> None:
        return None


class HttpAssessmentEngine(AssessmentEngine):
    """REST client for the hosted assessment API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def analyze(self, result: Dict[str, Any], subject: SubjectInfo) -> Dict[str, Any]:
        response = await self._client.post(
            "/analyses",
            json={"report": result, "subject": subject.model_dump()},
        )
        response.raise_for_status()
        return response.json()

    async def generate_care_plan(
        self, risk_assessment: Dict[str, Any], subject: SubjectInfo
    ) -> Dict[str, Any]:
        response = await self._client.post(
            "/care-plans",
            json={"risk_assessment": risk_assessment, "subject": subject.model_dump()},
        )
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Rule-based engine
# ---------------------------------------------------------------------------

HIGH_RISK_SCORE = 7
MEDIUM_RISK_SCORE = 4
# Awake-recording delta power is low and not used for risk; fixed midpoint.
DELTA_POWER = 0.15
DEFAULT_DOMINANT_FREQUENCY = 10.0


def _parse_float(value: Any, default: float) -> float:
    if value is None:
        return default
    try:
        return float(str(value).split()[0])
    except (ValueError, IndexError):
        return default


def categorize_risk(score: int) -> str:
    if score >= HIGH_RISK_SCORE:
        return "High"
    if score >= MEDIUM_RISK_SCORE:
        return "Medium"
    return "Low"


def detect_abnormalities(frequency: float, asymmetry: float) -> List[str]:
    abnormalities = []
    if frequency < 8:
        abnormalities.append("Slow alpha variant")
    if asymmetry > 0.3:
        abnormalities.append("Significant hemispheric asymmetry")
    return abnormalities


def analyze_brain_waves(findings: Dict[str, Any]) -> Dict[str, Any]:
    """Derive band-level metrics from the processor's findings."""
    dominant = _parse_float(findings.get("dominant_frequency"), DEFAULT_DOMINANT_FREQUENCY)
    if dominant <= 0:
        dominant = DEFAULT_DOMINANT_FREQUENCY
    asymmetry = _parse_float(findings.get("asymmetry_index"), 0.15)

    return {
        "alpha": {
            "frequency": dominant,
            "power": max(0.3, min(0.9, (dominant - 7) / 5)),
            "symmetry": "Normal" if asymmetry < 0.2 else "Asymmetric",
            "reactivity": findings.get("alpha_blocking_response") or "Normal",
        },
        "beta": {
            "ratio": round(15 / dominant, 2),
            "distribution": "Frontal-Central",
            "coherence": 0.78,
        },
        "theta": {
            "power": max(0.1, min(0.4, (10 - dominant) / 8)),
            "location": "Temporal",
        },
        "delta": {"power": DELTA_POWER},
        "connectivity": {
            "fronto_parietal": 0.82,
            "left_right": round(1 - asymmetry, 3),
            "anterior_posterior": 0.75,
        },
        "abnormalities": detect_abnormalities(dominant, asymmetry),
    }


def assess_risk(waves: Dict[str, Any], subject: SubjectInfo) -> Dict[str, Any]:
    age = subject.age if subject.age is not None else 30

    score = 0
    factors: List[str] = []

    if age > 65:
        score += 2
        factors.append("Advanced age")

    if waves["alpha"]["frequency"] < 8.5:
        score += 3
        factors.append("Slow alpha frequency")

    if waves["alpha"]["symmetry"] == "Asymmetric":
        score += 2
        factors.append("Hemispheric asymmetry")

    if waves["abnormalities"]:
        score += len(waves["abnormalities"])
        factors.extend(waves["abnormalities"])

    if score >= HIGH_RISK_SCORE:
        risk_recommendations = ["Immediate medical consultation", "Comprehensive neurological workup"]
    elif score >= MEDIUM_RISK_SCORE:
        risk_recommendations = ["Regular monitoring", "Lifestyle modifications"]
    else:
        risk_recommendations = ["Preventive care", "Annual follow-up"]

    return {
        "total_score": score,
        "risk_level": categorize_risk(score),
        "risk_factors": factors,
        "recommendations": risk_recommendations,
        "follow_up_required": score > 3,
        "urgency": "High" if score > 6 else "Medium" if score > 3 else "Low",
    }


def build_recommendations(risk: Dict[str, Any]) -> List[Dict[str, Any]]:
    level = risk["risk_level"]
    recommendations = []

    if level == "High":
        recommendations.append({
            "type": "urgent",
            "title": "Immediate Medical Attention",
            "description": "Schedule appointment with neurologist within 2 weeks",
            "priority": 1,
        })
    if level in ("Medium", "High"):
        recommendations.append({
            "type": "clinical",
            "title": "Follow-up qEEG",
            "description": "Repeat qEEG assessment in 3-6 months to monitor changes",
            "priority": 2,
        })
    recommendations.append({
        "type": "lifestyle",
        "title": "Cognitive Enhancement",
        "description": "Engage in regular mental exercises and learning activities",
        "priority": 3,
    })
    recommendations.append({
        "type": "monitoring",
        "title": "Sleep Quality",
        "description": "Maintain consistent sleep schedule and address any sleep disorders",
        "priority": 4,
    })
    return sorted(recommendations, key=lambda r: r["priority"])


def build_standardized_report(
    waves: Dict[str, Any], risk: Dict[str, Any], subject: SubjectInfo
) -> Dict[str, Any]:
    level = risk["risk_level"]
    alpha = waves["alpha"]["frequency"]
    overall = {
        "High": "potential neurological concerns requiring attention",
        "Medium": "borderline patterns requiring monitoring",
    }.get(level, "normal neurological activity for demographic")
    significance = {
        "High": "Findings warrant immediate clinical attention and further investigation",
        "Medium": "Findings suggest need for monitoring and possible intervention",
    }.get(level, "Findings within expected range for age and demographics")
    follow_up = (
        "Follow-up assessment is recommended."
        if risk["follow_up_required"]
        else "Routine monitoring is sufficient."
    )

    return {
        "header": {
            "subject_name": subject.name,
            "subject_id": subject.id,
            "age": subject.age,
            "gender": subject.gender,
            "report_date": datetime.now(timezone.utc).isoformat(),
        },
        "clinical_findings": {
            "dominant_rhythm": f"{alpha} Hz alpha rhythm",
            "reactivity": waves["alpha"]["reactivity"],
            "asymmetry": waves["alpha"]["symmetry"],
        },
        "quantitative_analysis": {
            "alpha_power": waves["alpha"]["power"],
            "beta_ratio": waves["beta"]["ratio"],
            "theta_power": waves["theta"]["power"],
            "delta_activity": waves["delta"]["power"],
            "connectivity": waves["connectivity"],
        },
        "interpretation": {
            "summary": (
                f"This recording shows {level.lower()} risk neurological patterns. "
                f"Alpha frequency of {alpha} Hz is "
                f"{'within normal' if alpha >= 9 else 'below normal'} limits. "
                f"Overall brain wave patterns suggest {overall}."
            ),
            "significance": significance,
            "limitations": "Results should be interpreted in clinical context",
        },
        "conclusion": (
            f"Based on algorithmic analysis, this subject presents with {level.lower()} "
            f"risk patterns. {follow_up} Clinical correlation is advised."
        ),
    }


def build_care_plan(risk: Dict[str, Any]) -> Dict[str, Any]:
    plan = {
        "goals": [
            "Optimize brain function and cognitive performance",
            "Monitor neurological health indicators",
            "Prevent cognitive decline where applicable",
        ],
        "interventions": [],
        "monitoring": {
            "frequency": "Every 6 months",
            "parameters": ["qEEG follow-up", "Cognitive assessment", "Symptom monitoring"],
            "alerts": [],
        },
        "lifestyle": {
            "exercise": "Regular aerobic exercise 30min, 5x/week",
            "sleep": "7-9 hours quality sleep nightly",
            "nutrition": "Mediterranean diet rich in omega-3 fatty acids",
            "stress": "Stress management techniques and mindfulness",
        },
    }

    level = risk.get("risk_level", "Low")
    if level == "High":
        plan["interventions"] = [
            "Immediate neurological consultation",
            "Comprehensive neuropsychological testing",
            "Consider pharmacological intervention",
        ]
        plan["monitoring"]["frequency"] = "Every 3 months"
        plan["monitoring"]["alerts"].append("Urgent follow-up required")
    elif level == "Medium":
        plan["interventions"] = [
            "Cognitive training exercises",
            "Neurofeedback therapy consideration",
            "Regular medical check-ups",
        ]
        plan["monitoring"]["frequency"] = "Every 4 months"
    else:
        plan["interventions"] = [
            "Preventive cognitive exercises",
            "Lifestyle optimization",
            "Annual health screenings",
        ]
    return plan


class RuleBasedAssessmentEngine(AssessmentEngine):
    """In-process engine applying fixed scoring rules to the findings."""

    async def analyze(self, result: Dict[str, Any], subject: SubjectInfo) -> Dict[str, Any]:
        findings = result.get("findings") or {}
        waves = analyze_brain_waves(findings)
        risk = assess_risk(waves, subject)
        logger.info(
            "Assessed subject %s: risk %s (score %d)",
            subject.id, risk["risk_level"], risk["total_score"],
        )
        return {
            "standardized_report": build_standardized_report(waves, risk, subject),
            "risk_assessment": risk,
            "recommendations": build_recommendations(risk),
            "metadata": {
                "algorithm_version": ALGORITHM_VERSION,
                "processed_at": datetime.now(timezone.utc).isoformat(),
                "source_job_id": result.get("job_id"),
            },
        }

    async def generate_care_plan(
        self, risk_assessment: Dict[str, Any], subject: SubjectInfo
    ) -> Dict[str, Any]:
        return build_care_plan(risk_assessment)
