"""Naming-convention mapping and per-table field allow-lists.

Callers hand the record store dicts in either camelCase (as the dashboard
sends them) or snake_case. Rows are written in snake_case and any key that
is not a known column of the target table is dropped before the write.
"""

import re
from typing import Any, Dict

from reportflow.logging import get_logger

logger = get_logger("reportflow.db.fields")

# Logical table name -> physical table name
TABLE_NAMES = {
    "tenants": "clinics",
    "subjects": "patients",
}

VALID_FIELDS = {
    "clinics": {
        "id", "name", "email", "phone", "address", "logo_url", "is_active",
        "reports_used", "reports_allowed", "subscription_status",
        "subscription_tier", "trial_start_date", "trial_end_date",
        "last_report_date", "created_at", "updated_at",
    },
    "patients": {
        "id", "org_id", "owner_user", "external_id", "full_name",
        "date_of_birth", "gender", "phone", "email", "address",
        "medical_history", "improvement_focus", "brain_fitness_score",
        "last_report_status", "last_report_date", "created_at", "updated_at",
    },
    "workflows": {
        "id", "subject_id", "subject_name", "tenant_id", "file_name",
        "file_size", "status", "steps", "results", "started_at",
        "estimated_completion", "completed_at", "failed_at", "cancelled_at",
        "error", "persistence_failures", "created_at", "updated_at",
    },
    "reports": {
        "id", "clinic_id", "patient_id", "file_name", "file_path", "status",
        "report_data", "created_at", "updated_at",
    },
    "uploaded_files": {
        "id", "workflow_id", "file_name", "file_size", "file_type",
        "storage_path", "storage_url", "patient_id", "clinic_id",
        "uploaded_at", "status", "created_at",
    },
    "analysis_reports": {
        "id", "type", "clinic_id", "patient_id", "workflow_id",
        "source_report_id", "standardized_report", "risk_assessment",
        "recommendations", "metadata", "status", "created_at",
    },
    "care_plans": {
        "id", "workflow_id", "patient_id", "clinic_id", "analysis_report_id",
        "care_plan", "status", "created_at",
    },
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def table_name(table: str) -> str:
    return TABLE_NAMES.get(table, table)


def to_snake_case(key: str) -> str:
    """`reportsUsed` -> `reports_used`. Already snake_case keys pass through."""
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def to_camel_case(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.capitalize() for part in rest)


def convert_keys(record: Dict[str, Any], convert=to_snake_case) -> Dict[str, Any]:
    """Convert top-level keys only; JSON column payloads are left as-is."""
    return {convert(k): v for k, v in record.items()}


def filter_valid_fields(table: str, record: Dict[str, Any]) -> Dict[str, Any]:
    """Drop keys that are not columns of `table`.

    Tables without an allow-list are passed through unchanged.
    """
    allowed = VALID_FIELDS.get(table)
    if allowed is None:
        return dict(record)

    filtered = {}
    for key, value in record.items():
        if key in allowed:
            filtered[key] = value
        else:
            logger.debug("Filtering out invalid field for %s: %s", table, key)
    return filtered


def prepare_row(table: str, record: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise keys to snake_case and apply the table's allow-list."""
    return filter_valid_fields(table, convert_keys(record))
