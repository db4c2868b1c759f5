"""Tenant usage counters and subject report status.

The tenant counter is a plain read-then-write against the record store with
no transaction. Two workflows for the same tenant finishing together can
both read the same `reports_used` and one increment is lost.
"""

from typing import Optional

from reportflow.db.record_store import RecordStore
from reportflow.logging import get_logger
from reportflow.workflows.models import utc_now

logger = get_logger("reportflow.workflows.usage")


async def increment_tenant_usage(store: RecordStore, tenant_id: str) -> Optional[int]:
    """Bump the tenant's `reports_used`. Returns the new value, or None."""
    try:
        tenant = await store.find_by_id("tenants", tenant_id)
        if tenant is None:
            logger.warning("Tenant %s not found; usage not updated", tenant_id)
            return None
        new_count = (tenant.get("reports_used") or 0) + 1
        await store.update("tenants", tenant_id, {
            "reports_used": new_count,
            "last_report_date": utc_now().isoformat(),
        })
        return new_count
    except Exception as e:
        logger.error("Failed to update tenant usage for %s: %s", tenant_id, e)
        return None


async def update_subject_status(store: RecordStore, subject_id: str, status: str) -> bool:
    try:
        updated = await store.update("subjects", subject_id, {
            "last_report_status": status,
            "last_report_date": utc_now().isoformat(),
        })
    except Exception as e:
        logger.error("Failed to update subject status for %s: %s", subject_id, e)
        return False
    return updated is not None
