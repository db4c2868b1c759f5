"""Record store interface with Supabase and in-memory implementations."""

import asyncio
import copy
import functools
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from reportflow.db.fields import prepare_row, table_name
from reportflow.logging import get_logger

logger = get_logger("reportflow.db.record_store")


class RecordStore(ABC):
    """Abstract table CRUD used by the workflow tracker.

    Table names are logical (`tenants`, `subjects`, ...) and mapped to the
    physical table. Keys are normalised to snake_case and filtered against
    the table's allow-list before every write.
    """

    @abstractmethod
    async def add(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row. Returns the stored row, including generated id."""
        ...

    @abstractmethod
    async def update(
        self, table: str, record_id: str, patch: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Patch a row by id. Returns the updated row or None if missing."""
        ...

    @abstractmethod
    async def find_by_id(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def find_by(self, table: str, field: str, value: Any) -> List[Dict[str, Any]]:
        ...


class SupabaseRecordStore(RecordStore):
    """Record store over Supabase Postgres tables.

    The supabase-py client is synchronous, so every query runs in the
    default thread executor to keep the event loop free.
    """

    def __init__(self, client_factory: Callable):
        self._client_factory = client_factory

    async def _run(self, fn: Callable, *args) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    def _add_sync(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        response = self._client_factory().table(table).insert(row).execute()
        return response.data[0] if response.data else row

    def _update_sync(
        self, table: str, record_id: str, patch: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        response = (
            self._client_factory().table(table)
            .update(patch)
            .eq("id", record_id)
            .execute()
        )
        return response.data[0] if response.data else None

    def _find_by_sync(self, table: str, field: str, value: Any, limit: Optional[int]):
        query = self._client_factory().table(table).select("*").eq(field, value)
        if limit is not None:
            query = query.limit(limit)
        return query.execute().data or []

    async def add(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        physical = table_name(table)
        row = prepare_row(physical, record)
        result = await self._run(self._add_sync, physical, row)
        logger.debug("Added to %s: %s", physical, result.get("id"))
        return result

    async def update(
        self, table: str, record_id: str, patch: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        physical = table_name(table)
        row = prepare_row(
            physical, {**patch, "updated_at": datetime.now(timezone.utc).isoformat()}
        )
        return await self._run(self._update_sync, physical, record_id, row)

    async def find_by_id(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        rows = await self._run(self._find_by_sync, table_name(table), "id", record_id, 1)
        return rows[0] if rows else None

    async def find_by(self, table: str, field: str, value: Any) -> List[Dict[str, Any]]:
        return await self._run(self._find_by_sync, table_name(table), field, value, None)


class InMemoryRecordStore(RecordStore):
    """Process-local record store for simulated mode and tests.

    Applies the same table mapping and field filtering as the Supabase store,
    and hands out deep copies so callers never alias stored rows.
    """

    def __init__(self):
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}

    def _table(self, table: str) -> Dict[str, Dict[str, Any]]:
        return self._tables.setdefault(table_name(table), {})

    def seed(self, table: str, record: Dict[str, Any]) -> None:
        """Insert a row without filtering (fixtures for tenants, subjects)."""
        row = copy.deepcopy(record)
        row.setdefault("id", str(uuid.uuid4()))
        self._table(table)[row["id"]] = row

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._table(table).values()]

    async def add(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        row = prepare_row(
            table_name(table),
            {"created_at": datetime.now(timezone.utc).isoformat(), **copy.deepcopy(record)},
        )
        row.setdefault("id", str(uuid.uuid4()))
        self._table(table)[row["id"]] = row
        return copy.deepcopy(row)

    async def update(
        self, table: str, record_id: str, patch: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        rows = self._table(table)
        if record_id not in rows:
            return None
        row = prepare_row(
            table_name(table),
            {**copy.deepcopy(patch), "updated_at": datetime.now(timezone.utc).isoformat()},
        )
        rows[record_id].update(row)
        return copy.deepcopy(rows[record_id])

    async def find_by_id(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        row = self._table(table).get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def find_by(self, table: str, field: str, value: Any) -> List[Dict[str, Any]]:
        return [
            copy.deepcopy(r) for r in self._table(table).values()
            if r.get(field) == value
        ]
