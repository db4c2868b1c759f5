"""Object storage for uploaded recordings."""

import asyncio
import functools
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from reportflow.logging import get_logger

logger = get_logger("reportflow.clients.storage")


class ObjectStorage(ABC):
    """Stores a binary under a path and hands back where it landed."""

    @abstractmethod
    async def upload(
        self,
        content: bytes,
        path: str,
        metadata: Optional[Dict[str, Any]] = None,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, str]:
        """Upload `content` to `path`. Returns {"path", "url"}."""
        ...


class SupabaseStorage(ObjectStorage):
    """Supabase Storage bucket backend."""

    def __init__(self, client_factory: Callable, bucket: str):
        self._client_factory = client_factory
        self._bucket = bucket

    def _upload_sync(self, content: bytes, path: str, content_type: str) -> Dict[str, str]:
        bucket = self._client_factory().storage.from_(self._bucket)
        bucket.upload(
            path,
            content,
            {"content-type": content_type, "upsert": "true"},
        )
        return {"path": path, "url": bucket.get_public_url(path)}

    async def upload(
        self,
        content: bytes,
        path: str,
        metadata: Optional[Dict[str, Any]] = None,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, str]:
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None, functools.partial(self._upload_sync, content, path, content_type)
        )
        logger.info("Uploaded %d bytes to %s/%s (%s)", len(content), self._bucket, path, metadata or {})
        return result


class InMemoryStorage(ObjectStorage):
    """Keeps uploads in a dict. Used in simulated mode and tests."""

    def __init__(self, base_url: str = "memory://uploads"):
        self._base_url = base_url.rstrip("/")
        self.objects: Dict[str, bytes] = {}
        self.metadata: Dict[str, Dict[str, Any]] = {}

    async def upload(
        self,
        content: bytes,
        path: str,
        metadata: Optional[Dict[str, Any]] = None,
        content_type: str = "application/octet-stream",
    ) -> Dict[str, str]:
        self.objects[path] = bytes(content)
        self.metadata[path] = dict(metadata or {}, content_type=content_type)
        return {"path": path, "url": f"{self._base_url}/{path}"}
