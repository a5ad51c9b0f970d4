# social_publisher/infrastructure/media_storage.py
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx
import structlog

from social_publisher import config
from social_publisher.errors import StorageError

logger = structlog.get_logger(__name__)


@dataclass
class StoredObject:
    key: str
    url: str


class MediaStorage(ABC):
    """Contract of the blob storage backend: only upload and delete are used."""

    @abstractmethod
    async def upload(self, key: str, data: bytes, content_type: str) -> StoredObject:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


class HttpMediaStorage(MediaStorage):
    def __init__(
        self,
        base_url: str = config.MEDIA_STORAGE_URL,
        token: Optional[str] = config.MEDIA_STORAGE_TOKEN,
        timeout: float = config.PLATFORM_HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.transport = transport

    def _headers(self, content_type: Optional[str] = None) -> dict:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    async def upload(self, key: str, data: bytes, content_type: str) -> StoredObject:
        url = f"{self.base_url}/{key}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.put(url, content=data, headers=self._headers(content_type))
                r.raise_for_status()
        except httpx.HTTPError as exc:
            logger.exception("media_upload_failed", key=key)
            raise StorageError("media upload failed") from exc
        logger.info("media_uploaded", key=key, size=len(data))
        return StoredObject(key=key, url=url)

    async def delete(self, key: str) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.delete(f"{self.base_url}/{key}", headers=self._headers())
                if r.status_code != 404:
                    r.raise_for_status()
        except httpx.HTTPError as exc:
            logger.exception("media_delete_failed", key=key)
            raise StorageError("media delete failed") from exc
        logger.info("media_deleted", key=key)
