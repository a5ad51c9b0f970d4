# social_publisher/infrastructure/http_client.py
from typing import Optional

import httpx
import structlog

from social_publisher import config
from social_publisher.errors import PlatformError

logger = structlog.get_logger(__name__)


class ExternalAPIClient:
    """
    Thin httpx wrapper used by platform adapters and media storage.
    Every call carries a bounded timeout; transport failures surface as
    transient PlatformErrors. Status codes are left to the caller.
    """

    def __init__(self, timeout: float = config.PLATFORM_HTTP_TIMEOUT, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self.transport = transport

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                return await client.request(method, url, **kwargs)
            except httpx.TimeoutException as exc:
                logger.warning("external_api_timeout", method=method, url=_strip_query(url))
                raise PlatformError("network_error", transient=True, detail=str(exc)) from exc
            except httpx.TransportError as exc:
                logger.warning("external_api_transport_error", method=method, url=_strip_query(url), error=str(exc))
                raise PlatformError("network_error", transient=True, detail=str(exc)) from exc

    async def get(self, url, headers=None, params=None) -> httpx.Response:
        return await self.request("GET", url, headers=headers, params=params)

    async def post(self, url, headers=None, json=None, data=None, files=None, params=None, auth=None) -> httpx.Response:
        return await self.request("POST", url, headers=headers, json=json, data=data, files=files, params=params, auth=auth)

    async def delete(self, url, headers=None, params=None) -> httpx.Response:
        return await self.request("DELETE", url, headers=headers, params=params)

    async def download(self, url: str) -> bytes:
        response = await self.get(url)
        if response.status_code >= 400:
            raise PlatformError("media_upload_failed", transient=response.status_code >= 500,
                                detail=f"media download returned {response.status_code}")
        return response.content


def _strip_query(url) -> str:
    # access tokens travel in query strings on some platforms
    return str(httpx.URL(url).copy_with(query=None))
