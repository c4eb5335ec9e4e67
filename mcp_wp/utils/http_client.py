from __future__ import annotations
import logging
from typing import Optional

import httpx

logger = logging.getLogger("mcp_wp.http")

DEFAULT_TIMEOUT = httpx.Timeout(10.0, connect=5.0)


class HttpClient:
    """
    Thin wrapper around httpx.AsyncClient for the content backend.

    Every call is a single attempt: the remote API's idempotency is unknown,
    so failures are surfaced to the caller instead of being retried here.
    Non-2xx responses raise httpx.HTTPStatusError.
    """
    def __init__(
        self,
        timeout: httpx.Timeout | float = DEFAULT_TIMEOUT,
        follow_redirects: bool = True,
        base_url: Optional[str] = None,
        headers: Optional[dict] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not isinstance(timeout, httpx.Timeout):
            timeout = httpx.Timeout(timeout)
        self.timeout = timeout
        self.follow_redirects = follow_redirects
        self.base_url = base_url or ""
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=self.follow_redirects,
            base_url=self.base_url,
            headers=headers or {},
            http2=transport is None,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if "timeout" not in kwargs:
            kwargs["timeout"] = self.timeout
        resp = await self._client.request(method, url, **kwargs)
        logger.debug("%s %s -> %s", method, url, resp.status_code)
        resp.raise_for_status()
        return resp

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def delete(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)


__all__ = ["HttpClient", "DEFAULT_TIMEOUT"]
