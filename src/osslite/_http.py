"""
HTTP client utilities for osslite
"""

import logging
from typing import Dict, Optional

import httpx


logger = logging.getLogger(__name__)


class HttpClient:
    """
    Thin wrapper around ``httpx.AsyncClient``.

    Requests are sent once; transport errors propagate to the caller.
    Responses are returned unread so the body can be streamed.
    """

    def __init__(self, timeout: Optional[float] = 30, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def send(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        content: Optional[bytes] = None,
    ) -> httpx.Response:
        """Send a request and return the response with its body still open."""
        request = self._client.build_request(method, url, headers=headers, content=content)
        logger.debug("%s %s", method, url)
        return await self._client.send(request, stream=True)

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
