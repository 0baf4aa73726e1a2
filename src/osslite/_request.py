"""
Signed request execution for osslite
"""

import asyncio
import logging
import xml.etree.ElementTree as ET
from typing import BinaryIO, Dict, Optional
from urllib.parse import quote, quote_plus

import httpx

from ._signer import canonical_resource, format_date
from .error import ResponseError


logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def encode_query(query: Dict[str, Optional[str]]) -> str:
    """Encode query parameters sorted by key. ``None`` values emit the bare key."""
    parts = []
    for key in sorted(query):
        value = query[key]
        if value is None:
            parts.append(quote_plus(key))
        else:
            parts.append(f"{quote_plus(key)}={quote_plus(str(value))}")
    return "&".join(parts)


def build_url(prefix: str, path: str, query: Optional[Dict[str, Optional[str]]] = None) -> str:
    """Join the endpoint, the object path and the encoded query string."""
    if not path.startswith("/"):
        path = "/" + path
    url = prefix.rstrip("/") + quote(path, safe="/")
    if query:
        url += "?" + encode_query(query)
    return url


def _local_name(tag: str) -> str:
    return tag.split("}")[-1]


def parse_error(status_code: int, body: bytes, request=None) -> ResponseError:
    """Turn a non-success response body into a ``ResponseError``."""
    text = body.decode("utf-8", errors="replace").strip()
    fields: Dict[str, str] = {}
    if text:
        try:
            doc = ET.fromstring(body)
        except ET.ParseError:
            doc = None
        if doc is not None and _local_name(doc.tag) == "Error":
            for child in doc:
                fields[_local_name(child.tag)] = (child.text or "").strip()

    message = fields.get("Message") or text or f"Request failed with status {status_code}"
    return ResponseError(
        message,
        status_code,
        code=fields.get("Code", ""),
        request_id=fields.get("RequestId", ""),
        host_id=fields.get("HostId", ""),
        request=request,
    )


class Request:
    """
    One signed HTTP operation against the bucket.

    A request is built, executed once and then kept only for inspection
    (``url``, ``status_code``, ``content_length``). When ``detach`` is set
    and a ``sink`` is given, ``execute`` returns as soon as the response
    headers arrive and the body is copied by ``copy_task``.
    """

    def __init__(
        self,
        client,
        method: str,
        path: str,
        query: Optional[Dict[str, Optional[str]]] = None,
        content_type: str = "",
        content_md5: str = "",
        body: Optional[bytes] = None,
        sink: Optional[BinaryIO] = None,
        detach: bool = False,
    ):
        self.client = client
        self.method = method
        self.path = path if path.startswith("/") else "/" + path
        self.query = dict(query) if query else {}
        self.content_type = content_type
        self.content_md5 = content_md5
        self.body = body
        self.sink = sink
        self.detach = detach
        self.date = ""

        self.status_code: Optional[int] = None
        self.content_length: Optional[int] = None
        self.response_headers: Optional[httpx.Headers] = None
        self.copy_task: Optional[asyncio.Task] = None

    @property
    def url(self) -> str:
        return build_url(self.client.prefix, self.path, self.query)

    @property
    def resource(self) -> str:
        return canonical_resource(self.client.bucket, self.path, self.query)

    def __str__(self) -> str:
        return self.url

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.url}>"

    def _headers(self) -> Dict[str, str]:
        if not self.content_type:
            self.content_type = DEFAULT_CONTENT_TYPE
        self.date = format_date()
        headers = {
            "Content-Type": self.content_type,
            "Date": self.date,
        }
        if self.content_md5:
            headers["Content-MD5"] = self.content_md5
        headers["Authorization"] = self.client._signer.authorization(
            self.method,
            self.content_md5,
            self.content_type,
            self.date,
            self.resource,
        )
        return headers

    async def execute(self) -> "Request":
        """Sign and send the request, then handle the response."""
        response = await self.client._http.send(
            self.method,
            self.url,
            headers=self._headers(),
            content=self.body,
        )
        self.status_code = response.status_code
        self.response_headers = response.headers
        self.content_length = _declared_length(response)

        if response.status_code == 200:
            if self.sink is None:
                await response.aclose()
                return self
            if self.detach:
                task = asyncio.create_task(self._copy(response))
                self.client._detached.add(task)
                task.add_done_callback(self.client._detached.discard)
                task.add_done_callback(self._copy_done)
                self.copy_task = task
                return self
            await self._copy(response)
            return self

        try:
            if response.status_code == 404 and self.method == "HEAD":
                return self
            body = await response.aread()
        finally:
            await response.aclose()
        raise parse_error(response.status_code, body, request=self)

    async def wait(self) -> None:
        """Wait for a detached body copy to finish, re-raising its error."""
        if self.copy_task is not None:
            await self.copy_task

    async def _copy(self, response: httpx.Response) -> None:
        try:
            async for chunk in response.aiter_bytes():
                self.sink.write(chunk)
        finally:
            await response.aclose()

    def _copy_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background download of %s failed: %s", self.url, exc)


def _declared_length(response: httpx.Response) -> Optional[int]:
    value = response.headers.get("Content-Length")
    if value is None or not value.strip().isdigit():
        return None
    return int(value)
