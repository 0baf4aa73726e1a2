"""
OssClient - signed-request client for OSS style object storage
"""

import asyncio
import base64
import hashlib
import io
import json
import logging
from datetime import timedelta
from typing import BinaryIO, Callable, Dict, Optional, Sequence, Set, Union

import httpx

from ._batch import BatchDeleter, partition
from ._http import HttpClient
from ._paginator import Paginator
from ._request import Request, build_url
from ._signer import OssSigner
from .config import Config
from .error import OssException, RecursiveDeleteError
from .models import ImageInfo, ListResult, RecursiveDeleteResult
from .policy import Condition, build_post_form


def md5_digest(data: bytes) -> bytes:
    """Raw MD5 digest of ``data``, as accepted by ``upload``."""
    return hashlib.md5(data).digest()


def _field_value(data: dict, name: str) -> str:
    """``data[name]["value"]``; a missing field reads as empty."""
    entry = data.get(name)
    if entry is None:
        return ""
    if not isinstance(entry, dict):
        raise TypeError(f"{name} is not an object")
    value = entry.get("value", "")
    if not isinstance(value, str):
        raise TypeError(f"{name} value is not a string")
    return value


def _int_value(value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class OssClient:
    """
    Client for a single bucket of an OSS compatible service.

    Example:
        async with OssClient(
            access_key_id="LTAI...",
            access_key_secret="...",
            prefix="https://my-bucket.oss-cn-hangzhou.aliyuncs.com",
            bucket="my-bucket",
        ) as client:
            with open("image.jpg", "rb") as f:
                data = f.read()
            await client.upload("photos/image.jpg", data, md5_digest(data), "image/jpeg")

    Each operation builds and sends its own request, so one client can be
    shared by concurrent tasks.
    """

    def __init__(
        self,
        access_key_id: str,
        access_key_secret: str,
        prefix: str,
        bucket: str,
        request_timeout: Optional[float] = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize OssClient.

        Args:
            access_key_id: Public access key identifier
            access_key_secret: Access key secret used for signing
            prefix: Endpoint URL, e.g. "https://<bucket>.<region>.aliyuncs.com"
            bucket: Bucket name, part of every signed resource
            request_timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._access_key_id = access_key_id
        self._prefix = prefix
        self._bucket = bucket

        self._http = HttpClient(timeout=request_timeout, transport=transport)
        self._signer = OssSigner(access_key_id, access_key_secret)
        self._logger = logging.getLogger(__name__)
        # copy tasks of download_async still writing their body
        self._detached: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: Config, **kwargs) -> "OssClient":
        """Create a client from a ``Config``."""
        return cls(
            access_key_id=config.access_key_id,
            access_key_secret=config.access_key_secret,
            prefix=config.prefix,
            bucket=config.bucket,
            **kwargs,
        )

    @property
    def access_key_id(self) -> str:
        return self._access_key_id

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def bucket(self) -> str:
        return self._bucket

    def __repr__(self) -> str:
        return f"OssClient(prefix={self._prefix!r}, bucket={self._bucket!r}, access_key_id={self._access_key_id!r})"

    def url(self, remote: str) -> str:
        """Public URL of ``remote`` without query string."""
        return build_url(self._prefix, remote)

    # Object operations

    async def upload(
        self,
        remote: str,
        data: Union[bytes, bytearray, BinaryIO],
        md5: Optional[bytes] = None,
        content_type: str = "",
    ) -> Request:
        """
        Upload ``data`` to ``remote``.

        When ``md5`` (the raw 16 byte digest) is given the service verifies
        the body against it. ``content_type`` defaults to
        application/octet-stream.
        """
        if hasattr(data, "read"):
            data = data.read()
        request = Request(
            self,
            "PUT",
            remote,
            content_type=content_type,
            content_md5=base64.b64encode(md5).decode("ascii") if md5 else "",
            body=bytes(data),
        )
        return await request.execute()

    async def download(self, remote: str, output: BinaryIO) -> Request:
        """Download ``remote`` into ``output`` and return once it is complete."""
        request = Request(self, "GET", remote, sink=output)
        return await request.execute()

    async def download_async(self, remote: str, output: BinaryIO) -> Request:
        """
        Start downloading ``remote`` into ``output`` without waiting for the body.

        Returns once the response headers are in. The body is written by
        ``request.copy_task``; ``await request.wait()`` to know when it is
        done and to see its error. The copy task can be cancelled, and
        ``close()`` cancels copies that are still running.
        """
        request = Request(self, "GET", remote, sink=output, detach=True)
        return await request.execute()

    async def exists(self, remote: str) -> bool:
        """Check whether ``remote`` exists. Statuses other than 200 and 404 raise."""
        request = Request(self, "HEAD", remote)
        await request.execute()
        return request.status_code == 200

    async def image_info(self, remote: str) -> ImageInfo:
        """Fetch size, format and dimensions of an image object."""
        request = Request(
            self,
            "GET",
            remote,
            query={"x-oss-process": "image/info"},
            sink=io.BytesIO(),
        )
        await request.execute()

        try:
            data = json.loads(request.sink.getvalue())
            if not isinstance(data, dict):
                raise TypeError(f"expected an object, got {type(data).__name__}")
            fields = {
                name: _field_value(data, name)
                for name in ("FileSize", "Format", "ImageWidth", "ImageHeight")
            }
        except (ValueError, TypeError) as ex:
            raise OssException(f"Failed to parse image info response. {ex}", request.status_code) from ex

        return ImageInfo(
            size=_int_value(fields["FileSize"]),
            format=fields["Format"],
            width=_int_value(fields["ImageWidth"]),
            height=_int_value(fields["ImageHeight"]),
        )

    async def list(self, prefix: str = "", recursive: bool = False) -> ListResult:
        """
        List files and directories under ``prefix``.

        Without ``recursive`` keys below the next "/" are grouped into
        directories.
        """
        return await Paginator(self, prefix, recursive).collect()

    def paginate(self, prefix: str = "", recursive: bool = False) -> Paginator:
        """Return a paginator to walk a listing page by page."""
        return Paginator(self, prefix, recursive)

    async def delete(self, *remotes: str) -> None:
        """Delete keys, 1000 per request."""
        await BatchDeleter(self).delete(remotes)

    async def delete_recursive(
        self,
        prefix: str,
        *exceptions: Callable[[str], bool],
    ) -> RecursiveDeleteResult:
        """
        Delete every key under ``prefix`` except those matched by an exception.

        If the delete fails a ``RecursiveDeleteError`` is raised whose
        result reports every key as undeleted.
        """
        listing = await self.list(prefix, recursive=True)
        deleted, undeleted = partition((f.name for f in listing.files), exceptions)
        try:
            await self.delete(*deleted)
        except Exception as ex:
            result = RecursiveDeleteResult(deleted=[], undeleted=undeleted + deleted)
            raise RecursiveDeleteError(str(ex), result) from ex
        return RecursiveDeleteResult(deleted=deleted, undeleted=undeleted)

    def post_form(
        self,
        key: str,
        max_size: int = 0,
        duration: Optional[timedelta] = None,
        extra_conditions: Sequence[Condition] = (),
    ) -> Dict[str, str]:
        """Generate form fields for a direct browser upload of ``key``."""
        return build_post_form(
            self._signer,
            self._bucket,
            key,
            max_size=max_size,
            duration=duration,
            extra_conditions=extra_conditions,
        )

    async def close(self) -> None:
        """Close the client and cleanup resources."""
        pending = list(self._detached)
        for task in pending:
            task.cancel()
        if pending:
            self._logger.debug("Cancelling %d unfinished downloads", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
        await self._http.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
