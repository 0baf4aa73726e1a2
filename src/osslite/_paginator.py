"""
Paginated listing for osslite
"""

import io
import logging
import xml.etree.ElementTree as ET
from typing import AsyncIterator

from ._request import Request
from .error import OssException, PaginationError
from .models import Directory, File, ListPage, ListResult


logger = logging.getLogger(__name__)

MAX_KEYS = 1000


def normalize_prefix(prefix: str) -> str:
    """Strip slashes and end with exactly one, except the empty prefix."""
    prefix = prefix.strip("/")
    if not prefix:
        return ""
    return prefix + "/"


def _local_name(tag: str) -> str:
    return tag.split("}")[-1]


def _child_text(node: ET.Element, name: str) -> str:
    for child in node:
        if _local_name(child.tag) == name:
            return child.text or ""
    return ""


def parse_list_page(body: bytes) -> ListPage:
    """Parse a ListBucketResult document."""
    try:
        doc = ET.fromstring(body)
    except ET.ParseError as ex:
        raise OssException(f"Failed to parse listing response. {ex}") from ex
    if _local_name(doc.tag) != "ListBucketResult":
        raise OssException(f"Failed to parse listing response. Unexpected root element <{_local_name(doc.tag)}>")

    page = ListPage()
    for node in doc:
        tag = _local_name(node.tag)
        if tag == "Prefix":
            page.prefix = node.text or ""
        elif tag == "Marker":
            page.marker = node.text or ""
        elif tag == "NextMarker":
            page.next_marker = node.text or ""
        elif tag == "IsTruncated":
            page.is_truncated = (node.text or "").strip().lower() == "true"
        elif tag == "Contents":
            size = _child_text(node, "Size").strip()
            try:
                size = int(size) if size else 0
            except ValueError as ex:
                raise OssException(f"Failed to parse listing response. {ex}") from ex
            page.files.append(
                File(
                    name=_child_text(node, "Key"),
                    last_modified=_child_text(node, "LastModified"),
                    etag=_child_text(node, "ETag"),
                    size=size,
                )
            )
        elif tag == "CommonPrefixes":
            page.dirs.append(Directory(name=_child_text(node, "Prefix")))
    return page


class Paginator:
    """
    Walks every page of a listing under a prefix.

    Pages are fetched one after another. Iteration stops when the service
    reports the listing is no longer truncated; a marker that does not
    advance raises ``PaginationError``.
    """

    def __init__(self, client, prefix: str, recursive: bool = False):
        self.client = client
        self.prefix = normalize_prefix(prefix)
        self.recursive = recursive

    def _request(self, marker: str) -> Request:
        query = {
            "max-keys": str(MAX_KEYS),
            "prefix": self.prefix,
            "marker": marker,
        }
        if not self.recursive:
            query["delimiter"] = "/"
        return Request(self.client, "GET", "/", query=query, sink=io.BytesIO())

    async def pages(self) -> AsyncIterator[ListPage]:
        marker = ""
        seen = {marker}
        while True:
            request = self._request(marker)
            await request.execute()
            page = parse_list_page(request.sink.getvalue())
            logger.debug(
                "Listed %d files and %d dirs under '%s'",
                len(page.files),
                len(page.dirs),
                self.prefix,
            )
            yield page

            if not page.is_truncated:
                return
            if page.next_marker in seen:
                raise PaginationError(page.next_marker)
            marker = page.next_marker
            seen.add(marker)

    async def collect(self) -> ListResult:
        """Fetch all pages and merge them in page order."""
        result = ListResult()
        async for page in self.pages():
            result.files.extend(page.files)
            result.dirs.extend(page.dirs)
            result.prefix = page.prefix
        return result
