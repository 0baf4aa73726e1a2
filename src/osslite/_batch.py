"""
Batched multi-key deletion for osslite
"""

import base64
import hashlib
import logging
import xml.etree.ElementTree as ET
from typing import Callable, Iterable, List, Sequence, Tuple

from ._request import Request


logger = logging.getLogger(__name__)

MAX_DELETE_KEYS = 1000

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'


def encode_delete(keys: Sequence[str]) -> bytes:
    """Encode a quiet Delete document for ``keys``."""
    root = ET.Element("Delete")
    ET.SubElement(root, "Quiet").text = "true"
    for key in keys:
        obj_el = ET.SubElement(root, "Object")
        ET.SubElement(obj_el, "Key").text = key.lstrip("/")
    return (XML_HEADER + ET.tostring(root, encoding="unicode")).encode("utf-8")


def content_md5(body: bytes) -> str:
    """Base64 encoded MD5 of ``body`` as sent in Content-MD5."""
    return base64.b64encode(hashlib.md5(body).digest()).decode("ascii")


def partition(
    keys: Iterable[str],
    exceptions: Sequence[Callable[[str], bool]] = (),
) -> Tuple[List[str], List[str]]:
    """Split keys into (to_delete, kept). A key matching any exception is kept."""
    to_delete: List[str] = []
    kept: List[str] = []
    for key in keys:
        if any(except_(key) for except_ in exceptions):
            kept.append(key)
        else:
            to_delete.append(key)
    return to_delete, kept


class BatchDeleter:
    """
    Deletes keys in chunks of at most ``MAX_DELETE_KEYS``.

    Chunks are sent in order, one request each. The first failing chunk
    stops the run and its error propagates; earlier chunks stay deleted.
    """

    def __init__(self, client, chunk_size: int = MAX_DELETE_KEYS):
        self.client = client
        self.chunk_size = chunk_size

    def _request(self, chunk: Sequence[str]) -> Request:
        body = encode_delete(chunk)
        return Request(
            self.client,
            "POST",
            "/",
            query={"delete": None},
            content_md5=content_md5(body),
            body=body,
        )

    async def delete(self, keys: Sequence[str]) -> int:
        """Delete ``keys`` and return how many requests were sent."""
        remaining = list(keys)
        sent = 0
        while remaining:
            chunk, remaining = remaining[:self.chunk_size], remaining[self.chunk_size:]
            await self._request(chunk).execute()
            sent += 1
            logger.info("Deleted %d files", len(chunk))
        return sent
