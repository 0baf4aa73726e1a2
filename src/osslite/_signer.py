"""
OSS header signer for osslite
"""

import base64
import hashlib
import hmac
from datetime import datetime, UTC
from email.utils import format_datetime
from typing import Dict, Optional


# Query parameters that take part in the canonical resource. Everything
# else (max-keys, prefix, marker, delimiter, ...) is sent but not signed.
SUBRESOURCES = frozenset([
    "acl",
    "append",
    "bucketInfo",
    "cname",
    "comp",
    "cors",
    "delete",
    "encryption",
    "lifecycle",
    "live",
    "location",
    "logging",
    "objectMeta",
    "partNumber",
    "policy",
    "position",
    "referer",
    "replication",
    "response-cache-control",
    "response-content-disposition",
    "response-content-encoding",
    "response-content-language",
    "response-content-type",
    "response-expires",
    "restore",
    "security-token",
    "stat",
    "status",
    "symlink",
    "tagging",
    "uploadId",
    "uploads",
    "versionId",
    "versioning",
    "versions",
    "website",
    "x-oss-process",
])


def format_date(timestamp: Optional[datetime] = None) -> str:
    """Format a timestamp the way the Date header expects it.

    ``Mon, 02 Jan 2006 15:04:05 GMT``, English names regardless of locale.
    """
    if timestamp is None:
        timestamp = datetime.now(UTC)
    return format_datetime(timestamp.astimezone(UTC), usegmt=True)


def canonical_resource(bucket: str, path: str, query: Optional[Dict[str, Optional[str]]] = None) -> str:
    """Build the resource string that is signed for a request on ``path``."""
    if not path.startswith("/"):
        path = "/" + path
    resource = f"/{bucket}{path}"
    signed = sorted(k for k in (query or {}) if k in SUBRESOURCES)
    if not signed:
        return resource
    parts = []
    for key in signed:
        value = query[key]
        parts.append(key if value is None else f"{key}={value}")
    return resource + "?" + "&".join(parts)


class OssSigner:
    """
    Signs requests with the OSS HMAC-SHA1 header scheme.
    Also signs browser upload policies with the same key.
    """

    scheme = "OSS"

    def __init__(self, access_key_id: str, access_key_secret: str):
        self.access_key_id = access_key_id
        self._secret = access_key_secret.encode()

    def __repr__(self) -> str:
        return f"OssSigner(access_key_id={self.access_key_id!r})"

    def _hmac(self, message: str) -> str:
        digest = hmac.new(self._secret, message.encode("utf-8"), hashlib.sha1).digest()
        return base64.b64encode(digest).decode("ascii")

    def sign(
        self,
        method: str,
        content_md5: str,
        content_type: str,
        date: str,
        resource: str,
    ) -> str:
        """
        Return the base64 signature for a request.

        The string to sign is the five components joined by newlines, in
        this order. Any difference from what is sent in the headers makes
        the service reject the request.
        """
        string_to_sign = "\n".join([
            method,
            content_md5,
            content_type,
            date,
            resource,
        ])
        return self._hmac(string_to_sign)

    def authorization(
        self,
        method: str,
        content_md5: str,
        content_type: str,
        date: str,
        resource: str,
    ) -> str:
        """Build the Authorization header value."""
        signature = self.sign(method, content_md5, content_type, date, resource)
        return f"{self.scheme} {self.access_key_id}:{signature}"

    def sign_policy(self, encoded_policy: str) -> str:
        """Sign a base64 encoded policy document."""
        return self._hmac(encoded_policy)
