"""
Browser upload policies for osslite

A policy document lets a third party (usually a browser form) upload one
object directly to the bucket. The form must carry the fields returned by
``build_post_form``:

    fields = client.post_form(
        "uploads/avatar.png",
        max_size=1 << 20,
        extra_conditions=[
            StartsWith("content-type", "image/"),
            Equals("x-oss-object-acl", "public-read"),
        ],
    )
"""

import base64
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, UTC
from typing import Any, Dict, Optional, Sequence

from ._signer import OssSigner
from .error import PolicyError


DEFAULT_DURATION = timedelta(minutes=10)


class Condition(ABC):
    """Base class of policy conditions."""

    @abstractmethod
    def to_json(self) -> Any:
        """JSON value of this entry in the policy's ``conditions`` list."""


@dataclass(frozen=True)
class Equals(Condition):
    """Exact match of a form field: ``{"field": "value"}``."""
    field: str
    value: str

    def to_json(self) -> Any:
        return {self.field: self.value}


@dataclass(frozen=True)
class StartsWith(Condition):
    """Prefix match of a form field: ``["starts-with", "$field", "prefix"]``."""
    field: str
    prefix: str

    def to_json(self) -> Any:
        return ["starts-with", f"${self.field.lstrip('$')}", self.prefix]


@dataclass(frozen=True)
class Range(Condition):
    """Numeric range: ``["name", minimum, maximum]``."""
    name: str
    minimum: int
    maximum: int

    def to_json(self) -> Any:
        return [self.name, self.minimum, self.maximum]


@dataclass(frozen=True)
class Raw(Condition):
    """A condition passed through as given. It must be JSON serializable."""
    value: Any

    def to_json(self) -> Any:
        return self.value


def _round_to_second(timestamp: datetime) -> datetime:
    return (timestamp + timedelta(microseconds=500000)).replace(microsecond=0)


def build_policy(
    bucket: str,
    key: str,
    max_size: int = 0,
    duration: Optional[timedelta] = None,
    extra_conditions: Sequence[Condition] = (),
    now: Optional[datetime] = None,
) -> str:
    """Return the base64 encoded JSON policy document."""
    conditions = [
        Equals("bucket", bucket).to_json(),
        Equals("key", key).to_json(),
    ]
    if max_size > 0:
        conditions.append(Range("content-length-range", 0, max_size).to_json())
    for condition in extra_conditions:
        if not isinstance(condition, Condition):
            raise PolicyError(f"Unsupported policy condition: {condition!r}")
        conditions.append(condition.to_json())

    if duration is None or duration <= timedelta(0):
        duration = DEFAULT_DURATION
    if now is None:
        now = datetime.now(UTC)
    expiration = _round_to_second(now.astimezone(UTC) + duration)

    document = {
        "expiration": expiration.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "conditions": conditions,
    }
    try:
        encoded = json.dumps(document, separators=(",", ":"), allow_nan=False)
    except (TypeError, ValueError) as ex:
        raise PolicyError(f"Failed to encode policy document. {ex}") from ex
    return base64.b64encode(encoded.encode("utf-8")).decode("ascii")


def build_post_form(
    signer: OssSigner,
    bucket: str,
    key: str,
    max_size: int = 0,
    duration: Optional[timedelta] = None,
    extra_conditions: Sequence[Condition] = (),
    now: Optional[datetime] = None,
) -> Dict[str, str]:
    """
    Build the form fields for a direct browser upload.

    The leading slash of ``key`` is dropped. ``max_size`` of 0 means no
    size limit. ``duration`` defaults to 10 minutes when missing or not
    positive.
    """
    key = key.lstrip("/")
    policy = build_policy(bucket, key, max_size, duration, extra_conditions, now=now)
    return {
        "key": key,
        "policy": policy,
        "OSSAccessKeyId": signer.access_key_id,
        "signature": signer.sign_policy(policy),
    }
