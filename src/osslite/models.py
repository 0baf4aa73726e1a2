"""
Data models for osslite
"""

from dataclasses import dataclass, field
from typing import List


@dataclass
class File:
    """An object key returned by a listing."""
    name: str
    last_modified: str = ""
    etag: str = ""
    size: int = 0


@dataclass
class Directory:
    """A common prefix returned by a non-recursive listing."""
    name: str


@dataclass
class ListResult:
    """Represents the aggregated result of a paginated listing."""
    prefix: str = ""
    files: List[File] = field(default_factory=list)
    dirs: List[Directory] = field(default_factory=list)


@dataclass
class ListPage:
    """One page of a listing as reported by the service."""
    prefix: str = ""
    marker: str = ""
    next_marker: str = ""
    is_truncated: bool = False
    files: List[File] = field(default_factory=list)
    dirs: List[Directory] = field(default_factory=list)


@dataclass
class ImageInfo:
    """Image metadata reported by the image processing service."""
    size: int = 0
    format: str = ""
    width: int = 0
    height: int = 0


@dataclass
class RecursiveDeleteResult:
    """Keys removed and keys kept by a recursive delete."""
    deleted: List[str] = field(default_factory=list)
    undeleted: List[str] = field(default_factory=list)
