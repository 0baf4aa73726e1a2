"""
osslite - signed-request client for OSS style object storage
"""

__version__ = "1.0.0"

from .client import OssClient, md5_digest
from ._request import Request
from ._paginator import Paginator
from ._batch import BatchDeleter
from ._signer import OssSigner
from .config import Config, read_config, write_config, config_from_env
from .policy import Condition, Equals, StartsWith, Range, Raw
from .models import (
    File,
    Directory,
    ListResult,
    ListPage,
    ImageInfo,
    RecursiveDeleteResult,
)
from .error import (
    OssException,
    ResponseError,
    PaginationError,
    PolicyError,
    ConfigError,
    RecursiveDeleteError,
)

__all__ = [
    "OssClient",
    "md5_digest",
    "Request",
    "Paginator",
    "BatchDeleter",
    "OssSigner",
    "Config",
    "read_config",
    "write_config",
    "config_from_env",
    "Condition",
    "Equals",
    "StartsWith",
    "Range",
    "Raw",
    "File",
    "Directory",
    "ListResult",
    "ListPage",
    "ImageInfo",
    "RecursiveDeleteResult",
    "OssException",
    "ResponseError",
    "PaginationError",
    "PolicyError",
    "ConfigError",
    "RecursiveDeleteError",
]
