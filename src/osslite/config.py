"""
Configuration for osslite

A configuration file is a JSON object:

    {
      "OSSAccessKeyId": "LTAI...",
      "OSSAccessKeySecret": "...",
      "OSSPrefix": "https://<bucket>.oss-cn-hangzhou.aliyuncs.com",
      "OSSBucket": "<bucket>"
    }

Environment variables OSS_ACCESS_KEY_ID, OSS_ACCESS_KEY_SECRET, OSS_PREFIX
and OSS_BUCKET override values read from the file.
"""

import json
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional, Union

from .error import ConfigError


FILE_KEYS = {
    "access_key_id": "OSSAccessKeyId",
    "access_key_secret": "OSSAccessKeySecret",
    "prefix": "OSSPrefix",
    "bucket": "OSSBucket",
}

ENV_KEYS = {
    "access_key_id": "OSS_ACCESS_KEY_ID",
    "access_key_secret": "OSS_ACCESS_KEY_SECRET",
    "prefix": "OSS_PREFIX",
    "bucket": "OSS_BUCKET",
}


@dataclass(frozen=True)
class Config:
    """Credentials, endpoint and bucket of one client."""

    access_key_id: str
    access_key_secret: str
    prefix: str
    bucket: str

    def __repr__(self) -> str:
        return (
            f"Config(access_key_id={self.access_key_id!r}, access_key_secret='***', "
            f"prefix={self.prefix!r}, bucket={self.bucket!r})"
        )

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Return a copy where non-empty environment variables win."""
        if environ is None:
            environ = os.environ
        overrides = {
            name: environ[var]
            for name, var in ENV_KEYS.items()
            if environ.get(var)
        }
        return replace(self, **overrides)


SAMPLE_CONFIG = Config(
    access_key_id="LTAIxxxxxxxxxxxxxxxxxxxx",
    access_key_secret="xxxxxxxxxxxxxxxxxxxxxxxxxxxxxx",
    prefix="https://xxxxxxxx.oss-cn-hangzhou.aliyuncs.com",
    bucket="xxxxxxxx",
)


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> Optional[Config]:
    """Build a config from environment variables, or None if any is missing."""
    if environ is None:
        environ = os.environ
    values = {name: environ.get(var, "") for name, var in ENV_KEYS.items()}
    if not all(values.values()):
        return None
    return Config(**values)


def read_config(path: Union[str, Path]) -> Config:
    """Read a JSON configuration file."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as ex:
        raise ConfigError(f"Config file '{path}' does not exist.") from ex
    except ValueError as ex:
        raise ConfigError(f"Config file '{path}' is not valid JSON. {ex}") from ex

    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a JSON object.")

    missing = [key for key in FILE_KEYS.values() if not isinstance(data.get(key), str)]
    if missing:
        raise ConfigError(f"Config file '{path}' is missing {', '.join(missing)}.")

    return Config(**{name: data[key] for name, key in FILE_KEYS.items()})


def write_config(path: Union[str, Path], config: Config) -> None:
    """Write ``config`` as JSON, readable by the owner only."""
    data = {key: getattr(config, name) for name, key in FILE_KEYS.items()}
    content = json.dumps(data, indent=2) + "\n"
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(content)
