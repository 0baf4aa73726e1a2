import httpx
import pytest

from osslite._signer import OssSigner
from osslite.client import OssClient


ACCESS_KEY_ID = "LTAITESTKEY0000000001"
ACCESS_KEY_SECRET = "tEsTsEcReTkEy0000000000000001"
PREFIX = "https://test-bucket.oss-cn-hangzhou.aliyuncs.com/"
BUCKET = "test-bucket"


class Recorder:
    """Collects requests seen by a mock transport and answers with ``handler``."""

    def __init__(self, handler):
        self.handler = handler
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


@pytest.fixture
def make_client():
    """Return a factory building a client wired to a mock transport."""

    def factory(handler):
        recorder = Recorder(handler)
        client = OssClient(
            access_key_id=ACCESS_KEY_ID,
            access_key_secret=ACCESS_KEY_SECRET,
            prefix=PREFIX,
            bucket=BUCKET,
            transport=httpx.MockTransport(recorder),
        )
        return client, recorder

    return factory


@pytest.fixture
def signer():
    """A signer holding the same credentials as clients from ``make_client``."""
    return OssSigner(ACCESS_KEY_ID, ACCESS_KEY_SECRET)


@pytest.fixture
def secret() -> str:
    return ACCESS_KEY_SECRET


def _listing(prefix="", files=(), dirs=(), truncated=False, next_marker=""):
    contents = "".join(
        f"<Contents><Key>{name}</Key><LastModified>2024-01-01T00:00:00.000Z</LastModified>"
        f"<ETag>\"{name.upper()}\"</ETag><Type>Normal</Type><Size>{len(name)}</Size>"
        f"<StorageClass>Standard</StorageClass></Contents>"
        for name in files
    )
    prefixes = "".join(f"<CommonPrefixes><Prefix>{name}</Prefix></CommonPrefixes>" for name in dirs)
    body = (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        "<ListBucketResult>"
        f"<Name>test-bucket</Name><Prefix>{prefix}</Prefix><Marker></Marker><MaxKeys>1000</MaxKeys>"
        f"<IsTruncated>{'true' if truncated else 'false'}</IsTruncated>"
        f"<NextMarker>{next_marker}</NextMarker>"
        f"{contents}{prefixes}"
        "</ListBucketResult>"
    )
    return httpx.Response(200, content=body.encode())


@pytest.fixture
def listing():
    """Return a builder of ListBucketResult responses."""
    return _listing
