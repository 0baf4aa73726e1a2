import asyncio
import base64
import hashlib
import io

import httpx
import pytest

from osslite._request import Request, build_url, encode_query, parse_error
from osslite.client import md5_digest
from osslite.error import OssException, ResponseError


ERROR_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<Error>
  <Code>InvalidDigest</Code>
  <Message>The Content-MD5 you specified was invalid.</Message>
  <RequestId>5C3D9175B6FC201293AD****</RequestId>
  <HostId>test-bucket.oss-cn-hangzhou.aliyuncs.com</HostId>
</Error>
"""


class GatedStream(httpx.AsyncByteStream):
    """Response body that sends ``head`` and then holds ``tail`` until ``gate`` is set."""

    def __init__(self):
        self.gate = asyncio.Event()
        self.sent_head = asyncio.Event()
        self.closed = False

    async def __aiter__(self):
        yield b"head"
        self.sent_head.set()
        await self.gate.wait()
        yield b"tail"

    async def aclose(self):
        self.closed = True


def test_encode_query_sorted_and_escaped():
    query = {"max-keys": "1000", "prefix": "a b/", "marker": "", "delimiter": "/"}
    assert encode_query(query) == "delimiter=%2F&marker=&max-keys=1000&prefix=a+b%2F"


def test_encode_query_bare_key():
    assert encode_query({"delete": None}) == "delete"


def test_build_url_joins_prefix_path_and_query():
    assert build_url("https://host/", "a/b.txt") == "https://host/a/b.txt"
    assert build_url("https://host", "/a/b.txt") == "https://host/a/b.txt"
    assert build_url("https://host/", "/", {"delete": None}) == "https://host/?delete"
    assert build_url("https://host", "/a b#1.txt") == "https://host/a%20b%231.txt"


def test_parse_error_structured():
    err = parse_error(400, ERROR_XML)
    assert isinstance(err, ResponseError)
    assert str(err) == "The Content-MD5 you specified was invalid."
    assert err.code == "InvalidDigest"
    assert err.request_id == "5C3D9175B6FC201293AD****"
    assert err.host_id == "test-bucket.oss-cn-hangzhou.aliyuncs.com"
    assert err.status_code == 400


def test_parse_error_falls_back_to_trimmed_body():
    err = parse_error(502, b"  Bad Gateway\n")
    assert str(err) == "Bad Gateway"
    assert err.code == ""


def test_parse_error_without_message_uses_body():
    body = b"<Error><Code>Oops</Code></Error>"
    assert str(parse_error(500, body)) == body.decode()


def test_parse_error_empty_body():
    assert str(parse_error(403, b"")) == "Request failed with status 403"


@pytest.mark.asyncio
async def test_upload_signs_and_sends_headers(make_client, signer):
    client, recorder = make_client(lambda request: httpx.Response(200))
    data = b"hello world"

    async with client:
        request = await client.upload("/photos/a.jpg", data, md5_digest(data), "image/jpeg")

    sent = recorder.requests[0]
    expected_md5 = base64.b64encode(hashlib.md5(data).digest()).decode()
    assert sent.method == "PUT"
    assert str(sent.url) == "https://test-bucket.oss-cn-hangzhou.aliyuncs.com/photos/a.jpg"
    assert sent.content == data
    assert sent.headers["Content-Type"] == "image/jpeg"
    assert sent.headers["Content-MD5"] == expected_md5
    assert sent.headers["Date"].endswith(" GMT")
    assert sent.headers["Authorization"] == signer.authorization(
        "PUT", expected_md5, "image/jpeg", sent.headers["Date"], "/test-bucket/photos/a.jpg"
    )
    assert request.status_code == 200
    assert request.url == "https://test-bucket.oss-cn-hangzhou.aliyuncs.com/photos/a.jpg"


@pytest.mark.asyncio
async def test_upload_reads_file_objects_and_defaults_content_type(make_client, signer):
    client, recorder = make_client(lambda request: httpx.Response(200))

    async with client:
        await client.upload("doc.bin", io.BytesIO(b"\x00\x01"))

    sent = recorder.requests[0]
    assert sent.content == b"\x00\x01"
    assert sent.headers["Content-Type"] == "application/octet-stream"
    assert "Content-MD5" not in sent.headers
    assert sent.headers["Authorization"] == signer.authorization(
        "PUT", "", "application/octet-stream", sent.headers["Date"], "/test-bucket/doc.bin"
    )


@pytest.mark.asyncio
async def test_upload_rejected_with_service_message(make_client):
    client, _ = make_client(lambda request: httpx.Response(400, content=ERROR_XML))

    async with client:
        with pytest.raises(ResponseError, match="The Content-MD5 you specified was invalid.") as excinfo:
            await client.upload("any", b"\x00", md5_digest(b"\x01"))

    assert excinfo.value.code == "InvalidDigest"
    assert excinfo.value.request.status_code == 400


@pytest.mark.asyncio
async def test_download_copies_body_and_records_length(make_client):
    client, recorder = make_client(lambda request: httpx.Response(200, content=b"payload"))
    output = io.BytesIO()

    async with client:
        request = await client.download("a/b.txt", output)

    assert output.getvalue() == b"payload"
    assert request.content_length == len(b"payload")
    assert request.copy_task is None
    sent = recorder.requests[0]
    assert sent.method == "GET"
    assert "Content-MD5" not in sent.headers


@pytest.mark.asyncio
async def test_download_error_does_not_touch_sink(make_client):
    client, _ = make_client(lambda request: httpx.Response(404, content=b"<Error><Message>The specified key does not exist.</Message></Error>"))
    output = io.BytesIO()

    async with client:
        with pytest.raises(ResponseError, match="The specified key does not exist."):
            await client.download("missing", output)

    assert output.getvalue() == b""


@pytest.mark.asyncio
async def test_download_async_returns_handle(make_client):
    client, _ = make_client(lambda request: httpx.Response(200, content=b"x" * 4096))
    output = io.BytesIO()

    async with client:
        request = await client.download_async("big.bin", output)
        assert request.copy_task is not None
        await request.wait()

    assert request.copy_task.done()
    assert output.getvalue() == b"x" * 4096


@pytest.mark.asyncio
async def test_download_async_copy_error_surfaces_through_wait(make_client):
    class BrokenSink:
        def write(self, chunk):
            raise OSError("disk full")

    client, _ = make_client(lambda request: httpx.Response(200, content=b"data"))

    async with client:
        request = await client.download_async("a", BrokenSink())
        with pytest.raises(OSError, match="disk full"):
            await request.wait()


@pytest.mark.asyncio
async def test_download_async_returns_before_body_arrives(make_client):
    stream = GatedStream()
    client, _ = make_client(lambda request: httpx.Response(200, stream=stream))
    output = io.BytesIO()

    async with client:
        request = await client.download_async("big.bin", output)
        assert request.status_code == 200
        await stream.sent_head.wait()
        assert not request.copy_task.done()
        assert output.getvalue() == b"head"

        stream.gate.set()
        await request.wait()

    assert output.getvalue() == b"headtail"
    assert stream.closed
    assert not client._detached


@pytest.mark.asyncio
async def test_download_async_cancel_stops_copy(make_client):
    stream = GatedStream()
    client, _ = make_client(lambda request: httpx.Response(200, stream=stream))
    output = io.BytesIO()

    async with client:
        request = await client.download_async("big.bin", output)
        await stream.sent_head.wait()
        request.copy_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await request.wait()

    assert request.copy_task.cancelled()
    assert output.getvalue() == b"head"
    assert stream.closed


@pytest.mark.asyncio
async def test_close_cancels_unfinished_download(make_client):
    stream = GatedStream()
    client, _ = make_client(lambda request: httpx.Response(200, stream=stream))
    output = io.BytesIO()

    async with client:
        request = await client.download_async("big.bin", output)
        await stream.sent_head.wait()
        assert client._detached == {request.copy_task}

    assert request.copy_task.cancelled()
    assert not client._detached
    assert output.getvalue() == b"head"
    assert stream.closed


@pytest.mark.asyncio
@pytest.mark.parametrize("status, expected", [(200, True), (404, False)])
async def test_exists(make_client, signer, status, expected):
    client, recorder = make_client(lambda request: httpx.Response(status))

    async with client:
        assert await client.exists("some/key") is expected

    sent = recorder.requests[0]
    assert sent.method == "HEAD"
    assert sent.headers["Authorization"] == signer.authorization(
        "HEAD", "", "application/octet-stream", sent.headers["Date"], "/test-bucket/some/key"
    )


@pytest.mark.asyncio
async def test_exists_other_status_raises(make_client):
    client, _ = make_client(lambda request: httpx.Response(403))

    async with client:
        with pytest.raises(ResponseError) as excinfo:
            await client.exists("some/key")

    assert excinfo.value.status_code == 403


@pytest.mark.asyncio
async def test_get_with_404_is_an_error(make_client):
    client, recorder = make_client(lambda request: httpx.Response(404, content=b"not here"))

    async with client:
        request = Request(client, "GET", "gone")
        with pytest.raises(ResponseError, match="not here"):
            await request.execute()

    assert request.status_code == 404


@pytest.mark.asyncio
async def test_transport_error_propagates(make_client):
    def fail(request):
        raise httpx.ConnectError("connection refused")

    client, recorder = make_client(fail)

    async with client:
        with pytest.raises(httpx.ConnectError):
            await client.exists("a")

    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_image_info(make_client, signer):
    body = b'{"FileSize": {"value": "96"}, "Format": {"value": "png"}, "ImageHeight": {"value": "34"}, "ImageWidth": {"value": "12"}}'
    client, recorder = make_client(lambda request: httpx.Response(200, content=body))

    async with client:
        info = await client.image_info("tmp.png")

    assert (info.size, info.format, info.width, info.height) == (96, "png", 12, 34)
    sent = recorder.requests[0]
    assert sent.url.params["x-oss-process"] == "image/info"
    assert sent.headers["Authorization"] == signer.authorization(
        "GET", "", "application/octet-stream", sent.headers["Date"], "/test-bucket/tmp.png?x-oss-process=image/info"
    )


@pytest.mark.asyncio
async def test_image_info_unsupported_format(make_client):
    body = b"<Error><Code>BadRequest</Code><Message>This image format is not supported.</Message></Error>"
    client, _ = make_client(lambda request: httpx.Response(400, content=body))

    async with client:
        with pytest.raises(ResponseError, match="This image format is not supported."):
            await client.image_info("request.go")


@pytest.mark.asyncio
async def test_image_info_malformed_json(make_client):
    client, _ = make_client(lambda request: httpx.Response(200, content=b"not json"))

    async with client:
        with pytest.raises(OssException, match="image info"):
            await client.image_info("tmp.png")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        b"[]",
        b"null",
        b'"png"',
        b'{"FileSize": "96"}',
        b'{"FileSize": {"value": 96}}',
    ],
)
async def test_image_info_unexpected_json_shape(make_client, body):
    client, _ = make_client(lambda request: httpx.Response(200, content=body))

    async with client:
        with pytest.raises(OssException, match="image info") as excinfo:
            await client.image_info("tmp.png")

    assert excinfo.value.status_code == 200
    assert isinstance(excinfo.value.__cause__, TypeError)


@pytest.mark.asyncio
async def test_image_info_missing_fields_read_as_zero(make_client):
    client, _ = make_client(lambda request: httpx.Response(200, content=b'{"Format": {"value": "gif"}}'))

    async with client:
        info = await client.image_info("tmp.gif")

    assert (info.size, info.format, info.width, info.height) == (0, "gif", 0, 0)
