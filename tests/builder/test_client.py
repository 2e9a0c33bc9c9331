# tests/builder/test_client.py

import json

import httpx
import pytest

from fnbuilder.builder.client import FunctionBuilder, join_url
from fnbuilder.builder.signature import sign_payload, verify_signature
from fnbuilder.datacls import BuildResult
from fnbuilder.exceptions import (
    ArchiveError,
    ResultDecodeError,
    SigningOrTransportError,
    UnexpectedStatusError,
)

SECRET = "s3cr3t-hmac"
PAYLOAD = b"not really a tar, the client does not care"


@pytest.fixture
def tar_path(tmp_path):
    path = tmp_path / "hello.tar"
    path.write_bytes(PAYLOAD)
    return path


def make_builder(handler, url="http://builder:8080"):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return FunctionBuilder(url, client=client, hmac_secret=SECRET, user_agent="fnbuilder-test")


class TestSignature:

    def test_known_digest(self):
        # HMAC-SHA256("key", "The quick brown fox jumps over the lazy dog")
        assert sign_payload(b"The quick brown fox jumps over the lazy dog", "key") == (
            "sha256=f7bc83f430538424b13298e6aa6fb143ef4d59a14946175997479dbc2d1a3cd8"
        )

    def test_verify(self):
        header = sign_payload(PAYLOAD, SECRET)
        assert verify_signature(PAYLOAD, SECRET, header)
        assert not verify_signature(PAYLOAD + b"x", SECRET, header)
        assert not verify_signature(PAYLOAD, "other", header)

    @pytest.mark.parametrize("header", ["", "sha256=", "sha1=abcdef", "garbage"])
    def test_verify_rejects_malformed_headers(self, header):
        assert not verify_signature(PAYLOAD, SECRET, header)


class TestJoinUrl:

    @pytest.mark.parametrize(
        "base, expected",
        [
            ("http://builder:8080", "http://builder:8080/build"),
            ("http://builder:8080/", "http://builder:8080/build"),
            ("https://gw.example.com/api/v1", "https://gw.example.com/api/v1/build"),
        ],
    )
    def test_build_endpoint(self, base, expected):
        assert join_url(base, "build") == expected


class TestBuild:

    def test_signed_request(self, tar_path):
        seen = {}

        def handler(request: httpx.Request):
            seen["request"] = request
            return httpx.Response(200, json={"log": ["done"], "image": "ttl.sh/hello:1h", "status": "success"})

        result = make_builder(handler).build(tar_path)

        request = seen["request"]
        assert request.method == "POST"
        assert str(request.url) == "http://builder:8080/build"
        assert request.content == PAYLOAD
        assert request.headers["Content-Type"] == "application/octet-stream"
        assert request.headers["User-Agent"] == "fnbuilder-test"
        assert request.headers["X-Build-Signature"] == sign_payload(PAYLOAD, SECRET)
        assert verify_signature(request.content, SECRET, request.headers["X-Build-Signature"])
        assert result == BuildResult(log=["done"], image="ttl.sh/hello:1h", status="success")

    def test_accepted_is_success(self, tar_path):
        handler = lambda request: httpx.Response(202, json={"status": "in_progress"})
        assert make_builder(handler).build(tar_path).status == "in_progress"

    def test_empty_body(self, tar_path):
        handler = lambda request: httpx.Response(202)
        assert make_builder(handler).build(tar_path) == BuildResult()

    @pytest.mark.parametrize("status_code", [400, 401, 500, 201])
    def test_unexpected_status_keeps_result(self, tar_path, status_code):
        body = {"log": ["step 1", "error: exit code 1"], "status": "failed"}
        handler = lambda request: httpx.Response(status_code, json=body)

        with pytest.raises(UnexpectedStatusError) as exc_info:
            make_builder(handler).build(tar_path)

        err = exc_info.value
        assert err.status_code == status_code
        assert err.result == BuildResult(log=["step 1", "error: exit code 1"], status="failed")
        assert json.loads(err.body) == body
        assert str(err) == (
            f"failed to build function, builder responded with status code {status_code}, build status: failed"
        )

    def test_unexpected_status_with_plain_body(self, tar_path):
        handler = lambda request: httpx.Response(401, text="unauthorized")
        with pytest.raises(UnexpectedStatusError) as exc_info:
            make_builder(handler).build(tar_path)
        assert exc_info.value.result is None
        assert exc_info.value.body == "unauthorized"

    def test_null_log_on_success(self, tar_path):
        body = b'{"log":null,"image":"ttl.sh/hello:1h","status":"success"}'
        handler = lambda request: httpx.Response(200, content=body)
        result = make_builder(handler).build(tar_path)
        assert result == BuildResult(image="ttl.sh/hello:1h", status="success")
        assert result.log == []
        assert result.succeeded

    def test_null_fields_in_error_body(self, tar_path):
        handler = lambda request: httpx.Response(500, content=b'{"log":null,"image":null,"status":"error"}')
        with pytest.raises(UnexpectedStatusError) as exc_info:
            make_builder(handler).build(tar_path)
        assert exc_info.value.result == BuildResult(status="error")

    def test_malformed_body(self, tar_path):
        handler = lambda request: httpx.Response(200, text="{not json")
        with pytest.raises(ResultDecodeError, match="not json"):
            make_builder(handler).build(tar_path)

    def test_transport_error(self, tar_path):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SigningOrTransportError, match="connection refused") as exc_info:
            make_builder(handler).build(tar_path)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_missing_archive(self, tmp_path):
        builder = make_builder(lambda request: httpx.Response(200))
        with pytest.raises(ArchiveError):
            builder.build(tmp_path / "missing.tar")

    def test_timeout_is_applied(self, tar_path):
        seen = {}

        def handler(request):
            seen["timeout"] = request.extensions["timeout"]
            return httpx.Response(200, json={"status": "success"})

        make_builder(handler).build(tar_path, timeout=7.5)
        assert seen["timeout"]["read"] == 7.5


class TestBuildStream:

    def test_streams_results(self, tar_path):
        lines = [
            {"status": "in_progress"},
            *({"status": "in_progress", "log": [f"line {i}"]} for i in range(5)),
            {"status": "success", "image": "repo/img:tag"},
        ]
        body = "\n".join(json.dumps(line) for line in lines) + "\n"
        seen = {}

        def handler(request):
            seen["accept"] = request.headers["Accept"]
            return httpx.Response(202, content=body.encode(), headers={"Content-Type": "application/x-ndjson"})

        with make_builder(handler).build_stream(tar_path) as stream:
            results = list(stream)

        assert seen["accept"] == "application/x-ndjson"
        assert len(results) == 6
        assert results[-1] == BuildResult(status="success", image="repo/img:tag")
        assert stream.closed

    def test_stream_unexpected_status(self, tar_path):
        handler = lambda request: httpx.Response(500, json={"status": "error", "log": ["boom"]})
        with pytest.raises(UnexpectedStatusError) as exc_info:
            make_builder(handler).build_stream(tar_path)
        assert exc_info.value.status_code == 500
        assert exc_info.value.result.log == ["boom"]

    def test_stream_transport_error(self, tar_path):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(SigningOrTransportError):
            make_builder(handler).build_stream(tar_path)

    def test_stream_interrupted_mid_way(self, tar_path):
        class InterruptedBody(httpx.SyncByteStream):
            close_count = 0

            def __iter__(self):
                yield b'{"log":["step 1"],"status":"in_progress"}\n'
                yield b'{"log":null,"status":"in_progress"}\n'
                raise httpx.ReadError("connection reset by peer")

            def close(self):
                self.close_count += 1

        body = InterruptedBody()
        seen = []
        stream = make_builder(lambda request: httpx.Response(202, stream=body)).build_stream(tar_path)

        with pytest.raises(SigningOrTransportError, match="after 2 results"):
            for result in stream:
                seen.append(result)

        assert [r.log for r in seen] == [["step 1"], []]
        assert stream.closed
        assert body.close_count == 1


class TestLifecycle:

    def test_owned_client_is_closed(self):
        builder = FunctionBuilder("http://builder:8080")
        with builder:
            pass
        assert builder.client.is_closed

    def test_shared_client_is_left_open(self):
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with FunctionBuilder("http://builder:8080", client=client):
            pass
        assert not client.is_closed
