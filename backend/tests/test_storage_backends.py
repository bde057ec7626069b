from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest
from botocore.exceptions import ClientError

import lecture_pipeline.storage.s3 as s3_mod
from lecture_pipeline.core.settings import Settings
from lecture_pipeline.storage.base import StorageError
from lecture_pipeline.storage.factory import build_storage
from lecture_pipeline.storage.s3 import S3Storage, sanitize_filename
from lecture_pipeline.storage.vps import VpsStorage


def _vps(handler) -> VpsStorage:
    return VpsStorage(
        base_url="https://vps.example.test/",
        api_key="vps-key",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_vps_stream_signing_contract() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"signedUrl": "https://vps.example.test/v/C1/L1/x/index.m3u8?sig=1", "expiresAt": "2030-01-01T00:00:00Z"},
        )

    signed = await _vps(handler).sign_stream_url(video_path="C1/L1/x", user_id="u1", expires_in=300)

    assert signed.url.endswith("sig=1")
    assert signed.expires_at == datetime(2030, 1, 1, tzinfo=timezone.utc)
    req = seen[0]
    assert str(req.url) == "https://vps.example.test/api/generate-stream-url"
    assert req.headers["x-api-key"] == "vps-key"
    assert json.loads(req.content) == {"videoPath": "C1/L1/x", "userId": "u1", "expiresIn": 300}


@pytest.mark.asyncio
async def test_vps_upload_url_contract() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"uploadUrl": "https://vps.example.test/upload/abc", "uploadId": "abc"})

    ticket = await _vps(handler).create_upload_url(
        video_path="C1/L1/x", filename="a.mp4", file_size=12, lecture_id="L1"
    )

    assert (ticket.upload_url, ticket.upload_id) == ("https://vps.example.test/upload/abc", "abc")
    assert seen[0].url.path == "/api/generate-upload-url"
    assert json.loads(seen[0].content) == {
        "videoPath": "C1/L1/x",
        "filename": "a.mp4",
        "fileSize": 12,
        "lectureId": "L1",
    }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json=["list"]),
        httpx.Response(200, json={"expiresAt": "2030-01-01T00:00:00Z"}),
    ],
)
async def test_vps_bad_responses_raise_storage_error(response: httpx.Response) -> None:
    with pytest.raises(StorageError):
        await _vps(lambda r: response).sign_stream_url(video_path="p", user_id=None, expires_in=60)


@pytest.mark.asyncio
async def test_vps_transport_error_raises_storage_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("slow", request=request)

    with pytest.raises(StorageError):
        await _vps(handler).create_upload_url(video_path="p", filename="a.mp4", file_size=None, lecture_id="L1")


class _StubS3:
    def __init__(self, *, fail: bool = False) -> None:
        self.calls: list[tuple[str, dict, int]] = []
        self.fail = fail

    def generate_presigned_url(self, *, ClientMethod, Params, ExpiresIn):
        if self.fail:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "nope"}}, ClientMethod)
        self.calls.append((ClientMethod, Params, ExpiresIn))
        return f"https://bucket.example.test/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


@pytest.mark.asyncio
async def test_s3_presigns_manifest_and_sanitized_upload_key() -> None:
    stub = _StubS3()
    storage = S3Storage(bucket="videos", manifest_name="index.m3u8", upload_expires_seconds=900, client=stub)

    signed = await storage.sign_stream_url(video_path="C1/L1/x/", user_id="u1", expires_in=300)
    ticket = await storage.create_upload_url(
        video_path="C1/L1/x", filename="../My Lecture (1).mp4", file_size=None, lecture_id="L1"
    )

    assert signed.url == "https://bucket.example.test/C1/L1/x/index.m3u8?X-Amz-Expires=300"
    assert stub.calls[0] == ("get_object", {"Bucket": "videos", "Key": "C1/L1/x/index.m3u8"}, 300)
    assert stub.calls[1] == ("put_object", {"Bucket": "videos", "Key": "C1/L1/x/My_Lecture_1_.mp4"}, 900)
    assert len(ticket.upload_id) == 32


@pytest.mark.asyncio
async def test_s3_client_errors_become_storage_errors() -> None:
    storage = S3Storage(bucket="videos", manifest_name="index.m3u8", upload_expires_seconds=900, client=_StubS3(fail=True))

    with pytest.raises(StorageError):
        await storage.sign_stream_url(video_path="p", user_id=None, expires_in=60)


@pytest.mark.parametrize(
    "name,expected",
    [("a.mp4", "a.mp4"), ("dir/sub/b c.mov", "b_c.mov"), ("..", "file"), ("", "file"), ("x" * 200, "x" * 120)],
)
def test_sanitize_filename(name: str, expected: str) -> None:
    assert sanitize_filename(name) == expected


@pytest.mark.asyncio
async def test_factory_selects_backend(monkeypatch) -> None:
    monkeypatch.setattr(s3_mod, "_s3_client", lambda _settings: _StubS3())
    async with httpx.AsyncClient() as client:
        assert build_storage(Settings(_env_file=None), http_client=client) is None
        vps = build_storage(
            Settings(_env_file=None, VPS_API_URL="https://vps.example.test", VPS_API_KEY="k"),
            http_client=client,
        )
        assert isinstance(vps, VpsStorage)
        assert build_storage(Settings(_env_file=None, STORAGE_BACKEND="s3"), http_client=client) is None
        s3 = build_storage(Settings(_env_file=None, STORAGE_BACKEND="s3", S3_BUCKET="videos"), http_client=client)
        assert isinstance(s3, S3Storage)
