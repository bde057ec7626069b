from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from lecture_pipeline.core.settings import Settings
from lecture_pipeline.storage.base import SignedUrl, StorageBackend, StorageError, UploadTicket

_FILENAME_SAFE_RE = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(name: str) -> str:
    # Strip paths and normalize whitespace/special chars.
    base = (name or "").split("/")[-1].split("\\")[-1].strip()
    base = _FILENAME_SAFE_RE.sub("_", base)
    base = base.strip("._-")
    if not base:
        return "file"
    return base[:120]


def _s3_client(settings: Settings):
    kwargs: dict[str, Any] = {"service_name": "s3", "region_name": settings.s3_region}
    if settings.s3_endpoint_url:
        kwargs["endpoint_url"] = settings.s3_endpoint_url
    if settings.s3_access_key_id and settings.s3_secret_access_key:
        kwargs["aws_access_key_id"] = settings.s3_access_key_id
        kwargs["aws_secret_access_key"] = settings.s3_secret_access_key
    return boto3.client(**kwargs)


class S3Storage(StorageBackend):
    """
    S3-compatible bucket backend. Presigning is local (no network call).

    Only the manifest is signed for playback; segments must be readable by
    the player through the bucket/CDN policy.
    """

    name = "s3"

    def __init__(self, *, bucket: str, manifest_name: str, upload_expires_seconds: int, client: Any) -> None:
        self._bucket = bucket
        self._manifest_name = manifest_name
        self._upload_expires = int(upload_expires_seconds)
        self._s3 = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3Storage":
        if not settings.s3_bucket:
            raise StorageError("S3 is not configured (missing S3_BUCKET)")
        return cls(
            bucket=settings.s3_bucket,
            manifest_name=settings.hls_manifest_name,
            upload_expires_seconds=settings.s3_presign_expires_seconds,
            client=_s3_client(settings),
        )

    async def sign_stream_url(self, *, video_path: str, user_id: str | None, expires_in: int) -> SignedUrl:
        key = f"{video_path.strip('/')}/{self._manifest_name}"
        try:
            url = self._s3.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=int(expires_in),
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"presign get_object failed: {e}") from e
        return SignedUrl(url=url, expires_at=datetime.now(timezone.utc) + timedelta(seconds=int(expires_in)))

    async def create_upload_url(
        self,
        *,
        video_path: str,
        filename: str,
        file_size: int | None,
        lecture_id: str,
    ) -> UploadTicket:
        key = f"{video_path.strip('/')}/{sanitize_filename(filename)}"
        try:
            url = self._s3.generate_presigned_url(
                ClientMethod="put_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=self._upload_expires,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"presign put_object failed: {e}") from e
        return UploadTicket(upload_url=url, upload_id=uuid4().hex)
