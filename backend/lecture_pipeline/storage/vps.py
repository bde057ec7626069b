from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from lecture_pipeline.storage.base import SignedUrl, StorageBackend, StorageError, UploadTicket


def _parse_expiry(value: Any, *, fallback_seconds: int) -> datetime:
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) + timedelta(seconds=fallback_seconds)


class VpsStorage(StorageBackend):
    """Client for the transcoding host's storage API (X-API-Key auth).

      POST {base}/api/generate-upload-url  {videoPath, filename, fileSize, lectureId} -> {uploadUrl, uploadId}
      POST {base}/api/generate-stream-url  {videoPath, userId, expiresIn}             -> {signedUrl, expiresAt?}
    """

    name = "vps"

    def __init__(self, *, base_url: str, api_key: str, client: httpx.AsyncClient) -> None:
        self._base = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {"X-API-Key": self._api_key, "Content-Type": "application/json"}

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            res = await self._client.post(f"{self._base}{path}", headers=self._headers(), json=payload)
        except httpx.HTTPError as e:
            raise StorageError(f"{path} unreachable: {e!r}") from e
        if res.status_code >= 400:
            raise StorageError(f"{path} returned {res.status_code}: {res.text[:500]}")
        try:
            data = res.json()
        except ValueError as e:
            raise StorageError(f"{path} returned non-JSON body") from e
        if not isinstance(data, dict):
            raise StorageError(f"{path} returned unexpected payload")
        return data

    async def sign_stream_url(self, *, video_path: str, user_id: str | None, expires_in: int) -> SignedUrl:
        data = await self._post(
            "/api/generate-stream-url",
            {"videoPath": video_path, "userId": user_id, "expiresIn": int(expires_in)},
        )
        url = data.get("signedUrl")
        if not isinstance(url, str) or not url.strip():
            raise StorageError("/api/generate-stream-url response missing signedUrl")
        return SignedUrl(url=url, expires_at=_parse_expiry(data.get("expiresAt"), fallback_seconds=int(expires_in)))

    async def create_upload_url(
        self,
        *,
        video_path: str,
        filename: str,
        file_size: int | None,
        lecture_id: str,
    ) -> UploadTicket:
        data = await self._post(
            "/api/generate-upload-url",
            {"videoPath": video_path, "filename": filename, "fileSize": file_size, "lectureId": lecture_id},
        )
        upload_url = data.get("uploadUrl")
        upload_id = data.get("uploadId")
        if not upload_url or not upload_id:
            raise StorageError("/api/generate-upload-url response missing uploadUrl/uploadId")
        return UploadTicket(upload_url=str(upload_url), upload_id=str(upload_id))
