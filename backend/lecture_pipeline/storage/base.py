"""
Remote storage port: signed playback URLs and direct-upload tickets.

Implementations talk to whatever hosts the processed videos. Callers map
`StorageError` to their own client-facing error; the message carries the
upstream diagnostic and is for server logs only.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class SignedUrl:
    url: str
    expires_at: datetime | None


@dataclass(frozen=True)
class UploadTicket:
    upload_url: str
    upload_id: str


class StorageBackend(ABC):
    name: str = "storage"

    @abstractmethod
    async def sign_stream_url(self, *, video_path: str, user_id: str | None, expires_in: int) -> SignedUrl:
        """Time-limited playback URL for the package stored under `video_path`."""

    @abstractmethod
    async def create_upload_url(
        self,
        *,
        video_path: str,
        filename: str,
        file_size: int | None,
        lecture_id: str,
    ) -> UploadTicket:
        """Pre-signed direct-upload URL for a new source file under `video_path`."""

    async def aclose(self) -> None:
        return None
