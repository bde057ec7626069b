from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from uuid import uuid4

from lecture_pipeline.core.errors import (
    FileTooLarge,
    InvalidFileType,
    MissingField,
    NotFound,
    StorageNotConfigured,
    UpstreamError,
)
from lecture_pipeline.core.settings import Settings
from lecture_pipeline.repositories.lectures import LectureRepository
from lecture_pipeline.storage.base import StorageBackend, StorageError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({".mp4", ".mov", ".webm", ".mkv"})


@dataclass(frozen=True)
class UploadGrant:
    upload_url: str
    upload_id: str
    video_path: str


def file_extension(filename: str) -> str:
    return os.path.splitext((filename or "").strip())[1].lower()


class UploadUrlBroker:
    """
    Issues direct-to-storage upload URLs for the asynchronous path.

    All local checks run before the storage host is contacted. The returned
    `video_path` is written to the lecture right away as a provisional value;
    the processing webhook later confirms or clears it.
    """

    def __init__(self, *, lectures: LectureRepository, storage: StorageBackend | None, settings: Settings) -> None:
        self._lectures = lectures
        self._storage = storage
        self._settings = settings

    async def issue(self, *, lecture_id: str | None, filename: str | None, file_size: int | None) -> UploadGrant:
        lecture_id = (lecture_id or "").strip()
        filename = (filename or "").strip()
        if not lecture_id or not filename:
            raise MissingField("Lecture ID and filename are required")

        if file_extension(filename) not in ALLOWED_EXTENSIONS:
            raise InvalidFileType("Invalid file type. Allowed: mp4, mov, webm, mkv")
        if file_size is not None and (file_size < 0 or file_size > self._settings.upload_max_size_bytes):
            raise FileTooLarge.over(self._settings.upload_max_size_bytes)

        lecture = await self._lectures.get(lecture_id)
        if lecture is None:
            raise NotFound("Lecture not found")

        video_path = f"{lecture.course_id}/{lecture.id}/{uuid4()}"

        if self._storage is None:
            logger.error("Upload URL requested but no storage host is configured")
            raise StorageNotConfigured(
                "Storage not configured",
                details="Configure VPS_API_URL and VPS_API_KEY (or STORAGE_BACKEND=s3 with S3_BUCKET)",
            )

        try:
            ticket = await self._storage.create_upload_url(
                video_path=video_path,
                filename=filename,
                file_size=file_size,
                lecture_id=lecture.id,
            )
        except StorageError as e:
            logger.error("Upload URL generation failed for lecture %s via %s: %s", lecture.id, self._storage.name, e)
            raise UpstreamError("Failed to generate upload URL") from e

        # Provisional: the webhook overwrites this on success and clears it on failure.
        await self._lectures.update_video(lecture.id, video_path=video_path)
        logger.info("Issued upload %s for lecture %s at %s", ticket.upload_id, lecture.id, video_path)

        return UploadGrant(upload_url=ticket.upload_url, upload_id=ticket.upload_id, video_path=video_path)
