from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from lecture_pipeline.core.errors import MissingField, NotFound, NoVideo, SigningUnavailable
from lecture_pipeline.core.settings import Settings
from lecture_pipeline.repositories.lectures import LectureRepository
from lecture_pipeline.services.auth_gate import AuthGate
from lecture_pipeline.services.urls import public_stream_url
from lecture_pipeline.storage.base import StorageBackend, StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamGrant:
    stream_url: str
    expires_at: datetime | None


class StreamUrlBroker:
    def __init__(
        self,
        *,
        lectures: LectureRepository,
        gate: AuthGate,
        storage: StorageBackend | None,
        settings: Settings,
    ) -> None:
        self._lectures = lectures
        self._gate = gate
        self._storage = storage
        self._settings = settings

    async def resolve(self, lecture_id: str | None, authorization: str | None) -> StreamGrant:
        lecture_id = (lecture_id or "").strip()
        if not lecture_id:
            raise MissingField("Lecture ID is required")

        lecture = await self._lectures.get(lecture_id)
        if lecture is None:
            raise NotFound("Lecture not found")
        if not lecture.has_video:
            raise NoVideo()

        if lecture.is_preview:
            principal = await self._gate.optional(authorization)
        else:
            principal = await self._gate.authenticate(authorization)

        if lecture.video_url:
            return StreamGrant(stream_url=lecture.video_url, expires_at=None)

        video_path = lecture.video_path or ""
        if self._storage is None:
            if self._settings.unsigned_fallback_enabled:
                logger.warning("No storage signer configured; serving unsigned URL for lecture %s", lecture.id)
                return StreamGrant(stream_url=public_stream_url(self._settings, video_path), expires_at=None)
            logger.error("Stream URL requested for lecture %s but no storage signer is configured", lecture.id)
            raise SigningUnavailable()

        try:
            signed = await self._storage.sign_stream_url(
                video_path=video_path,
                user_id=principal.user_id if principal else None,
                expires_in=self._settings.stream_url_expires_seconds,
            )
        except StorageError as e:
            logger.error("Signing failed for lecture %s via %s: %s", lecture.id, self._storage.name, e)
            raise SigningUnavailable() from e

        return StreamGrant(stream_url=signed.url, expires_at=signed.expires_at)
