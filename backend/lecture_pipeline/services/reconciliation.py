from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from lecture_pipeline.core.errors import NotFound, ProcessingFailed
from lecture_pipeline.repositories.lectures import LectureRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DriftEntry:
    video_id: str
    lecture_id: str
    duration_minutes: int
    reason: str
    recorded_at: datetime


class MetadataDriftTracker:
    """
    Packages that exist on disk but whose lecture row was never updated.

    The synchronous upload path keeps the artifact even when the metadata
    write fails; this registry is how operators find and repair those rows.
    Per-process and in-memory: a restart loses it, the artifacts stay.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._entries: dict[str, DriftEntry] = {}

    @property
    def count(self) -> int:
        return len(self._entries)

    async def record(self, *, video_id: str, lecture_id: str, duration_minutes: int, reason: str) -> DriftEntry:
        entry = DriftEntry(
            video_id=video_id,
            lecture_id=lecture_id,
            duration_minutes=int(duration_minutes),
            reason=reason,
            recorded_at=datetime.now(timezone.utc),
        )
        async with self._lock:
            self._entries[video_id] = entry
        logger.warning(
            "Metadata drift: video %s on disk, lecture %s not updated (%s); pending=%d",
            video_id,
            lecture_id,
            reason,
            self.count,
        )
        return entry

    async def pending(self) -> list[DriftEntry]:
        async with self._lock:
            return sorted(self._entries.values(), key=lambda e: e.recorded_at)

    async def resolve(self, video_id: str) -> DriftEntry | None:
        async with self._lock:
            return self._entries.pop(video_id, None)

    async def retry(self, video_id: str, lectures: LectureRepository) -> DriftEntry:
        async with self._lock:
            entry = self._entries.get(video_id)
        if entry is None:
            raise NotFound("No pending reconciliation for this video")

        try:
            matched = await lectures.update_video(
                entry.lecture_id,
                video_path=entry.video_id,
                duration_minutes=entry.duration_minutes,
            )
        except Exception as e:
            logger.exception("Reconciliation retry failed for video %s", video_id)
            raise ProcessingFailed("Failed to update lecture", details=str(e)) from e
        if not matched:
            raise NotFound("Lecture not found")

        await self.resolve(video_id)
        logger.info("Reconciled video %s onto lecture %s", video_id, entry.lecture_id)
        return entry
