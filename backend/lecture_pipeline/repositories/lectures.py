"""
Lecture repository port + SQLAlchemy adapter.

The pipeline reads and writes only a handful of lecture fields; everything
else about the row belongs to the catalog/admin collaborators.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lecture_pipeline.db.models.lecture import Lecture

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LectureRecord:
    id: str
    course_id: str
    video_path: str | None
    video_url: str | None
    duration_minutes: int | None
    is_preview: bool
    is_published: bool

    @property
    def has_video(self) -> bool:
        return bool(self.video_url or self.video_path)


class LectureRepository(ABC):
    @abstractmethod
    async def get(self, lecture_id: str) -> LectureRecord | None:
        """Return the lecture, or None when no such lecture exists."""

    @abstractmethod
    async def update_video(
        self,
        lecture_id: str,
        *,
        video_path: str | None,
        duration_minutes: int | None = None,
    ) -> bool:
        """
        Overwrite `video_path` (None clears it). `duration_minutes` is only
        written when not None. Returns False when no row matched.
        """


def _parse_id(value: str) -> UUID | None:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


class SqlLectureRepository(LectureRepository):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def get(self, lecture_id: str) -> LectureRecord | None:
        lid = _parse_id(lecture_id)
        if lid is None:
            return None
        async with self._session_maker() as db:
            res = await db.execute(select(Lecture).where(Lecture.id == lid))
            row = res.scalar_one_or_none()
        if row is None:
            return None
        return LectureRecord(
            id=str(row.id),
            course_id=str(row.course_id),
            video_path=row.video_path,
            video_url=row.video_url,
            duration_minutes=row.duration_minutes,
            is_preview=bool(row.is_preview),
            is_published=bool(row.is_published),
        )

    async def update_video(
        self,
        lecture_id: str,
        *,
        video_path: str | None,
        duration_minutes: int | None = None,
    ) -> bool:
        lid = _parse_id(lecture_id)
        if lid is None:
            return False

        values: dict = {"video_path": video_path, "updated_at": func.now()}
        if duration_minutes is not None:
            values["duration_minutes"] = int(duration_minutes)

        async with self._session_maker() as db:
            res = await db.execute(update(Lecture).where(Lecture.id == lid).values(**values))
            await db.commit()
        matched = (res.rowcount or 0) > 0
        if not matched:
            logger.warning("Lecture %s not found while updating video metadata", lecture_id)
        return matched
