"""
Synchronous upload path: stage -> validate -> inspect -> package -> record.

The staged source file is removed on every exit path. A failed lecture
write after a successful package does not fail the upload; it is logged and
parked in the drift tracker for operators to reconcile.
"""
from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from lecture_pipeline.core.errors import (
    Conflict,
    FileTooLarge,
    InvalidFileType,
    MissingField,
    NotFound,
    ProcessingFailed,
)
from lecture_pipeline.core.settings import Settings
from lecture_pipeline.media.inspector import MediaInspector, seconds_to_minutes
from lecture_pipeline.media.transcoder import Transcoder
from lecture_pipeline.repositories.lectures import LectureRepository
from lecture_pipeline.services.reconciliation import MetadataDriftTracker
from lecture_pipeline.services.upload_url_broker import ALLOWED_EXTENSIONS, file_extension
from lecture_pipeline.services.urls import public_stream_url

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset({"video/mp4", "video/quicktime", "video/webm", "video/x-matroska"})

CHUNK_SIZE = 1024 * 1024

# Room for multipart boundaries and the lectureId field on top of the file itself.
MULTIPART_OVERHEAD_BYTES = 1024 * 1024


class IncomingFile(Protocol):
    filename: str | None
    content_type: str | None
    size: int | None

    async def read(self, size: int = -1) -> bytes: ...


@dataclass(frozen=True)
class UploadJob:
    job_id: str
    staged_path: Path

    def discard(self) -> None:
        try:
            self.staged_path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove staged file %s", self.staged_path, exc_info=True)


@dataclass(frozen=True)
class IntakeResult:
    video_id: str
    stream_url: str
    duration_minutes: int
    metadata_synced: bool


class UploadIntakeService:
    def __init__(
        self,
        *,
        lectures: LectureRepository,
        inspector: MediaInspector,
        transcoder: Transcoder,
        drift: MetadataDriftTracker,
        settings: Settings,
    ) -> None:
        self._lectures = lectures
        self._inspector = inspector
        self._transcoder = transcoder
        self._drift = drift
        self._settings = settings
        self.upload_dir = Path(settings.upload_dir)
        self.output_root = Path(settings.video_output_root)

    def check_declared_length(self, content_length: str | None) -> None:
        """Reject a request whose declared body can't fit under the cap, before reading it."""
        try:
            declared = int(content_length or "")
        except ValueError:
            return
        if declared > self._settings.upload_max_size_bytes + MULTIPART_OVERHEAD_BYTES:
            raise FileTooLarge.over(self._settings.upload_max_size_bytes)

    def plan_job(self, original_filename: str | None) -> UploadJob:
        # Destination is decided before any byte is accepted.
        ext = file_extension(original_filename or "")
        if ext not in ALLOWED_EXTENSIONS:
            ext = ""
        job_id = str(uuid4())
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        return UploadJob(job_id=job_id, staged_path=self.upload_dir / f"{job_id}{ext}")

    async def stage(self, upload: IncomingFile | None) -> UploadJob:
        if upload is None or not (upload.filename or "").strip():
            raise MissingField("No video file provided")

        content_type = (upload.content_type or "").split(";")[0].strip().lower()
        if content_type not in ALLOWED_MIME_TYPES:
            raise InvalidFileType()

        cap = self._settings.upload_max_size_bytes
        if upload.size is not None and upload.size > cap:
            raise FileTooLarge.over(self._settings.upload_max_size_bytes)

        job = self.plan_job(upload.filename)
        written = 0
        try:
            with job.staged_path.open("wb") as out:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > cap:
                        raise FileTooLarge.over(self._settings.upload_max_size_bytes)
                    out.write(chunk)
        except BaseException:
            job.discard()
            raise

        logger.info("Staged upload %s (%d bytes) from %r", job.job_id, written, upload.filename)
        return job

    async def process(self, job: UploadJob, lecture_id: str | None) -> IntakeResult:
        try:
            lecture_id = (lecture_id or "").strip()
            if not lecture_id:
                raise MissingField("Lecture ID is required")

            lecture = await self._lectures.get(lecture_id)
            if lecture is None:
                raise NotFound("Lecture not found")

            return await self._package(job, lecture.id)
        finally:
            job.discard()

    async def _package(self, job: UploadJob, lecture_id: str) -> IntakeResult:
        video_id = job.job_id
        output_dir = self.output_root / video_id
        try:
            output_dir.mkdir(parents=True, exist_ok=False)
        except FileExistsError:
            raise Conflict("Video output directory already exists") from None

        logger.info("Processing video for lecture %s: %s -> %s", lecture_id, job.staged_path, output_dir)
        try:
            duration_seconds = await self._inspector.probe_duration(job.staged_path)
            package = await self._transcoder.package(job.staged_path, output_dir)
        except asyncio.CancelledError:
            shutil.rmtree(output_dir, ignore_errors=True)
            logger.warning("Processing for lecture %s cancelled; artifacts removed", lecture_id)
            raise
        except Exception as e:
            logger.exception("Processing failed for lecture %s", lecture_id)
            shutil.rmtree(output_dir, ignore_errors=True)
            raise ProcessingFailed(details=str(e)) from e

        job.discard()
        duration_minutes = seconds_to_minutes(duration_seconds)
        logger.info(
            "Packaged video %s: %.1fs, %d segments",
            video_id,
            duration_seconds,
            len(package.segments),
        )

        drift_reason: str | None = None
        try:
            matched = await self._lectures.update_video(
                lecture_id,
                video_path=video_id,
                duration_minutes=duration_minutes,
            )
            if not matched:
                drift_reason = "lecture row not found at update time"
        except Exception as e:
            logger.exception("Failed to update lecture %s with video %s", lecture_id, video_id)
            drift_reason = str(e) or e.__class__.__name__

        if drift_reason is not None:
            await self._drift.record(
                video_id=video_id,
                lecture_id=lecture_id,
                duration_minutes=duration_minutes,
                reason=drift_reason,
            )

        return IntakeResult(
            video_id=video_id,
            stream_url=public_stream_url(self._settings, video_id),
            duration_minutes=duration_minutes,
            metadata_synced=drift_reason is None,
        )
