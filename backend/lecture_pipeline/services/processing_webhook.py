from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Literal

from lecture_pipeline.core.errors import InvalidApiKey, InvalidStatus, MissingField
from lecture_pipeline.core.security import secrets_match
from lecture_pipeline.media.process import trim_tail
from lecture_pipeline.repositories.lectures import LectureRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionReport:
    lecture_id: str | None
    status: str | None
    video_path: str | None = None
    hls_path: str | None = None
    duration_minutes: float | None = None
    error: str | None = None


@dataclass(frozen=True)
class WebhookOutcome:
    result: Literal["finalized", "failed", "ignored"]
    lecture_id: str
    video_path: str | None = None
    error: str | None = None


def _whole_minutes(minutes: float | None) -> int | None:
    if minutes is None:
        return None
    return int(math.floor(minutes + 0.5))


class ProcessingWebhook:
    """
    Reconciles the direct-upload path once the transcoding host reports back.

    Idempotent: replaying a report writes the same values again.
    """

    def __init__(self, *, lectures: LectureRepository, secret: str) -> None:
        self._lectures = lectures
        self._secret = secret

    def verify(self, api_key: str | None) -> None:
        if not secrets_match(api_key, self._secret):
            raise InvalidApiKey()

    async def handle(self, report: CompletionReport) -> WebhookOutcome:
        lecture_id = (report.lecture_id or "").strip()
        if not lecture_id:
            raise MissingField("Lecture ID is required")

        status = (report.status or "").strip().lower()
        if status not in ("success", "error"):
            raise InvalidStatus()

        if status == "success":
            final_path = (report.hls_path or report.video_path or "").strip()
            if not final_path:
                raise MissingField("videoPath or hlsPath is required for a successful report")
            matched = await self._lectures.update_video(
                lecture_id,
                video_path=final_path,
                duration_minutes=_whole_minutes(report.duration_minutes),
            )
            if not matched:
                logger.warning("Webhook success for unknown lecture %s ignored", lecture_id)
                return WebhookOutcome(result="ignored", lecture_id=lecture_id)
            logger.info("Lecture %s finalized at %s", lecture_id, final_path)
            return WebhookOutcome(result="finalized", lecture_id=lecture_id, video_path=final_path)

        error = trim_tail(report.error or "") or None
        logger.error("Video processing failed for lecture %s: %s", lecture_id, error or "unknown error")
        matched = await self._lectures.update_video(lecture_id, video_path=None)
        if not matched:
            logger.warning("Webhook error for unknown lecture %s ignored", lecture_id)
            return WebhookOutcome(result="ignored", lecture_id=lecture_id, error=error)
        return WebhookOutcome(result="failed", lecture_id=lecture_id, error=error)
