from __future__ import annotations

from fastapi import APIRouter, Depends

from lecture_pipeline.api.deps import get_services, verify_webhook_key, webhook_rate_limit
from lecture_pipeline.core.container import PipelineServices
from lecture_pipeline.schemas.pipeline import VideoWebhookPayload
from lecture_pipeline.services.processing_webhook import CompletionReport

router = APIRouter(prefix="/functions/v1", tags=["webhooks"])


@router.post("/video-webhook", dependencies=[Depends(webhook_rate_limit), Depends(verify_webhook_key)])
async def video_webhook(
    payload: VideoWebhookPayload,
    services: PipelineServices = Depends(get_services),
) -> dict:
    """
    Completion callback from the transcoding host.

    - Authenticated by the shared secret in `X-API-Key`
    - `success` finalizes `video_path` (+ duration when reported, rounded to whole minutes)
    - `error` clears `video_path`
    - Unknown lectures are acknowledged and ignored
    """
    outcome = await services.webhook.handle(
        CompletionReport(
            lecture_id=payload.lectureId,
            status=payload.status,
            video_path=payload.videoPath,
            hls_path=payload.hlsPath,
            duration_minutes=payload.durationMinutes,
            error=payload.error,
        )
    )

    if outcome.result == "ignored":
        return {"ok": True, "ignored": True, "reason": "lecture not found"}
    if outcome.result == "failed":
        return {"ok": True, "message": "Error recorded", "error": outcome.error}
    return {"ok": True, "message": "Lecture updated successfully", "videoPath": outcome.video_path}
