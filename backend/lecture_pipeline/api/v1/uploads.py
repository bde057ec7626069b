from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile

from lecture_pipeline.api.deps import get_services, require_admin, upload_rate_limit
from lecture_pipeline.core.container import PipelineServices
from lecture_pipeline.schemas.pipeline import DriftEntryPublic, ReconciliationPage, UploadResponse
from lecture_pipeline.services.identity import Principal
from lecture_pipeline.services.reconciliation import DriftEntry

router = APIRouter(prefix="/admin", tags=["uploads"])


def _drift_public(entry: DriftEntry) -> DriftEntryPublic:
    return DriftEntryPublic(
        videoId=entry.video_id,
        lectureId=entry.lecture_id,
        durationMinutes=entry.duration_minutes,
        reason=entry.reason,
        recordedAt=entry.recorded_at,
    )


@router.post("/upload", response_model=UploadResponse)
async def upload_video(
    request: Request,
    principal: Principal = Depends(upload_rate_limit),
    services: PipelineServices = Depends(get_services),
) -> UploadResponse:
    """
    Multipart upload (`video` file + `lectureId` field), packaged to HLS in
    the request path.

    The body is parsed only after the admin check and rate limit pass, so a
    rejected caller never gets a byte staged.
    """
    intake = services.intake
    intake.check_declared_length(request.headers.get("content-length"))

    form = await request.form(max_files=1, max_fields=16)
    try:
        video = form.get("video")
        job = await intake.stage(video if isinstance(video, UploadFile) else None)
        lecture_id = form.get("lectureId")
        result = await intake.process(job, lecture_id if isinstance(lecture_id, str) else None)
    finally:
        await form.close()

    return UploadResponse(
        videoId=result.video_id,
        streamUrl=result.stream_url,
        duration=result.duration_minutes,
        metadataSynced=result.metadata_synced,
    )


@router.get("/reconciliation", response_model=ReconciliationPage)
async def list_reconciliation(
    _: Principal = Depends(require_admin),
    services: PipelineServices = Depends(get_services),
) -> ReconciliationPage:
    items = [_drift_public(e) for e in await services.drift.pending()]
    return ReconciliationPage(items=items, total=len(items))


@router.post("/reconciliation/{video_id}/retry", response_model=DriftEntryPublic)
async def retry_reconciliation(
    video_id: str,
    _: Principal = Depends(require_admin),
    services: PipelineServices = Depends(get_services),
) -> DriftEntryPublic:
    entry = await services.drift.retry(video_id, services.lectures)
    return _drift_public(entry)
