from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from lecture_pipeline.api.deps import get_services, require_admin
from lecture_pipeline.core.container import PipelineServices
from lecture_pipeline.schemas.pipeline import (
    AdminUploadVideoRequest,
    AdminUploadVideoResponse,
    StreamUrlRequest,
    StreamUrlResponse,
)
from lecture_pipeline.services.identity import Principal

# Serverless-function equivalents, kept at their original paths so existing
# clients can call them unchanged.
router = APIRouter(prefix="/functions/v1", tags=["functions"])


@router.post("/admin-upload-video", response_model=AdminUploadVideoResponse)
async def admin_upload_video(
    body: AdminUploadVideoRequest,
    _: Principal = Depends(require_admin),
    services: PipelineServices = Depends(get_services),
) -> AdminUploadVideoResponse:
    grant = await services.upload_urls.issue(
        lecture_id=body.lectureId,
        filename=body.filename,
        file_size=body.fileSize,
    )
    return AdminUploadVideoResponse(
        uploadUrl=grant.upload_url,
        uploadId=grant.upload_id,
        videoPath=grant.video_path,
    )


@router.post("/get-stream-url", response_model=StreamUrlResponse)
async def get_stream_url(
    body: StreamUrlRequest,
    request: Request,
    services: PipelineServices = Depends(get_services),
) -> StreamUrlResponse:
    grant = await services.streams.resolve(body.lectureId, request.headers.get("authorization"))
    return StreamUrlResponse(streamUrl=grant.stream_url, expiresAt=grant.expires_at)
