from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from lecture_pipeline.api.deps import get_services
from lecture_pipeline.core.container import PipelineServices
from lecture_pipeline.schemas.pipeline import StreamUrlRequest, StreamUrlResponse

router = APIRouter(tags=["streams"])


@router.post("/stream-url", response_model=StreamUrlResponse)
async def stream_url(
    body: StreamUrlRequest,
    request: Request,
    services: PipelineServices = Depends(get_services),
) -> StreamUrlResponse:
    grant = await services.streams.resolve(body.lectureId, request.headers.get("authorization"))
    return StreamUrlResponse(streamUrl=grant.stream_url, expiresAt=grant.expires_at)
