from __future__ import annotations

from fastapi import APIRouter, Depends

from lecture_pipeline.api.deps import api_rate_limit
from lecture_pipeline.api.v1 import streams, uploads

api_router = APIRouter(prefix="/api", dependencies=[Depends(api_rate_limit)])
api_router.include_router(uploads.router)
api_router.include_router(streams.router)
