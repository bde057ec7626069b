from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from lecture_pipeline.api.functions.router import router as functions_router
from lecture_pipeline.api.v1.router import api_router
from lecture_pipeline.api.webhooks.video_processing import router as video_webhook_router
from lecture_pipeline.core.container import PipelineServices, build_services
from lecture_pipeline.core.errors import PipelineError, RateLimited
from lecture_pipeline.core.logging_utils import configure_logging
from lecture_pipeline.core.settings import Settings, get_settings
from lecture_pipeline.db.session import get_db

logger = logging.getLogger(__name__)

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        headers = None
        if isinstance(exc, RateLimited) and exc.retry_after is not None:
            headers = {"Retry-After": str(exc.retry_after)}
        if exc.status_code >= 500:
            logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app(settings: Settings | None = None, *, services: PipelineServices | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
        logger.info("Upload directory: %s", settings.upload_dir)
        logger.info("Video output: %s", settings.video_output_root)
        try:
            yield
        finally:
            await services.aclose()

    app = FastAPI(title="Lecture Video Pipeline", lifespan=lifespan)
    app.state.services = services

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    _install_error_handlers(app)

    app.include_router(api_router)
    app.include_router(functions_router)
    app.include_router(video_webhook_router)

    @app.get("/api/health")
    async def health():
        return {
            "ok": True,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "pendingReconciliation": services.drift.count,
        }

    @app.get("/health/db")
    async def health_db(db: AsyncSession = Depends(get_db)):
        await db.execute(text("SELECT 1"))
        return {"ok": True}

    if settings.serve_videos_locally:
        app.mount(
            "/videos",
            StaticFiles(directory=settings.video_output_root, check_dir=False),
            name="videos",
        )

    return app


def app_factory() -> FastAPI:
    # uvicorn lecture_pipeline.main:app_factory --factory
    return create_app()
