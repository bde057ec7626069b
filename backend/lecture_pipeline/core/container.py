from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from lecture_pipeline.core.rate_limit import FixedWindowRateLimiter
from lecture_pipeline.core.settings import Settings
from lecture_pipeline.db.session import create_engine, create_session_maker
from lecture_pipeline.media.inspector import MediaInspector
from lecture_pipeline.media.transcoder import Transcoder
from lecture_pipeline.repositories.lectures import LectureRepository, SqlLectureRepository
from lecture_pipeline.repositories.roles import RoleRepository, SqlRoleRepository
from lecture_pipeline.services.auth_gate import AuthGate
from lecture_pipeline.services.identity import IdentityClient
from lecture_pipeline.services.processing_webhook import ProcessingWebhook
from lecture_pipeline.services.reconciliation import MetadataDriftTracker
from lecture_pipeline.services.stream_broker import StreamUrlBroker
from lecture_pipeline.services.upload_intake import UploadIntakeService
from lecture_pipeline.services.upload_url_broker import UploadUrlBroker
from lecture_pipeline.storage.base import StorageBackend
from lecture_pipeline.storage.factory import build_storage

logger = logging.getLogger(__name__)


@dataclass
class RateLimiters:
    api: FixedWindowRateLimiter
    upload: FixedWindowRateLimiter
    webhook: FixedWindowRateLimiter

    @classmethod
    def from_settings(cls, settings: Settings) -> "RateLimiters":
        return cls(
            api=FixedWindowRateLimiter(
                limit=settings.api_rate_limit,
                window_seconds=settings.api_rate_limit_window_seconds,
            ),
            upload=FixedWindowRateLimiter(
                limit=settings.upload_rate_limit,
                window_seconds=settings.upload_rate_limit_window_seconds,
            ),
            webhook=FixedWindowRateLimiter(limit=settings.webhook_rate_limit_per_minute, window_seconds=60),
        )


@dataclass
class PipelineServices:
    """Everything the routes need, constructed once per application."""

    settings: Settings
    gate: AuthGate
    lectures: LectureRepository
    intake: UploadIntakeService
    streams: StreamUrlBroker
    upload_urls: UploadUrlBroker
    webhook: ProcessingWebhook
    drift: MetadataDriftTracker
    limiters: RateLimiters
    storage: StorageBackend | None = None
    http_client: httpx.AsyncClient | None = None
    engine: AsyncEngine | None = None
    session_maker: async_sessionmaker[AsyncSession] | None = None

    async def aclose(self) -> None:
        if self.storage is not None:
            await self.storage.aclose()
        if self.http_client is not None:
            await self.http_client.aclose()
        if self.engine is not None:
            await self.engine.dispose()


def assemble_services(
    settings: Settings,
    *,
    lectures: LectureRepository,
    roles: RoleRepository,
    identity: IdentityClient,
    storage: StorageBackend | None,
    inspector: MediaInspector | None = None,
    transcoder: Transcoder | None = None,
) -> PipelineServices:
    """Wire services from already-built collaborators (tests pass fakes here)."""
    inspector = inspector or MediaInspector(
        ffprobe_bin=settings.ffprobe_bin,
        timeout_seconds=settings.ffprobe_timeout_seconds,
    )
    transcoder = transcoder or Transcoder(
        ffmpeg_bin=settings.ffmpeg_bin,
        segment_seconds=settings.hls_segment_seconds,
        manifest_name=settings.hls_manifest_name,
        timeout_seconds=settings.transcode_timeout_seconds,
        concurrency=settings.transcode_concurrency,
    )
    drift = MetadataDriftTracker()
    gate = AuthGate(identity=identity, roles=roles)

    return PipelineServices(
        settings=settings,
        gate=gate,
        lectures=lectures,
        intake=UploadIntakeService(
            lectures=lectures,
            inspector=inspector,
            transcoder=transcoder,
            drift=drift,
            settings=settings,
        ),
        streams=StreamUrlBroker(lectures=lectures, gate=gate, storage=storage, settings=settings),
        upload_urls=UploadUrlBroker(lectures=lectures, storage=storage, settings=settings),
        webhook=ProcessingWebhook(lectures=lectures, secret=settings.webhook_secret),
        drift=drift,
        limiters=RateLimiters.from_settings(settings),
        storage=storage,
    )


def build_services(settings: Settings) -> PipelineServices:
    """Production wiring: one engine, one HTTP client, shared by every component."""
    engine = create_engine(settings)
    session_maker = create_session_maker(engine)
    http_client = httpx.AsyncClient(timeout=settings.vps_timeout_seconds, follow_redirects=False)

    identity = IdentityClient(
        base_url=settings.supabase_url,
        api_key=settings.supabase_service_role_key,
        jwt_secret=settings.supabase_jwt_secret,
        client=http_client,
        timeout_seconds=settings.identity_timeout_seconds,
    )
    storage = build_storage(settings, http_client=http_client)

    services = assemble_services(
        settings,
        lectures=SqlLectureRepository(session_maker),
        roles=SqlRoleRepository(session_maker),
        identity=identity,
        storage=storage,
    )
    services.http_client = http_client
    services.engine = engine
    services.session_maker = session_maker
    logger.info("Pipeline services ready (storage=%s)", storage.name if storage else "none")
    return services
