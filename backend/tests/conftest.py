from __future__ import annotations

import math
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Sequence

import httpx
import jwt
import pytest
from fastapi import FastAPI

from lecture_pipeline.core.container import assemble_services
from lecture_pipeline.core.settings import Settings
from lecture_pipeline.main import create_app
from lecture_pipeline.media.process import CommandResult
from lecture_pipeline.repositories.lectures import LectureRecord, LectureRepository
from lecture_pipeline.repositories.roles import ADMIN_ROLE, RoleRepository
from lecture_pipeline.services.identity import IdentityClient
from lecture_pipeline.storage.base import SignedUrl, StorageBackend, StorageError, UploadTicket

JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"
WEBHOOK_SECRET = "webhook-secret-123"
ADMIN_ID = "admin-1"
STUDENT_ID = "student-1"


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "ENVIRONMENT": "production",
        "LOG_LEVEL": "WARNING",
        "UPLOAD_DIR": str(tmp_path / "uploads"),
        "VIDEO_OUTPUT_ROOT": str(tmp_path / "videos"),
        "PUBLIC_VIDEO_BASE_URL": "https://cdn.example.test/videos",
        "SUPABASE_JWT_SECRET": JWT_SECRET,
        "VIDEO_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "CORS_ORIGINS": "http://localhost:5173",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def token_for(user_id: str, *, secret: str = JWT_SECRET, expires_in: int = 3600) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "aud": "authenticated",
        "email": f"{user_id}@example.test",
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def bearer(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user_id)}"}


class InMemoryLectures(LectureRepository):
    def __init__(self) -> None:
        self.rows: dict[str, LectureRecord] = {}
        self.update_calls: list[dict] = []
        self.fail_updates = False

    def add(
        self,
        lecture_id: str,
        *,
        course_id: str = "C1",
        video_path: str | None = None,
        video_url: str | None = None,
        duration_minutes: int | None = None,
        is_preview: bool = False,
        is_published: bool = True,
    ) -> LectureRecord:
        row = LectureRecord(
            id=lecture_id,
            course_id=course_id,
            video_path=video_path,
            video_url=video_url,
            duration_minutes=duration_minutes,
            is_preview=is_preview,
            is_published=is_published,
        )
        self.rows[lecture_id] = row
        return row

    async def get(self, lecture_id: str) -> LectureRecord | None:
        return self.rows.get(lecture_id)

    async def update_video(self, lecture_id: str, *, video_path: str | None, duration_minutes: int | None = None) -> bool:
        self.update_calls.append(
            {"lecture_id": lecture_id, "video_path": video_path, "duration_minutes": duration_minutes}
        )
        if self.fail_updates:
            raise RuntimeError("database unavailable")
        row = self.rows.get(lecture_id)
        if row is None:
            return False
        changes: dict = {"video_path": video_path}
        if duration_minutes is not None:
            changes["duration_minutes"] = duration_minutes
        self.rows[lecture_id] = replace(row, **changes)
        return True


class InMemoryRoles(RoleRepository):
    def __init__(self, admins: Sequence[str] = (ADMIN_ID,)) -> None:
        self.admins = set(admins)

    async def has_role(self, user_id: str, role: str) -> bool:
        return role == ADMIN_ROLE and user_id in self.admins


class FakeStorage(StorageBackend):
    name = "fake"

    def __init__(self) -> None:
        self.sign_calls: list[dict] = []
        self.upload_calls: list[dict] = []
        self.fail = False

    async def sign_stream_url(self, *, video_path: str, user_id: str | None, expires_in: int) -> SignedUrl:
        if self.fail:
            raise StorageError("signer returned 502")
        self.sign_calls.append({"video_path": video_path, "user_id": user_id, "expires_in": expires_in})
        return SignedUrl(
            url=f"https://signed.example.test/{video_path}/index.m3u8?token=abc",
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        )

    async def create_upload_url(self, *, video_path: str, filename: str, file_size: int | None, lecture_id: str) -> UploadTicket:
        if self.fail:
            raise StorageError("upload host returned 500")
        self.upload_calls.append(
            {"video_path": video_path, "filename": filename, "file_size": file_size, "lecture_id": lecture_id}
        )
        return UploadTicket(upload_url=f"https://upload.example.test/{video_path}", upload_id="upload-1")


class FakeMediaTools:
    """Answers ffprobe and writes a plausible VOD HLS package for ffmpeg."""

    def __init__(self, *, duration: float = 600.0) -> None:
        self.duration = duration
        self.calls: list[list[str]] = []
        self.probe_stdout: str | None = None
        self.probe_returncode = 0
        self.ffmpeg_returncode = 0

    @property
    def transcode_calls(self) -> list[list[str]]:
        return [c for c in self.calls if Path(c[0]).name == "ffmpeg"]

    async def __call__(self, argv: Sequence[str], *, timeout: float) -> CommandResult:
        argv = list(argv)
        self.calls.append(argv)
        if Path(argv[0]).name == "ffprobe":
            if self.probe_returncode != 0:
                return CommandResult(self.probe_returncode, "", "moov atom not found\nInvalid data found when processing input")
            out = self.probe_stdout if self.probe_stdout is not None else f"{self.duration:.6f}\n"
            return CommandResult(0, out, "")

        if self.ffmpeg_returncode != 0:
            return CommandResult(self.ffmpeg_returncode, "", "Could not write header for output file")

        hls_time = int(argv[argv.index("-hls_time") + 1])
        pattern = argv[argv.index("-hls_segment_filename") + 1]
        manifest = Path(argv[-1])
        count = max(1, math.ceil(self.duration / hls_time))
        lines = [
            "#EXTM3U",
            "#EXT-X-VERSION:3",
            f"#EXT-X-TARGETDURATION:{hls_time}",
            "#EXT-X-MEDIA-SEQUENCE:0",
            "#EXT-X-PLAYLIST-TYPE:VOD",
        ]
        for i in range(count):
            segment = Path(pattern % i)
            segment.write_bytes(b"\x47" * 188)
            lines.append(f"#EXTINF:{min(hls_time, self.duration - i * hls_time):.6f},")
            lines.append(segment.name)
        lines.append("#EXT-X-ENDLIST")
        manifest.write_text("\n".join(lines) + "\n")
        return CommandResult(0, "", "")


@pytest.fixture
def media_tools(monkeypatch) -> FakeMediaTools:
    import lecture_pipeline.media.inspector as inspector_mod
    import lecture_pipeline.media.transcoder as transcoder_mod

    tools = FakeMediaTools()
    monkeypatch.setattr(inspector_mod, "run_command", tools)
    monkeypatch.setattr(transcoder_mod, "run_command", tools)
    return tools


@dataclass
class Harness:
    settings: Settings
    lectures: InMemoryLectures
    roles: InMemoryRoles
    storage: FakeStorage | None
    app: FastAPI

    @property
    def services(self):
        return self.app.state.services

    @property
    def upload_dir(self) -> Path:
        return Path(self.settings.upload_dir)

    @property
    def output_root(self) -> Path:
        return Path(self.settings.video_output_root)

    @asynccontextmanager
    async def client(self):
        transport = httpx.ASGITransport(app=self.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client


@pytest.fixture
def make_harness(tmp_path) -> Callable[..., Harness]:
    def _make(*, with_storage: bool = True, identity: IdentityClient | None = None, **overrides) -> Harness:
        settings = make_settings(tmp_path, **overrides)
        lectures = InMemoryLectures()
        roles = InMemoryRoles()
        storage = FakeStorage() if with_storage else None
        identity = identity or IdentityClient(
            base_url=None,
            api_key=None,
            jwt_secret=settings.supabase_jwt_secret,
            client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))),
        )
        services = assemble_services(
            settings,
            lectures=lectures,
            roles=roles,
            identity=identity,
            storage=storage,
        )
        app = create_app(settings, services=services)
        return Harness(settings=settings, lectures=lectures, roles=roles, storage=storage, app=app)

    return _make


@pytest.fixture
def harness(make_harness, media_tools) -> Harness:
    return make_harness()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return bearer(ADMIN_ID)


@pytest.fixture
def student_headers() -> dict[str, str]:
    return bearer(STUDENT_ID)


@pytest.fixture
def make_token() -> Callable[..., str]:
    return token_for


@pytest.fixture
def webhook_headers() -> dict[str, str]:
    return {"X-API-Key": WEBHOOK_SECRET}
