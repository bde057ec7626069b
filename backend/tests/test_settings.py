from __future__ import annotations

import pytest
from pydantic import ValidationError

from lecture_pipeline.core.settings import Settings


def test_defaults_match_deployment() -> None:
    s = Settings(_env_file=None)

    assert s.environment == "production"
    assert s.port == 3000
    assert s.upload_dir == "/tmp/uploads"
    assert s.upload_max_size_bytes == 2 * 1024**3
    assert s.hls_segment_seconds == 10
    assert s.hls_manifest_name == "index.m3u8"
    assert s.stream_url_expires_seconds == 300
    assert s.upload_rate_limit == 10
    assert s.upload_rate_limit_window_seconds == 3600
    assert s.api_rate_limit == 100
    assert s.api_rate_limit_window_seconds == 900
    assert s.unsigned_fallback_enabled is False


def test_env_overrides_and_cors_parsing(monkeypatch) -> None:
    monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")
    monkeypatch.setenv("UPLOAD_MAX_SIZE_BYTES", "1024")
    monkeypatch.setenv("TRANSCODE_CONCURRENCY", "4")

    s = Settings(_env_file=None)

    assert s.cors_origins == ["http://a.test", "http://b.test"]
    assert s.upload_max_size_bytes == 1024
    assert s.transcode_concurrency == 4


def test_unsigned_fallback_needs_development() -> None:
    assert not Settings(_env_file=None, ALLOW_UNSIGNED_STREAM_FALLBACK=True).unsigned_fallback_enabled
    assert Settings(
        _env_file=None, ENVIRONMENT="development", ALLOW_UNSIGNED_STREAM_FALLBACK=True
    ).unsigned_fallback_enabled


def test_webhook_secret_prefers_dedicated_secret() -> None:
    assert Settings(_env_file=None, VPS_API_KEY="vps").webhook_secret == "vps"
    assert Settings(_env_file=None, VPS_API_KEY="vps", VIDEO_WEBHOOK_SECRET=" hook ").webhook_secret == "hook"
    assert Settings(_env_file=None).webhook_secret == ""


@pytest.mark.parametrize(
    "overrides",
    [
        {"UPLOAD_MAX_SIZE_BYTES": 0},
        {"HLS_SEGMENT_SECONDS": 0},
        {"TRANSCODE_CONCURRENCY": 0},
        {"UPLOAD_RATE_LIMIT": 0},
        {"HLS_MANIFEST_NAME": "../index.m3u8"},
        {"HLS_MANIFEST_NAME": "index.txt"},
        {"ENVIRONMENT": "staging"},
    ],
)
def test_rejects_invalid_values(overrides) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)
