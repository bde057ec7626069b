from __future__ import annotations

from urllib.parse import quote

from lecture_pipeline.core.settings import Settings


def public_stream_url(settings: Settings, video_path: str) -> str:
    """
    Public manifest URL for a locally packaged video.

      {PUBLIC_VIDEO_BASE_URL}/{video_path}/{HLS_MANIFEST_NAME}
    """
    vp = (video_path or "").strip().strip("/")
    if not vp:
        raise ValueError("video_path is required")
    base = settings.public_video_base_url.rstrip("/")
    return f"{base}/{quote(vp)}/{settings.hls_manifest_name}"
