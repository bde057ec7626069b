from __future__ import annotations

import logging

import httpx

from lecture_pipeline.core.settings import Settings
from lecture_pipeline.storage.base import StorageBackend
from lecture_pipeline.storage.s3 import S3Storage
from lecture_pipeline.storage.vps import VpsStorage

logger = logging.getLogger(__name__)


def build_storage(settings: Settings, *, http_client: httpx.AsyncClient) -> StorageBackend | None:
    """
    Pick the configured storage backend. None means "not configured": the
    brokers turn that into StorageNotConfigured / SigningUnavailable.
    """
    if settings.storage_backend == "s3":
        if not settings.s3_bucket:
            logger.warning("STORAGE_BACKEND=s3 but S3_BUCKET is unset; storage disabled")
            return None
        return S3Storage.from_settings(settings)

    url = (settings.vps_api_url or "").strip()
    key = (settings.vps_api_key or "").strip()
    if not url or not key:
        logger.warning("VPS_API_URL/VPS_API_KEY not set; storage disabled")
        return None
    return VpsStorage(base_url=url, api_key=key, client=http_client)
