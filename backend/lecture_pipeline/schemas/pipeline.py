from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class StreamUrlRequest(BaseModel):
    lectureId: str | None = Field(default=None, max_length=128)


class StreamUrlResponse(BaseModel):
    streamUrl: str
    expiresAt: datetime | None = None


class UploadResponse(BaseModel):
    success: bool = True
    videoId: str
    streamUrl: str
    duration: int
    message: str = "Video uploaded and processed successfully"
    # False when the package exists but the lecture row could not be updated.
    metadataSynced: bool = True


class AdminUploadVideoRequest(BaseModel):
    lectureId: str | None = Field(default=None, max_length=128)
    filename: str | None = Field(default=None, max_length=255)
    fileSize: int | None = None


class AdminUploadVideoResponse(BaseModel):
    uploadUrl: str
    uploadId: str
    videoPath: str
    message: str = "Upload URL generated. Upload your video directly to the provided URL."


class VideoWebhookPayload(BaseModel):
    lectureId: str | None = Field(default=None, max_length=128)
    videoPath: str | None = Field(default=None, max_length=1024)
    hlsPath: str | None = Field(default=None, max_length=1024)
    # Hosts report fractional minutes; rounded half-up when stored.
    durationMinutes: float | None = Field(default=None, ge=0)
    status: str | None = Field(default=None, max_length=32)
    # Free-form tool diagnostics, trimmed server-side.
    error: str | None = None


class DriftEntryPublic(BaseModel):
    videoId: str
    lectureId: str
    durationMinutes: int
    reason: str
    recordedAt: datetime


class ReconciliationPage(BaseModel):
    items: list[DriftEntryPublic]
    total: int
