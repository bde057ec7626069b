from __future__ import annotations

from typing import Any

from fastapi import status


class PipelineError(Exception):
    """Base class for failures surfaced to HTTP clients.

    `message` is the short client-facing text rendered as `{"error": ...}`.
    `details` is optional operator-facing context; only set it where the
    endpoint contract allows diagnostics to leave the server.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, *, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class InvalidInput(PipelineError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InvalidFileType(InvalidInput):
    default_message = "Invalid file type. Only MP4, MOV, WebM, and MKV are allowed."


def format_size(num_bytes: int) -> str:
    """Whole-unit size for messages: 2147483648 -> "2GB", 1536 -> "1.5KB"."""
    value = float(num_bytes)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            break
        value /= 1024
    return f"{value:.1f}".rstrip("0").rstrip(".") + unit


class FileTooLarge(InvalidInput):
    default_message = "File too large."

    @classmethod
    def over(cls, max_bytes: int) -> "FileTooLarge":
        return cls(f"File too large. Maximum size is {format_size(max_bytes)}.")


class MissingField(InvalidInput):
    default_message = "Missing required field"


class InvalidStatus(InvalidInput):
    default_message = "Invalid status"


class NotFound(PipelineError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class NoVideo(NotFound):
    default_message = "No video available for this lecture"


class Unauthenticated(PipelineError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "No authorization token provided"


class InvalidToken(Unauthenticated):
    default_message = "Invalid or expired token"


class InvalidApiKey(Unauthenticated):
    default_message = "Invalid API key"


class Forbidden(PipelineError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Admin access required"


class AuthFailure(PipelineError):
    default_message = "Authentication failed"


class RateLimited(PipelineError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests, please try again later."

    def __init__(self, message: str | None = None, *, retry_after: int | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class Conflict(PipelineError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"


class UpstreamError(PipelineError):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Upstream service error"


class SigningUnavailable(UpstreamError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Failed to generate stream URL"


class StorageNotConfigured(UpstreamError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Storage not configured"


class ProcessingFailed(PipelineError):
    default_message = "Failed to process video"
