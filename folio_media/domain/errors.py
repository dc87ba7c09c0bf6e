"""Domain exceptions for the media endpoints."""

from __future__ import annotations


class MediaError(Exception):
    """Client-facing failure carrying a stable code and HTTP status."""

    code = "media_error"
    title = "Invalid request"
    status = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidPath(MediaError):
    """Requested path escapes the trusted root."""

    code = "invalid_path"
    title = "Invalid path"
    status = 400


class UnsupportedFormat(MediaError):
    """File extension is not in the whitelist."""

    code = "unsupported_media_type"
    title = "Unsupported file type"
    status = 400


class NotFound(MediaError):
    code = "not_found"
    title = "Resource not found"
    status = 404


class ExternalServiceError(Exception):
    """A third-party API call failed or returned an unusable payload."""

    def __init__(self, service: str, message: str):
        self.service = service
        self.message = message
        super().__init__(f"{service}: {message}")
