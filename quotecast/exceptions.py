"""Custom exceptions for the render service.

Each exception carries a machine-readable code and an HTTP status so that the
API layer can turn any failure into a structured error response.
"""

from typing import Any

from quotecast.constants.error_codes import get_error_spec
from quotecast.schemas.render import ErrorInfo


class QuoteCastError(Exception):
    """Base exception for all render service errors."""

    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.details = details
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for API response."""
        spec = get_error_spec(self.code)
        return ErrorInfo(
            error=self.code,
            message=self.message,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
            details=self.details,
        )


# =============================================================================
# Client Errors (400/404)
# =============================================================================


class InvalidInputError(QuoteCastError):
    """Request payload failed validation."""

    code = "INVALID_INPUT"
    status_code = 400
    message = "Invalid input"

    def __init__(self, reason: str | None = None, *, field: str | None = None):
        message = reason or self.message
        if field:
            message = f"{field}: {message}"
        details = {"field": field} if field else None
        super().__init__(message, details=details)
        self.field = field


class AssetNotFoundError(QuoteCastError):
    """Background image does not exist at the provider."""

    code = "ASSET_NOT_FOUND"
    status_code = 404
    message = "Background image not found"

    def __init__(self, asset_id: str | None = None):
        message = f"Background image not found: {asset_id}" if asset_id else self.message
        super().__init__(message)
        self.asset_id = asset_id


# =============================================================================
# Upstream Errors (429/502)
# =============================================================================


class UpstreamUnavailableError(QuoteCastError):
    """Image provider unreachable, misconfigured or rate limiting us."""

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 502
    message = "Image provider is unavailable"

    def __init__(self, message: str | None = None, *, rate_limited: bool = False):
        if rate_limited:
            super().__init__(
                message or "Image provider rate limit reached",
                code="RATE_LIMITED",
                status_code=429,
            )
        else:
            super().__init__(message)
        self.rate_limited = rate_limited


class TransferFailedError(QuoteCastError):
    """Image download started but did not complete."""

    code = "TRANSFER_FAILED"
    status_code = 502
    message = "Background image download failed"


# =============================================================================
# Encoder Errors (500)
# =============================================================================


class RenderTimeoutError(QuoteCastError):
    """Encoder exceeded its wall-clock budget and was killed."""

    code = "RENDER_TIMEOUT"
    status_code = 500
    message = "Video rendering timed out"

    def __init__(self, timeout_s: float | None = None):
        message = f"Video rendering timed out after {timeout_s:g}s" if timeout_s else self.message
        super().__init__(message)
        self.timeout_s = timeout_s


class RenderFailedError(QuoteCastError):
    """Encoder exited with a non-zero status or could not be started."""

    code = "RENDER_FAILED"
    status_code = 500
    message = "Video rendering failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        returncode: int | None = None,
        stderr_tail: str | None = None,
    ):
        details: dict[str, Any] = {}
        if returncode is not None:
            details["returncode"] = returncode
        if stderr_tail:
            details["stderr_tail"] = stderr_tail
        if message is None and returncode is not None:
            message = f"Encoder exited with code {returncode}"
        super().__init__(message, details=details or None)
        self.returncode = returncode
        self.stderr_tail = stderr_tail


# =============================================================================
# Storage Errors (500/503)
# =============================================================================


class StorageFailureError(QuoteCastError):
    """Durable upload failed."""

    code = "STORAGE_FAILURE"
    status_code = 500
    message = "Failed to upload video to storage"


class StorageNotConfiguredError(QuoteCastError):
    """Persist requested in strict mode without durable storage."""

    code = "STORAGE_NOT_CONFIGURED"
    status_code = 503
    message = "Durable storage is not configured"


class MetadataPersistError(QuoteCastError):
    """Metadata write failed. Logged only, never returned to callers."""

    code = "METADATA_PERSIST_FAILURE"
    status_code = 500
    message = "Failed to persist video metadata"
