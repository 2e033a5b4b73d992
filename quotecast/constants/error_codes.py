"""Error codes dictionary for the render API.

This is the single source of truth for all error codes, their retryability,
and suggested recovery actions. Used by exception handlers to generate
machine-readable error responses.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_fix: str
    parameters: dict[str, Any]


# Error codes dictionary - single source of truth
ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Client errors (not retryable, fix input)
    # ==========================================================================
    "INVALID_INPUT": {
        "retryable": False,
        "suggested_fix": "Correct the field named in the error and resend the request",
    },
    "ASSET_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Pick another background image; this one no longer exists",
    },
    # ==========================================================================
    # Upstream image provider errors
    # ==========================================================================
    "UPSTREAM_UNAVAILABLE": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
    "RATE_LIMITED": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 60000, "max_retries": 1},
    },
    "TRANSFER_FAILED": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 1000, "max_retries": 2},
    },
    # ==========================================================================
    # Encoder errors
    # ==========================================================================
    "RENDER_TIMEOUT": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "suggested_fix": "Shorten the duration or disable zoom and blur",
        "parameters": {"delay_ms": 5000, "max_retries": 1},
    },
    "RENDER_FAILED": {
        "retryable": False,
    },
    # ==========================================================================
    # Storage errors
    # ==========================================================================
    "STORAGE_FAILURE": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
    "STORAGE_NOT_CONFIGURED": {
        "retryable": False,
        "suggested_fix": "Request the video without persist=true to receive it as a stream",
    },
    "METADATA_PERSIST_FAILURE": {
        "retryable": False,
    },
    # ==========================================================================
    # System errors
    # ==========================================================================
    "INTERNAL_ERROR": {
        "retryable": True,
        "suggested_action": "retry_with_backoff",
        "parameters": {"delay_ms": 2000, "max_retries": 2},
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested actions
    """
    return ERROR_CODES.get(code, {"retryable": False})

