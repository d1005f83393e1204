"""
Error Taxonomy and Global Error Handling

This module defines the exception hierarchy shared by the storage layer, the
vector index, the provider clients and the pipelines, together with the
FastAPI exception handlers that translate them into HTTP responses.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
- Keep provider failures classifiable (retryable vs. fatal)
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("hask.errors")


# ---------------------------------------------------------------------
# Exception Hierarchy
# ---------------------------------------------------------------------

class HaskError(RuntimeError):
    """Base class for all application errors."""


class InvalidURLError(ValueError):
    """Raised when a URL cannot be normalized (missing scheme or host)."""


class StorageError(HaskError):
    """Raised when the durable store fails (connection loss, constraint violation)."""


class VectorIndexError(HaskError):
    """Raised when vectors cannot be added to or searched in the index."""


class ProviderFailure(HaskError):
    """Base class for failures of an external AI provider call."""


class ProviderTimeout(ProviderFailure):
    """The provider did not answer within the configured timeout."""


class ProviderRateLimited(ProviderFailure):
    """The provider rejected the call with HTTP 429."""

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class ProviderError(ProviderFailure):
    """The provider reported a failure with a status code."""

    def __init__(self, code: Optional[int], message: str) -> None:
        super().__init__(f"provider error {code}: {message}")
        self.code = code
        self.message = message


class MalformedResponse(ProviderFailure):
    """The provider answered, but the body violates its contract."""


class IngestionFailed(HaskError):
    """
    Terminal failure of an ingestion run.

    The original exception is always chained as ``__cause__``.
    """

    def __init__(self, stage: str, reason: str) -> None:
        super().__init__(f"ingestion failed at {stage}: {reason}")
        self.stage = stage
        self.reason = reason


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def ingestion_failed_handler(
    request: Request,
    exc: IngestionFailed,
) -> JSONResponse:
    """
    Report a failed save request.

    Storage failures map to 503 (retry later), provider and index failures
    to 502. Only the failing stage and the error class are exposed.
    """
    cause = exc.__cause__
    status_code = 503 if isinstance(cause, StorageError) else 502

    payload: Dict[str, Any] = {
        "error": "ingestion_failed",
        "stage": exc.stage,
        "detail": type(cause).__name__ if cause is not None else "IngestionFailed",
    }
    return JSONResponse(status_code=status_code, content=payload)


async def storage_error_handler(
    request: Request,
    exc: StorageError,
) -> JSONResponse:
    logger.error(
        "Storage failure during request: %s %s (%s)",
        request.method,
        request.url.path,
        exc,
    )
    return JSONResponse(
        status_code=503,
        content={"error": "storage_unavailable", "detail": "Storage unavailable"},
    )


async def provider_failure_handler(
    request: Request,
    exc: ProviderFailure,
) -> JSONResponse:
    logger.error(
        "Provider failure during request: %s %s (%s: %s)",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc,
    )
    return JSONResponse(
        status_code=502,
        content={"error": "provider_unavailable", "detail": type(exc).__name__},
    )


async def invalid_url_handler(
    request: Request,
    exc: InvalidURLError,
) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": "invalid_url", "detail": str(exc)},
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    This handler should be registered with FastAPI as the final safety net
    for any exception not otherwise handled by route-level or framework-level
    handlers.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    - Ensures consistent error response format across the entire API.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
