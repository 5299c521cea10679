"""Structured error helpers for API responses and sync pipeline errors."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse


def build_error_payload(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    payload = {"error": {"code": code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return payload


class AppError(Exception):
    """Application-scoped error for standardized API responses."""

    def __init__(self, status_code: int, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = build_error_payload(code, message, details)


async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.payload)


def raise_app_error(status_code: int, code: str, message: str, details: Optional[Dict[str, Any]] = None) -> None:
    """Raise an AppError with a standardized error shape."""
    raise AppError(status_code, code, message, details)


# ============================================================================
# Sync pipeline errors
# ============================================================================


class SyncError(Exception):
    """Base class for failures of a single source-processing attempt."""

    code = "SYNC_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class FetchError(SyncError):
    """Network failure, timeout or non-2xx response while fetching a source."""

    code = "FETCH_ERROR"

    def __init__(self, message: str, url: str, status_code: Optional[int] = None):
        super().__init__(message, {"url": url, "status_code": status_code})
        self.url = url
        self.status_code = status_code


class ExtractionError(SyncError):
    """Structured extraction failed after the retry budget was exhausted."""

    code = "EXTRACTION_ERROR"

    def __init__(self, message: str, source_url: str, last_error: Optional[BaseException] = None):
        super().__init__(
            message,
            {"source_url": source_url, "last_error": str(last_error) if last_error else None},
        )
        self.source_url = source_url
        self.last_error = last_error


class StoreError(SyncError):
    """Persistence failure in the relational store."""

    code = "STORE_ERROR"


class SourceNotFoundError(SyncError):
    """No active tracked source exists for the requested entity."""

    code = "SOURCE_NOT_FOUND"


class ExtractionBackendError(Exception):
    """A single backend call failed or returned an unusable response (retryable)."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body
