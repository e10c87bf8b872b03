"""Exception hierarchy and user-facing copy for processing error categories."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from pipewatch.models import ProcessingError, now_iso
from pipewatch.statuses import ErrorType


class PipewatchError(Exception):
    """Base class for errors raised by pipewatch."""


class EventParseError(PipewatchError, ValueError):
    """A stream payload was not valid JSON or not a known event shape."""

    def __init__(self, message: str, payload: str | None = None) -> None:
        super().__init__(message)
        self.payload = payload


class TransportError(PipewatchError):
    """The stream connection could not be established or was lost."""


class ApiError(PipewatchError):
    """The REST API answered with a non-success status."""

    def __init__(self, message: str, status_code: int, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


ERROR_TITLES: Mapping[ErrorType, str] = MappingProxyType({
    ErrorType.NETWORK: "Network Connection Error",
    ErrorType.API: "API Processing Error",
    ErrorType.DATA: "Data Validation Error",
    ErrorType.QUOTA: "Usage Quota Exceeded",
    ErrorType.UNKNOWN: "Processing Error",
})

SUGGESTED_ACTIONS: Mapping[ErrorType, tuple[str, ...]] = MappingProxyType({
    ErrorType.NETWORK: (
        "Check your internet connection",
        "Verify firewall or VPN settings",
        "Try refreshing the page",
        "Wait a moment and retry",
    ),
    ErrorType.API: (
        "The service may be temporarily unavailable",
        "Check the status page for ongoing incidents",
        "Retry the operation in a few moments",
        "Contact support if the issue persists",
    ),
    ErrorType.DATA: (
        "Verify the recording file is not corrupted",
        "Ensure the file format is supported",
        "Check that the recording has audio content",
        "Try reprocessing from the beginning",
    ),
    ErrorType.QUOTA: (
        "You have reached your plan limits",
        "Upgrade your plan for more processing time",
        "Wait until your quota resets",
        "Contact support for quota adjustments",
    ),
    ErrorType.UNKNOWN: (
        "Try retrying the operation",
        "Refresh the page and try again",
        "Check the logs for details",
        "Contact support if the problem continues",
    ),
})

CONNECTION_LOST = "Connection to server lost. Please check your network and try again."
CONNECTION_FAILED = "Failed to establish connection. Please try again."


def network_error(message: str = CONNECTION_LOST, details: str | None = None) -> ProcessingError:
    return ProcessingError(type=ErrorType.NETWORK, message=message, details=details, timestamp=now_iso())


def classify_error_event(message: str, data: Any, timestamp: str | None = None) -> ProcessingError:
    """Build the error record for a server-sent ``error`` event.

    The server reports processing failures, so the category is ``api`` unless
    the payload names another known category.
    """
    error_type = ErrorType.API
    details = code = None
    if isinstance(data, dict):
        named = data.get("errorType") or data.get("type")
        if isinstance(named, str) and named in {e.value for e in ErrorType}:
            error_type = ErrorType(named)
        raw_details = data.get("details") or data.get("error")
        if raw_details is not None:
            details = str(raw_details)
        if data.get("code") is not None:
            code = str(data["code"])
    return ProcessingError(
        type=error_type,
        message=message or "An error occurred during processing",
        details=details,
        code=code,
        timestamp=timestamp or now_iso(),
    )
