"""Tidemark exception hierarchy."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    """Error classes used by retry and catch routing in the export graph."""

    SDK_CLIENT = "SdkClientException"
    THROTTLED = "ThrottlingException"
    PARAMETER_NOT_FOUND = "ParameterNotFoundException"
    INVALID_EXPORT_TIME = "InvalidExportTimeException"
    UNCLASSIFIED = "Unclassified"


class TidemarkError(Exception):
    """Base exception for all Tidemark errors."""

    error_kind: ErrorKind = ErrorKind.UNCLASSIFIED


class ConfigurationError(TidemarkError):
    """Invalid configuration detected while loading settings."""


class SdkClientError(TidemarkError):
    """Transient AWS SDK failure (connection, 5xx, throttled service)."""

    error_kind = ErrorKind.SDK_CLIENT


class ParameterNotFoundError(TidemarkError):
    """A workflow parameter expected to exist is missing."""

    error_kind = ErrorKind.PARAMETER_NOT_FOUND

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Parameter {key!r} not found")


class ParameterThrottledError(TidemarkError):
    """The parameter store rejected a call because of throttling."""

    error_kind = ErrorKind.THROTTLED


class InvalidExportTimeError(TidemarkError):
    """The export service rejected the requested export time range."""

    error_kind = ErrorKind.INVALID_EXPORT_TIME


class ExportServiceError(TidemarkError):
    """Non-retryable export service failure."""


class NotificationError(TidemarkError):
    """Publishing a workflow notification failed."""


class LeaseError(TidemarkError):
    """The cycle lease backend failed."""


class GraphError(TidemarkError):
    """The export graph received an event its current step cannot handle."""


def classify(exc: BaseException) -> ErrorKind:
    """Return the routing class for an exception raised by a task action."""
    if isinstance(exc, TidemarkError):
        return exc.error_kind
    return ErrorKind.UNCLASSIFIED
