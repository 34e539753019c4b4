"""Library exceptions for the tracecheck package."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tracecheck.model import SpanBatch


class TraceCheckError(Exception):
    """Base exception for tracecheck library."""

    pass


class WaitTimeoutError(TraceCheckError):
    """
    Raised when the expected number of traces was not exported in time.

    The partial batch seen by the last successful poll is kept on the error
    so tests can still make diagnostic assertions on it.

    Attributes:
        expected_count: Number of distinct traces the caller waited for
        observed_count: Number of distinct traces seen at the deadline
        batch: The last batch fetched from the collector (may be empty)
        timeout: Seconds waited before giving up
    """

    def __init__(
        self,
        expected_count: int,
        observed_count: int,
        batch: SpanBatch,
        timeout: float,
    ) -> None:
        self.expected_count = expected_count
        self.observed_count = observed_count
        self.batch = batch
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout}s waiting for {expected_count} trace(s): "
            f"observed {observed_count} trace(s) in {len(batch.spans)} span(s)"
        )


class MalformedSpanError(TraceCheckError):
    """
    Describes a raw span record that lacks a required field.

    These are collected rather than raised: the inspector excludes the
    record from every count and exposes the error on ``inspector.malformed``.

    Attributes:
        reason: Human readable description of what is missing or invalid
        record: The offending record, as received
    """

    def __init__(self, reason: str, record: Mapping[str, Any] | Any | None = None) -> None:
        self.reason = reason
        self.record = record
        super().__init__(f"Malformed span record: {reason}")


class CollectorError(TraceCheckError):
    """Raised when the test collector cannot be reached or answers with an error."""

    def __init__(self, endpoint: str, message: str, status_code: int | None = None) -> None:
        self.endpoint = endpoint
        self.status_code = status_code
        status_info = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Collector request to {endpoint} failed{status_info}: {message}")


class BatchDecodeError(TraceCheckError):
    """Raised when an exported payload cannot be parsed at all."""

    pass


__all__ = [
    "TraceCheckError",
    "WaitTimeoutError",
    "MalformedSpanError",
    "CollectorError",
    "BatchDecodeError",
]
