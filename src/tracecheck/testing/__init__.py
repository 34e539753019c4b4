"""
Test utilities for tracecheck.

Components:
    TraceAssertions: Count assertions with the snapshot dumped on failure
    InMemoryCollector: SpanSource fed by the OpenTelemetry SDK or by hand

Example:
    >>> from tracecheck.testing import InMemoryCollector, TraceAssertions
    >>>
    >>> collector = InMemoryCollector(exporter)
    >>> batch = ExportWaiter(collector).wait_for_traces(1)
    >>> TraceAssertions(batch).assert_span_kind_count(SpanKind.SERVER, 1)

Note:
    This module is intended for test code only.
"""

from tracecheck.testing.assertions import TraceAssertions
from tracecheck.testing.collector import InMemoryCollector

__all__ = [
    "TraceAssertions",
    "InMemoryCollector",
]
