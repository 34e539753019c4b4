"""
Shared test fixtures for the tracecheck library.

Usage:
    from tests.fixtures import (
        TRACE_A,
        greeting_trace,
        exception_trace,
        make_span,
        otlp_json_export,
        FakeClock,
        ScriptedSource,
    )
"""

from tests.fixtures.sources import FakeClock, ScriptedSource
from tests.fixtures.spans import (
    AGENT_VERSION,
    RESOURCE,
    TRACE_A,
    TRACE_B,
    TRACE_C,
    exception_trace,
    greeting_trace,
    make_span,
    next_span_id,
    otlp_json_export,
)

__all__ = [
    "AGENT_VERSION",
    "RESOURCE",
    "TRACE_A",
    "TRACE_B",
    "TRACE_C",
    "make_span",
    "next_span_id",
    "greeting_trace",
    "exception_trace",
    "otlp_json_export",
    "FakeClock",
    "ScriptedSource",
]
