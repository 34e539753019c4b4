"""
tracecheck - Trace verification for smoke tests of instrumented services.

This library provides:
- Export Waiter polling a test collector until the expected traces arrive
- Trace Inspector answering count queries over a frozen span snapshot
- Typed attribute matching (span, resource and event attributes)
- OTLP export decoding (protobuf, protobuf JSON and OTLP/JSON)
- Test assertions and an in-memory collector for unit tests
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("tracecheck")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from tracecheck.attributes import Attributes, AttributeType, AttributeValue
from tracecheck.collector import CollectorClient, SpanSource
from tracecheck.exceptions import (
    BatchDecodeError,
    CollectorError,
    MalformedSpanError,
    TraceCheckError,
    WaitTimeoutError,
)
from tracecheck.inspector import InspectorState, TraceInspector
from tracecheck.model import RawSpan, SpanBatch, SpanEvent, SpanKind, Trace, group_by_trace
from tracecheck.otlp import decode_export, from_readable_spans
from tracecheck.types import SpanId, TraceId
from tracecheck.waiter import ExportWaiter, WaiterConfig, WaitState, wait_for_traces

__all__ = [
    "__version__",
    # Model
    "RawSpan",
    "SpanEvent",
    "SpanKind",
    "SpanBatch",
    "Trace",
    "group_by_trace",
    "TraceId",
    "SpanId",
    # Attributes
    "Attributes",
    "AttributeType",
    "AttributeValue",
    # Decoding
    "decode_export",
    "from_readable_spans",
    # Collector
    "SpanSource",
    "CollectorClient",
    # Waiter
    "ExportWaiter",
    "WaiterConfig",
    "WaitState",
    "wait_for_traces",
    # Inspector
    "TraceInspector",
    "InspectorState",
    # Exceptions
    "TraceCheckError",
    "WaitTimeoutError",
    "MalformedSpanError",
    "CollectorError",
    "BatchDecodeError",
]
