"""
Query surface over one frozen snapshot of exported spans.

A TraceInspector is built once from a batch and is read-only afterwards:
every query is a pure filter-and-count, so assertions over the same batch
are deterministic and can be repeated. Matching is always exact equality on
key and typed value, never substring or pattern matching.

Example:
    >>> from tracecheck import SpanKind, TraceInspector
    >>>
    >>> traces = TraceInspector(batch)
    >>> assert len(traces.trace_ids) == 1
    >>> assert traces.count_spans_by_kind(SpanKind.SERVER) == 2
    >>> assert traces.count_spans_by_name("GET /app/greeting") == 1
    >>> assert traces.count_filtered_attributes("http.target", "/app/greeting") == 1
    >>> assert traces.count_filtered_event_attributes("exception.message", "This is expected") == 1
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from typing import Any

from tracecheck.attributes import Attributes, AttributeValue
from tracecheck.exceptions import MalformedSpanError
from tracecheck.model import RawSpan, SpanBatch, SpanKind, Trace, group_by_trace
from tracecheck.otlp import decode_export
from tracecheck.types import TraceId

logger = logging.getLogger(__name__)


class InspectorState(Enum):
    """Lifecycle of a TraceInspector; there is no way back to CONSTRUCTING."""

    CONSTRUCTING = "constructing"
    QUERYABLE = "queryable"


def _as_attribute_value(value: Any) -> AttributeValue | None:
    # None, dicts and other values no attribute can hold match nothing
    try:
        return AttributeValue.of(value)
    except TypeError:
        return None


def collapse_duplicates(spans: Iterable[RawSpan]) -> tuple[RawSpan, ...]:
    """
    Collapse spans redelivered with the same (trace_id, span_id).

    The last delivered copy wins and takes the position of the first one.
    Spans that merely look alike but have different span ids are kept.
    """
    latest: dict[tuple[str, str], RawSpan] = {}
    total = 0
    for span in spans:
        total += 1
        latest[(span.trace_id, span.span_id)] = span
    if len(latest) != total:
        logger.debug("Collapsed %d redelivered span(s)", total - len(latest))
    return tuple(latest.values())


class TraceInspector:
    """
    Read-only view over a batch of spans, grouped into traces.

    The inspector accepts a SpanBatch, raw export bytes/text (decoded with
    ``decode_export``), or any iterable of RawSpan instances and raw span
    mappings. Mappings that lack a required field are excluded from every
    count and listed in ``malformed``.

    All state is fixed during construction, so one inspector may be queried
    from several threads without locking.

    Attributes:
        trace_ids: Distinct trace ids in the snapshot
        malformed: Records excluded because they could not be read
    """

    def __init__(self, batch: SpanBatch | bytes | str | Iterable[RawSpan | Mapping[str, Any]]) -> None:
        self._state = InspectorState.CONSTRUCTING

        if isinstance(batch, bytes | bytearray | str):
            batch = decode_export(batch)

        malformed: list[MalformedSpanError] = []
        accepted: list[RawSpan] = []

        if isinstance(batch, SpanBatch):
            accepted.extend(batch.spans)
            malformed.extend(batch.rejected)
        else:
            for record in batch:
                if isinstance(record, RawSpan):
                    accepted.append(record)
                    continue
                try:
                    accepted.append(RawSpan.from_record(record))
                except MalformedSpanError as exc:
                    malformed.append(exc)

        if malformed:
            logger.warning("Excluding %d malformed span record(s) from inspection", len(malformed))

        self._spans = collapse_duplicates(accepted)
        self._malformed = tuple(malformed)
        self._traces = {
            trace_id: Trace(trace_id=trace_id, spans=spans)
            for trace_id, spans in group_by_trace(self._spans).items()
        }
        self._trace_ids = frozenset(self._traces)
        self._state = InspectorState.QUERYABLE

    @property
    def state(self) -> InspectorState:
        return self._state

    @property
    def trace_ids(self) -> frozenset[TraceId]:
        return self._trace_ids

    @property
    def malformed(self) -> tuple[MalformedSpanError, ...]:
        return self._malformed

    # =========================================================================
    # Counting
    # =========================================================================

    def count_spans(self) -> int:
        """Total number of spans in the snapshot."""
        return len(self._spans)

    def count_spans_by_kind(self, kind: SpanKind | int | str) -> int:
        """
        Count spans of the given kind.

        Args:
            kind: A SpanKind, its wire number, its name, or an
                ``opentelemetry.trace.SpanKind``. A value naming no kind
                matches no span.
        """
        try:
            wanted = SpanKind.from_wire(kind)
        except ValueError:
            return 0
        return sum(1 for span in self._spans if span.kind is wanted)

    def count_spans_by_name(self, name: str) -> int:
        """Count spans whose name equals ``name`` exactly."""
        return sum(1 for span in self._spans if span.name == name)

    def count_filtered_attributes(self, key: str, value: Any) -> int:
        """Count spans whose span attribute ``key`` is typed-equal to ``value``."""
        return self._count_spans_matching(lambda span: span.span_attributes, key, value)

    def count_filtered_resource_attributes(self, key: str, value: Any) -> int:
        """
        Count spans whose resource attribute ``key`` is typed-equal to ``value``.

        Counting is per span: spans from the same process each count.
        """
        return self._count_spans_matching(lambda span: span.resource_attributes, key, value)

    def count_filtered_event_attributes(self, key: str, value: Any) -> int:
        """
        Count events, across all spans, whose attribute ``key`` equals ``value``.

        A span with two matching events contributes two.
        """
        expected = _as_attribute_value(value)
        if expected is None:
            return 0
        return sum(
            1
            for span in self._spans
            for event in span.events
            if event.attributes.get(key) == expected
        )

    def count_spans_by_attribute(self, key: str) -> int:
        """Count spans that carry span attribute ``key`` with any value."""
        return sum(1 for span in self._spans if key in span.span_attributes)

    def _count_spans_matching(
        self,
        attributes_of: Callable[[RawSpan], Attributes],
        key: str,
        value: Any,
    ) -> int:
        expected = _as_attribute_value(value)
        if expected is None:
            return 0
        return sum(1 for span in self._spans if attributes_of(span).get(key) == expected)

    # =========================================================================
    # Lookup
    # =========================================================================

    def spans(self) -> tuple[RawSpan, ...]:
        """All spans in export order."""
        return self._spans

    def spans_by_name(self, name: str) -> tuple[RawSpan, ...]:
        return tuple(span for span in self._spans if span.name == name)

    def traces(self) -> tuple[Trace, ...]:
        """All traces, in the order their first span was exported."""
        return tuple(self._traces.values())

    def trace(self, trace_id: TraceId) -> Trace:
        """
        Get one trace by id.

        Raises:
            KeyError: If no span in the snapshot has this trace id
        """
        return self._traces[trace_id.lower()]

    def find_resource_attribute(self, key: str) -> Any | None:
        """
        Return the value of resource attribute ``key`` on the first span carrying it.

        Returns:
            The plain Python value, or None if no span has the attribute
        """
        for span in self._spans:
            value = span.resource_attributes.get(key)
            if value is not None:
                return value.to_python()
        return None

    def describe(self) -> str:
        """Multi-line dump of the snapshot, for assertion messages."""
        lines = [
            f"{self.count_spans()} span(s) in {len(self._trace_ids)} trace(s), "
            f"{len(self._malformed)} malformed record(s)"
        ]
        for trace in self._traces.values():
            lines.append(f"trace {trace.trace_id}:")
            lines.extend(f"  {span.describe()}" for span in trace.spans)
        lines.extend(f"malformed: {error.reason}" for error in self._malformed)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"TraceInspector(spans={self.count_spans()}, traces={len(self._trace_ids)}, "
            f"malformed={len(self._malformed)})"
        )


__all__ = [
    "InspectorState",
    "TraceInspector",
    "collapse_duplicates",
]
