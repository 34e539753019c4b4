"""
Data model for exported spans and the traces they form.

Spans are immutable records of units of work exported by an instrumented
process. A trace is the read-only group of every span sharing one trace id;
it is always derived from a batch and never updated in place.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from tracecheck.attributes import EMPTY_ATTRIBUTES, Attributes
from tracecheck.exceptions import MalformedSpanError
from tracecheck.types import SpanId, TraceId

logger = logging.getLogger(__name__)

TRACE_ID_HEX_LENGTH = 32
SPAN_ID_HEX_LENGTH = 16

_HEX_RE = re.compile(r"^[0-9a-f]+$")


class SpanKind(Enum):
    """
    Role a span plays in a trace.

    Values are the OTLP wire enum numbers, so a kind read straight from an
    export can be converted with ``SpanKind(number)``.
    """

    UNSPECIFIED = 0
    INTERNAL = 1
    SERVER = 2
    CLIENT = 3
    PRODUCER = 4
    CONSUMER = 5

    @classmethod
    def from_wire(cls, value: SpanKind | int | str) -> SpanKind:
        """
        Convert an OTLP kind given as number, proto name or short name.

        Example:
            >>> SpanKind.from_wire(2)
            <SpanKind.SERVER: 2>
            >>> SpanKind.from_wire("SPAN_KIND_CLIENT")
            <SpanKind.CLIENT: 3>
            >>> SpanKind.from_wire("producer")
            <SpanKind.PRODUCER: 4>

        Raises:
            ValueError: If the value names no known kind
        """
        if isinstance(value, SpanKind):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Unknown span kind: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            name = value.strip().upper()
            name = name.removeprefix("SPAN_KIND_")
            try:
                return cls[name]
            except KeyError:
                raise ValueError(f"Unknown span kind: {value!r}") from None
        # opentelemetry.trace.SpanKind and similar enums
        kind_name = getattr(value, "name", None)
        if isinstance(kind_name, str) and kind_name in cls.__members__:
            return cls[kind_name]
        raise ValueError(f"Unknown span kind: {value!r}")


def normalize_id(value: Any, hex_length: int, field_name: str) -> str:
    """
    Normalize a trace or span identifier to lower-case hex.

    Accepts raw bytes (as found in protobuf messages), hex strings and
    integers (as found on SDK span contexts).

    Raises:
        ValueError: If the identifier is empty, all zeros, not hex,
            or of the wrong length
    """
    if isinstance(value, bytes | bytearray):
        text = bytes(value).hex()
    elif isinstance(value, int) and not isinstance(value, bool):
        text = format(value, f"0{hex_length}x")
    elif isinstance(value, str):
        text = value.strip().lower()
    else:
        raise ValueError(f"{field_name} must be bytes, int or hex string, got {type(value).__name__}")

    if not text:
        raise ValueError(f"{field_name} is empty")
    if len(text) != hex_length or not _HEX_RE.match(text):
        raise ValueError(f"{field_name} must be {hex_length} hex characters, got {text!r}")
    if text.count("0") == hex_length:
        raise ValueError(f"{field_name} is all zeros")
    return text


def _summarize(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in error['loc']) or 'record'}: {error['msg']}"
        for error in exc.errors()
    )


class _Record(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class SpanEvent(_Record):
    """
    A timestamped sub-record of a span, such as a recorded exception.

    Attributes:
        name: Event name (e.g. ``"exception"``)
        attributes: Event-level attributes
    """

    name: str
    attributes: Attributes = Field(default=EMPTY_ATTRIBUTES)


class RawSpan(_Record):
    """
    One exported span, exactly as delivered by the collector.

    Fields may be given by their Python names or by their camelCase export
    names (``traceId``, ``spanAttributes``...).

    Attributes:
        trace_id: Lower-case hex trace identifier (32 characters)
        span_id: Lower-case hex span identifier (16 characters)
        parent_span_id: Hex identifier of the parent span, None for roots.
            An all-zero or unreadable parent id is read as None.
        kind: SpanKind of the span
        name: Span name (e.g. ``"GET /app/greeting"``)
        resource_attributes: Attributes of the process that produced the span
        span_attributes: Attributes scoped to this span
        events: Events in temporal order

    Example:
        >>> span = RawSpan(
        ...     trace_id="5b8efff798038103d269b633813fc60c",
        ...     span_id="eee19b7ec3c1b174",
        ...     kind="SERVER",
        ...     name="GET /app/greeting",
        ...     span_attributes={"http.target": "/app/greeting"},
        ... )
        >>> span.kind
        <SpanKind.SERVER: 2>
    """

    trace_id: TraceId
    span_id: SpanId
    parent_span_id: SpanId | None = None
    kind: SpanKind
    name: str = ""
    resource_attributes: Attributes = Field(default=EMPTY_ATTRIBUTES)
    span_attributes: Attributes = Field(default=EMPTY_ATTRIBUTES)
    events: tuple[SpanEvent, ...] = ()

    @field_validator("trace_id", mode="before")
    @classmethod
    def _normalize_trace_id(cls, value: Any) -> str:
        return normalize_id(value, TRACE_ID_HEX_LENGTH, "trace_id")

    @field_validator("span_id", mode="before")
    @classmethod
    def _normalize_span_id(cls, value: Any) -> str:
        return normalize_id(value, SPAN_ID_HEX_LENGTH, "span_id")

    @field_validator("parent_span_id", mode="before")
    @classmethod
    def _normalize_parent_span_id(cls, value: Any) -> str | None:
        # an all-zero or unreadable parent marks a root, it never rejects the span
        if value is None or value in (b"", "", 0):
            return None
        try:
            return normalize_id(value, SPAN_ID_HEX_LENGTH, "parent_span_id")
        except ValueError:
            logger.debug("Treating unreadable parent_span_id %r as a root", value)
            return None

    @field_validator("kind", mode="before")
    @classmethod
    def _coerce_kind(cls, value: Any) -> SpanKind:
        return SpanKind.from_wire(value)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> RawSpan:
        """
        Validate one raw record into a RawSpan.

        Raises:
            MalformedSpanError: If a required field is missing or invalid
        """
        try:
            return cls.model_validate(record)
        except ValidationError as exc:
            raise MalformedSpanError(_summarize(exc), record) from exc

    @property
    def is_root(self) -> bool:
        return self.parent_span_id is None

    def describe(self) -> str:
        """One-line summary used in assertion diagnostics."""
        parent = self.parent_span_id or "-"
        return (
            f"{self.trace_id}/{self.span_id} parent={parent} "
            f"{self.kind.name} {self.name!r} attrs={self.span_attributes.to_python()}"
        )


@dataclass(frozen=True)
class Trace:
    """
    Read-only group of all spans sharing one trace id.

    Attributes:
        trace_id: The shared trace identifier
        spans: Spans in export order
    """

    trace_id: TraceId
    spans: tuple[RawSpan, ...]

    @cached_property
    def span_ids(self) -> frozenset[SpanId]:
        return frozenset(span.span_id for span in self.spans)

    @property
    def root_spans(self) -> tuple[RawSpan, ...]:
        """Spans without a parent, or whose parent is not part of this trace."""
        return tuple(
            span
            for span in self.spans
            if span.parent_span_id is None or span.parent_span_id not in self.span_ids
        )

    def children_of(self, span_id: SpanId) -> tuple[RawSpan, ...]:
        return tuple(span for span in self.spans if span.parent_span_id == span_id)

    def __iter__(self) -> Iterator[RawSpan]:
        return iter(self.spans)

    def __len__(self) -> int:
        return len(self.spans)


@dataclass(frozen=True)
class SpanBatch:
    """
    Snapshot of every span a collector held at the time of one poll.

    Attributes:
        spans: Well-formed spans in export order
        rejected: Records that could not be turned into spans
    """

    spans: tuple[RawSpan, ...] = ()
    rejected: tuple[MalformedSpanError, ...] = field(default=())

    @classmethod
    def empty(cls) -> SpanBatch:
        return cls()

    @cached_property
    def trace_ids(self) -> tuple[TraceId, ...]:
        """Distinct trace ids in first-seen order."""
        return tuple(dict.fromkeys(span.trace_id for span in self.spans))

    @property
    def trace_count(self) -> int:
        return len(self.trace_ids)

    def __len__(self) -> int:
        return len(self.spans)

    def __iter__(self) -> Iterator[RawSpan]:
        return iter(self.spans)


def group_by_trace(spans: Iterable[RawSpan]) -> dict[TraceId, tuple[RawSpan, ...]]:
    """
    Partition spans by trace id.

    Traces are keyed in first-seen order and keep the export order of
    their spans. Every span lands in exactly one group.
    """
    groups: dict[TraceId, list[RawSpan]] = {}
    for span in spans:
        groups.setdefault(span.trace_id, []).append(span)
    return {trace_id: tuple(group) for trace_id, group in groups.items()}


__all__ = [
    "SpanKind",
    "SpanEvent",
    "RawSpan",
    "Trace",
    "SpanBatch",
    "group_by_trace",
    "normalize_id",
    "TRACE_ID_HEX_LENGTH",
    "SPAN_ID_HEX_LENGTH",
]
