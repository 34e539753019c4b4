"""
Decoding of exported trace data into span batches.

The test collector serves what it received from the instrumented process as
OTLP ``ExportTraceServiceRequest`` messages. This module turns those, in
any of the shapes they are commonly handed around in, into a SpanBatch:

- a protobuf message, or its binary encoding
- protobuf JSON mapping (base64 ids), as produced by ``MessageToJson``
- OTLP/JSON (hex ids), as produced by the OTLP HTTP exporter
- a JSON array of any of the above, as served by a collector that keeps
  every request it received

Spans from the OpenTelemetry SDK (e.g. from ``InMemorySpanExporter``) can
be converted with ``from_readable_spans``.

Example:
    >>> from tracecheck.otlp import decode_export
    >>>
    >>> batch = decode_export(response.content)
    >>> batch.trace_count
    1
"""

from __future__ import annotations

import base64
import json
import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from google.protobuf import json_format
from google.protobuf.message import DecodeError
from opentelemetry.proto.collector.trace.v1.trace_service_pb2 import (
    ExportTraceServiceRequest,
)

from tracecheck.attributes import Attributes
from tracecheck.exceptions import BatchDecodeError, MalformedSpanError
from tracecheck.model import (
    SPAN_ID_HEX_LENGTH,
    TRACE_ID_HEX_LENGTH,
    RawSpan,
    SpanBatch,
    SpanEvent,
)

if TYPE_CHECKING:
    from opentelemetry.proto.trace.v1.trace_pb2 import Span as ProtoSpan
    from opentelemetry.sdk.trace import ReadableSpan

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

# JSON id field -> hex length when given as OTLP/JSON hex
_ID_FIELDS = {
    "traceId": TRACE_ID_HEX_LENGTH,
    "trace_id": TRACE_ID_HEX_LENGTH,
    "spanId": SPAN_ID_HEX_LENGTH,
    "span_id": SPAN_ID_HEX_LENGTH,
    "parentSpanId": SPAN_ID_HEX_LENGTH,
    "parent_span_id": SPAN_ID_HEX_LENGTH,
}


def decode_export(payload: Any) -> SpanBatch:
    """
    Decode an exported payload into a SpanBatch.

    Args:
        payload: An ExportTraceServiceRequest, a sequence of them, JSON text
            or bytes, binary protobuf bytes, or already-parsed JSON

    Returns:
        SpanBatch with spans in export order. Records lacking a required
        field are left out of ``spans`` and reported in ``rejected``.

    Raises:
        BatchDecodeError: If the payload cannot be parsed at all
    """
    requests = _to_requests(payload)
    return batch_from_requests(requests)


def batch_from_requests(requests: Iterable[ExportTraceServiceRequest]) -> SpanBatch:
    """Flatten export requests into a SpanBatch, resource attributes joined onto each span."""
    spans: list[RawSpan] = []
    rejected: list[MalformedSpanError] = []

    for request in requests:
        for resource_spans in request.resource_spans:
            resource_attributes = Attributes.from_otlp(resource_spans.resource.attributes)
            for scope_spans in resource_spans.scope_spans:
                for proto_span in scope_spans.spans:
                    try:
                        spans.append(_span_from_proto(proto_span, resource_attributes))
                    except MalformedSpanError as exc:
                        rejected.append(exc)

    if rejected:
        logger.warning(
            "Rejected %d malformed span record(s) out of %d",
            len(rejected),
            len(rejected) + len(spans),
        )
    return SpanBatch(spans=tuple(spans), rejected=tuple(rejected))


def from_readable_spans(readable_spans: Iterable[ReadableSpan]) -> SpanBatch:
    """
    Convert OpenTelemetry SDK spans into a SpanBatch.

    Example:
        >>> exporter = InMemorySpanExporter()
        >>> ...
        >>> batch = from_readable_spans(exporter.get_finished_spans())
    """
    spans: list[RawSpan] = []
    rejected: list[MalformedSpanError] = []

    for readable in readable_spans:
        context = readable.context
        record = {
            "trace_id": context.trace_id if context is not None else None,
            "span_id": context.span_id if context is not None else None,
            "parent_span_id": readable.parent.span_id if readable.parent is not None else None,
            "kind": readable.kind,
            "name": readable.name,
            "resource_attributes": _plain_attributes(readable.resource.attributes),
            "span_attributes": _plain_attributes(readable.attributes),
            "events": tuple(
                {"name": event.name, "attributes": _plain_attributes(event.attributes)}
                for event in readable.events
            ),
        }
        try:
            spans.append(RawSpan.from_record(record))
        except MalformedSpanError as exc:
            rejected.append(exc)

    return SpanBatch(spans=tuple(spans), rejected=tuple(rejected))


def _plain_attributes(attributes: Mapping[str, Any] | None) -> dict[str, Any]:
    # SDK attribute sequences are tuples; Attributes.of accepts them as arrays
    return dict(attributes or {})


def _span_from_proto(proto_span: ProtoSpan, resource_attributes: Attributes) -> RawSpan:
    record = {
        "trace_id": proto_span.trace_id,
        "span_id": proto_span.span_id,
        "parent_span_id": proto_span.parent_span_id or None,
        "kind": proto_span.kind,
        "name": proto_span.name,
        "resource_attributes": resource_attributes,
        "span_attributes": Attributes.from_otlp(proto_span.attributes),
        "events": tuple(
            SpanEvent(name=event.name, attributes=Attributes.from_otlp(event.attributes))
            for event in proto_span.events
        ),
    }
    try:
        return RawSpan.from_record(record)
    except MalformedSpanError as exc:
        # keep the readable form of the record for diagnostics
        raise MalformedSpanError(exc.reason, json_format.MessageToDict(proto_span)) from exc


def _to_requests(payload: Any) -> list[ExportTraceServiceRequest]:
    if isinstance(payload, ExportTraceServiceRequest):
        return [payload]

    if isinstance(payload, bytes | bytearray):
        try:
            parsed = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError):
            return [_parse_binary(bytes(payload))]
        return _to_requests(parsed)

    if isinstance(payload, str):
        if not payload.strip():
            return []
        try:
            parsed = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise BatchDecodeError(f"Payload is not valid JSON: {exc}") from exc
        return _to_requests(parsed)

    if isinstance(payload, Mapping):
        return [_parse_dict(payload)]

    if isinstance(payload, Sequence):
        requests: list[ExportTraceServiceRequest] = []
        for item in payload:
            requests.extend(_to_requests(item))
        return requests

    if payload is None:
        return []

    raise BatchDecodeError(f"Unsupported payload type: {type(payload).__name__}")


def _parse_binary(data: bytes) -> ExportTraceServiceRequest:
    request = ExportTraceServiceRequest()
    try:
        request.ParseFromString(data)
    except DecodeError as exc:
        raise BatchDecodeError(f"Payload is neither JSON nor OTLP protobuf: {exc}") from exc
    return request


def _parse_dict(document: Mapping[str, Any]) -> ExportTraceServiceRequest:
    # unknown fields are ignored below the top level only; {} is an empty export
    if document and "resourceSpans" not in document and "resource_spans" not in document:
        raise BatchDecodeError(
            f"Payload is not an OTLP trace export: no resourceSpans in object "
            f"with keys {sorted(map(str, document))}"
        )
    normalized = _normalize_document(document)
    try:
        return json_format.ParseDict(
            normalized, ExportTraceServiceRequest(), ignore_unknown_fields=True
        )
    except json_format.ParseError as exc:
        raise BatchDecodeError(f"Payload is not an OTLP trace export: {exc}") from exc


def _normalize_document(document: Mapping[str, Any]) -> dict[str, Any]:
    """
    Rewrite an export document into the protobuf JSON mapping.

    Hex ids become base64 and the pre-1.0 ``instrumentationLibrarySpans``
    layout becomes ``scopeSpans``.
    """
    normalized = dict(document)
    for key in ("resourceSpans", "resource_spans"):
        if key in normalized:
            normalized[key] = _map_objects(normalized[key], _normalize_resource_spans)
    return normalized


def _normalize_resource_spans(entry: Mapping[str, Any]) -> dict[str, Any]:
    converted = dict(entry)
    if "scopeSpans" not in converted and "scope_spans" not in converted:
        legacy = converted.pop("instrumentationLibrarySpans", None) or converted.pop(
            "instrumentation_library_spans", None
        )
        if legacy:
            converted["scopeSpans"] = _map_objects(legacy, _legacy_scope_spans)
    for key in ("scopeSpans", "scope_spans"):
        if key in converted:
            converted[key] = _map_objects(converted[key], _normalize_scope_spans)
    return converted


def _legacy_scope_spans(item: Mapping[str, Any]) -> dict[str, Any]:
    converted = {key: value for key, value in item.items() if key != "instrumentationLibrary"}
    if "instrumentationLibrary" in item:
        converted["scope"] = item["instrumentationLibrary"]
    return converted


def _normalize_scope_spans(item: Mapping[str, Any]) -> dict[str, Any]:
    converted = dict(item)
    if "spans" in converted:
        converted["spans"] = _map_objects(converted["spans"], _normalize_span)
    return converted


def _normalize_span(span: Mapping[str, Any]) -> dict[str, Any]:
    converted = _convert_ids(span)
    if "links" in converted:
        converted["links"] = _map_objects(converted["links"], _convert_ids)
    return converted


def _convert_ids(record: Mapping[str, Any]) -> dict[str, Any]:
    return {key: _hex_to_base64(value, _ID_FIELDS.get(key)) for key, value in record.items()}


def _map_objects(
    value: Any, convert: Callable[[Mapping[str, Any]], dict[str, Any]]
) -> Any:
    # anything but a list of objects is left for ParseDict to reject
    if not isinstance(value, list):
        return value
    return [convert(item) if isinstance(item, Mapping) else item for item in value]


def _hex_to_base64(value: Any, hex_length: int | None) -> Any:
    # base64 of a 16 or 8 byte id is 24 or 12 characters, so a hex id of
    # 32 or 16 characters cannot be mistaken for one
    if hex_length is None or not isinstance(value, str):
        return value
    if len(value) != hex_length or not _HEX_RE.match(value):
        return value
    return base64.b64encode(bytes.fromhex(value)).decode("ascii")


__all__ = [
    "decode_export",
    "batch_from_requests",
    "from_readable_spans",
]
