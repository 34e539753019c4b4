"""Common type definitions for the tracecheck library."""

# Lower-case hex identifiers, 32 and 16 characters respectively
TraceId = str
SpanId = str
