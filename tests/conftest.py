"""
Shared pytest fixtures for the tracecheck library tests.

This module provides:
- Span fixtures (greeting_spans, exception_spans, greeting_batch)
- OpenTelemetry SDK fixtures (span_exporter, tracer_provider, tracer)
- Collector fixtures (in_memory_collector)
- Waiter fixtures (fake_clock)
"""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from tracecheck import RawSpan, SpanBatch
from tracecheck.testing import InMemoryCollector
from tests.fixtures import RESOURCE, FakeClock, exception_trace, greeting_trace

# ============================================================================
# Span Fixtures
# ============================================================================


@pytest.fixture
def greeting_spans() -> list[RawSpan]:
    """Three spans of the greeting scenario, one trace."""
    return greeting_trace()


@pytest.fixture
def exception_spans() -> list[RawSpan]:
    """One SERVER span with a recorded exception event."""
    return exception_trace()


@pytest.fixture
def greeting_batch(greeting_spans: list[RawSpan]) -> SpanBatch:
    return SpanBatch(spans=tuple(greeting_spans))


# ============================================================================
# OpenTelemetry SDK Fixtures
# ============================================================================


@pytest.fixture
def span_exporter() -> Generator[InMemorySpanExporter, None, None]:
    """
    In-memory exporter capturing every span finished by ``tracer``.

    Yields:
        InMemorySpanExporter, cleared after the test
    """
    exporter = InMemorySpanExporter()
    yield exporter
    exporter.clear()


@pytest.fixture
def tracer_provider(span_exporter: InMemorySpanExporter) -> Generator[TracerProvider, None, None]:
    """
    Private TracerProvider (not installed globally) exporting to span_exporter.

    The provider's resource mirrors what an instrumentation agent reports.
    """
    provider = TracerProvider(resource=Resource.create(RESOURCE))
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider
    provider.shutdown()


@pytest.fixture
def tracer(tracer_provider: TracerProvider) -> Any:
    return tracer_provider.get_tracer("tracecheck.tests")


# ============================================================================
# Collector / Waiter Fixtures
# ============================================================================


@pytest.fixture
def in_memory_collector(span_exporter: InMemorySpanExporter) -> InMemoryCollector:
    return InMemoryCollector(span_exporter)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
