"""
End-to-end tests: spans exported by an instrumented app reach a collector,
the waiter picks them up and the inspector answers the smoke-test queries.

The "app server" is simulated with the OpenTelemetry SDK, recording spans
the way a server instrumentation would.
"""

from __future__ import annotations

import json
import threading

import httpx
import pytest
from opentelemetry.trace import SpanKind as OtelSpanKind
from opentelemetry.trace import Status, StatusCode

from tracecheck import (
    CollectorClient,
    ExportWaiter,
    SpanKind,
    TraceInspector,
    WaiterConfig,
    WaitTimeoutError,
)
from tracecheck.testing import TraceAssertions
from tests.fixtures import AGENT_VERSION, TRACE_A, greeting_trace, otlp_json_export

pytestmark = pytest.mark.integration

FAST = WaiterConfig(poll_interval=0.01, timeout=2.0)


class FakeAppServer:
    """Handles requests by recording the spans a server agent would emit."""

    def __init__(self, tracer) -> None:
        self._tracer = tracer

    def _server_span(self, path: str):
        return self._tracer.start_as_current_span(
            f"GET {path}",
            kind=OtelSpanKind.SERVER,
            attributes={"http.target": path, "http.flavor": "1.1"},
        )

    def greeting(self) -> None:
        with self._server_span("/app/greeting"):
            with self._tracer.start_as_current_span(
                "GET",
                kind=OtelSpanKind.CLIENT,
                attributes={"http.url": "http://localhost:8080/app/headers", "http.flavor": "1.1"},
            ):
                with self._server_span("/app/headers"):
                    pass

    def static_file(self, path: str) -> None:
        with self._server_span(path):
            pass

    def exception(self) -> None:
        with self._server_span("/app/exception") as span:
            span.record_exception(RuntimeError("This is expected"))
            span.set_status(Status(StatusCode.ERROR))


@pytest.fixture
def app(tracer) -> FakeAppServer:
    return FakeAppServer(tracer)


def wait_and_inspect(collector, expected: int = 1) -> TraceInspector:
    return TraceInspector(ExportWaiter(collector, FAST).wait_for_traces(expected))


class TestInMemorySmokeFlow:
    """Smoke scenarios against the in-memory collector."""

    def test_greeting(self, app, in_memory_collector):
        app.greeting()
        traces = wait_and_inspect(in_memory_collector)

        assert len(traces.trace_ids) == 1
        assert traces.count_spans_by_kind(SpanKind.SERVER) == 2
        assert traces.count_spans_by_kind(SpanKind.CLIENT) == 1
        assert traces.count_spans_by_name("GET /app/greeting") == 1
        assert traces.count_spans_by_name("GET /app/headers") == 1
        assert traces.count_filtered_attributes("http.target", "/app/greeting") == 1
        assert traces.count_filtered_attributes("http.url", "http://localhost:8080/app/headers") == 1
        assert traces.count_filtered_attributes("http.target", "/app/headers") == 1
        assert traces.count_filtered_attributes("http.flavor", "1.1") == 3
        assert traces.count_filtered_resource_attributes("telemetry.auto.version", AGENT_VERSION) == 3
        assert traces.count_filtered_resource_attributes("os.type", "linux") == 3

    def test_greeting_forms_one_tree(self, app, in_memory_collector):
        app.greeting()
        traces = wait_and_inspect(in_memory_collector)

        (trace,) = traces.traces()
        (root,) = trace.root_spans
        assert root.name == "GET /app/greeting"
        (client,) = trace.children_of(root.span_id)
        assert client.kind is SpanKind.CLIENT

    @pytest.mark.parametrize("path", ["/app/hello.txt", "/app/file-that-does-not-exist"])
    def test_static_file(self, app, in_memory_collector, path):
        app.static_file(path)
        traces = wait_and_inspect(in_memory_collector)

        assertions = TraceAssertions(traces)
        assertions.assert_trace_count(1)
        assertions.assert_span_kind_count(SpanKind.SERVER, 1)
        assertions.assert_span_name_count(f"GET {path}", 1)
        assertions.assert_attribute_count("http.target", path, 1)
        assertions.assert_every_span_has_resource_attribute("telemetry.auto.version", AGENT_VERSION)
        assertions.assert_every_span_has_resource_attribute("os.type", "linux")

    def test_request_with_error(self, app, in_memory_collector):
        app.exception()
        traces = wait_and_inspect(in_memory_collector)

        assert traces.count_spans_by_kind(SpanKind.SERVER) == 1
        assert traces.count_spans_by_name("GET /app/exception") == 1
        assert traces.count_filtered_event_attributes("exception.message", "This is expected") == 1
        assert traces.count_filtered_event_attributes("exception.type", "RuntimeError") == 1
        assert traces.count_filtered_attributes("http.target", "/app/exception") == 1

    def test_scenarios_are_isolated_by_clear(self, app, in_memory_collector):
        app.greeting()
        wait_and_inspect(in_memory_collector)
        in_memory_collector.clear()

        app.static_file("/app/hello.txt")
        traces = wait_and_inspect(in_memory_collector)

        assert traces.count_spans() == 1

    def test_spans_exported_while_waiting(self, app, in_memory_collector):
        timer = threading.Timer(0.05, app.greeting)
        timer.start()
        try:
            traces = wait_and_inspect(in_memory_collector)
        finally:
            timer.join()

        assert traces.count_spans() == 3

    def test_nothing_exported_times_out(self, in_memory_collector):
        config = WaiterConfig(poll_interval=0.01, timeout=0.05)
        with pytest.raises(WaitTimeoutError) as exc_info:
            ExportWaiter(in_memory_collector, config).wait_for_traces(1)
        assert exc_info.value.observed_count == 0


class TestHttpCollectorFlow:
    """The same flow over HTTP against a collector that fills up over time."""

    def test_waits_until_export_is_visible(self):
        polls = {"count": 0}
        exported = [otlp_json_export(greeting_trace(TRACE_A))]

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/clear":
                return httpx.Response(200)
            polls["count"] += 1
            # the agent's batch processor flushes on the third poll
            body = exported if polls["count"] >= 3 else []
            return httpx.Response(200, text=json.dumps(body))

        http = httpx.Client(transport=httpx.MockTransport(handler))
        with CollectorClient("http://localhost:8080", client=http) as collector:
            collector.clear()
            batch = ExportWaiter(collector, FAST).wait_for_traces(1)

        traces = TraceInspector(batch)
        assert polls["count"] == 3
        assert traces.trace_ids == {TRACE_A}
        assert traces.count_filtered_attributes("http.flavor", "1.1") == 3
        assert traces.count_filtered_resource_attributes("telemetry.auto.version", AGENT_VERSION) == 3
