"""
Access to the test collector that receives spans from the target process.

The collector is a shared, external resource. It is only ever read, apart
from the explicit ``clear()`` that resets it between test scenarios.

Example:
    >>> from tracecheck.collector import CollectorClient
    >>>
    >>> with CollectorClient("http://localhost:8080") as collector:
    ...     collector.clear()
    ...     # drive a request against the target
    ...     batch = collector.fetch()
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

import httpx

from tracecheck.exceptions import BatchDecodeError, CollectorError
from tracecheck.model import SpanBatch
from tracecheck.otlp import decode_export

logger = logging.getLogger(__name__)

GET_TRACES_PATH = "/get-traces"
CLEAR_PATH = "/clear"


@runtime_checkable
class SpanSource(Protocol):
    """
    Protocol for anything that can hand out the spans collected so far.

    Implementations:
    - CollectorClient: HTTP test collector
    - tracecheck.testing.InMemoryCollector: in-process spans for unit tests
    """

    def fetch(self) -> SpanBatch:
        """
        Return every span collected since the last clear.

        Raises:
            CollectorError: If the spans cannot be retrieved
        """
        ...

    def clear(self) -> None:
        """Discard every span collected so far."""
        ...


class CollectorClient:
    """
    httpx-based client for a test collector endpoint.

    ``fetch()`` GETs ``{endpoint}/get-traces`` and decodes the returned
    export requests; ``clear()`` POSTs ``{endpoint}/clear``.

    Args:
        endpoint: Base URL of the collector (e.g. ``http://localhost:8080``)
        timeout: Per-request timeout in seconds
        client: Optional preconfigured httpx.Client; the collector does not
            close a client it did not create
    """

    def __init__(
        self,
        endpoint: str,
        *,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout))

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def fetch(self) -> SpanBatch:
        response = self._request("GET", GET_TRACES_PATH)
        try:
            batch = decode_export(response.content)
        except BatchDecodeError as exc:
            raise CollectorError(self._url(GET_TRACES_PATH), str(exc)) from exc
        logger.debug(
            "Fetched %d span(s) in %d trace(s) from %s",
            len(batch.spans),
            batch.trace_count,
            self._endpoint,
        )
        return batch

    def clear(self) -> None:
        self._request("POST", CLEAR_PATH)
        logger.debug("Cleared collected telemetry at %s", self._endpoint)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> CollectorClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _url(self, path: str) -> str:
        return f"{self._endpoint}{path}"

    def _request(self, method: str, path: str) -> httpx.Response:
        url = self._url(path)
        try:
            response = self._client.request(method, url)
        except httpx.TimeoutException as exc:
            raise CollectorError(url, f"request timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise CollectorError(url, str(exc) or type(exc).__name__) from exc

        if response.is_error:
            raise CollectorError(url, response.reason_phrase, status_code=response.status_code)
        return response


__all__ = [
    "SpanSource",
    "CollectorClient",
    "GET_TRACES_PATH",
    "CLEAR_PATH",
]
