"""
Waiting for exported traces to arrive at the collector.

Trace export is asynchronous: when the response to a test request has been
received, the spans it produced may still be buffered in the target process.
The ExportWaiter polls a SpanSource until the expected number of distinct
traces is visible, and returns the complete batch collected so far.

The wait is an explicit state machine::

    POLLING --(trace count reached)--> SATISFIED
    POLLING --(timeout elapsed)------> TIMED_OUT

Example:
    >>> from tracecheck import CollectorClient, ExportWaiter, TraceInspector, WaiterConfig
    >>>
    >>> config = WaiterConfig(poll_interval=0.5, timeout=10.0)
    >>> with CollectorClient(config.collector_endpoint) as collector:
    ...     batch = ExportWaiter(collector, config).wait_for_traces(1)
    >>> traces = TraceInspector(batch)
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

from tracecheck.collector import CollectorClient, SpanSource
from tracecheck.exceptions import CollectorError, WaitTimeoutError
from tracecheck.model import SpanBatch

logger = logging.getLogger(__name__)

ENV_PREFIX = "TRACECHECK_"


class WaitState(Enum):
    """
    State of an ExportWaiter.

    Attributes:
        IDLE: No wait has been started yet
        POLLING: Waiting for the expected trace count
        SATISFIED: The expected trace count was reached
        TIMED_OUT: The timeout elapsed first
    """

    IDLE = "idle"
    POLLING = "polling"
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class WaiterConfig:
    """
    Configuration for waiting on exported traces.

    Attributes:
        poll_interval: Seconds to sleep between two polls of the collector
        timeout: Maximum seconds to wait for the expected trace count
        collector_endpoint: Base URL of the test collector
        request_timeout: Per-request timeout in seconds for collector calls

    Example:
        >>> config = WaiterConfig(poll_interval=0.2, timeout=5.0)
        >>>
        >>> # Or from TRACECHECK_* environment variables
        >>> config = WaiterConfig.from_env()
    """

    poll_interval: float = 1.0
    timeout: float = 30.0
    collector_endpoint: str = "http://localhost:8080"
    request_timeout: float = 5.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.poll_interval <= 0:
            raise ValueError(
                f"poll_interval must be positive, got {self.poll_interval}. "
                "Use a value like 1.0 (default)."
            )

        if self.timeout <= 0:
            raise ValueError(
                f"timeout must be positive, got {self.timeout}. "
                "Use a value like 30.0 (default) to allow for export batching delays."
            )

        if self.request_timeout <= 0:
            raise ValueError(f"request_timeout must be positive, got {self.request_timeout}")

        if not self.collector_endpoint:
            raise ValueError("collector_endpoint must not be empty")

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        prefix: str = ENV_PREFIX,
    ) -> WaiterConfig:
        """
        Build a configuration from environment variables.

        Reads ``<prefix>POLL_INTERVAL``, ``<prefix>TIMEOUT``,
        ``<prefix>COLLECTOR_ENDPOINT`` and ``<prefix>REQUEST_TIMEOUT``.
        Unset variables keep their defaults.

        Raises:
            ValueError: If a numeric variable cannot be parsed or is invalid
        """
        env = os.environ if environ is None else environ
        values: dict[str, float | str] = {}

        for name in ("poll_interval", "timeout", "request_timeout"):
            raw = env.get(f"{prefix}{name.upper()}")
            if raw is None or not raw.strip():
                continue
            try:
                values[name] = float(raw)
            except ValueError:
                raise ValueError(f"{prefix}{name.upper()} must be a number, got {raw!r}") from None

        endpoint = env.get(f"{prefix}COLLECTOR_ENDPOINT")
        if endpoint:
            values["collector_endpoint"] = endpoint

        return cls(**values)  # type: ignore[arg-type]


class ExportWaiter:
    """
    Blocking poll loop over a SpanSource.

    Polling happens on the calling thread; nothing keeps running after
    ``wait_for_traces`` returns or raises. The clock and sleep functions are
    injectable so the loop can be driven by a fake clock in tests.

    Args:
        source: Where collected spans are fetched from
        config: Poll interval and timeout (defaults to WaiterConfig())
        clock: Monotonic clock in seconds
        sleep: Function sleeping for the given number of seconds
    """

    def __init__(
        self,
        source: SpanSource,
        config: WaiterConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._source = source
        self._config = config or WaiterConfig()
        self._clock = clock
        self._sleep = sleep
        self._state = WaitState.IDLE
        self._polls = 0

    @property
    def config(self) -> WaiterConfig:
        return self._config

    @property
    def state(self) -> WaitState:
        return self._state

    @property
    def polls(self) -> int:
        """Number of polls made by the last wait."""
        return self._polls

    def wait_for_traces(self, expected_trace_count: int) -> SpanBatch:
        """
        Poll until at least ``expected_trace_count`` distinct traces are collected.

        Args:
            expected_trace_count: Positive number of distinct trace ids to wait for

        Returns:
            The full batch collected when the condition was met, including
            spans from before this call

        Raises:
            ValueError: If expected_trace_count is not a positive integer
            WaitTimeoutError: If the timeout elapsed first; carries the last
                batch fetched and its trace count
        """
        if (
            isinstance(expected_trace_count, bool)
            or not isinstance(expected_trace_count, int)
            or expected_trace_count < 1
        ):
            raise ValueError(
                f"expected_trace_count must be a positive integer, got {expected_trace_count!r}"
            )

        timeout = self._config.timeout
        deadline = self._clock() + timeout
        last_batch = SpanBatch.empty()
        last_error: CollectorError | None = None
        fetched_any = False

        self._state = WaitState.POLLING
        self._polls = 0

        while self._state is WaitState.POLLING:
            self._polls += 1
            try:
                batch = self._source.fetch()
            except CollectorError as exc:
                last_error = exc
                logger.warning("Poll %d of collector failed: %s", self._polls, exc)
            else:
                fetched_any = True
                last_batch = batch
                logger.debug(
                    "Poll %d: %d of %d expected trace(s) collected",
                    self._polls,
                    batch.trace_count,
                    expected_trace_count,
                )
                if batch.trace_count >= expected_trace_count:
                    self._state = WaitState.SATISFIED
                    break

            remaining = deadline - self._clock()
            if remaining <= 0:
                self._state = WaitState.TIMED_OUT
                break
            self._sleep(min(self._config.poll_interval, remaining))

        if self._state is WaitState.SATISFIED:
            logger.info(
                "Collected %d trace(s) in %d span(s) after %d poll(s)",
                last_batch.trace_count,
                len(last_batch.spans),
                self._polls,
            )
            return last_batch

        logger.info(
            "Timed out after %ss waiting for %d trace(s); observed %d",
            timeout,
            expected_trace_count,
            last_batch.trace_count,
        )
        error = WaitTimeoutError(
            expected_count=expected_trace_count,
            observed_count=last_batch.trace_count,
            batch=last_batch,
            timeout=timeout,
        )
        if not fetched_any and last_error is not None:
            raise error from last_error
        raise error


def wait_for_traces(
    expected_trace_count: int,
    config: WaiterConfig | None = None,
    source: SpanSource | None = None,
) -> SpanBatch:
    """
    Wait for traces using a one-off waiter.

    When no source is given, a CollectorClient is created for
    ``config.collector_endpoint`` and closed afterwards. Without a config,
    the configuration is read from the environment.

    Example:
        >>> batch = wait_for_traces(1, WaiterConfig(timeout=10.0))
    """
    config = config or WaiterConfig.from_env()
    if source is not None:
        return ExportWaiter(source, config).wait_for_traces(expected_trace_count)

    with CollectorClient(config.collector_endpoint, timeout=config.request_timeout) as client:
        return ExportWaiter(client, config).wait_for_traces(expected_trace_count)


__all__ = [
    "WaitState",
    "WaiterConfig",
    "ExportWaiter",
    "wait_for_traces",
]
