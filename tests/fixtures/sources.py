"""Fake clock and scripted span source for driving the export waiter."""

from __future__ import annotations

from tracecheck import SpanBatch


class FakeClock:
    """Monotonic clock that only moves when slept on."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class ScriptedSource:
    """
    SpanSource answering each fetch with the next scripted result.

    A result may be a SpanBatch or an exception to raise. Once the script
    is exhausted the last result keeps being returned.
    """

    def __init__(self, *results: SpanBatch | Exception) -> None:
        if not results:
            raise ValueError("ScriptedSource needs at least one result")
        self._results = list(results)
        self.fetches = 0
        self.clears = 0

    def fetch(self) -> SpanBatch:
        index = min(self.fetches, len(self._results) - 1)
        self.fetches += 1
        result = self._results[index]
        if isinstance(result, Exception):
            raise result
        return result

    def clear(self) -> None:
        self.clears += 1
