"""Memory accounting around single invocations.

Two strategies, matching the two ways the course measures memory:

- ``fast``: sample the process resident set size (via psutil) right before
  and right after the call. Cheap, but noisy: the allocator and the garbage
  collector may return or keep pages for reasons unrelated to the call.
- ``exact``: run the call under ``tracemalloc`` and report the net traced
  allocation and the peak above the starting level. Exact for memory managed
  by Python's allocator, at the cost of slowing allocation-heavy code. The
  harness therefore traces one extra invocation instead of the timed ones.
"""

import gc
import tracemalloc
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import psutil


class MemoryMode(Enum):
    """Memory accounting strategy."""

    OFF = "off"
    FAST = "fast"
    EXACT = "exact"


@dataclass(frozen=True)
class MemoryUsage:
    """Memory attributed to one invocation.

    Attributes:
        delta: Net change in bytes (None when accounting is off).
        peak: Peak bytes above the starting level (exact mode only).
    """

    delta: int | None = None
    peak: int | None = None


def gc_collections() -> int:
    """Total number of garbage collector runs so far, across generations."""
    return sum(stat["collections"] for stat in gc.get_stats())


class MemoryAccountant:
    """Measures the memory attributable to a zero-argument callable.

    Args:
        mode: Accounting strategy (string values are accepted).
        collect_first: Run ``gc.collect()`` before each measurement so garbage
            left by earlier calls is not released during this one.
    """

    def __init__(self, mode: MemoryMode | str = MemoryMode.FAST, collect_first: bool = True):
        self.mode = MemoryMode(mode)
        self.collect_first = collect_first
        self._process = psutil.Process()

    def measure(self, fn: Callable[[], Any]) -> tuple[Any, MemoryUsage]:
        """Invoke ``fn`` once and account for its memory.

        Exceptions raised by ``fn`` propagate; tracing started here is always
        stopped again.
        """
        if self.collect_first:
            gc.collect()

        if self.mode is MemoryMode.OFF:
            return fn(), MemoryUsage()
        if self.mode is MemoryMode.FAST:
            return self._measure_rss(fn)
        return self._measure_traced(fn)

    def _measure_rss(self, fn: Callable[[], Any]) -> tuple[Any, MemoryUsage]:
        before = self._process.memory_info().rss
        result = fn()
        after = self._process.memory_info().rss
        return result, MemoryUsage(delta=after - before)

    def _measure_traced(self, fn: Callable[[], Any]) -> tuple[Any, MemoryUsage]:
        # Leave tracing running if somebody else started it.
        owns_tracing = not tracemalloc.is_tracing()
        if owns_tracing:
            tracemalloc.start()
        try:
            tracemalloc.reset_peak()
            before, _ = tracemalloc.get_traced_memory()
            result = fn()
            after, peak = tracemalloc.get_traced_memory()
        finally:
            if owns_tracing:
                tracemalloc.stop()
        return result, MemoryUsage(delta=after - before, peak=max(peak - before, 0))
