"""Wall-clock timing of single invocations.

Uses ``time.perf_counter()`` exclusively, never ``time.time()``.
"""

import time
from collections.abc import Callable
from typing import Any


class TimingCollector:
    """Times zero-argument callables.

    The closure is built by the caller, so its construction cost is never
    part of the measurement.

    Args:
        sync_fn: Called inside the timed window after the closure returns.
            Use it to wait for work the closure hands off asynchronously
            (a thread pool or a device queue). Default: no-op.
    """

    def __init__(self, sync_fn: Callable[[], None] | None = None):
        self.sync_fn = sync_fn or (lambda: None)

    def time_call(self, fn: Callable[[], Any]) -> tuple[Any, float]:
        """Invoke ``fn`` once and measure it.

        Args:
            fn: Zero-argument closure to time.

        Returns:
            Tuple of (return value, elapsed seconds).

        Raises:
            Exception: Whatever ``fn`` raises. No elapsed time is reported for
                a failed call.
        """
        start = time.perf_counter()
        result = fn()
        self.sync_fn()
        elapsed = time.perf_counter() - start
        return result, elapsed
