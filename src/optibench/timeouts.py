"""Wall-clock budgets for invocations and configuration points."""

import threading
from collections.abc import Callable
from typing import Any

from optibench.errors import BenchmarkTimeout


def call_with_timeout(fn: Callable[[], Any], timeout: float | None, what: str = "call") -> Any:
    """Run ``fn`` and give up waiting after ``timeout`` seconds.

    With a timeout, ``fn`` runs on a daemon thread. Python cannot kill that
    thread: on expiry it is abandoned and keeps running in the background.

    Args:
        fn: Zero-argument callable.
        timeout: Seconds to wait, or None to call ``fn`` directly.
        what: Label used in the timeout error and the thread name.

    Returns:
        The return value of ``fn``.

    Raises:
        BenchmarkTimeout: If ``fn`` did not finish in time.
        Exception: Whatever ``fn`` raised.
    """
    if timeout is None:
        return fn()

    outcome: dict[str, Any] = {}
    done = threading.Event()

    def target() -> None:
        try:
            outcome["value"] = fn()
        except BaseException as exc:  # re-raised on the calling thread
            outcome["error"] = exc
        finally:
            done.set()

    thread = threading.Thread(target=target, name=f"optibench-{what}", daemon=True)
    thread.start()
    if not done.wait(timeout):
        raise BenchmarkTimeout(what, timeout)
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]
