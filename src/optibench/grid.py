"""Parameter sweeps: run the harness at every point of a Cartesian grid.

Each configuration point is independent. A point whose builder raises, or
that runs out of time, is recorded with a failure status and the sweep moves
on, so one bad workload size never costs the rest of a long run.
"""

import itertools
import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor
from typing import Any

from optibench.errors import BenchmarkTimeout, BuilderError, EqualityMismatch, describe
from optibench.harness import Harness, HarnessConfig
from optibench.results import (
    CandidateResult,
    CandidateStatus,
    ConfigPoint,
    PointStatus,
    ResultSet,
)
from optibench.timeouts import call_with_timeout

logger = logging.getLogger(__name__)

Builder = Callable[..., Any]

EXECUTORS = ("thread", "process")

# Stands in for the candidate names of a failed point when no point named them.
ANY_CANDIDATE = "*"

_CELL_STATUS = {
    PointStatus.BUILDER_ERROR: CandidateStatus.BUILDER_ERROR,
    PointStatus.TIMED_OUT: CandidateStatus.TIMED_OUT,
    PointStatus.ERROR: CandidateStatus.ERROR,
}


def expand_grid(parameters: Mapping[str, Sequence[Any]]) -> list[ConfigPoint]:
    """Expand named value lists into their Cartesian product.

    Points come out in definition order with the last parameter varying
    fastest. A grid with no parameters is a single empty point.

    Examples:
        expand_grid({"n": [10, 100], "dtype": ["f4", "f8"]})
        # [{"n": 10, "dtype": "f4"}, {"n": 10, "dtype": "f8"},
        #  {"n": 100, "dtype": "f4"}, {"n": 100, "dtype": "f8"}]

    Raises:
        ValueError: If a parameter's values are not a list or tuple, or are empty.
    """
    names = list(parameters)
    for name in names:
        values = parameters[name]
        if not isinstance(values, list | tuple):
            raise ValueError(
                f"Parameter '{name}' must be a list of values, got {type(values).__name__}"
            )
        if not values:
            raise ValueError(f"Parameter '{name}' has no values")
    return [
        dict(zip(names, combo)) for combo in itertools.product(*(parameters[n] for n in names))
    ]


def _unpack(point: ConfigPoint, built: Any) -> tuple[Mapping[str, Any], Callable[[], Any] | None]:
    if isinstance(built, tuple) and len(built) == 2:
        candidates, setup = built
    else:
        candidates, setup = built, None
    if not isinstance(candidates, Mapping):
        raise BuilderError(
            point,
            TypeError(f"builder must return a candidate mapping, got {type(candidates).__name__}"),
        )
    return candidates, setup


def _measure_point(
    config: HarnessConfig, builder: Builder, point: ConfigPoint, cancel: threading.Event
) -> ResultSet:
    try:
        built = builder(**point)
    except Exception as exc:
        raise BuilderError(point, exc) from exc
    candidates, setup = _unpack(point, built)
    return Harness(config).run(candidates, config_point=point, setup=setup, cancel=cancel)


def run_point(
    config: HarnessConfig,
    builder: Builder,
    point: ConfigPoint,
    point_timeout: float | None = None,
) -> ResultSet:
    """Build and measure one configuration point.

    Module-level so it can be shipped to a process pool; ``builder`` must then
    be importable (a module-level function).

    On timeout the measurement thread is told to stop; a call already in
    progress still runs to completion in the background.

    Raises:
        BuilderError: If the builder raised or returned something unusable.
        BenchmarkTimeout: If the point exceeded ``point_timeout``.
        EqualityMismatch: Under the ``abort`` mismatch policy.
    """
    cancel = threading.Event()
    try:
        return call_with_timeout(
            lambda: _measure_point(config, builder, point, cancel), point_timeout, f"point {point}"
        )
    except BenchmarkTimeout:
        # The abandoned run stops before its next invocation.
        cancel.set()
        raise


class GridRunner:
    """Runs the harness over every point of a parameter grid.

    Args:
        harness_config: Settings applied at every point.
        workers: Points measured concurrently (1 = one after another).
        executor: ``"thread"`` or ``"process"`` pool when ``workers > 1``.
        point_timeout: Budget in seconds for building and measuring one point.
        fail_fast: Re-raise the first point failure instead of recording it.
    """

    def __init__(
        self,
        harness_config: HarnessConfig | None = None,
        *,
        workers: int = 1,
        executor: str = "thread",
        point_timeout: float | None = None,
        fail_fast: bool = False,
    ):
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if executor not in EXECUTORS:
            raise ValueError(f"executor must be one of {EXECUTORS}, got '{executor}'")
        if point_timeout is not None and point_timeout <= 0:
            raise ValueError("point_timeout must be positive")
        self.harness_config = harness_config or HarnessConfig()
        self.workers = workers
        self.executor = executor
        self.point_timeout = point_timeout
        self.fail_fast = fail_fast

    def run(
        self,
        parameters: Mapping[str, Sequence[Any]],
        builder: Builder,
        candidates: Sequence[str] | None = None,
    ) -> list[ResultSet]:
        """Measure every grid point.

        Args:
            parameters: Parameter name -> list of values.
            builder: Called as ``builder(**point)``; returns the candidate
                mapping for that point, or a ``(candidates, setup)`` pair.
            candidates: Names every point should report. Defaults to the
                names seen at successful points, in first-seen order.

        Returns:
            One ResultSet per point, in grid order, each listing every known
            candidate. A failed point with no known names gets a single
            ``ANY_CANDIDATE`` row carrying its status.
        """
        points = expand_grid(parameters)
        logger.info("Sweeping %d point(s) with %d worker(s)", len(points), self.workers)

        if self.workers == 1 or len(points) <= 1:
            result_sets = [
                self._run_sequential(builder, i, point, len(points))
                for i, point in enumerate(points)
            ]
        else:
            result_sets = self._run_pooled(builder, points)

        self._pad(result_sets, candidates)
        return result_sets

    def _run_sequential(
        self, builder: Builder, index: int, point: ConfigPoint, total: int
    ) -> ResultSet:
        logger.info("Point %d/%d: %s", index + 1, total, point)
        return self._settle(
            point, lambda: run_point(self.harness_config, builder, point, self.point_timeout)
        )

    def _make_pool(self) -> Executor:
        if self.executor == "process":
            return ProcessPoolExecutor(max_workers=self.workers)
        return ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="optibench-point")

    def _run_pooled(self, builder: Builder, points: list[ConfigPoint]) -> list[ResultSet]:
        result_sets: list[ResultSet | None] = [None] * len(points)
        with self._make_pool() as pool:
            futures: list[Future] = [
                pool.submit(run_point, self.harness_config, builder, point, self.point_timeout)
                for point in points
            ]
            try:
                # Collected in grid order; each ResultSet is taken only once complete.
                for i, (point, future) in enumerate(zip(points, futures)):
                    result_sets[i] = self._settle(point, future.result)
                    logger.info("Point %d/%d done: %s", i + 1, len(points), point)
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
        return [rs for rs in result_sets if rs is not None]

    def _settle(self, point: ConfigPoint, fetch: Callable[[], ResultSet]) -> ResultSet:
        try:
            return fetch()
        except EqualityMismatch:
            raise
        except BuilderError as exc:
            if self.fail_fast:
                raise
            logger.warning("%s", exc)
            return ResultSet(config=dict(point), status=PointStatus.BUILDER_ERROR, error=str(exc))
        except BenchmarkTimeout as exc:
            if self.fail_fast:
                raise
            logger.warning("%s", exc)
            return ResultSet(config=dict(point), status=PointStatus.TIMED_OUT, error=str(exc))
        except Exception as exc:
            if self.fail_fast:
                raise
            logger.error("Point %s failed: %s", point, describe(exc))
            return ResultSet(config=dict(point), status=PointStatus.ERROR, error=describe(exc))

    def _pad(self, result_sets: list[ResultSet], candidates: Sequence[str] | None) -> None:
        if candidates is not None:
            known = list(candidates)
        else:
            known = []
            for rs in result_sets:
                if rs.status is PointStatus.OK:
                    known.extend(name for name in rs.names if name not in known)

        for rs in result_sets:
            if rs.status is PointStatus.OK:
                present = set(rs.names)
                rs.candidates.extend(
                    CandidateResult(name, status=CandidateStatus.NOT_RUN)
                    for name in known
                    if name not in present
                )
            else:
                status = _CELL_STATUS[rs.status]
                rs.candidates = [
                    CandidateResult(name, status=status, error=rs.error)
                    for name in known or [ANY_CANDIDATE]
                ]
