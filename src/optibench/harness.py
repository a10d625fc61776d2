"""Single-configuration benchmark harness.

Runs every candidate a controlled number of times, records one Sample per
invocation, and checks each candidate's answer against a reference candidate.
Failures are recorded as data: one broken candidate never stops the others.
"""

import logging
import threading
import warnings
from collections.abc import Callable, Iterator, Mapping
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any

import numpy as np

from optibench.equality import DEFAULT_REL_TOL, EqualityChecker, Strictness
from optibench.errors import BenchmarkTimeout, CandidateError, EqualityMismatch, describe
from optibench.memory import MemoryAccountant, MemoryMode, MemoryUsage, gc_collections
from optibench.results import (
    Candidate,
    CandidateResult,
    CandidateStatus,
    ConfigPoint,
    ResultSet,
    Sample,
    SampleStatus,
)
from optibench.timeouts import call_with_timeout
from optibench.timing import TimingCollector

logger = logging.getLogger(__name__)

CandidateSpec = Callable[[], Any] | Candidate


class MismatchPolicy(Enum):
    """What to do with a candidate whose result differs from the reference."""

    ABORT = "abort"
    PASS_THROUGH = "pass-through"
    EXCLUDE = "exclude"


class RunOrder(Enum):
    """Order in which repetitions of different candidates are executed.

    ``sequential`` runs all repetitions of one candidate before the next.
    ``interleaved`` runs repetition i of every candidate before repetition
    i+1, spreading warm-up and thermal drift evenly across candidates.
    ``shuffled`` interleaves with a random candidate order per repetition.
    """

    SEQUENTIAL = "sequential"
    INTERLEAVED = "interleaved"
    SHUFFLED = "shuffled"


@dataclass
class HarnessConfig:
    """Settings for one harness run.

    Attributes:
        repetitions: Timed invocations per candidate.
        warmup: Untimed invocations per candidate before measuring.
        strictness: Equality check applied against the reference candidate.
        reference: Reference candidate name (default: the first candidate).
        mismatch_policy: Handling of candidates that disagree with the reference.
        memory: Memory accounting strategy.
        order: Execution order of repetitions across candidates.
        seed: Seed for the ``shuffled`` order.
        fail_fast: Stop a candidate at its first error instead of recording
            the error and carrying on with its remaining repetitions.
        timeout: Per-invocation budget in seconds (None = unlimited).
        gc_collect: Collect garbage before every invocation, outside the timer.
        rel_tol: Relative tolerance for ``equivalent`` numeric comparison.
        abs_tol: Absolute tolerance for ``equivalent`` numeric comparison.
    """

    repetitions: int = 10
    warmup: int = 0
    strictness: Strictness = Strictness.EQUIVALENT
    reference: str | None = None
    mismatch_policy: MismatchPolicy = MismatchPolicy.PASS_THROUGH
    memory: MemoryMode = MemoryMode.FAST
    order: RunOrder = RunOrder.SEQUENTIAL
    seed: int | None = None
    fail_fast: bool = False
    timeout: float | None = None
    gc_collect: bool = True
    rel_tol: float = DEFAULT_REL_TOL
    abs_tol: float = 0.0

    def __post_init__(self):
        """Coerce string enum values and validate."""
        self.strictness = Strictness(self.strictness)
        self.mismatch_policy = MismatchPolicy(self.mismatch_policy)
        self.memory = MemoryMode(self.memory)
        self.order = RunOrder(self.order)

        if self.repetitions < 1:
            raise ValueError("repetitions must be at least 1")
        if self.warmup < 0:
            raise ValueError("warmup must be non-negative")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.rel_tol < 0 or self.abs_tol < 0:
            raise ValueError("tolerances must be non-negative")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HarnessConfig":
        """Build a config from a mapping such as a TOML ``[harness]`` table."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown harness setting(s): {', '.join(unknown)}")
        return cls(**dict(data))

    def to_dict(self) -> dict[str, Any]:
        return {k: (v.value if isinstance(v, Enum) else v) for k, v in asdict(self).items()}


def prepare_candidates(
    candidates: Mapping[str, CandidateSpec],
    setup: Callable[[], Any] | None = None,
) -> list[Candidate]:
    """Normalise a name -> callable/Candidate mapping into Candidates.

    A shared ``setup`` is attached to every candidate that has none of its own.

    Raises:
        ValueError: If a Candidate's name disagrees with its mapping key, or a
            candidate that mutates its input ends up without a setup closure.
        TypeError: If a value is neither callable nor a Candidate.
    """
    prepared: list[Candidate] = []
    for name, spec in candidates.items():
        if isinstance(spec, Candidate):
            if spec.name != name:
                raise ValueError(f"Candidate registered as '{name}' is named '{spec.name}'")
            if spec.setup is None and setup is not None:
                spec = Candidate(name, spec.fn, setup=setup, mutates_input=spec.mutates_input)
            prepared.append(spec)
        elif callable(spec):
            prepared.append(Candidate(name, spec, setup=setup))
        else:
            raise TypeError(f"Candidate '{name}' must be callable, got {type(spec).__name__}")
    return prepared


class Harness:
    """Measures a set of candidates at one configuration point.

    Examples:
        harness = Harness(HarnessConfig(repetitions=5))
        result_set = harness.run({"loop": slow_sum, "builtin": fast_sum})
        result_set.get("builtin").durations

    In ``exact`` memory mode the timed repetitions run untraced; allocation
    and peak come from one extra traced invocation per candidate afterwards,
    stored on ``CandidateResult.memory``.

    Args:
        config: Harness settings (defaults if None).
        timer: Timing collector (a plain perf_counter timer if None).
    """

    def __init__(self, config: HarnessConfig | None = None, timer: TimingCollector | None = None):
        self.config = config or HarnessConfig()
        self.timer = timer or TimingCollector()
        exact = self.config.memory is MemoryMode.EXACT
        self.memory = MemoryAccountant(
            MemoryMode.OFF if exact else self.config.memory, collect_first=self.config.gc_collect
        )
        self.tracer = (
            MemoryAccountant(MemoryMode.EXACT, collect_first=self.config.gc_collect)
            if exact
            else None
        )
        self.checker = EqualityChecker(
            self.config.strictness, rel_tol=self.config.rel_tol, abs_tol=self.config.abs_tol
        )

    def run(
        self,
        candidates: Mapping[str, CandidateSpec],
        config_point: ConfigPoint | None = None,
        setup: Callable[[], Any] | None = None,
        cancel: threading.Event | None = None,
    ) -> ResultSet:
        """Measure every candidate and check their results.

        Args:
            candidates: Mapping of candidate name to zero-argument callable or
                Candidate. Mapping order is report order.
            config_point: Parameters this run belongs to, copied onto the
                returned ResultSet.
            setup: Shared reset closure for candidates without their own.
            cancel: When set, no further invocation is started and the run
                returns what it has measured so far.

        Returns:
            ResultSet with one CandidateResult per candidate, in mapping order.

        Raises:
            ValueError: If there are no candidates or the reference is unknown.
            EqualityMismatch: Under the ``abort`` mismatch policy.
        """
        prepared = prepare_candidates(candidates, setup)
        if not prepared:
            raise ValueError("At least one candidate is required")
        reference = self._reference_name(prepared)
        point = dict(config_point or {})

        results = {c.name: CandidateResult(c.name) for c in prepared}
        logger.info(
            "Measuring %d candidate(s) x %d repetition(s) at %s",
            len(prepared),
            self.config.repetitions,
            point or "default point",
        )

        def cancelled() -> bool:
            if cancel is not None and cancel.is_set():
                logger.debug("Run at %s cancelled", point or "default point")
                return True
            return False

        for candidate in prepared:
            if cancelled():
                break
            self._warm_up(candidate, results[candidate.name])

        for candidate, iteration in self._schedule(prepared):
            if cancelled():
                break
            result = results[candidate.name]
            if result.status is not CandidateStatus.OK:
                continue
            sample = self._measure(candidate, iteration)
            result.samples.append(sample)
            if sample.status is SampleStatus.TIMED_OUT:
                result.status = CandidateStatus.TIMED_OUT
                result.error = sample.error
            elif sample.status is SampleStatus.ERROR and self.config.fail_fast:
                result.status = CandidateStatus.ABORTED
                result.error = sample.error

        for result in results.values():
            errors = [s.error for s in result.samples if s.status is SampleStatus.ERROR]
            if errors and result.status is CandidateStatus.OK:
                result.status = CandidateStatus.ERROR
                result.error = errors[0]

        if self.tracer is not None:
            for candidate in prepared:
                if cancelled():
                    break
                if results[candidate.name].n_ok:
                    results[candidate.name].memory = self._trace(candidate)

        self._check_equality(results, reference)
        return ResultSet(config=point, candidates=list(results.values()))

    def _reference_name(self, prepared: list[Candidate]) -> str:
        names = [c.name for c in prepared]
        if self.config.reference is None:
            return names[0]
        if self.config.reference not in names:
            raise ValueError(
                f"Reference candidate '{self.config.reference}' not among {', '.join(names)}"
            )
        return self.config.reference

    def _schedule(self, prepared: list[Candidate]) -> Iterator[tuple[Candidate, int]]:
        repetitions = range(self.config.repetitions)
        if self.config.order is RunOrder.SEQUENTIAL:
            for candidate in prepared:
                for iteration in repetitions:
                    yield candidate, iteration
        elif self.config.order is RunOrder.INTERLEAVED:
            for iteration in repetitions:
                for candidate in prepared:
                    yield candidate, iteration
        else:
            rng = np.random.default_rng(self.config.seed)
            for iteration in repetitions:
                for index in rng.permutation(len(prepared)):
                    yield prepared[int(index)], iteration

    def _warm_up(self, candidate: Candidate, result: CandidateResult) -> None:
        for i in range(self.config.warmup):

            def warm() -> None:
                if candidate.setup is not None:
                    candidate.setup()
                candidate.fn()

            try:
                call_with_timeout(warm, self.config.timeout, f"{candidate.name}-warmup")
            except BenchmarkTimeout as exc:
                result.status = CandidateStatus.TIMED_OUT
                result.error = str(exc)
                logger.warning("Warm-up of '%s' timed out; candidate skipped", candidate.name)
                return
            except Exception as exc:
                # Timed repetitions record the failure if it persists.
                logger.debug("Warm-up %d of '%s' failed: %s", i + 1, candidate.name, describe(exc))

    def _measure(self, candidate: Candidate, iteration: int) -> Sample:
        if candidate.setup is not None:
            try:
                candidate.setup()
            except Exception as exc:
                logger.debug("Setup for '%s' failed: %s", candidate.name, describe(exc))
                return Sample(
                    candidate=candidate.name,
                    iteration=iteration,
                    duration=0.0,
                    status=SampleStatus.ERROR,
                    error=f"setup failed: {describe(exc)}",
                )

        def timed() -> tuple[Any, float, int]:
            before = gc_collections()
            value, elapsed = self.timer.time_call(candidate.fn)
            return value, elapsed, gc_collections() - before

        try:
            (value, elapsed, n_gc), usage = call_with_timeout(
                lambda: self.memory.measure(timed),
                self.config.timeout,
                f"{candidate.name}[{iteration}]",
            )
        except BenchmarkTimeout as exc:
            logger.warning("%s", exc)
            return Sample(
                candidate=candidate.name,
                iteration=iteration,
                duration=0.0,
                status=SampleStatus.TIMED_OUT,
                error=str(exc),
            )
        except Exception as exc:
            logger.debug("%s", CandidateError(candidate.name, iteration, exc))
            return Sample(
                candidate=candidate.name,
                iteration=iteration,
                duration=0.0,
                status=SampleStatus.ERROR,
                error=describe(exc),
            )

        return Sample(
            candidate=candidate.name,
            iteration=iteration,
            duration=elapsed,
            memory_delta=usage.delta,
            peak_memory=usage.peak,
            gc_collections=n_gc,
            result=value if iteration == 0 else None,
        )

    def _trace(self, candidate: Candidate) -> MemoryUsage | None:
        """Allocation and peak of one untimed invocation under tracemalloc."""
        try:
            if candidate.setup is not None:
                candidate.setup()
            _, usage = call_with_timeout(
                lambda: self.tracer.measure(candidate.fn),
                self.config.timeout,
                f"{candidate.name}-traced",
            )
        except Exception as exc:
            logger.warning("Traced run of '%s' failed: %s", candidate.name, describe(exc))
            return None
        return usage

    def _check_equality(self, results: dict[str, CandidateResult], reference: str) -> None:
        if self.config.strictness is Strictness.NONE:
            return

        ref = results[reference]
        if not ref.has_result:
            warnings.warn(
                f"Reference candidate '{reference}' produced no result; equality not checked"
            )
            return

        for name, result in results.items():
            if not result.has_result:
                continue
            outcome = self.checker.check(ref.result, result.result)
            result.equality = outcome
            if outcome.passed:
                continue

            mismatch = EqualityMismatch(name, reference, outcome)
            if self.config.mismatch_policy is MismatchPolicy.ABORT:
                raise mismatch
            logger.warning("%s", mismatch)
            if result.status is CandidateStatus.OK:
                if self.config.mismatch_policy is MismatchPolicy.EXCLUDE:
                    result.status = CandidateStatus.EXCLUDED
                else:
                    result.status = CandidateStatus.MISMATCH
                result.error = outcome.summary()
