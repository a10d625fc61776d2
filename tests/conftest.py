"""Shared test factories for optibench tests.

Factories build result objects with sensible defaults and an override
pattern; fixtures provide harness settings that keep runs fast.
"""

import pytest

from optibench.harness import HarnessConfig
from optibench.results import (
    CandidateResult,
    CandidateStatus,
    PointStatus,
    ResultSet,
    Sample,
    SampleStatus,
)


def make_sample(**overrides) -> Sample:
    """Create a successful Sample with sensible defaults."""
    defaults = {
        "candidate": "loop",
        "iteration": 0,
        "duration": 0.01,
        "memory_delta": 1024,
        "peak_memory": None,
        "gc_collections": 0,
    }
    defaults.update(overrides)
    return Sample(**defaults)


def make_candidate_result(
    name: str = "loop",
    durations: list[float] | None = None,
    status: CandidateStatus = CandidateStatus.OK,
    error: str | None = None,
    **sample_overrides,
) -> CandidateResult:
    """Create a CandidateResult with one successful Sample per duration."""
    durations = [0.01, 0.02, 0.03] if durations is None else durations
    samples = [
        make_sample(candidate=name, iteration=i, duration=d, **sample_overrides)
        for i, d in enumerate(durations)
    ]
    return CandidateResult(name=name, samples=samples, status=status, error=error)


def make_error_result(name: str = "broken", n: int = 3, error: str = "ValueError: boom") -> CandidateResult:
    """Create a CandidateResult whose every Sample failed."""
    samples = [
        Sample(candidate=name, iteration=i, duration=0.0, status=SampleStatus.ERROR, error=error)
        for i in range(n)
    ]
    return CandidateResult(name=name, samples=samples, status=CandidateStatus.ERROR, error=error)


def make_result_set(
    config: dict | None = None,
    timings: dict[str, list[float]] | None = None,
    status: PointStatus = PointStatus.OK,
) -> ResultSet:
    """Create a ResultSet from candidate name -> durations."""
    timings = {"loop": [0.04, 0.05, 0.06], "vectorised": [0.01, 0.02, 0.03]} if timings is None else timings
    return ResultSet(
        config=dict(config or {}),
        candidates=[make_candidate_result(name, durations) for name, durations in timings.items()],
        status=status,
    )


@pytest.fixture
def quick_config() -> HarnessConfig:
    """Harness settings for fast tests: 3 repetitions, no memory accounting."""
    return HarnessConfig(repetitions=3, memory="off", gc_collect=False)
