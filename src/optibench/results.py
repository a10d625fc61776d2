"""Result containers: candidates, samples, per-candidate and per-point results.

Extends the single-run ``BenchmarkResult`` idea to a set of competing
candidates measured at one configuration point.
"""

import json
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from optibench.equality import EqualityResult
from optibench.memory import MemoryUsage

ConfigPoint = dict[str, Any]


def save_json(data: dict[str, Any] | list[Any], filepath: str | Path) -> None:
    """Save data to a JSON file, creating parent directories as needed.

    Uses ``default=str`` for safe serialization of datetime and other types.
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    filepath.write_text(json.dumps(data, indent=2, default=str))


@dataclass(frozen=True)
class Candidate:
    """One named computation variant being compared.

    Attributes:
        name: Identifier used in results and reports.
        fn: Zero-argument closure performing the computation.
        setup: Untimed closure run before every repetition to reset the
            candidate's input state.
        mutates_input: Whether ``fn`` modifies its input in place. Such a
            candidate must have a setup closure.
    """

    name: str
    fn: Callable[[], Any]
    setup: Callable[[], Any] | None = None
    mutates_input: bool = False

    def __post_init__(self):
        if not callable(self.fn):
            raise TypeError(f"Candidate '{self.name}': fn must be callable")
        if self.setup is not None and not callable(self.setup):
            raise TypeError(f"Candidate '{self.name}': setup must be callable")
        if self.mutates_input and self.setup is None:
            raise ValueError(
                f"Candidate '{self.name}' mutates its input and needs a setup closure "
                "to reset it before each repetition"
            )


class SampleStatus(Enum):
    OK = "ok"
    ERROR = "error"
    TIMED_OUT = "timed-out"


class CandidateStatus(Enum):
    """Terminal status of one candidate at one configuration point."""

    OK = "ok"
    MISMATCH = "mismatch"
    EXCLUDED = "excluded"
    ERROR = "error"
    ABORTED = "aborted"
    TIMED_OUT = "timed-out"
    BUILDER_ERROR = "builder-error"
    NOT_RUN = "not-run"


class PointStatus(Enum):
    """Status of a whole configuration point."""

    OK = "ok"
    BUILDER_ERROR = "builder-error"
    TIMED_OUT = "timed-out"
    ERROR = "error"


@dataclass(frozen=True)
class Sample:
    """One measured execution of a candidate.

    Attributes:
        candidate: Candidate name.
        iteration: Zero-based repetition index.
        duration: Elapsed wall-clock seconds (0.0 for failed invocations).
        memory_delta: Net memory change in bytes, None when not measured.
            Exact-mode figures live on ``CandidateResult.memory`` instead.
        peak_memory: Peak bytes above the start, None when not measured.
        gc_collections: Garbage collector runs during the invocation.
        status: Outcome of the invocation.
        error: ``"TypeName: message"`` for failed invocations.
        result: Return value, captured on iteration 0 only.
    """

    candidate: str
    iteration: int
    duration: float
    memory_delta: int | None = None
    peak_memory: int | None = None
    gc_collections: int = 0
    status: SampleStatus = SampleStatus.OK
    error: str | None = None
    result: Any = None

    @property
    def ok(self) -> bool:
        return self.status is SampleStatus.OK

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (the captured result is omitted)."""
        return {
            "candidate": self.candidate,
            "iteration": self.iteration,
            "duration": self.duration,
            "memory_delta": self.memory_delta,
            "peak_memory": self.peak_memory,
            "gc_collections": self.gc_collections,
            "status": self.status.value,
            "error": self.error,
        }


@dataclass
class CandidateResult:
    """All samples of one candidate at one configuration point.

    ``memory`` holds the traced allocation of one extra untimed invocation,
    set only in exact memory mode.
    """

    name: str
    samples: list[Sample] = field(default_factory=list)
    status: CandidateStatus = CandidateStatus.OK
    error: str | None = None
    equality: EqualityResult | None = None
    memory: MemoryUsage | None = None

    @property
    def ok_samples(self) -> list[Sample]:
        return [s for s in self.samples if s.ok]

    @property
    def n_ok(self) -> int:
        return len(self.ok_samples)

    @property
    def durations(self) -> list[float]:
        """Durations of successful samples, in iteration order."""
        return [s.duration for s in self.samples if s.ok]

    @property
    def result(self) -> Any:
        """Result captured on iteration 0, or None if it failed."""
        for sample in self.samples:
            if sample.iteration == 0:
                return sample.result
        return None

    @property
    def has_result(self) -> bool:
        return any(s.iteration == 0 and s.ok for s in self.samples)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "error": self.error,
            "equality": self.equality.to_dict() if self.equality is not None else None,
            "memory": asdict(self.memory) if self.memory is not None else None,
            "samples": [s.to_dict() for s in self.samples],
        }


@dataclass
class ResultSet:
    """Ordered candidate results for one configuration point."""

    config: ConfigPoint = field(default_factory=dict)
    candidates: list[CandidateResult] = field(default_factory=list)
    status: PointStatus = PointStatus.OK
    error: str | None = None

    @property
    def names(self) -> list[str]:
        return [c.name for c in self.candidates]

    def get(self, name: str) -> CandidateResult:
        """Look up a candidate's result by name."""
        for candidate in self.candidates:
            if candidate.name == name:
                return candidate
        raise KeyError(f"No candidate named '{name}' at {self.config}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            "config": self.config,
            "status": self.status.value,
            "error": self.error,
            "candidates": [c.to_dict() for c in self.candidates],
        }

    def save(self, filepath: str | Path) -> None:
        """Save the result set to a JSON file."""
        save_json(self.to_dict(), filepath)
