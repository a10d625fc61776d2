"""Exception taxonomy for optibench.

Most of these are recorded into results as data rather than raised. They
propagate only when a caller asks for it (fail-fast runs, the ``abort``
mismatch policy).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from optibench.equality import EqualityResult


class OptibenchError(Exception):
    """Base class for all optibench errors."""


class CandidateError(OptibenchError):
    """A candidate's invocation closure raised during measurement."""

    def __init__(self, candidate: str, iteration: int, cause: BaseException):
        self.candidate = candidate
        self.iteration = iteration
        self.cause = cause
        super().__init__(f"Candidate '{candidate}' failed on iteration {iteration}: {describe(cause)}")

    def __reduce__(self):
        return (type(self), (self.candidate, self.iteration, self.cause))


class EqualityMismatch(OptibenchError):
    """A candidate's result differs from the reference candidate's result."""

    def __init__(self, candidate: str, reference: str, result: EqualityResult):
        self.candidate = candidate
        self.reference = reference
        self.result = result
        super().__init__(
            f"Candidate '{candidate}' does not match reference '{reference}' "
            f"({len(result.diffs)} difference(s) under '{result.strictness.value}')"
        )

    def __reduce__(self):
        return (type(self), (self.candidate, self.reference, self.result))


class BuilderError(OptibenchError):
    """The candidate builder for a configuration point raised."""

    def __init__(self, point: dict[str, Any], cause: BaseException):
        self.point = point
        self.cause = cause
        super().__init__(f"Builder failed for {point}: {describe(cause)}")

    def __reduce__(self):
        return (type(self), (self.point, self.cause))


class BenchmarkTimeout(OptibenchError):
    """A candidate invocation or configuration point exceeded its time budget."""

    def __init__(self, what: str, timeout: float):
        self.what = what
        self.timeout = timeout
        super().__init__(f"{what} exceeded timeout of {timeout:g}s")

    def __reduce__(self):
        return (type(self), (self.what, self.timeout))


def describe(exc: BaseException) -> str:
    """Render an exception as ``"TypeName: message"`` for result records."""
    message = str(exc)
    name = type(exc).__name__
    return f"{name}: {message}" if message else name
