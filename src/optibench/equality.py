"""Structural comparison of candidate results.

A benchmark is only meaningful if the candidates compute the same thing. The
checker walks two arbitrary results (scalars, strings, mappings, sequences,
sets, dataclasses, numpy arrays) and reports where they differ.

Strictness levels:

- ``identical``: exact type match at every level, mapping key order matters,
  exact numeric equality (NaN equals NaN), arrays must share dtype and shape.
- ``equivalent``: container kind is ignored (list, tuple and ndarray compare
  elementwise, mappings compare by key set), numbers are compared with
  ``math.isclose``, and in flat sequences the placement of missing values
  (None / NaN) is ignored.
- ``none``: no checking at all.
"""

import dataclasses
import math
import numbers
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

# Relative tolerance for "equivalent" numeric comparison, ~sqrt(float64 eps).
DEFAULT_REL_TOL: float = 1.5e-8

_REPR_LIMIT = 80


class Strictness(Enum):
    """How strictly candidate results must agree."""

    IDENTICAL = "identical"
    EQUIVALENT = "equivalent"
    NONE = "none"


def _short_repr(value: Any) -> str:
    text = repr(value)
    if len(text) > _REPR_LIMIT:
        return text[: _REPR_LIMIT - 3] + "..."
    return text


@dataclass(frozen=True)
class Mismatch:
    """One location where two results differ.

    Attributes:
        path: Location inside the result, e.g. ``['totals'][3]``. Empty for
            the top-level value.
        expected: Value found in the reference result.
        actual: Value found in the candidate result.
        reason: Short description of the difference.
    """

    path: str
    expected: Any
    actual: Any
    reason: str

    @property
    def location(self) -> str:
        return self.path or "<root>"

    def to_dict(self) -> dict[str, str]:
        return {
            "path": self.location,
            "expected": _short_repr(self.expected),
            "actual": _short_repr(self.actual),
            "reason": self.reason,
        }

    def __str__(self) -> str:
        return (
            f"{self.location}: {self.reason} "
            f"(expected {_short_repr(self.expected)}, got {_short_repr(self.actual)})"
        )


@dataclass
class EqualityResult:
    """Outcome of comparing a candidate result with the reference.

    Attributes:
        passed: True when no differences were found.
        strictness: Strictness level the comparison ran under.
        diffs: Differences found, capped at the checker's ``max_diffs``.
        truncated: True when more differences existed than were kept.
    """

    passed: bool
    strictness: Strictness
    diffs: list[Mismatch] = field(default_factory=list)
    truncated: bool = False

    def __bool__(self) -> bool:
        return self.passed

    def summary(self) -> str:
        """One-line human-readable description."""
        if self.passed:
            return f"match ({self.strictness.value})"
        more = " (truncated)" if self.truncated else ""
        first = str(self.diffs[0]) if self.diffs else ""
        return f"{len(self.diffs)} difference(s){more} under {self.strictness.value}; first: {first}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "strictness": self.strictness.value,
            "diffs": [d.to_dict() for d in self.diffs],
            "truncated": self.truncated,
        }


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float | np.floating):
        return math.isnan(value)
    return False


def _is_real(value: Any) -> bool:
    return isinstance(value, numbers.Real | np.number) and not isinstance(value, np.complexfloating)


def _is_sequence(value: Any) -> bool:
    return isinstance(value, list | tuple | np.ndarray)


def _is_flat(items: list[Any]) -> bool:
    return not any(_is_sequence(x) or isinstance(x, Mapping) for x in items)


def _safe_equal(a: Any, b: Any) -> bool:
    """``a == b`` reduced to a single bool, False if the objects refuse."""
    try:
        eq = a == b
        if isinstance(eq, bool):
            return eq
        return bool(np.all(eq))
    except (TypeError, ValueError):
        return False


def _dataclass_fields(value: Any) -> dict[str, Any] | None:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    return None


class EqualityChecker:
    """Compares two results under a configurable strictness.

    Args:
        strictness: Strictness level (string values are accepted).
        rel_tol: Relative tolerance for numbers under ``equivalent``.
        abs_tol: Absolute tolerance for numbers under ``equivalent``.
        max_diffs: Maximum number of differences to record.

    Examples:
        checker = EqualityChecker("equivalent")
        result = checker.check({"a": 1, "b": 2}, {"b": 2, "a": 1})
        assert result.passed
    """

    def __init__(
        self,
        strictness: Strictness | str = Strictness.EQUIVALENT,
        rel_tol: float = DEFAULT_REL_TOL,
        abs_tol: float = 0.0,
        max_diffs: int = 20,
    ):
        if rel_tol < 0 or abs_tol < 0:
            raise ValueError("tolerances must be non-negative")
        if max_diffs < 1:
            raise ValueError("max_diffs must be at least 1")
        self.strictness = Strictness(strictness)
        self.rel_tol = rel_tol
        self.abs_tol = abs_tol
        self.max_diffs = max_diffs

    def check(self, expected: Any, actual: Any) -> EqualityResult:
        """Compare ``actual`` against ``expected``.

        Args:
            expected: The reference result.
            actual: The candidate result.

        Returns:
            EqualityResult with pass/fail and the located differences.
        """
        if self.strictness is Strictness.NONE:
            return EqualityResult(passed=True, strictness=self.strictness)

        diffs: list[Mismatch] = []
        if self.strictness is Strictness.IDENTICAL:
            self._identical(expected, actual, "", diffs)
        else:
            self._equivalent(expected, actual, "", diffs)

        truncated = len(diffs) > self.max_diffs
        return EqualityResult(
            passed=not diffs,
            strictness=self.strictness,
            diffs=diffs[: self.max_diffs],
            truncated=truncated,
        )

    def _full(self, diffs: list[Mismatch]) -> bool:
        # One extra entry marks the result as truncated.
        return len(diffs) > self.max_diffs

    # --- identical ---

    def _identical(self, a: Any, b: Any, path: str, diffs: list[Mismatch]) -> None:
        if self._full(diffs):
            return
        if type(a) is not type(b):
            diffs.append(Mismatch(path, a, b, f"type {type(a).__name__} != {type(b).__name__}"))
            return

        if isinstance(a, np.ndarray):
            self._identical_arrays(a, b, path, diffs)
            return

        fields_a = _dataclass_fields(a)
        if fields_a is not None:
            a, b = fields_a, _dataclass_fields(b)

        if isinstance(a, Mapping):
            if list(a.keys()) != list(b.keys()):
                diffs.append(
                    Mismatch(path, list(a.keys()), list(b.keys()), "keys differ in content or order")
                )
                return
            for key in a:
                self._identical(a[key], b[key], f"{path}[{key!r}]", diffs)
            return

        if isinstance(a, list | tuple):
            if len(a) != len(b):
                diffs.append(Mismatch(path, len(a), len(b), "length differs"))
                return
            for i, (x, y) in enumerate(zip(a, b)):
                self._identical(x, y, f"{path}[{i}]", diffs)
            return

        if _is_missing(a) and _is_missing(b):
            return
        if not _safe_equal(a, b):
            diffs.append(Mismatch(path, a, b, "values differ"))

    def _identical_arrays(
        self, a: np.ndarray, b: np.ndarray, path: str, diffs: list[Mismatch]
    ) -> None:
        if a.dtype != b.dtype:
            diffs.append(Mismatch(path, str(a.dtype), str(b.dtype), "dtype differs"))
            return
        if a.shape != b.shape:
            diffs.append(Mismatch(path, a.shape, b.shape, "shape differs"))
            return
        if a.dtype.kind == "O":
            # Elements are plain Python objects; compare them one by one.
            for idx in np.ndindex(a.shape):
                location = f"{path}[{', '.join(str(i) for i in idx)}]"
                self._identical(a[idx], b[idx], location, diffs)
            return
        equal_nan = a.dtype.kind in "fc"
        if np.array_equal(a, b, equal_nan=equal_nan):
            return
        unequal = a != b
        if equal_nan:
            unequal &= ~(np.isnan(a) & np.isnan(b))
        for index in np.argwhere(unequal)[: self.max_diffs + 1]:
            idx = tuple(int(i) for i in index)
            location = f"{path}[{', '.join(str(i) for i in idx)}]"
            expected, actual = np.asarray(a[idx]).item(), np.asarray(b[idx]).item()
            diffs.append(Mismatch(location, expected, actual, "values differ"))

    # --- equivalent ---

    def _normalise(self, value: Any) -> Any:
        if isinstance(value, np.generic):
            return value.item()
        if isinstance(value, np.ndarray) and value.ndim == 0:
            return value.item()
        fields_ = _dataclass_fields(value)
        if fields_ is not None:
            return fields_
        return value

    def _numbers_close(self, a: Any, b: Any) -> bool:
        if _is_missing(a) or _is_missing(b):
            return _is_missing(a) and _is_missing(b)
        if math.isinf(a) or math.isinf(b):
            return a == b
        return math.isclose(a, b, rel_tol=self.rel_tol, abs_tol=self.abs_tol)

    def _equivalent(self, a: Any, b: Any, path: str, diffs: list[Mismatch]) -> None:
        if self._full(diffs):
            return
        a, b = self._normalise(a), self._normalise(b)

        if _is_missing(a) or _is_missing(b):
            if not (_is_missing(a) and _is_missing(b)):
                diffs.append(Mismatch(path, a, b, "missing value vs present value"))
            return

        if isinstance(a, Mapping) and isinstance(b, Mapping):
            if set(a.keys()) != set(b.keys()):
                only_expected = [k for k in a if k not in b]
                only_actual = [k for k in b if k not in a]
                diffs.append(
                    Mismatch(
                        path,
                        only_expected,
                        only_actual,
                        "keys differ (expected-only vs actual-only)",
                    )
                )
                return
            for key in a:
                self._equivalent(a[key], b[key], f"{path}[{key!r}]", diffs)
            return

        if _is_real(a) and _is_real(b):
            if not self._numbers_close(a, b):
                diffs.append(Mismatch(path, a, b, "numbers differ beyond tolerance"))
            return

        if _is_sequence(a) and _is_sequence(b):
            self._equivalent_sequences(a, b, path, diffs)
            return

        if isinstance(a, set | frozenset) and isinstance(b, set | frozenset):
            if set(a) != set(b):
                diffs.append(Mismatch(path, a, b, "set members differ"))
            return

        if not _safe_equal(a, b):
            diffs.append(Mismatch(path, a, b, "values differ"))

    def _equivalent_sequences(self, a: Any, b: Any, path: str, diffs: list[Mismatch]) -> None:
        if (
            isinstance(a, np.ndarray)
            and isinstance(b, np.ndarray)
            and a.shape == b.shape
            and a.dtype.kind in "biuf"
            and b.dtype.kind in "biuf"
            and np.allclose(a, b, rtol=self.rel_tol, atol=self.abs_tol, equal_nan=True)
        ):
            return

        items_a = a.tolist() if isinstance(a, np.ndarray) else list(a)
        items_b = b.tolist() if isinstance(b, np.ndarray) else list(b)
        if len(items_a) != len(items_b):
            diffs.append(Mismatch(path, len(items_a), len(items_b), "length differs"))
            return

        missing_a = [x for x in items_a if _is_missing(x)]
        missing_b = [x for x in items_b if _is_missing(x)]
        if (missing_a or missing_b) and _is_flat(items_a) and _is_flat(items_b):
            if len(missing_a) != len(missing_b):
                diffs.append(
                    Mismatch(path, len(missing_a), len(missing_b), "number of missing values differs")
                )
                return
            present_a = [x for x in items_a if not _is_missing(x)]
            present_b = [x for x in items_b if not _is_missing(x)]
            for i, (x, y) in enumerate(zip(present_a, present_b)):
                self._equivalent(x, y, f"{path}[~{i}]", diffs)
            return

        for i, (x, y) in enumerate(zip(items_a, items_b)):
            self._equivalent(x, y, f"{path}[{i}]", diffs)
