"""Tabulation of harness results.

A Report flattens a sweep into one row per (configuration point, candidate)
and offers the views the course tables use: sorted, relative to a baseline
candidate, long or wide records, and a plain-text table.
"""

from __future__ import annotations

import copy
import math
import warnings
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import numpy as np

from optibench.export import ExportFormat, get_writer
from optibench.results import CandidateResult, CandidateStatus, ResultSet
from optibench.statistics import StatisticalAnalyzer

# Per-cell statistics, in column order.
STATISTICS: tuple[str, ...] = (
    "min",
    "median",
    "mean",
    "max",
    "std",
    "cv",
    "ci_lower",
    "ci_upper",
    "mem_total",
    "mem_mean",
    "mem_peak",
    "gc_total",
    "throughput",
)

SORT_KEYS: tuple[str, ...] = ("candidate", "status", "n", "n_ok") + STATISTICS + ("outliers",)

# Statuses whose successful samples are summarised; every other cell reports None.
_MEASURED = (CandidateStatus.OK, CandidateStatus.MISMATCH, CandidateStatus.ERROR)

COMPARISON_METHODS: tuple[str, ...] = ("mann-whitney", "welch")

_TABLE_COLUMNS = ("median", "mean", "std", "min", "max", "mem_total", "throughput")


@dataclass
class ReportRow:
    """Summary of one candidate at one configuration point.

    Attributes:
        candidate: Candidate name.
        params: The configuration point.
        status: Candidate status at this point.
        point: Index of the configuration point in grid order.
        n: Samples recorded.
        n_ok: Successful samples.
        min, median, mean, max, std, cv: Duration statistics in seconds.
        ci_lower, ci_upper: Bootstrap CI of the mean duration.
        mem_total, mem_mean, mem_peak: Memory statistics in bytes.
        gc_total: Garbage collector runs across successful samples.
        throughput: Successful iterations per second of measured time.
        outliers: Durations flagged by the modified Z-score test.
        stable: Whether the coefficient of variation is below the stability
            threshold.
        error: Error text for failed cells.
    """

    candidate: str
    params: dict[str, Any] = field(default_factory=dict)
    status: CandidateStatus = CandidateStatus.OK
    point: int = 0
    n: int = 0
    n_ok: int = 0
    min: float | None = None
    median: float | None = None
    mean: float | None = None
    max: float | None = None
    std: float | None = None
    cv: float | None = None
    ci_lower: float | None = None
    ci_upper: float | None = None
    mem_total: float | None = None
    mem_mean: float | None = None
    mem_peak: float | None = None
    gc_total: float | None = None
    throughput: float | None = None
    outliers: int | None = None
    stable: bool | None = None
    error: str | None = None
    durations: list[float] = field(default_factory=list, repr=False)

    def to_dict(self) -> dict[str, Any]:
        """Wide record: candidate, parameters, status, counts, statistics, error.

        The sample count is written as ``n_samples`` so a parameter named
        ``n`` keeps its column.
        """
        record: dict[str, Any] = {"candidate": self.candidate}
        record.update(self.params)
        record["status"] = self.status.value
        record["n_samples"] = self.n
        record["n_ok"] = self.n_ok
        for stat in STATISTICS:
            record[stat] = getattr(self, stat)
        record["outliers"] = self.outliers
        record["stable"] = self.stable
        record["error"] = self.error
        return record


@dataclass
class Comparison:
    """Two-sample test of one candidate's durations against the baseline's."""

    candidate: str
    baseline: str
    params: dict[str, Any]
    statistic: float | None
    p_value: float | None
    method: str = "mann-whitney"

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidate": self.candidate,
            "baseline": self.baseline,
            **self.params,
            "statistic": self.statistic,
            "p_value": self.p_value,
            "method": self.method,
        }


def _summarise(
    result: CandidateResult, params: dict[str, Any], point: int, analyzer: StatisticalAnalyzer
) -> ReportRow:
    row = ReportRow(
        candidate=result.name,
        params=dict(params),
        status=result.status,
        point=point,
        n=len(result.samples),
        n_ok=result.n_ok,
        error=result.error,
    )
    durations = result.durations
    if result.status not in _MEASURED or not durations:
        return row

    summary = analyzer.summarize(durations)
    row.durations = list(durations)
    row.min, row.median, row.mean = summary.min, summary.median, summary.mean
    row.max, row.std, row.cv = summary.max, summary.std, summary.cv
    row.ci_lower, row.ci_upper = summary.ci_lower, summary.ci_upper
    row.outliers = len(analyzer.detect_outliers(durations))
    row.stable = summary.is_stable

    ok = result.ok_samples
    deltas = [s.memory_delta for s in ok if s.memory_delta is not None]
    if deltas:
        row.mem_total = float(sum(deltas))
        row.mem_mean = float(np.mean(deltas))
    elif result.memory is not None and result.memory.delta is not None:
        # The traced invocation stands for each repetition.
        row.mem_mean = float(result.memory.delta)
        row.mem_total = row.mem_mean * len(durations)
    peaks = [s.peak_memory for s in ok if s.peak_memory is not None]
    if peaks:
        row.mem_peak = float(max(peaks))
    elif result.memory is not None and result.memory.peak is not None:
        row.mem_peak = float(result.memory.peak)
    row.gc_total = float(sum(s.gc_collections for s in ok))

    elapsed = sum(durations)
    if elapsed > 0:
        row.throughput = len(durations) / elapsed
    return row


def _ratio(value: float | None, base: float | None) -> float | None:
    if value is None or base is None:
        return None
    if value == base:
        return 1.0
    if base == 0:
        return math.nan
    return value / base


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _format_value(value: Any) -> str:
    if _is_missing(value):
        return "-"
    if isinstance(value, float):
        return f"{value:.4g}"
    return str(value)


class Report:
    """Rows of summary statistics, one per (configuration point, candidate).

    Examples:
        report = Report.from_results(GridRunner().run({"n": [10, 1000]}, build))
        print(report.relative("loop").sort("median").format_table())
        report.export("results.csv", "csv")

    Args:
        rows: Report rows in grid order, then candidate order.
        analyzer: Analyzer used for the statistical comparisons.
        relative_to: Baseline candidate when the values are ratios.
    """

    def __init__(
        self,
        rows: Iterable[ReportRow],
        analyzer: StatisticalAnalyzer | None = None,
        relative_to: str | None = None,
    ):
        self.rows = list(rows)
        self.analyzer = analyzer or StatisticalAnalyzer()
        self.relative_to = relative_to
        self.environment: dict[str, Any] | None = None

    @classmethod
    def from_results(
        cls,
        result_sets: ResultSet | Sequence[ResultSet],
        analyzer: StatisticalAnalyzer | None = None,
    ) -> Report:
        """Build a report from one ResultSet or a sweep of them.

        Candidates excluded by the mismatch policy are left out. A cell with
        intermittent errors keeps its ``error`` status and is summarised over
        its successful samples; other failed cells have all statistics None.
        """
        if isinstance(result_sets, ResultSet):
            result_sets = [result_sets]
        analyzer = analyzer or StatisticalAnalyzer()
        rows = [
            _summarise(result, rs.config, index, analyzer)
            for index, rs in enumerate(result_sets)
            for result in rs.candidates
            if result.status is not CandidateStatus.EXCLUDED
        ]
        return cls(rows, analyzer)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    def _derive(self, rows: Iterable[ReportRow], relative_to: str | None = None) -> Report:
        report = Report(rows, self.analyzer, relative_to or self.relative_to)
        report.environment = self.environment
        return report

    @property
    def candidates(self) -> list[str]:
        """Candidate names in first-seen order."""
        names: list[str] = []
        for row in self.rows:
            if row.candidate not in names:
                names.append(row.candidate)
        return names

    def _points(self) -> dict[int, list[ReportRow]]:
        groups: dict[int, list[ReportRow]] = {}
        for row in self.rows:
            groups.setdefault(row.point, []).append(row)
        return groups

    def sort(self, by: str = "median", ascending: bool = True, within_points: bool = True) -> Report:
        """Return a report with rows sorted on one column.

        The sort is stable and rows with a missing value go last in either
        direction. With ``within_points`` rows are reordered only inside
        their configuration point; the points keep grid order.

        Raises:
            ValueError: If ``by`` is not a sortable column.
        """
        if by not in SORT_KEYS:
            raise ValueError(f"Cannot sort by '{by}'; choose one of {', '.join(SORT_KEYS)}")

        def key(row: ReportRow) -> Any:
            value = getattr(row, by)
            return value.value if isinstance(value, CandidateStatus) else value

        def ordered(rows: list[ReportRow]) -> list[ReportRow]:
            present = [r for r in rows if not _is_missing(key(r))]
            missing = [r for r in rows if _is_missing(key(r))]
            return sorted(present, key=key, reverse=not ascending) + missing

        if within_points:
            rows = [row for group in self._points().values() for row in ordered(group)]
        else:
            rows = ordered(self.rows)
        return self._derive(rows)

    def relative(self, baseline: str) -> Report:
        """Return a report with every statistic divided by the baseline's.

        Ratios are taken per configuration point; the baseline's own values
        come out as exactly 1.0. Where the baseline has no value at a point,
        the ratios there are None.
        """
        if baseline not in self.candidates:
            warnings.warn(f"Baseline candidate '{baseline}' not in report; values left absolute")
            return self._derive(copy.deepcopy(self.rows))

        rows: list[ReportRow] = []
        for group in self._points().values():
            base = next((r for r in group if r.candidate == baseline), None)
            for row in group:
                ratios = {
                    stat: _ratio(getattr(row, stat), getattr(base, stat) if base else None)
                    for stat in STATISTICS
                }
                rows.append(replace(row, params=dict(row.params), **ratios))
        return self._derive(rows, relative_to=baseline)

    def compare(self, baseline: str, method: str = "mann-whitney") -> list[Comparison]:
        """Test each candidate's durations against the baseline's.

        Args:
            baseline: Candidate the others are compared with.
            method: ``mann-whitney`` (rank based, robust to skewed timings) or
                ``welch`` (t-test with unequal variances).

        Statistics are None where either side has no successful sample at
        that point, and for Welch where either side has fewer than two.

        Raises:
            ValueError: If ``method`` is unknown.
        """
        if method not in COMPARISON_METHODS:
            choices = ", ".join(COMPARISON_METHODS)
            raise ValueError(f"Unknown comparison method '{method}'; choose one of {choices}")
        test = self.analyzer.welch_t_test if method == "welch" else self.analyzer.mann_whitney_u
        minimum = 2 if method == "welch" else 1

        comparisons: list[Comparison] = []
        for group in self._points().values():
            base = next((r for r in group if r.candidate == baseline), None)
            for row in group:
                if row.candidate == baseline:
                    continue
                statistic = p_value = None
                if (
                    base is not None
                    and len(base.durations) >= minimum
                    and len(row.durations) >= minimum
                ):
                    statistic, p_value = test(row.durations, base.durations)
                comparisons.append(
                    Comparison(
                        row.candidate, baseline, dict(row.params), statistic, p_value, method
                    )
                )
        return comparisons

    @property
    def failed(self) -> list[ReportRow]:
        """Rows whose status is anything but ok."""
        return [r for r in self.rows if r.status is not CandidateStatus.OK]

    def to_records(self) -> list[dict[str, Any]]:
        """Wide records, one per row."""
        return [row.to_dict() for row in self.rows]

    def to_long(self) -> list[dict[str, Any]]:
        """Long records: one per (row, statistic)."""
        records: list[dict[str, Any]] = []
        for row in self.rows:
            for stat in STATISTICS:
                records.append(
                    {
                        "candidate": row.candidate,
                        **row.params,
                        "statistic": stat,
                        "value": getattr(row, stat),
                    }
                )
        return records

    def format_table(self) -> str:
        """Render the report as an aligned plain-text table."""
        param_names: list[str] = []
        for row in self.rows:
            param_names.extend(k for k in row.params if k not in param_names)

        header = ["candidate", *param_names, "status", "ok/n", *_TABLE_COLUMNS]
        body = [
            [
                row.candidate,
                *(_format_value(row.params.get(name)) for name in param_names),
                row.status.value,
                f"{row.n_ok}/{row.n}",
                *(_format_value(getattr(row, stat)) for stat in _TABLE_COLUMNS),
            ]
            for row in self.rows
        ]
        widths = [max(len(str(cell)) for cell in column) for column in zip(header, *body)]

        def line(cells: Sequence[str]) -> str:
            return "  ".join(str(c).ljust(w) for c, w in zip(cells, widths)).rstrip()

        lines = [line(header), line(["-" * w for w in widths])]
        lines.extend(line(cells) for cells in body)
        if self.relative_to:
            lines.append(f"(values relative to '{self.relative_to}')")
        return "\n".join(lines)

    def export(self, path: str | Path, fmt: ExportFormat | str | None = None) -> Path:
        """Write the report to ``path``.

        Args:
            path: Output file.
            fmt: ``csv`` (long), ``wide-csv`` or ``json``. Inferred from the
                file suffix when None.

        Returns:
            The written path.
        """
        return get_writer(fmt, path).write(self, path)
