"""Tests for Report: rows, sorting, relative mode, comparisons and rendering."""

import math
import time

import pytest

from optibench.grid import ANY_CANDIDATE, GridRunner
from optibench.harness import Harness, HarnessConfig
from optibench.memory import MemoryUsage
from optibench.report import STATISTICS, Report
from optibench.results import (
    CandidateResult,
    CandidateStatus,
    PointStatus,
    ResultSet,
    Sample,
    SampleStatus,
)
from optibench.statistics import StatisticalAnalyzer
from tests.conftest import (
    make_candidate_result,
    make_error_result,
    make_result_set,
    make_sample,
)


def _sweep() -> list[ResultSet]:
    return [
        make_result_set({"n": 10}, {"loop": [0.04, 0.05, 0.06], "vectorised": [0.01, 0.02, 0.03]}),
        make_result_set({"n": 100}, {"loop": [0.4, 0.5, 0.6], "vectorised": [0.1, 0.2, 0.3]}),
    ]


class TestFromResults:
    def test_one_row_per_point_and_candidate(self):
        report = Report.from_results(_sweep())

        assert [(r.params["n"], r.candidate) for r in report] == [
            (10, "loop"),
            (10, "vectorised"),
            (100, "loop"),
            (100, "vectorised"),
        ]

    def test_accepts_single_result_set(self):
        report = Report.from_results(make_result_set())

        assert len(report) == 2

    def test_statistics(self):
        report = Report.from_results(_sweep())
        row = report.rows[0]

        assert row.n == 3 and row.n_ok == 3
        assert row.min == pytest.approx(0.04)
        assert row.median == pytest.approx(0.05)
        assert row.mean == pytest.approx(0.05)
        assert row.max == pytest.approx(0.06)
        assert row.std == pytest.approx(0.01)
        assert row.ci_lower <= row.mean <= row.ci_upper
        assert row.throughput == pytest.approx(3 / 0.15)
        assert row.mem_total == pytest.approx(3 * 1024)
        assert row.mem_mean == pytest.approx(1024)
        assert row.mem_peak is None
        assert row.gc_total == 0

    def test_failed_cell_keeps_status_without_statistics(self):
        result_set = ResultSet(
            config={"n": 1},
            candidates=[make_candidate_result("loop"), make_error_result("broken")],
        )

        report = Report.from_results(result_set)

        broken = report.rows[1]
        assert broken.status is CandidateStatus.ERROR
        assert broken.n_ok == 0
        assert broken.error == "ValueError: boom"
        assert all(getattr(broken, stat) is None for stat in STATISTICS)
        assert broken.outliers is None and broken.stable is None

    def test_intermittent_errors_keep_statistics(self):
        error = "ValueError: flaky"
        samples = [
            make_sample(candidate="flaky", iteration=0, duration=0.02),
            Sample(
                candidate="flaky",
                iteration=1,
                duration=0.0,
                status=SampleStatus.ERROR,
                error=error,
            ),
            make_sample(candidate="flaky", iteration=2, duration=0.04),
        ]
        flaky = CandidateResult("flaky", samples, status=CandidateStatus.ERROR, error=error)

        row = Report.from_results(ResultSet(candidates=[flaky])).rows[0]

        assert row.status is CandidateStatus.ERROR
        assert row.error == error
        assert (row.n, row.n_ok) == (3, 2)
        assert row.median == pytest.approx(0.03)
        assert row.mem_total == pytest.approx(2 * 1024)
        assert row.throughput == pytest.approx(2 / 0.06)

    def test_traced_memory_fills_memory_columns(self):
        result = make_candidate_result("alloc", durations=[0.1, 0.2], memory_delta=None)
        result.memory = MemoryUsage(delta=2048, peak=4096)

        row = Report.from_results(ResultSet(candidates=[result])).rows[0]

        assert row.mem_mean == pytest.approx(2048)
        assert row.mem_total == pytest.approx(2 * 2048)
        assert row.mem_peak == pytest.approx(4096)

    def test_outliers_and_stability(self):
        result_set = make_result_set(
            timings={
                "steady": [0.0100, 0.0101, 0.0099, 0.0100, 0.0102, 0.0098],
                "spiky": [0.0100, 0.0101, 0.0099, 0.0100, 0.0102, 0.5000],
            }
        )

        steady, spiky = Report.from_results(result_set).rows

        assert (steady.outliers, steady.stable) == (0, True)
        assert (spiky.outliers, spiky.stable) == (1, False)
        assert spiky.to_dict()["outliers"] == 1

    def test_mismatched_cell_keeps_statistics(self):
        result_set = ResultSet(
            candidates=[make_candidate_result("loop", status=CandidateStatus.MISMATCH, error="diff")]
        )

        row = Report.from_results(result_set).rows[0]

        assert row.status is CandidateStatus.MISMATCH
        assert row.median is not None

    def test_excluded_candidates_dropped(self):
        result_set = ResultSet(
            candidates=[
                make_candidate_result("loop"),
                make_candidate_result("wrong", status=CandidateStatus.EXCLUDED),
            ]
        )

        report = Report.from_results(result_set)

        assert report.candidates == ["loop"]

    def test_builder_error_cells_rendered(self):
        failed = ResultSet(
            config={"n": 5},
            candidates=[CandidateResult("loop", status=CandidateStatus.BUILDER_ERROR, error="boom")],
            status=PointStatus.BUILDER_ERROR,
        )

        report = Report.from_results([make_result_set({"n": 1}, {"loop": [0.1]}), failed])

        assert [r.status for r in report] == [CandidateStatus.OK, CandidateStatus.BUILDER_ERROR]
        assert report.failed == [report.rows[1]]

    def test_custom_analyzer(self):
        analyzer = StatisticalAnalyzer(bootstrap_resamples=0)

        report = Report.from_results(make_result_set(), analyzer=analyzer)

        assert report.rows[0].ci_lower == report.rows[0].mean
        assert report.analyzer is analyzer


class TestSort:
    def test_sort_by_median_within_points(self):
        report = Report.from_results(_sweep()).sort("median")

        assert [(r.params["n"], r.candidate) for r in report] == [
            (10, "vectorised"),
            (10, "loop"),
            (100, "vectorised"),
            (100, "loop"),
        ]

    def test_sort_across_points(self):
        report = Report.from_results(_sweep()).sort("median", within_points=False)

        assert [r.median for r in report] == sorted(r.median for r in report)

    def test_descending(self):
        report = Report.from_results(_sweep()).sort("median", ascending=False)

        assert [r.candidate for r in report][:2] == ["loop", "vectorised"]

    def test_sort_is_idempotent(self):
        once = Report.from_results(_sweep()).sort("median")
        twice = once.sort("median")

        assert [(r.point, r.candidate) for r in once] == [(r.point, r.candidate) for r in twice]

    def test_missing_values_go_last(self):
        result_set = ResultSet(
            candidates=[
                make_error_result("broken"),
                make_candidate_result("slow", [0.3]),
                make_candidate_result("fast", [0.1]),
            ]
        )
        report = Report.from_results(result_set)

        assert [r.candidate for r in report.sort("median")] == ["fast", "slow", "broken"]
        assert [r.candidate for r in report.sort("median", ascending=False)] == [
            "slow",
            "fast",
            "broken",
        ]

    def test_stable_for_ties(self):
        result_set = make_result_set(timings={"b": [0.1], "a": [0.1], "c": [0.1]})

        report = Report.from_results(result_set).sort("median")

        assert report.candidates == ["b", "a", "c"]

    def test_sort_by_candidate(self):
        report = Report.from_results(_sweep()).sort("candidate", ascending=False)

        assert report.rows[0].candidate == "vectorised"

    def test_unknown_column_rejected(self):
        with pytest.raises(ValueError, match="Cannot sort by"):
            Report.from_results(_sweep()).sort("fastest")

    def test_sort_returns_new_report(self):
        report = Report.from_results(_sweep())

        report.sort("median")

        assert report.rows[0].candidate == "loop"


class TestRelative:
    def test_baseline_values_exactly_one(self):
        relative = Report.from_results(_sweep()).relative("loop")

        for row in relative:
            if row.candidate == "loop":
                for stat in STATISTICS:
                    value = getattr(row, stat)
                    assert value is None or value == 1.0

    def test_ratios_per_point(self):
        relative = Report.from_results(_sweep()).relative("loop")

        vectorised = [r for r in relative if r.candidate == "vectorised"]
        assert vectorised[0].median == pytest.approx(0.02 / 0.05)
        assert vectorised[1].median == pytest.approx(0.2 / 0.5)
        assert relative.relative_to == "loop"

    def test_zero_baseline_gives_nan(self):
        result_set = ResultSet(
            candidates=[
                make_candidate_result("base", memory_delta=0),
                make_candidate_result("other", memory_delta=10),
            ]
        )

        relative = Report.from_results(result_set).relative("base")

        assert relative.rows[0].mem_total == 1.0
        assert math.isnan(relative.rows[1].mem_total)

    def test_failed_baseline_gives_none(self):
        result_set = ResultSet(candidates=[make_error_result("base"), make_candidate_result("other")])

        relative = Report.from_results(result_set).relative("base")

        assert relative.rows[1].median is None

    def test_unknown_baseline_warns(self):
        report = Report.from_results(_sweep())

        with pytest.warns(UserWarning, match="not in report"):
            unchanged = report.relative("missing")

        assert unchanged.rows[0].median == report.rows[0].median
        assert unchanged.relative_to is None

    def test_absolute_report_untouched(self):
        report = Report.from_results(_sweep())

        report.relative("vectorised")

        assert report.rows[0].median == pytest.approx(0.05)


class TestCompare:
    def test_p_values_against_baseline(self):
        fast = [0.01 + i * 1e-4 for i in range(20)]
        slow = [0.05 + i * 1e-4 for i in range(20)]
        result_set = make_result_set(timings={"slow": slow, "fast": fast})

        comparisons = Report.from_results(result_set).compare("slow")

        assert len(comparisons) == 1
        assert comparisons[0].candidate == "fast"
        assert comparisons[0].p_value < 0.05
        assert comparisons[0].to_dict()["baseline"] == "slow"

    def test_missing_samples_give_none(self):
        result_set = ResultSet(candidates=[make_candidate_result("base"), make_error_result("broken")])

        comparisons = Report.from_results(result_set).compare("base")

        assert comparisons[0].p_value is None

    def test_welch_method(self):
        fast = [0.01 + i * 1e-4 for i in range(20)]
        slow = [0.05 + i * 1e-4 for i in range(20)]
        result_set = make_result_set(timings={"slow": slow, "fast": fast})

        (comparison,) = Report.from_results(result_set).compare("slow", method="welch")

        assert comparison.method == "welch"
        assert comparison.statistic < 0
        assert comparison.p_value < 0.05

    def test_welch_needs_two_samples_per_side(self):
        result_set = make_result_set(timings={"base": [0.1, 0.2, 0.3], "once": [0.1]})

        (comparison,) = Report.from_results(result_set).compare("base", method="welch")

        assert comparison.p_value is None

    def test_unknown_method_rejected(self):
        with pytest.raises(ValueError, match="Unknown comparison method"):
            Report.from_results(make_result_set()).compare("loop", method="anova")


class TestRecords:
    def test_to_records_wide(self):
        records = Report.from_results(_sweep()).to_records()

        assert records[0]["candidate"] == "loop"
        assert records[0]["n"] == 10
        assert records[0]["status"] == "ok"
        assert records[0]["n_samples"] == 3
        assert set(STATISTICS) <= set(records[0])

    def test_to_long(self):
        long = Report.from_results(_sweep()).to_long()

        assert len(long) == 4 * len(STATISTICS)
        assert long[0] == {
            "candidate": "loop",
            "n": 10,
            "statistic": "min",
            "value": pytest.approx(0.04),
        }

    def test_format_table(self):
        table = Report.from_results(_sweep()).relative("loop").format_table()
        lines = table.splitlines()

        assert lines[0].split()[:4] == ["candidate", "n", "status", "ok/n"]
        assert len(lines) == 2 + 4 + 1
        assert "relative to 'loop'" in lines[-1]

    def test_format_table_marks_missing(self):
        result_set = ResultSet(candidates=[make_error_result("broken")])

        table = Report.from_results(result_set).format_table()

        assert "error" in table
        assert " - " in table


class TestEndToEnd:
    def test_fast_candidate_has_lower_median(self):
        def slow():
            time.sleep(0.01)
            return 0

        result_set = Harness(HarnessConfig(repetitions=5, memory="off")).run(
            {"slow": slow, "fast": lambda: 0}
        )
        report = Report.from_results(result_set)

        rows = {r.candidate: r for r in report}
        assert rows["fast"].median < rows["slow"].median
        assert rows["fast"].n_ok == rows["slow"].n_ok == 5

    def test_grid_rows_tagged_with_size(self):
        result_sets = GridRunner(HarnessConfig(repetitions=2, memory="off")).run(
            {"size": [10, 100]}, lambda size: {"sum": lambda: sum(range(size))}
        )

        report = Report.from_results(result_sets)

        assert [r.params for r in report] == [{"size": 10}, {"size": 100}]

    def test_sweep_where_every_point_fails(self):
        def builder(n):
            raise MemoryError

        result_sets = GridRunner(HarnessConfig(repetitions=2, memory="off")).run(
            {"n": [10, 100]}, builder
        )

        report = Report.from_results(result_sets)

        assert [(r.candidate, r.params["n"]) for r in report] == [
            (ANY_CANDIDATE, 10),
            (ANY_CANDIDATE, 100),
        ]
        assert all(r.status is CandidateStatus.BUILDER_ERROR for r in report)
        assert "builder-error" in report.format_table()
