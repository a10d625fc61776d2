"""Statistical analysis of repeated timing measurements.

Summaries feed the report rows; the two-sample tests let a report say
whether one candidate is really faster than the baseline or just lucky.
"""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from scipy import stats as scipy_stats

# Coefficient of variation below which a measurement counts as stable.
STABILITY_CV_THRESHOLD: float = 0.10

# alpha=0.05 gives a 95% CI: [2.5th percentile, 97.5th percentile].
BOOTSTRAP_CI_ALPHA: float = 0.05

# Modified Z-score threshold for outlier detection (Iglewicz & Hoaglin).
OUTLIER_Z_THRESHOLD: float = 3.5

# Scales MAD to a consistent estimator of sigma for normal data: 1 / Phi^-1(3/4).
_MAD_CONSISTENCY_CONSTANT: float = 0.6745


@dataclass
class StatisticalResult:
    """Summary statistics with a bootstrap confidence interval for the mean.

    Attributes:
        mean: Arithmetic mean.
        median: Median value.
        std: Sample standard deviation (ddof=1).
        min: Minimum value.
        max: Maximum value.
        cv: Coefficient of variation (std / mean).
        ci_lower: Bootstrap CI lower bound.
        ci_upper: Bootstrap CI upper bound.
        n: Number of samples.
        is_stable: True when CV is below STABILITY_CV_THRESHOLD.
    """

    mean: float
    median: float
    std: float
    min: float
    max: float
    cv: float
    ci_lower: float
    ci_upper: float
    n: int
    is_stable: bool


class StatisticalAnalyzer:
    """Statistical analysis for benchmark measurements.

    Provides:
    - Summary statistics with bootstrap confidence intervals
    - Welch's t-test (unequal variances)
    - Mann-Whitney U (non-parametric, robust to skewed timings)
    - Modified Z-score outlier detection

    Args:
        bootstrap_resamples: Number of bootstrap resamples for CI computation.
        seed: Random seed for reproducible bootstrap sampling.
    """

    def __init__(self, bootstrap_resamples: int = 1000, seed: int = 42):
        self._bootstrap_resamples = bootstrap_resamples
        self._seed = seed

    def summarize(self, samples: Sequence[float]) -> StatisticalResult:
        """Compute summary statistics with bootstrap CI.

        The bootstrap generator is reseeded on every call, so the same
        samples always give the same interval.

        Args:
            samples: Measurement values (at least 1).

        Returns:
            StatisticalResult with all computed statistics.

        Raises:
            ValueError: If ``samples`` is empty.
        """
        arr = np.asarray(samples, dtype=np.float64)
        n = len(arr)
        if n == 0:
            raise ValueError("Cannot summarize an empty sample")

        mean = float(np.mean(arr))
        std = float(np.std(arr, ddof=1)) if n > 1 else 0.0
        cv = std / mean if mean != 0 else 0.0

        if n == 1 or self._bootstrap_resamples < 1:
            ci_lower, ci_upper = mean, mean
        else:
            rng = np.random.default_rng(self._seed)
            resampled = rng.choice(arr, size=(self._bootstrap_resamples, n), replace=True)
            boot_means = resampled.mean(axis=1)
            ci_lower = float(np.percentile(boot_means, (BOOTSTRAP_CI_ALPHA / 2) * 100))
            ci_upper = float(np.percentile(boot_means, (1 - BOOTSTRAP_CI_ALPHA / 2) * 100))

        return StatisticalResult(
            mean=mean,
            median=float(np.median(arr)),
            std=std,
            min=float(np.min(arr)),
            max=float(np.max(arr)),
            cv=cv,
            ci_lower=ci_lower,
            ci_upper=ci_upper,
            n=n,
            is_stable=cv < STABILITY_CV_THRESHOLD,
        )

    def welch_t_test(self, a: Sequence[float], b: Sequence[float]) -> tuple[float, float]:
        """Welch's t-test for unequal variances.

        Returns:
            Tuple of (t_statistic, p_value).
        """
        result = scipy_stats.ttest_ind(a, b, equal_var=False)
        return (float(result.statistic), float(result.pvalue))

    def mann_whitney_u(self, a: Sequence[float], b: Sequence[float]) -> tuple[float, float]:
        """Two-sided Mann-Whitney U test.

        Returns:
            Tuple of (u_statistic, p_value).
        """
        result = scipy_stats.mannwhitneyu(a, b, alternative="two-sided")
        return (float(result.statistic), float(result.pvalue))

    def detect_outliers(
        self, samples: Sequence[float], threshold: float = OUTLIER_Z_THRESHOLD
    ) -> list[int]:
        """Modified Z-score outlier detection.

        Uses the median absolute deviation rather than the standard deviation
        so the outliers do not mask themselves.

        Returns:
            Indices of outlying samples.
        """
        arr = np.asarray(samples, dtype=np.float64)
        if len(arr) < 3:
            return []
        median = np.median(arr)
        mad = np.median(np.abs(arr - median))
        if mad == 0:
            return []
        modified_z = _MAD_CONSISTENCY_CONSTANT * (arr - median) / mad
        return [int(i) for i in np.where(np.abs(modified_z) > threshold)[0]]
