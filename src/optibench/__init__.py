"""optibench: compare alternative implementations of the same computation.

Time repeated trials, account for memory, check that every candidate agrees
with a reference answer, sweep the comparison over a parameter grid and
tabulate the outcome.
"""

# Harness
from optibench.harness import Harness, HarnessConfig, MismatchPolicy, RunOrder

# Grid
from optibench.grid import GridRunner, expand_grid

# Results
from optibench.results import (
    Candidate,
    CandidateResult,
    CandidateStatus,
    ConfigPoint,
    PointStatus,
    ResultSet,
    Sample,
    SampleStatus,
)

# Measurement
from optibench.equality import EqualityChecker, EqualityResult, Mismatch, Strictness
from optibench.memory import MemoryAccountant, MemoryMode, MemoryUsage
from optibench.statistics import StatisticalAnalyzer, StatisticalResult
from optibench.timing import TimingCollector

# Reporting
from optibench.environment import capture_environment
from optibench.export import ExportFormat
from optibench.report import Comparison, Report, ReportRow

# Errors
from optibench.errors import (
    BenchmarkTimeout,
    BuilderError,
    CandidateError,
    EqualityMismatch,
    OptibenchError,
)

__version__ = "0.1.0"

__all__ = [
    # Harness
    "Harness",
    "HarnessConfig",
    "MismatchPolicy",
    "RunOrder",
    # Grid
    "GridRunner",
    "expand_grid",
    # Results
    "Candidate",
    "CandidateResult",
    "CandidateStatus",
    "ConfigPoint",
    "PointStatus",
    "ResultSet",
    "Sample",
    "SampleStatus",
    # Measurement
    "EqualityChecker",
    "EqualityResult",
    "Mismatch",
    "Strictness",
    "MemoryAccountant",
    "MemoryMode",
    "MemoryUsage",
    "StatisticalAnalyzer",
    "StatisticalResult",
    "TimingCollector",
    # Reporting
    "capture_environment",
    "ExportFormat",
    "Comparison",
    "Report",
    "ReportRow",
    # Errors
    "BenchmarkTimeout",
    "BuilderError",
    "CandidateError",
    "EqualityMismatch",
    "OptibenchError",
]
