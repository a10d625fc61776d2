"""Benchmark run settings assembled from TOML files and the environment.

A configuration file has three tables::

    [harness]
    repetitions = 20
    strictness = "equivalent"
    memory = "exact"

    [grid]
    workers = 2
    executor = "thread"

    [grid.parameters]
    n = [1_000, 100_000]

    [report]
    sort_by = "median"
    baseline = "loop"
    relative = true

plus an optional top-level ``log_level`` and ``include = [...]`` list.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from optibench.config.environment import ENV_PREFIX, apply_environment_overrides
from optibench.config.loaders import load_config_with_includes
from optibench.grid import EXECUTORS
from optibench.harness import HarnessConfig

logger = logging.getLogger(__name__)

_SECTIONS = ("harness", "grid", "report")


def _from_table(cls: type, table: Any, section: str) -> Any:
    if not isinstance(table, dict):
        raise ValueError(f"[{section}] must be a table")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(table) - known)
    if unknown:
        raise ValueError(f"Unknown [{section}] setting(s): {', '.join(unknown)}")
    return cls(**table)


@dataclass
class GridSettings:
    """The ``[grid]`` table."""

    workers: int = 1
    executor: str = "thread"
    point_timeout: float | None = None
    fail_fast: bool = False
    parameters: dict[str, list[Any]] = field(default_factory=dict)

    def __post_init__(self):
        if self.workers < 1:
            raise ValueError("grid.workers must be at least 1")
        if self.executor not in EXECUTORS:
            raise ValueError(f"grid.executor must be one of {EXECUTORS}")


@dataclass
class ReportSettings:
    """The ``[report]`` table."""

    sort_by: str | None = "median"
    ascending: bool = True
    baseline: str | None = None
    relative: bool = False
    output: str | None = None
    format: str | None = None


@dataclass
class BenchmarkConfig:
    """Complete settings for a benchmark run."""

    harness: HarnessConfig = field(default_factory=HarnessConfig)
    grid: GridSettings = field(default_factory=GridSettings)
    report: ReportSettings = field(default_factory=ReportSettings)
    log_level: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BenchmarkConfig":
        """Build settings from a parsed configuration dictionary.

        Raises:
            ValueError: On unknown keys inside a table or invalid values.
        """
        for key in data:
            if key not in _SECTIONS and key != "log_level":
                logger.warning("Ignoring unknown configuration key '%s'", key)
        harness = data.get("harness", {})
        if not isinstance(harness, dict):
            raise ValueError("[harness] must be a table")
        return cls(
            harness=HarnessConfig.from_dict(harness),
            grid=_from_table(GridSettings, data.get("grid", {}), "grid"),
            report=_from_table(ReportSettings, data.get("report", {}), "report"),
            log_level=data.get("log_level"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "log_level": self.log_level,
            "harness": self.harness.to_dict(),
            "grid": asdict(self.grid),
            "report": asdict(self.report),
        }


def load_benchmark_config(
    path: str | Path | None = None, env_prefix: str = ENV_PREFIX
) -> BenchmarkConfig:
    """Load settings from a TOML file (optional) with environment overrides.

    Args:
        path: Configuration file; defaults only when None.
        env_prefix: Prefix of overriding environment variables.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the settings are invalid.
    """
    data = load_config_with_includes(path) if path is not None else {}
    data = apply_environment_overrides(data, prefix=env_prefix)
    logger.debug("Loaded configuration from %s", path or "defaults")
    return BenchmarkConfig.from_dict(data)


def default_config() -> dict[str, Any]:
    """Template configuration written by ``optibench init``."""
    harness = HarnessConfig().to_dict()
    return {
        "harness": {key: value for key, value in harness.items() if value is not None},
        "grid": {
            "workers": 1,
            "executor": "thread",
            "parameters": {"n": [1_000, 10_000, 100_000]},
        },
        "report": {"sort_by": "median", "ascending": True, "relative": False},
    }
