"""Configuration loading for optibench.

TOML files (with includes) overridden by ``OPTIBENCH_*`` environment variables.
"""

from optibench.config.environment import (
    ENV_PREFIX,
    apply_environment_overrides,
    convert_value,
)
from optibench.config.loaders import (
    deep_merge_dict,
    load_config_with_includes,
    load_toml,
    save_toml,
)
from optibench.config.settings import (
    BenchmarkConfig,
    GridSettings,
    ReportSettings,
    default_config,
    load_benchmark_config,
)

__all__ = [
    # Loaders
    "load_toml",
    "save_toml",
    "deep_merge_dict",
    "load_config_with_includes",
    # Environment
    "ENV_PREFIX",
    "apply_environment_overrides",
    "convert_value",
    # Settings
    "BenchmarkConfig",
    "GridSettings",
    "ReportSettings",
    "default_config",
    "load_benchmark_config",
]
