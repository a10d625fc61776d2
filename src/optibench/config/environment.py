"""Environment variable overrides for configuration.

``OPTIBENCH_HARNESS__REPETITIONS=20`` overrides ``harness.repetitions``:
the prefix is stripped, ``__`` separates nesting levels and keys are
lower-cased.
"""

import copy
import os
from typing import Any

ENV_PREFIX = "OPTIBENCH_"


def apply_environment_overrides(
    config: dict[str, Any], prefix: str = ENV_PREFIX, separator: str = "__"
) -> dict[str, Any]:
    """Return a copy of ``config`` with matching environment variables applied.

    Args:
        config: Configuration dictionary (not modified).
        prefix: Prefix of the environment variables to consider.
        separator: Separator between nested keys.
    """
    result = copy.deepcopy(config)

    for env_name, env_value in os.environ.items():
        if not env_name.startswith(prefix):
            continue
        config_path = env_name[len(prefix) :]
        if not config_path:
            continue

        keys = [k.lower() for k in config_path.split(separator)]
        _set_nested_value(result, keys, convert_value(env_value))

    return result


def convert_value(value: str) -> Any:
    """Convert an environment string to bool, int, float or leave it a string."""
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False

    try:
        return int(value)
    except ValueError:
        try:
            return float(value)
        except ValueError:
            return value


def _set_nested_value(config: dict[str, Any], keys: list[str], value: Any) -> None:
    if len(keys) == 1:
        config[keys[0]] = value
        return

    current_key = keys[0]
    if current_key not in config or not isinstance(config[current_key], dict):
        config[current_key] = {}

    _set_nested_value(config[current_key], keys[1:], value)
