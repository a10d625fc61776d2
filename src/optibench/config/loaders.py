"""TOML loading and saving for benchmark configuration files."""

import tomllib
from pathlib import Path
from typing import Any

import tomli_w


def load_toml(config_path: str | Path) -> dict[str, Any]:
    """Load a TOML configuration file.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        tomllib.TOMLDecodeError: If the file is not valid TOML.
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with config_path.open("rb") as f:
        return tomllib.load(f)


def save_toml(config: dict[str, Any], config_path: str | Path) -> Path:
    """Write a configuration dictionary as TOML, creating parent directories.

    ``None`` values are dropped since TOML has no null.
    """
    config_path = Path(config_path)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with config_path.open("wb") as f:
        tomli_w.dump(_drop_none(config), f)
    return config_path


def _drop_none(config: dict[str, Any]) -> dict[str, Any]:
    return {
        key: _drop_none(value) if isinstance(value, dict) else value
        for key, value in config.items()
        if value is not None
    }


def deep_merge_dict(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge two dictionaries; ``override`` wins.

    Returns a new dictionary; neither argument is modified.
    """
    result = base.copy()

    for key, override_value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(override_value, dict):
            result[key] = deep_merge_dict(result[key], override_value)
        else:
            result[key] = override_value

    return result


def load_config_with_includes(
    config_path: str | Path,
    include_key: str = "include",
    processed_paths: set[Path] | None = None,
) -> dict[str, Any]:
    """Load a TOML file, merging in the files listed under ``include``.

    Included paths are relative to the including file and may include further
    files. The including file takes precedence over what it includes, and
    later includes over earlier ones.

    Raises:
        FileNotFoundError: If any configuration file does not exist.
        RecursionError: If an include cycle is detected.
        tomllib.TOMLDecodeError: If any file is not valid TOML.
    """
    config_path = Path(config_path).resolve()

    if processed_paths is None:
        processed_paths = set()

    if config_path in processed_paths:
        raise RecursionError(f"Circular include detected: {config_path}")

    processed_paths.add(config_path)

    config = load_toml(config_path)

    includes = config.pop(include_key, [])
    if isinstance(includes, str):
        includes = [includes]

    merged: dict[str, Any] = {}
    for include_path in includes:
        included = load_config_with_includes(
            config_path.parent / include_path,
            include_key=include_key,
            processed_paths=processed_paths,
        )
        merged = deep_merge_dict(merged, included)

    return deep_merge_dict(merged, config)
