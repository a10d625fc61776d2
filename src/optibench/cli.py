"""optibench CLI: run, system, init."""

from __future__ import annotations

import importlib
import importlib.util
import json
import logging
import sys
import tomllib
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from optibench import __version__
from optibench.config import (
    BenchmarkConfig,
    convert_value,
    default_config,
    load_benchmark_config,
    save_toml,
)
from optibench.environment import capture_environment
from optibench.equality import Strictness
from optibench.errors import EqualityMismatch
from optibench.export import ExportFormat
from optibench.grid import EXECUTORS, GridRunner
from optibench.harness import HarnessConfig, RunOrder
from optibench.memory import MemoryMode
from optibench.report import SORT_KEYS, Report

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _choices(enum_cls: Any) -> click.Choice:
    return click.Choice([member.value for member in enum_cls])


def load_suite(target: str) -> Callable[..., Any]:
    """Resolve ``module:function`` or ``path/to/file.py:function`` to the builder.

    Raises:
        click.BadParameter: If the target cannot be imported or is not callable.
    """
    location, sep, attr = target.rpartition(":")
    if not sep or not location or not attr:
        raise click.BadParameter(f"expected MODULE:FUNCTION or FILE.py:FUNCTION, got '{target}'")

    if location.endswith(".py"):
        path = Path(location)
        if not path.is_file():
            raise click.BadParameter(f"suite file not found: {path}")
        spec = importlib.util.spec_from_file_location(path.stem, path)
        if spec is None or spec.loader is None:
            raise click.BadParameter(f"cannot load suite file: {path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[spec.name] = module
        spec.loader.exec_module(module)
    else:
        try:
            module = importlib.import_module(location)
        except ImportError as e:
            raise click.BadParameter(f"cannot import suite module '{location}': {e}") from None

    builder = getattr(module, attr, None)
    if not callable(builder):
        raise click.BadParameter(f"'{attr}' in '{location}' is not a callable builder")
    return builder


def parse_params(values: tuple[str, ...]) -> dict[str, list[Any]]:
    """Parse repeated ``name=v1,v2`` options into a parameter grid.

    Values are converted to bool, int or float where they look like one.
    """
    grid: dict[str, list[Any]] = {}
    for item in values:
        name, sep, raw = item.partition("=")
        name = name.strip()
        if not sep or not name or not raw:
            raise click.BadParameter(f"expected NAME=V1,V2,..., got '{item}'", param_hint="--param")
        grid[name] = [convert_value(v.strip()) for v in raw.split(",")]
    return grid


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)


@click.group()
@click.version_option(__version__, prog_name="optibench")
def main() -> None:
    """Benchmark alternative implementations of the same computation."""


@main.command()
@click.argument("suite")
@click.option("--config", "config_path", type=click.Path(exists=True), help="TOML config file")
@click.option(
    "--param", "params", multiple=True, help="Grid parameter as NAME=V1,V2 (repeatable)"
)
@click.option("--repetitions", type=click.IntRange(min=1), help="Timed runs per candidate")
@click.option("--warmup", type=click.IntRange(min=0), help="Untimed runs per candidate")
@click.option("--strictness", type=_choices(Strictness), help="Result equality check")
@click.option("--memory", type=_choices(MemoryMode), help="Memory accounting mode")
@click.option("--order", type=_choices(RunOrder), help="Repetition order across candidates")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Seconds per call")
@click.option("--workers", type=click.IntRange(min=1), help="Grid points run concurrently")
@click.option("--executor", type=click.Choice(EXECUTORS), help="Pool used when workers > 1")
@click.option("--relative", "baseline", default=None, help="Show ratios to this candidate")
@click.option("--sort-by", type=click.Choice(SORT_KEYS), help="Column to sort rows on")
@click.option("--output", type=click.Path(), help="Export the report to this file")
@click.option("--format", "fmt", type=_choices(ExportFormat), help="Export format")
@click.option("--log-level", default=None, help="Logging level (default WARNING)")
def run(
    suite: str,
    config_path: str | None,
    params: tuple[str, ...],
    repetitions: int | None,
    warmup: int | None,
    strictness: str | None,
    memory: str | None,
    order: str | None,
    timeout: float | None,
    workers: int | None,
    executor: str | None,
    baseline: str | None,
    sort_by: str | None,
    output: str | None,
    fmt: str | None,
    log_level: str | None,
) -> None:
    """Measure the candidates built by SUITE over a parameter grid.

    SUITE names the builder as MODULE:FUNCTION or FILE.py:FUNCTION. The
    builder is called with each grid point as keyword arguments and returns
    a mapping of candidate name to zero-argument callable. Exits with status
    1 when any cell did not finish ok.
    """
    try:
        settings = load_benchmark_config(config_path)
    except (ValueError, tomllib.TOMLDecodeError, RecursionError) as e:
        raise click.ClickException(f"Invalid configuration: {e}") from None

    _configure_logging(log_level or settings.log_level or "WARNING")

    builder = load_suite(suite)
    grid = dict(settings.grid.parameters)
    grid.update(parse_params(params))

    overrides = {
        "repetitions": repetitions,
        "warmup": warmup,
        "strictness": strictness,
        "memory": memory,
        "order": order,
        "timeout": timeout,
    }
    harness_settings = settings.harness.to_dict()
    harness_settings.update({k: v for k, v in overrides.items() if v is not None})

    try:
        runner = GridRunner(
            HarnessConfig.from_dict(harness_settings),
            workers=workers or settings.grid.workers,
            executor=executor or settings.grid.executor,
            point_timeout=settings.grid.point_timeout,
            fail_fast=settings.grid.fail_fast,
        )
        result_sets = runner.run(grid, builder)
    except EqualityMismatch as e:
        raise click.ClickException(str(e)) from None
    except ValueError as e:
        raise click.ClickException(str(e)) from None

    report = Report.from_results(result_sets)
    report.environment = capture_environment()
    view = _report_view(report, settings, baseline, sort_by)
    click.echo(view.format_table())

    output = output or settings.report.output
    if output:
        written = view.export(output, fmt or settings.report.format)
        click.echo(f"Report written to {written}")

    failed = report.failed
    if failed:
        click.echo(f"{len(failed)} cell(s) did not finish ok", err=True)
        sys.exit(1)


def _report_view(
    report: Report, settings: BenchmarkConfig, baseline: str | None, sort_by: str | None
) -> Report:
    if baseline is None and settings.report.relative:
        baseline = settings.report.baseline
    view = report.relative(baseline) if baseline else report
    sort_by = sort_by or settings.report.sort_by
    if sort_by:
        if sort_by not in SORT_KEYS:
            raise click.ClickException(f"Cannot sort by '{sort_by}'")
        view = view.sort(sort_by, ascending=settings.report.ascending)
    return view


@main.command()
def system() -> None:
    """Print the system fingerprint as JSON."""
    click.echo(json.dumps(capture_environment(), indent=2, default=str))


@main.command()
@click.option(
    "--output",
    default="optibench.toml",
    show_default=True,
    type=click.Path(),
    help="Where to write the template",
)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init(output: str, force: bool) -> None:
    """Write a template configuration file."""
    path = Path(output)
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")
    save_toml(default_config(), path)
    click.echo(f"Wrote template configuration to {path}")
