"""Report writers.

The export format is resolved once to a writer; the writers themselves only
know how to lay out rows.
"""

from __future__ import annotations

import csv
import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from optibench.results import save_json

if TYPE_CHECKING:
    from optibench.report import Report

logger = logging.getLogger(__name__)


class ExportFormat(Enum):
    """Supported report file formats."""

    CSV = "csv"
    WIDE_CSV = "wide-csv"
    JSON = "json"


class ReportWriter(ABC):
    """Base class for writing a Report to a file."""

    @abstractmethod
    def write(self, report: Report, path: str | Path) -> Path:
        """Write ``report`` to ``path`` and return the path written."""


def _fieldnames(records: list[dict[str, Any]]) -> list[str]:
    names: list[str] = []
    for record in records:
        names.extend(k for k in record if k not in names)
    return names


def _write_csv(records: list[dict[str, Any]], path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=_fieldnames(records))
        writer.writeheader()
        writer.writerows(records)
    return path


class LongCsvWriter(ReportWriter):
    """One CSV line per (candidate, point, statistic): ready for plotting tools."""

    def write(self, report: Report, path: str | Path) -> Path:
        records = report.to_long()
        path = _write_csv(records, path)
        logger.info("Wrote %d long-format record(s) to %s", len(records), path)
        return path


class WideCsvWriter(ReportWriter):
    """One CSV line per report row with every statistic as a column."""

    def write(self, report: Report, path: str | Path) -> Path:
        path = _write_csv(report.to_records(), path)
        logger.info("Wrote %d row(s) to %s", len(report), path)
        return path


class JsonWriter(ReportWriter):
    """JSON document with the rows, the baseline and the system fingerprint."""

    def write(self, report: Report, path: str | Path) -> Path:
        path = Path(path)
        save_json(
            {
                "relative_to": report.relative_to,
                "environment": report.environment,
                "rows": report.to_records(),
            },
            path,
        )
        logger.info("Wrote %d row(s) to %s", len(report), path)
        return path


_WRITERS: dict[ExportFormat, type[ReportWriter]] = {
    ExportFormat.CSV: LongCsvWriter,
    ExportFormat.WIDE_CSV: WideCsvWriter,
    ExportFormat.JSON: JsonWriter,
}


def get_writer(fmt: ExportFormat | str | None = None, path: str | Path | None = None) -> ReportWriter:
    """Resolve an export format to its writer.

    Args:
        fmt: Format or its name. When None it is inferred from ``path``:
            ``.json`` files are JSON, anything else long CSV.
        path: Output path, only consulted to infer the format.

    Raises:
        ValueError: If ``fmt`` names no known format.
    """
    if fmt is None:
        suffix = Path(path).suffix.lower() if path is not None else ""
        fmt = ExportFormat.JSON if suffix == ".json" else ExportFormat.CSV
    try:
        fmt = ExportFormat(fmt)
    except ValueError:
        choices = ", ".join(f.value for f in ExportFormat)
        raise ValueError(f"Unknown export format '{fmt}'; choose one of {choices}") from None
    return _WRITERS[fmt]()
