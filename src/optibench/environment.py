"""System fingerprint for benchmark reproducibility.

Timings only mean something next to the machine that produced them, so
reports carry the interpreter, library, OS and hardware details captured here.
"""

from __future__ import annotations

import platform
import subprocess
import sys
from datetime import UTC, datetime
from typing import Any

import numpy as np
import psutil


def capture_environment() -> dict[str, Any]:
    """Capture the software and hardware environment of this process.

    Returns:
        Dictionary with timestamp, git commit, Python and numpy versions,
        OS details, CPU counts and frequency, and memory totals.
    """
    memory = psutil.virtual_memory()
    return {
        "timestamp": datetime.now(UTC).isoformat(),
        "git_commit": _get_git_commit(),
        "python_version": sys.version,
        "python_implementation": platform.python_implementation(),
        "numpy_version": np.__version__,
        "os": {
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
            "processor": platform.processor(),
        },
        "cpu": {
            "physical_cores": psutil.cpu_count(logical=False),
            "logical_cores": psutil.cpu_count(logical=True),
            "frequency_mhz": _get_cpu_frequency(),
        },
        "memory": {
            "total_bytes": memory.total,
            "available_bytes": memory.available,
        },
    }


def _get_git_commit() -> str:
    """Get current git commit hash, or 'unknown' if not in a repo."""
    try:
        return (
            subprocess.check_output(
                ["git", "rev-parse", "HEAD"],
                stderr=subprocess.DEVNULL,
            )
            .decode()
            .strip()
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return "unknown"


def _get_cpu_frequency() -> float | None:
    """Current CPU frequency in MHz, None where the platform does not report it."""
    try:
        freq = psutil.cpu_freq()
    except (NotImplementedError, OSError):
        return None
    return float(freq.current) if freq is not None else None
