"""Root conftest: adds a --quick flag that skips tests marked slow.

Usage:
    pytest              # everything
    pytest --quick      # skip process-pool and sleep-heavy tests
"""

from __future__ import annotations

import pytest


def pytest_addoption(parser):
    parser.addoption(
        "--quick",
        action="store_true",
        default=False,
        help="Skip tests marked slow",
    )


def pytest_collection_modifyitems(config, items):
    if not config.getoption("--quick", default=False):
        return

    skip_slow = pytest.mark.skip(reason="skipped by --quick")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)
