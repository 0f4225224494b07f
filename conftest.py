"""
Global pytest configuration for dedup_chunking tests.

Keeps package logging quiet during the test run so chunking output does not
drown the test report.
"""

import pytest

from dedup_chunking.logging_config import LogLevel, configure_logging


@pytest.fixture(scope="session", autouse=True)
def configure_test_environment():
    """Configure quiet logging for the whole session."""
    configure_logging(
        level=LogLevel.SILENT,
        console_output=False,
        file_output=False,
        collect_performance=False,
        collect_metrics=False
    )

    yield

    configure_logging(level=LogLevel.NORMAL, console_output=True)
