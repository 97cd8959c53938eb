"""
Unit Test Layer Configuration

Pure business logic: supply metrics, settlement math, finalization rules,
legacy schema backfill.

Usage:
    pytest tests/unit -v
"""


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
