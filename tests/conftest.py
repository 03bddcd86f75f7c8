"""
Root conftest for all tests.

This conftest only contains minimal shared configuration.
Unit tests (tests/unit/) keep their fakes and fixtures in their own conftest.
"""


def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (requires services)"
    )
