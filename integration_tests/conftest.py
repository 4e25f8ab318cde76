"""Pytest configuration for integration tests.

Everything under this directory runs full onboarding and check-in cycles
against a real database. Deselect with `pytest -m "not integration"`.
"""

import pytest


def pytest_collection_modifyitems(items):
    """Mark every test collected from this directory as an integration test."""
    for item in items:
        if item.path.parent.name == "integration_tests":
            item.add_marker(pytest.mark.integration)
