"""
Pytest configuration and shared fixtures.

This file contains pytest configuration and fixtures that are available
to all test modules in the project.
"""

import os
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

# Import all fixtures from the fixtures module
from tests.fixtures import *


def pytest_configure(config):
    """Configure pytest settings."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test component interactions"
    )
    config.addinivalue_line(
        "markers", "policy: Role hierarchy, permission catalog and policy store tests"
    )
    config.addinivalue_line(
        "markers", "auth: Authentication and authorization tests"
    )
    config.addinivalue_line(
        "markers", "audit: Audit trail tests"
    )
    config.addinivalue_line(
        "markers", "config: Configuration-related tests"
    )


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location and content."""
    for item in items:
        # Mark tests based on file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        # Mark tests based on function name patterns
        if "policy" in item.name or "role" in item.name or "permission" in item.name:
            item.add_marker(pytest.mark.policy)

        if "auth" in item.name or "gate" in item.name:
            item.add_marker(pytest.mark.auth)

        if "audit" in item.name or "record" in item.name:
            item.add_marker(pytest.mark.audit)

        if "config" in item.name:
            item.add_marker(pytest.mark.config)


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up the test environment before any tests run."""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["TESTING"] = "true"

    yield

    os.environ.pop("ENVIRONMENT", None)
    os.environ.pop("TESTING", None)


@pytest.fixture
def temp_directory():
    """Provide a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def mock_environment_variables():
    """Provide a context manager for mocking environment variables."""
    def _mock_env(**kwargs):
        return patch.dict(os.environ, kwargs)

    return _mock_env
