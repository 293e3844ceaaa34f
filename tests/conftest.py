"""Root conftest.py for the Ingress test suite.

This file contains project-wide fixtures and pytest configuration.
"""

from collections.abc import Generator

import pytest

from ingress.api.pipeline.validation import _forbid_unknown
from ingress.core.config import get_settings
from ingress.core.context import RequestContext
from ingress.core.error_context import _get_sensitive_fields


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that test individual components in isolation"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that test multiple components"
    )


@pytest.fixture(autouse=True)
def clean_caches() -> Generator[None]:
    """Clear cached settings and derived caches around each test."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    _forbid_unknown.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    _forbid_unknown.cache_clear()


@pytest.fixture
def clean_context() -> Generator[None]:
    """Reset request-scoped identifiers before and after a test."""
    RequestContext.clear()
    yield
    RequestContext.clear()
