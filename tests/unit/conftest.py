"""Shared fixtures for unit tests."""

import asyncio
import os
from collections.abc import Awaitable, Callable, Generator
from typing import Any, cast

import pytest
from fastapi import Request
from pytest_mock import MockerFixture, MockType
from starlette.datastructures import URL

from ingress.core.config import Settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Generator[pytest.MonkeyPatch]:
    """Drop app-specific env vars that might leak between tests.

    Args:
        monkeypatch: Pytest monkeypatch fixture.

    Yields:
        pytest.MonkeyPatch: The monkeypatch instance for env manipulation.
    """
    for key in list(os.environ):
        if key.startswith(("APP_", "API_", "PIPELINE_CONFIG__")):
            monkeypatch.delenv(key, raising=False)
    yield monkeypatch


@pytest.fixture
def mock_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Provide a real Settings object with test values.

    Returns:
        Settings: Development settings named TestApp.
    """
    monkeypatch.setenv("APP_NAME", "TestApp")
    monkeypatch.setenv("APP_VERSION", "1.0.0")
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DEBUG", "false")
    return Settings()


@pytest.fixture
def production_settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Provide Settings for a production deployment.

    Returns:
        Settings: Production settings named TestApp.
    """
    monkeypatch.setenv("APP_NAME", "TestApp")
    monkeypatch.setenv("APP_VERSION", "1.0.0")
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("DEBUG", "false")
    return Settings()


@pytest.fixture
def mock_request(mocker: MockerFixture) -> MockType:
    """Create mock FastAPI Request with the attributes handlers read.

    Returns:
        MockType: Mock request object.
    """
    request = mocker.Mock(spec=Request)
    request.method = "POST"
    request.url = mocker.Mock(spec=URL)
    request.url.path = "/api/posts"
    request.headers = {}
    return cast("MockType", request)


@pytest.fixture
def call_next_recorder() -> tuple[Callable[[], Awaitable[None]], list[str]]:
    """Provide a `call_next` that records each call.

    Returns:
        tuple: The callable and the list it appends "next" to.
    """
    calls: list[str] = []

    async def call_next() -> None:
        calls.append("next")

    return call_next, calls


@pytest.fixture
def lookup_factory() -> Callable[..., Any]:
    """Build async lookups that return, or raise, a fixed result.

    Returns:
        Callable[..., Any]: Factory producing lookups with a `calls` list.
    """

    def factory(
        result: Any = None,  # noqa: ANN401
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> Any:  # noqa: ANN401
        calls: list[Any] = []

        async def lookup(raw: Any) -> Any:  # noqa: ANN401
            calls.append(raw)
            if delay:
                await asyncio.sleep(delay)
            if error is not None:
                raise error
            return result

        lookup.calls = calls  # type: ignore[attr-defined]
        return lookup

    return factory
