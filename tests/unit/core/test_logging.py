"""Unit tests for Loguru-based logging setup and formatters."""

import logging
from collections.abc import Generator
from datetime import UTC, datetime
from types import SimpleNamespace
from typing import Any

import orjson
import pytest
from pytest_mock import MockerFixture

from ingress.core import logging as ingress_logging
from ingress.core.config import Settings
from ingress.core.logging import (
    InterceptHandler,
    format_console_with_context,
    serialize_for_json,
    setup_logging,
)


def make_record(**overrides: Any) -> dict[str, Any]:  # noqa: ANN401
    """Build a minimal Loguru-like record."""
    record: dict[str, Any] = {
        "time": datetime(2024, 5, 1, 12, 30, 0, 123000, tzinfo=UTC),
        "level": SimpleNamespace(name="INFO"),
        "name": "ingress.api.pipeline.resolver",
        "function": "resolver",
        "line": 42,
        "message": "Resolved 2 of 2 references",
        "extra": {},
        "exception": None,
    }
    record.update(overrides)
    return record


@pytest.fixture
def reset_logging_state() -> Generator[None]:
    """Allow setup_logging to run again within a test."""
    previous = ingress_logging._state.configured
    ingress_logging._state.configured = False
    yield
    ingress_logging._state.configured = previous


@pytest.mark.unit
class TestConsoleFormatter:
    """Test the console formatter."""

    def test_priority_fields_come_first(self) -> None:
        """Request identifiers precede other context fields."""
        record = make_record(
            extra={
                "failed_fields": ["author"],
                "request_id": "req-1",
                "correlation_id": "0123456789abcdef",
            }
        )

        line = format_console_with_context(record)

        assert line.index("correlation_id=01234567") < line.index("request_id=req-1")
        assert line.index("request_id=req-1") < line.index("failed_fields=")
        assert line.endswith("Resolved 2 of 2 references\n")

    def test_braces_are_escaped(self) -> None:
        """Braces in messages and values cannot break Loguru templating."""
        record = make_record(message="body {x}", extra={"body": {"a": 1}})

        line = format_console_with_context(record)

        assert "body {{x}}" in line
        assert "{{'a': 1}}" in line

    def test_sensitive_fields_are_redacted(self) -> None:
        """Configured sensitive keys never reach the console."""
        line = format_console_with_context(make_record(extra={"password": "hunter2"}))

        assert "hunter2" not in line
        assert "password=[REDACTED]" in line

    def test_exception_placeholder(self) -> None:
        """Records with an exception ask Loguru to append it."""
        line = format_console_with_context(make_record(exception=object()))

        assert line.endswith("{exception}\n")

    def test_malformed_record_falls_back(self) -> None:
        """Records missing fields use the default format."""
        line = format_console_with_context({"message": "x"})

        assert line == ingress_logging.DEFAULT_LOG_FORMAT + "\n"


@pytest.mark.unit
class TestJsonFormatter:
    """Test the JSON formatter."""

    def test_serializes_record_and_extra(self) -> None:
        """Public extra fields are merged into the JSON object."""
        record = make_record(extra={"request_id": "req-1", "_internal": True})

        entry = orjson.loads(serialize_for_json(record))

        assert entry["message"] == "Resolved 2 of 2 references"
        assert entry["level"] == "INFO"
        assert entry["line"] == 42
        assert entry["request_id"] == "req-1"
        assert "_internal" not in entry

    def test_serializes_exception(self) -> None:
        """Exceptions are reduced to their type and message."""
        exc = LookupError("user not found")
        record = make_record(
            exception=SimpleNamespace(type=LookupError, value=exc, traceback=None)
        )

        entry = orjson.loads(serialize_for_json(record))

        assert entry["exception"] == {
            "type": "LookupError",
            "value": "user not found",
        }


@pytest.mark.unit
class TestInterceptHandler:
    """Test forwarding of standard library records."""

    def test_forwards_to_loguru(self, mocker: MockerFixture) -> None:
        """Records are re-emitted through Loguru at the same level."""
        mock_logger = mocker.patch("ingress.core.logging.logger")
        mock_logger.level.return_value = SimpleNamespace(name="WARNING")
        record = logging.LogRecord(
            "uvicorn.error", logging.WARNING, __file__, 1, "port %s busy", (8000,), None
        )

        InterceptHandler().emit(record)

        mock_logger.opt.return_value.log.assert_called_once_with(
            "WARNING", "port 8000 busy"
        )

    def test_unknown_level_uses_number(self, mocker: MockerFixture) -> None:
        """Custom stdlib levels are forwarded by number."""
        mock_logger = mocker.patch("ingress.core.logging.logger")
        mock_logger.level.side_effect = ValueError("unknown level")
        record = logging.LogRecord("lib", 25, __file__, 1, "custom", (), None)

        InterceptHandler().emit(record)

        mock_logger.opt.return_value.log.assert_called_once_with(25, "custom")


@pytest.mark.unit
@pytest.mark.usefixtures("reset_logging_state")
class TestSetupLogging:
    """Test logging setup."""

    @pytest.mark.parametrize("formatter_type", ["console", "json"])
    def test_configures_sink_once(
        self,
        mocker: MockerFixture,
        monkeypatch: pytest.MonkeyPatch,
        formatter_type: str,
    ) -> None:
        """A single sink is added and repeated calls do nothing."""
        monkeypatch.setenv("LOG_CONFIG__LOG_FORMATTER_TYPE", formatter_type)
        mock_logger = mocker.patch("ingress.core.logging.logger")
        mocker.patch("ingress.core.logging.logging.basicConfig")
        settings = Settings()

        setup_logging(settings)
        setup_logging(settings)

        mock_logger.remove.assert_called_once()
        mock_logger.add.assert_called_once()
        assert ingress_logging._state.configured is True

    def test_intercepts_uvicorn_loggers(self, mocker: MockerFixture) -> None:
        """Uvicorn loggers are routed through the intercept handler."""
        mocker.patch("ingress.core.logging.logger")
        mocker.patch("ingress.core.logging.logging.basicConfig")
        uvicorn_logger = logging.getLogger("uvicorn.access")
        previous = (uvicorn_logger.handlers, uvicorn_logger.propagate)

        try:
            setup_logging(Settings())

            assert len(uvicorn_logger.handlers) == 1
            assert isinstance(uvicorn_logger.handlers[0], InterceptHandler)
            assert uvicorn_logger.propagate is False
        finally:
            uvicorn_logger.handlers, uvicorn_logger.propagate = previous
