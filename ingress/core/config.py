"""Service configuration loaded from the environment.

Values come, highest precedence first, from environment variables (nested
sections use `__`, e.g. `PIPELINE_CONFIG__RESOLUTION_TIMEOUT_SECONDS=2.5`),
a `.env` file, and the defaults declared below. A few defaults depend on
the deployment environment and are filled in after loading.

`get_settings()` returns the process-wide instance. The pipeline and the
error formatter read it once, when a route is declared or the application
is built, and never re-read it per request.
"""

import os
from functools import lru_cache
from typing import Annotated, Literal, Self

from pydantic import BaseModel, BeforeValidator, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

type Environment = Literal["development", "staging", "production"]
type LogFormatter = Literal["console", "json"]

# Managed container platforms that collect stdout as structured logs
MANAGED_PLATFORM_ENV_VARS = ("K_SERVICE", "AWS_EXECUTION_ENV")


def _blank_to_none(value: str | None) -> str | None:
    return None if value == "" else value


# Empty env vars (`DOCS_URL=`) switch the corresponding feature off
OptionalStr = Annotated[str | None, BeforeValidator(_blank_to_none)]


class PipelineConfig(BaseModel):
    """Defaults for the request body pipeline stages."""

    strip_unknown: bool = Field(
        default=True,
        description=(
            "Drop body fields the schema does not declare. When disabled, "
            "unknown fields are reported as validation errors instead."
        ),
    )
    resolution_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description=(
            "Upper bound for a single reference lookup. A lookup that runs "
            "longer counts as failed. None waits indefinitely."
        ),
    )


class LogConfig(BaseModel):
    """Log level, output format and request logging options."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Minimum level written to the sink"
    )
    log_formatter_type: LogFormatter | None = Field(
        default=None,
        description="Output format; chosen from the environment when unset",
    )
    excluded_paths: list[str] = Field(
        default_factory=lambda: ["/health"],
        description="Request paths the access log skips",
    )
    slow_request_threshold_ms: int = Field(
        default=1000,
        gt=0,
        description="Requests slower than this are logged again as a warning",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: [
            "password",
            "token",
            "secret",
            "api_key",
            "authorization",
        ],
        description="Extra field names whose values never reach the logs",
    )


class ObservabilityConfig(BaseModel):
    """OpenTelemetry tracing options."""

    enable_tracing: bool = Field(default=False, description="Emit trace spans")
    exporter_type: Literal["console", "otlp", "none"] = Field(
        default="console", description="Where finished spans are sent"
    )
    exporter_endpoint: OptionalStr = Field(
        default=None, description="OTLP collector address"
    )
    trace_sample_rate: float = Field(
        default=1.0, ge=0.0, le=1.0, description="Fraction of traces kept"
    )


class Settings(BaseSettings):
    """All settings of the Ingress service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        validate_default=True,
    )

    app_name: str = Field(default="Ingress", description="Service name")
    app_version: str = Field(default="0.1.0", description="Service version")
    environment: Environment = Field(
        default="development",
        description="Deployment environment; `production` hides error details",
    )
    debug: bool = Field(
        default=True,
        description="Reload and verbose tracebacks; forced off in production",
    )

    api_host: str = Field(default="127.0.0.1", description="Bind address")
    api_port: int = Field(default=8000, description="Bind port")
    docs_url: OptionalStr = Field(default="/docs", description="Swagger UI path")
    redoc_url: OptionalStr = Field(default="/redoc", description="ReDoc path")
    openapi_url: OptionalStr = Field(
        default="/openapi.json", description="OpenAPI document path"
    )

    pipeline_config: PipelineConfig = Field(default_factory=PipelineConfig)
    log_config: LogConfig = Field(default_factory=LogConfig)
    observability_config: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig
    )

    @model_validator(mode="after")
    def apply_environment_defaults(self) -> Self:
        """Fill in defaults that depend on where the service runs."""
        if self.log_config.log_formatter_type is None:
            self.log_config.log_formatter_type = self._default_log_formatter()

        if self.environment == "production":
            self.debug = False
            tracing = self.observability_config
            if tracing.exporter_type == "console":
                tracing.exporter_type = "otlp"
            if tracing.trace_sample_rate == 1.0:
                tracing.trace_sample_rate = 0.1
        return self

    def _default_log_formatter(self) -> LogFormatter:
        if any(os.getenv(name) for name in MANAGED_PLATFORM_ENV_VARS):
            return "json"
        return "console" if self.environment == "development" else "json"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    return Settings()


def is_production(settings: Settings) -> bool:
    """Report whether the settings describe a production deployment.

    The error formatter omits stack traces when this returns True.

    Args:
        settings: Application settings.

    Returns:
        bool: True only when the environment is exactly "production".
    """
    return settings.environment == "production"
