"""Core infrastructure package for shared application functionality.

- **config**: Centralized configuration management with environment support
- **context**: Correlation and request ID management
- **exceptions**: Structured exception hierarchy with error codes
- **error_context**: Redaction of sensitive keys in logs and error details
- **logging**: Structured logging with Loguru
- **observability**: Distributed tracing with OpenTelemetry
- **types**: Type aliases for untyped JSON data
"""
