"""FastAPI middleware for cross-cutting request/response concerns.

- **RequestContextMiddleware**: Manages correlation IDs
- **RequestLoggingMiddleware**: Request logging with timing and request IDs
- **error_handler**: Process-wide JSON error formatting

Middleware order:
1. Request context (sets up correlation IDs)
2. Request logging (logs with correlation context)
3. Error handling (catches and formats all exceptions)
"""
