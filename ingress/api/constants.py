"""API-related constants."""

# HTTP Status Codes
HTTP_400_BAD_REQUEST = 400
HTTP_422_UNPROCESSABLE_CONTENT = 422
HTTP_500_INTERNAL_SERVER_ERROR = 500
MIN_ERROR_STATUS = 400
MAX_ERROR_STATUS = 599

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

# Keys of pydantic error context that may echo submitted data
REDACTED_CONTEXT_KEYS = frozenset({"error", "input", "value"})
