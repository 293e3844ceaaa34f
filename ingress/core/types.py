"""Type aliases for dynamic data structures throughout the application.

Request bodies flowing through the pipeline are untyped JSON until a schema
has validated them, so these aliases give that data a name.
"""

from typing import Any

# Decoded request body as seen by pipeline stages
type RequestBody = Any

# Context dictionary for error details and debugging information
type ErrorContext = dict[str, Any]
