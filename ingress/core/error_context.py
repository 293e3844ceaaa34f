"""Redaction of sensitive values in log context.

Failure logs from the resolver and the error formatter carry pieces of the
request. Everything passed to `sanitize_error_context` is copied with the
values of sensitive-looking keys replaced by `REDACTED`.

A key is sensitive when one of its words is a known secret word
(`userPassword`, `X-Auth-Token`, `card_number`) or when it contains one of
the names configured in `log_config.sensitive_fields`. Matching whole words
keeps ordinary keys such as `author` or `shipping` readable.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Final

from ingress.core.config import get_settings
from ingress.core.types import ErrorContext

REDACTED: Final[str] = "[REDACTED]"

# Containers nested deeper than this are replaced wholesale
MAX_DEPTH: Final[int] = 10

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_SEPARATORS = re.compile(r"[^a-z0-9]+")
_SECRET_WORDS = re.compile(
    r"(?:^|_)(?:"
    r"passw(?:or)?d|pwd|secret|token|auth|authorization|credentials?|"
    r"api_?key|private_?key|access_?key|session|"
    r"ssn|social_?security|pin|cvv|cvc|card_?number"
    r")(?:_|$)"
)


def _snake_words(field_name: str) -> str:
    spaced = _CAMEL_BOUNDARY.sub("_", field_name).lower()
    return _SEPARATORS.sub("_", spaced).strip("_")


@lru_cache(maxsize=1)
def _get_sensitive_fields() -> tuple[str, ...]:
    return tuple(name.lower() for name in get_settings().log_config.sensitive_fields)


def is_sensitive_field(field_name: str) -> bool:
    """Tell whether values stored under `field_name` must not be logged."""
    if _SECRET_WORDS.search(_snake_words(field_name)):
        return True
    lowered = field_name.lower()
    return any(name in lowered for name in _get_sensitive_fields())


def sanitize_value(value: Any, field_name: str = "", depth: int = 0) -> Any:
    """Copy `value`, redacting it or any nested sensitive entries.

    Args:
        value: A log context value. Dicts, lists and tuples are walked.
        field_name: Key the value is stored under, if any.
        depth: Nesting level of `value`, used to stop at `MAX_DEPTH`.

    Returns:
        Any: The redacted copy. Scalars under harmless keys come back as is.
    """
    if depth > MAX_DEPTH or (field_name and is_sensitive_field(field_name)):
        return REDACTED

    child_depth = depth + 1
    if isinstance(value, dict):
        return {
            key: sanitize_value(item, str(key), child_depth)
            for key, item in value.items()
        }
    if isinstance(value, list | tuple):
        items = [sanitize_value(item, depth=child_depth) for item in value]
        return items if isinstance(value, list) else tuple(items)
    return value


def sanitize_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Return a redacted copy of a flat or nested mapping."""
    return {key: sanitize_value(value, key) for key, value in data.items()}


def sanitize_error_context(
    error: Exception, context: ErrorContext | None = None
) -> ErrorContext:
    """Describe `error` for a log record, merged with redacted `context`.

    Example:
        >>> sanitize_error_context(LookupError("gone"), {"token": "t-1"})
        {'error_type': 'LookupError', 'error_message': 'gone', 'token': '[REDACTED]'}
    """
    described: ErrorContext = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }
    if context:
        described |= sanitize_dict(context)
    return described
