"""JSON response class and body codec backed by orjson.

`ORJSONResponse` is the application's default response class. The same
encoder is used by the pipeline route to re-encode a rewritten request body,
so endpoints see exactly what the stages produced.
"""

from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel


def dump_json(content: Any) -> bytes:  # noqa: ANN401 - any JSON-serializable content
    """Encode content as JSON bytes with sorted keys.

    Args:
        content: The content to serialize. Pydantic models are dumped first.

    Returns:
        bytes: The JSON-encoded bytes.
    """
    if isinstance(content, BaseModel):
        content = content.model_dump(mode="json")
    return orjson.dumps(content, option=orjson.OPT_SORT_KEYS)


class ORJSONResponse(JSONResponse):
    """JSON response rendered with orjson."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - any JSON-serializable content
        """Render the content as JSON using orjson."""
        return dump_json(content)
