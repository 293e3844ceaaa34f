"""FastAPI integration for pipeline stages.

Stages are attached to an endpoint with `use_stages` and run by
`PipelineRoute`, the application's route class:

    @app.post("/posts")
    @use_stages(
        resolve_references({"author": fetch_user}),
        validate_body(PostIn),
    )
    async def create_post(post: PostIn) -> dict[str, Any]: ...

The route decodes the JSON body, runs the stages, and either returns the
response a stage rejected the request with, or calls the endpoint with a
request whose body is the rewritten payload, so FastAPI's own parameter
parsing sees what the stages produced.
"""

from collections.abc import Awaitable, Callable
from typing import Any, Final

import orjson
from fastapi import Request, Response
from fastapi.routing import APIRoute
from starlette.types import Receive, Scope

from ingress.api.pipeline.context import PipelineContext, Stage, run_stages
from ingress.api.utils.responses import ORJSONResponse, dump_json
from ingress.core.exceptions import MalformedBodyError
from ingress.core.types import RequestBody

STAGES_ATTRIBUTE: Final[str] = "__pipeline_stages__"


def use_stages[F: Callable[..., Any]](*stages: Stage) -> Callable[[F], F]:
    """Attach pipeline stages to an endpoint function.

    Must be applied below the route decorator. Stacked `use_stages`
    decorators run top to bottom.

    Args:
        *stages: Stages to run before the endpoint, in order.

    Returns:
        Callable[[F], F]: Decorator returning the endpoint unchanged.
    """

    def decorator(endpoint: F) -> F:
        existing = getattr(endpoint, STAGES_ATTRIBUTE, ())
        setattr(endpoint, STAGES_ATTRIBUTE, (*stages, *existing))
        return endpoint

    return decorator


class RewrittenBodyRequest(Request):
    """Request whose body is replaced by bytes produced by the pipeline."""

    def __init__(self, scope: Scope, receive: Receive, *, body: bytes) -> None:
        super().__init__(scope, receive)
        self._rewritten_body = body

    async def body(self) -> bytes:
        return self._rewritten_body


async def read_json_body(request: Request) -> RequestBody:
    """Decode the request body, treating an empty body as `{}`.

    Raises:
        MalformedBodyError: If the body is not valid JSON.
    """
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise MalformedBodyError(cause=exc) from exc


class PipelineRoute(APIRoute):
    """Route class running an endpoint's stages before the endpoint itself."""

    def __init__(
        self,
        path: str,
        endpoint: Callable[..., Any],
        **kwargs: Any,  # noqa: ANN401
    ) -> None:
        # APIRoute builds the handler during __init__, so stages come first
        self.stages: tuple[Stage, ...] = tuple(getattr(endpoint, STAGES_ATTRIBUTE, ()))
        super().__init__(path, endpoint, **kwargs)

    def get_route_handler(self) -> Callable[[Request], Awaitable[Response]]:
        route_handler = super().get_route_handler()
        stages = self.stages
        if not stages:
            return route_handler

        async def pipeline_route_handler(request: Request) -> Response:
            ctx = PipelineContext(body=await read_json_body(request))
            responses: list[Response] = []

            async def call_endpoint() -> None:
                rewritten = RewrittenBodyRequest(
                    request.scope, request.receive, body=dump_json(ctx.body)
                )
                responses.append(await route_handler(rewritten))

            await run_stages(stages, ctx, call_endpoint)

            if responses:
                return responses[0]
            if not ctx.rejected:
                msg = f"Pipeline for {self.path} ended without a response"
                raise RuntimeError(msg)
            return ORJSONResponse(
                status_code=ctx.status_code, content=ctx.response_body
            )

        return pipeline_route_handler
