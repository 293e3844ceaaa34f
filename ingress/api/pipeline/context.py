"""Per-request pipeline state and stage composition.

A stage is an async callable `stage(ctx, call_next)`. It may rewrite
`ctx.body`, and then either await `call_next()` to hand control to the next
stage (and finally the endpoint), or reject the request by setting
`ctx.status_code`/`ctx.response_body` and returning without calling it.
"""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from ingress.core.types import RequestBody

type CallNext = Callable[[], Awaitable[None]]
type Stage = Callable[["PipelineContext", CallNext], Awaitable[None]]


@dataclass
class PipelineContext:
    """Mutable state owned by a single request while its stages run.

    Attributes:
        body: Decoded request body, rewritten in place by the stages.
        status_code: Response status set by a stage that rejects the request.
        response_body: JSON-serializable response body for a rejection.
        resolved_fields: Body fields already replaced by a reference lookup
            during this request.
    """

    body: RequestBody
    status_code: int | None = None
    response_body: Any = None
    resolved_fields: set[str] = field(default_factory=set)

    def reject(self, status_code: int, response_body: Any) -> None:  # noqa: ANN401
        """Record the response that ends the request."""
        self.status_code = status_code
        self.response_body = response_body

    @property
    def rejected(self) -> bool:
        """Whether a stage has already set a response."""
        return self.status_code is not None


async def run_stages(
    stages: Sequence[Stage], ctx: PipelineContext, endpoint: CallNext
) -> None:
    """Run `stages` in order, ending with `endpoint`.

    Each stage receives a `call_next` that continues the chain. A stage that
    returns without calling it stops the chain there.

    Args:
        stages: Stages to run, first to last.
        ctx: The request's pipeline context.
        endpoint: Called once the last stage hands over control.

    Raises:
        RuntimeError: If a stage calls `call_next` more than once.
    """

    async def dispatch(index: int) -> None:
        if index == len(stages):
            await endpoint()
            return

        called = False

        async def call_next() -> None:
            nonlocal called
            if called:
                msg = f"call_next() called multiple times by stage {index}"
                raise RuntimeError(msg)
            called = True
            await dispatch(index + 1)

        await stages[index](ctx, call_next)

    await dispatch(0)
