"""Shared fixtures and demo routes for integration tests.

The demo routes mirror how a service wires the pipeline: an in-memory user
and tag directory stands in for the external source of truth.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

import pytest
from fastapi import FastAPI, HTTPException, Request, status
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel, Field

from ingress.api.main import create_app
from ingress.api.pipeline import (
    CallNext,
    PipelineContext,
    resolve_references,
    use_stages,
    validate_body,
)
from ingress.core.config import Settings
from ingress.core.exceptions import NotFoundError

USERS: dict[str, dict[str, Any]] = {
    "u123": {"id": "u123", "name": "Ann"},
    "u456": {"id": "u456", "name": "Bo"},
}
TAGS: dict[str, dict[str, Any]] = {
    "python": {"id": "python", "label": "Python"},
    "asyncio": {"id": "asyncio", "label": "asyncio"},
}


async def fetch_user(user_id: str) -> dict[str, Any]:
    """Look up one user or raise NotFoundError."""
    try:
        return USERS[user_id]
    except KeyError as exc:
        raise NotFoundError(f"User {user_id} not found") from exc


async def fetch_tags(tag_ids: list[str]) -> list[dict[str, Any]]:
    """Look up every tag or raise NotFoundError."""
    try:
        return [TAGS[tag_id] for tag_id in tag_ids]
    except KeyError as exc:
        raise NotFoundError("Unknown tag") from exc


class Author(BaseModel):
    """Resolved author."""

    id: str
    name: str


class Tag(BaseModel):
    """Resolved tag."""

    id: str
    label: str


class PostIn(BaseModel):
    """Payload of the demo post route after resolution."""

    title: str = Field(min_length=3)
    author: Author
    tags: list[Tag] = Field(default_factory=list)


class SignupIn(BaseModel):
    """Payload of the demo signup route."""

    username: str = Field(min_length=3)
    password: str = Field(min_length=12)
    age: int = Field(ge=18)


class TeapotError(Exception):
    """Unexpected error declaring its own status code."""

    status_code = 418


async def explode(ctx: PipelineContext, call_next: CallNext) -> None:
    """Stage failing with an unexpected error."""
    msg = "stage failure"
    raise RuntimeError(msg)


def add_demo_routes(app: FastAPI) -> None:
    """Register routes exercising the pipeline and the error formatter."""

    @app.post("/posts", status_code=status.HTTP_201_CREATED)
    @use_stages(
        resolve_references({"author": fetch_user, "tags": fetch_tags}),
        validate_body(PostIn),
    )
    async def create_post(post: PostIn) -> dict[str, Any]:
        return post.model_dump()

    @app.post("/signup")
    @use_stages(validate_body(SignupIn))
    async def signup(request: Request) -> dict[str, Any]:
        return {"received": await request.json()}

    @app.post("/broken-stage")
    @use_stages(explode)
    async def broken_stage() -> dict[str, str]:
        return {"status": "unreachable"}

    @app.get("/items/{item_id}")
    async def get_item(item_id: int) -> dict[str, int]:
        return {"item_id": item_id}

    @app.get("/errors/not-found")
    async def raise_not_found() -> None:
        raise NotFoundError("Post not found", context={"post_id": 7})

    @app.get("/errors/runtime")
    async def raise_runtime() -> None:
        msg = "database exploded"
        raise RuntimeError(msg)

    @app.get("/errors/teapot")
    async def raise_teapot() -> None:
        msg = "short and stout"
        raise TeapotError(msg)

    @app.get("/errors/forbidden")
    async def raise_forbidden() -> None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


ClientFactory = Callable[[], Awaitable[AsyncClient]]


@pytest.fixture
async def client_factory() -> AsyncGenerator[ClientFactory]:
    """Factory creating clients for a fresh app built from the current env.

    Unhandled exceptions are turned into responses by the error formatter;
    the transport is told not to re-raise them so tests see those responses.
    """
    clients: list[AsyncClient] = []

    async def _create_client() -> AsyncClient:
        app = create_app(Settings())
        add_demo_routes(app)
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        client = AsyncClient(transport=transport, base_url="http://test")
        clients.append(client)
        return client

    yield _create_client

    for client in clients:
        await client.aclose()


@pytest.fixture
async def client(client_factory: ClientFactory) -> AsyncClient:
    """Client for a development deployment."""
    return await client_factory()


@pytest.fixture
async def production_client(
    monkeypatch: pytest.MonkeyPatch, client_factory: ClientFactory
) -> AsyncClient:
    """Client for a production deployment."""
    monkeypatch.setenv("ENVIRONMENT", "production")
    return await client_factory()
