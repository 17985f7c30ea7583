"""Unit tests for the ASGI adapter."""

import httpx
import pytest
from fastapi import FastAPI, Response
from helpers import build_app
from starlette.authentication import (
    AuthCredentials,
    AuthenticationBackend,
    SimpleUser,
    UnauthenticatedUser,
)
from starlette.middleware.authentication import AuthenticationMiddleware
from starlette.requests import Request as StarletteRequest

from request_dedup.adapters.asgi import ASGIIdempotencyMiddleware, default_identity_resolver
from request_dedup.config import DedupConfig
from request_dedup.core.keys import metadata_key
from request_dedup.models import MetadataRecord

KEY = "a0eebc99-9c0b-4ef8-bb6d-6bb9bd380a11"


class HeaderAuthBackend(AuthenticationBackend):
    async def authenticate(self, conn):
        username = conn.headers.get("x-user")
        if username is None:
            return None
        return AuthCredentials(["authenticated"]), SimpleUser(username)


def scope_request(user=None):
    scope = {"type": "http", "method": "POST", "path": "/", "headers": []}
    if user is not None:
        scope["user"] = user
    return StarletteRequest(scope)


def async_client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


async def stored_metadata(cache):
    return MetadataRecord.model_validate_json(await cache.get(metadata_key(KEY)))


# ============================================================================
# Identity Resolution
# ============================================================================


def test_identity_resolver_anonymous():
    """Test that requests without an authenticated user have no identity."""
    assert default_identity_resolver(scope_request()) is None


def test_identity_resolver_authenticated():
    """Test that an authenticated user's name becomes the identity."""
    assert default_identity_resolver(scope_request(SimpleUser("alice"))) == "alice"


def test_identity_resolver_unauthenticated_user():
    """Test that an unauthenticated user object yields no identity."""
    assert default_identity_resolver(scope_request(UnauthenticatedUser())) is None


@pytest.mark.asyncio
async def test_metadata_captures_client(cache, locks):
    """Test that the adapter passes client IP and identity to the engine."""
    app = build_app(cache, locks, DedupConfig())
    app.add_middleware(AuthenticationMiddleware, backend=HeaderAuthBackend())

    async with async_client(app) as client:
        response = await client.post(
            "/api/payments",
            json={"amount": 100},
            headers={"Idempotency-Key": KEY, "x-user": "alice"},
        )

    assert response.status_code == 201
    record = await stored_metadata(cache)
    assert record.client_identity == "alice"
    assert record.client_ip == "127.0.0.1"
    assert record.endpoint == "/api/payments"


@pytest.mark.asyncio
async def test_anonymous_client_identity(cache, locks):
    """Test that an anonymous request records no identity."""
    app = build_app(cache, locks, DedupConfig())

    async with async_client(app) as client:
        await client.post("/api/payments", json={"amount": 100}, headers={"Idempotency-Key": KEY})

    assert (await stored_metadata(cache)).client_identity is None


@pytest.mark.asyncio
async def test_custom_identity_resolver(cache, locks):
    """Test that a custom resolver decides the recorded identity."""
    app = FastAPI()
    app.add_middleware(
        ASGIIdempotencyMiddleware,
        cache=cache,
        locks=locks,
        identity_resolver=lambda request: request.headers.get("x-tenant"),
    )

    @app.post("/api/items", status_code=201)
    async def create_item():
        return {"ok": True}

    async with async_client(app) as client:
        response = await client.post(
            "/api/items", headers={"Idempotency-Key": KEY, "x-tenant": "acme"}
        )

    assert response.status_code == 201
    assert (await stored_metadata(cache)).client_identity == "acme"


# ============================================================================
# Response Conversion
# ============================================================================


@pytest.mark.asyncio
async def test_binary_body_replayed_exactly(cache, locks):
    """Test that a non-JSON body survives caching byte for byte."""
    payload = bytes(range(256))
    app = FastAPI()
    app.add_middleware(ASGIIdempotencyMiddleware, cache=cache, locks=locks)

    @app.post("/api/blobs")
    async def create_blob():
        return Response(content=payload, media_type="application/octet-stream")

    async with async_client(app) as client:
        first = await client.post("/api/blobs", headers={"Idempotency-Key": KEY})
        second = await client.post("/api/blobs", headers={"Idempotency-Key": KEY})

    assert first.content == second.content == payload
    assert first.headers["idempotency-status"] == "Original"
    assert second.headers["idempotency-status"] == "Repeated"
    assert second.headers["content-type"] == "application/octet-stream"
