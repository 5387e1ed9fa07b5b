"""Shared test fixtures for tokengate."""

from collections.abc import AsyncIterator
from typing import Any

import pytest
from fastapi import APIRouter, FastAPI
from httpx import ASGITransport, AsyncClient

from tokengate.api.deps import (
    JWTServiceDep,
    VerifiedPayloads,
    requires_tokens,
    skip_token_verification,
)
from tokengate.auth.registry import TokenTypeRegistry
from tokengate.auth.resolver import RequirementResolver
from tokengate.auth.service import JWTService
from tokengate.core.app import create_app
from tokengate.core.settings import AppSettings, JWTSettings
from tokengate.crypto.secret_store import SecretStore

SECRET_K1 = "k1-0123456789abcdef0123456789abcdef0123456789abcdef0123456789ab"
SECRET_K2 = "k2-fedcba9876543210fedcba9876543210fedcba9876543210fedcba987654"
SECRETS = {"k1": SECRET_K1, "k2": SECRET_K2}
SECRETS_STRING = f"k1={SECRET_K1}|k2={SECRET_K2}"

TOKEN_TYPES: dict[str, dict[str, Any]] = {
    "access": {
        "header_name": "Authorization",
        "expires_in": "15m",
        "issuer": "svc-a",
        "allowed_issuers": ["svc-a"],
    },
    "refresh": {
        "header_name": "X-Refresh-Token",
        "expires_in": "7d",
    },
    "service": {
        "header_name": "X-Service-Token",
        "expires_in": "1h",
        "header_claims": {"typ": "JWT", "env": "prod"},
    },
}

demo_router = APIRouter()


@demo_router.get("/me")
@requires_tokens("access")
async def me(payloads: VerifiedPayloads) -> dict[str, Any]:
    return {"types": list(payloads), "sub": payloads["access"]["sub"]}


@demo_router.get("/internal")
async def internal(payloads: VerifiedPayloads) -> dict[str, Any]:
    return {"types": list(payloads)}


@demo_router.get("/public")
@skip_token_verification
async def public() -> dict[str, Any]:
    return {"ok": True}


@demo_router.get("/misconfigured")
@requires_tokens("ghost")
async def misconfigured() -> dict[str, Any]:
    return {"ok": True}


@demo_router.post("/tokens/refresh")
@skip_token_verification
async def issue_refresh(service: JWTServiceDep) -> dict[str, Any]:
    return {"token": service.generate_token("refresh", {"sub": "user-1"})}


def build_app(debug: bool = False, required_types: str = "service") -> FastAPI:
    """Create the demo application around the shared token types."""
    return create_app(
        JWTSettings(
            secrets=SECRETS_STRING,
            default_key_id="k1",
            required_types=required_types,
            debug=debug,
        ),
        AppSettings(title="tokengate-test"),
        token_types=TOKEN_TYPES,
        routers=[demo_router],
    )


@pytest.fixture(autouse=True)
def _set_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set environment variables for test settings."""
    monkeypatch.setenv("APP_LOG_LEVEL", "DEBUG")


@pytest.fixture
def secret_store() -> SecretStore:
    return SecretStore(SECRETS, "k1")


@pytest.fixture
def registry() -> TokenTypeRegistry:
    return TokenTypeRegistry(TOKEN_TYPES)


@pytest.fixture
def service(secret_store: SecretStore, registry: TokenTypeRegistry) -> JWTService:
    return JWTService(secret_store, registry)


@pytest.fixture
def debug_service(secret_store: SecretStore, registry: TokenTypeRegistry) -> JWTService:
    return JWTService(secret_store, registry, debug=True)


@pytest.fixture
def resolver(service: JWTService) -> RequirementResolver:
    return RequirementResolver(service, ["service"])


@pytest.fixture
def service_headers(service: JWTService) -> dict[str, str]:
    """Headers carrying a valid mandatory ``service`` token."""
    token = service.generate_token("service", {"sub": "gateway"})
    return {"X-Service-Token": f"Bearer {token}"}


async def _client_for(app: FastAPI) -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
async def client() -> AsyncIterator[AsyncClient]:
    """Create an httpx test client against the demo app."""
    async for ac in _client_for(build_app()):
        yield ac


@pytest.fixture
async def debug_client() -> AsyncIterator[AsyncClient]:
    """Create an httpx test client against the demo app in diagnostics mode."""
    async for ac in _client_for(build_app(debug=True)):
        yield ac


@pytest.fixture
def app_factory() -> Any:
    """Expose ``build_app`` to tests that need a custom configuration."""
    return build_app
