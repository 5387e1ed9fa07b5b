"""OpenAPI security schemes and per-route security requirements."""

from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any

from fastapi import FastAPI, routing
from fastapi.openapi.utils import get_openapi
from starlette.routing import BaseRoute

from tokengate.api.deps import route_requirement
from tokengate.auth.resolver import RequirementResolver
from tokengate.crypto.types import TokenTypeConfig

BEARER_HEADER = "authorization"


def build_security_scheme(type_name: str, config: TokenTypeConfig) -> dict[str, Any]:
    """Describe one token type as an OpenAPI security scheme."""
    description = f"JWT token for {type_name} authentication"
    if config.header_name.lower() == BEARER_HEADER:
        return {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": description,
        }
    return {
        "type": "apiKey",
        "in": "header",
        "name": config.header_name,
        "description": description,
    }


def build_security_schemes(
    token_types: Mapping[str, TokenTypeConfig],
) -> dict[str, dict[str, Any]]:
    return {
        name: build_security_scheme(name, config)
        for name, config in token_types.items()
    }


def iter_schema_routes(
    routes: Sequence[BaseRoute],
) -> Iterator[tuple[str, set[str], Callable[..., Any]]]:
    """Yield ``(path_format, methods, endpoint)`` for documented routes.

    Newer FastAPI releases keep included routers as nested entries and expose
    ``iter_route_contexts`` to flatten them. Older ones store flat routes.
    """
    iter_route_contexts = getattr(routing, "iter_route_contexts", None)
    candidates = iter_route_contexts(routes) if iter_route_contexts else routes
    for route in candidates:
        if not getattr(route, "include_in_schema", False):
            continue
        path_format = getattr(route, "path_format", None)
        methods = getattr(route, "methods", None)
        endpoint = getattr(route, "endpoint", None)
        if path_format and methods and endpoint is not None:
            yield path_format, set(methods), endpoint


def install_openapi_security(app: FastAPI, resolver: RequirementResolver) -> None:
    """Add token security schemes and route requirements to ``app.openapi()``.

    Every operation whose resolved token types are non-empty gets one
    security requirement listing all of them, since all must verify. An
    operation that already declares ``security`` is left alone.
    """

    def openapi_with_security() -> dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {}).update(
            build_security_schemes(resolver.service.registry)
        )

        paths = schema.get("paths", {})
        for path_format, methods, endpoint in iter_schema_routes(app.routes):
            type_names = resolver.resolve_types(route_requirement(endpoint))
            path_item = paths.get(path_format)
            if not type_names or path_item is None:
                continue
            for method in methods:
                operation = path_item.get(method.lower())
                if operation is not None and "security" not in operation:
                    operation["security"] = [{name: [] for name in type_names}]

        app.openapi_schema = schema
        return schema

    app.openapi = openapi_with_security  # type: ignore[method-assign]
