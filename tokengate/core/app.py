"""FastAPI application factory with multi-type JWT verification."""

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tokengate.api.deps import verify_request_tokens
from tokengate.api.errors import install_error_handlers
from tokengate.api.openapi import install_openapi_security
from tokengate.api.routes_health import router as health_router
from tokengate.auth.resolver import RequirementResolver
from tokengate.auth.service import JWTService
from tokengate.core.logging_setup import configure_logging
from tokengate.core.settings import AppSettings, JWTSettings
from tokengate.crypto.types import TokenTypeConfig

logger = logging.getLogger(__name__)


def create_app(
    jwt_settings: JWTSettings | None = None,
    app_settings: AppSettings | None = None,
    *,
    token_types: Mapping[str, TokenTypeConfig | Mapping[str, Any]] | None = None,
    routers: Sequence[APIRouter] = (),
) -> FastAPI:
    """Build the FastAPI application.

    ``token_types`` replaces the token types from settings; use it for
    types that carry a ``payload_schema``. Raises ConfigurationError when the
    secrets or token types are invalid.
    """
    jwt_config = jwt_settings or JWTSettings()
    settings = app_settings or AppSettings()
    configure_logging(settings.log_level)

    service = JWTService.from_settings(jwt_config, token_types)
    resolver = RequirementResolver(service, jwt_config.get_required_types())
    unknown = [t for t in resolver.mandatory_types if t not in service.registry]
    if unknown:
        logger.warning("Mandatory token types are not registered: %s", unknown)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Token types %s registered, mandatory: %s",
            service.list_token_type_names(),
            list(resolver.mandatory_types),
        )
        yield

    app = FastAPI(
        title=settings.title,
        version=settings.version,
        description=settings.description,
        lifespan=lifespan,
        dependencies=[Depends(verify_request_tokens)],
    )
    app.state.token_resolver = resolver

    install_error_handlers(app, debug=service.debug)

    origins = settings.get_cors_origin_list()
    if origins:
        token_headers = {c.header_name for c in service.registry.values()}
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
            allow_headers=sorted({"Authorization", "Content-Type", *token_headers}),
        )

    app.include_router(health_router)
    for router in routers:
        app.include_router(router)

    install_openapi_security(app, resolver)
    return app
