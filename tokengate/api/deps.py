"""FastAPI dependency injection for per-route token verification."""

from collections.abc import Callable
from typing import Annotated, Any, TypeVar

from fastapi import Depends, Request

from tokengate.auth.resolver import RequirementResolver, RouteRequirement
from tokengate.auth.service import JWTService

REQUIREMENT_ATTR = "__token_requirement__"

EndpointT = TypeVar("EndpointT", bound=Callable[..., Any])


def requires_tokens(*type_names: str) -> Callable[[EndpointT], EndpointT]:
    """Require ``type_names`` on a route, on top of the mandatory types."""
    requirement = RouteRequirement.explicit(*type_names)

    def decorator(endpoint: EndpointT) -> EndpointT:
        setattr(endpoint, REQUIREMENT_ATTR, requirement)
        return endpoint

    return decorator


def skip_token_verification(endpoint: EndpointT) -> EndpointT:
    """Mark a route public, bypassing even the mandatory types."""
    setattr(endpoint, REQUIREMENT_ATTR, RouteRequirement.disabled())
    return endpoint


def route_requirement(endpoint: Callable[..., Any] | None) -> RouteRequirement:
    """Read the requirement declared on an endpoint; implicit when undeclared."""
    requirement = getattr(endpoint, REQUIREMENT_ATTR, None)
    if isinstance(requirement, RouteRequirement):
        return requirement
    return RouteRequirement.implicit()


def get_resolver(request: Request) -> RequirementResolver:
    resolver: RequirementResolver = request.app.state.token_resolver
    return resolver


def get_jwt_service(
    resolver: Annotated[RequirementResolver, Depends(get_resolver)],
) -> JWTService:
    return resolver.service


async def verify_request_tokens(
    request: Request,
    resolver: Annotated[RequirementResolver, Depends(get_resolver)],
) -> dict[str, Any]:
    """Verify the tokens the matched route requires.

    Returns the payloads keyed by token type name. Installed app-wide, so
    handlers that declare it again receive the cached result.
    """
    requirement = route_requirement(request.scope.get("endpoint"))
    resolution = resolver.evaluate(requirement, request.headers)
    return resolution.payloads_or_raise()


VerifiedPayloads = Annotated[dict[str, Any], Depends(verify_request_tokens)]
JWTServiceDep = Annotated[JWTService, Depends(get_jwt_service)]
