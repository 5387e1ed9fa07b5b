"""Per-request resolution of the token types a route requires."""

import logging
from collections.abc import Iterable, Mapping, Sequence
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tokengate.auth.service import JWTService
from tokengate.core.errors import (
    AuthError,
    InvalidCredentialError,
    MissingCredentialError,
    UnknownTokenTypeError,
)

logger = logging.getLogger(__name__)

HeaderValue = str | Sequence[str]


class RequirementMode(StrEnum):
    """How a route declares its token requirement."""

    DISABLED = "disabled"
    IMPLICIT = "implicit"
    EXPLICIT = "explicit"


class RouteRequirement(BaseModel):
    """Token requirement declared by a single route."""

    model_config = ConfigDict(frozen=True)

    mode: RequirementMode = RequirementMode.IMPLICIT
    type_names: tuple[str, ...] = ()

    @classmethod
    def disabled(cls) -> "RouteRequirement":
        return cls(mode=RequirementMode.DISABLED)

    @classmethod
    def implicit(cls) -> "RouteRequirement":
        return cls(mode=RequirementMode.IMPLICIT)

    @classmethod
    def explicit(cls, *type_names: str) -> "RouteRequirement":
        return cls(mode=RequirementMode.EXPLICIT, type_names=type_names)


class ResolutionState(StrEnum):
    NOT_EVALUATED = "not_evaluated"
    RESOLVING = "resolving"
    SATISFIED = "satisfied"
    REJECTED = "rejected"


class Resolution(BaseModel):
    """Outcome of evaluating a route requirement against request headers."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    state: ResolutionState
    payloads: dict[str, Any] = Field(default_factory=dict)
    error: AuthError | None = None

    @property
    def satisfied(self) -> bool:
        return self.state is ResolutionState.SATISFIED

    def payloads_or_raise(self) -> dict[str, Any]:
        """Return the verified payloads, or raise the rejection error."""
        if self.error is not None:
            raise self.error
        return self.payloads


def _dedupe(names: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(names))


def _lowercase_headers(
    headers: Mapping[str, HeaderValue],
) -> dict[str, HeaderValue]:
    lowered: dict[str, HeaderValue] = {}
    for name, value in headers.items():
        lowered.setdefault(name.lower(), value)
    return lowered


class RequirementResolver:
    """Combines mandatory and route-declared token types and verifies them.

    Mandatory types come first, followed by route types not already
    present. Evaluation stops at the first type that fails.
    """

    def __init__(
        self,
        service: JWTService,
        mandatory_types: Sequence[str] = (),
    ) -> None:
        self._service = service
        self._mandatory_types = tuple(_dedupe(mandatory_types))

    @property
    def service(self) -> JWTService:
        return self._service

    @property
    def mandatory_types(self) -> tuple[str, ...]:
        return self._mandatory_types

    def resolve_types(self, requirement: RouteRequirement) -> list[str]:
        """Ordered, deduplicated type names that must verify for a route."""
        if requirement.mode is RequirementMode.DISABLED:
            return []
        return _dedupe([*self._mandatory_types, *requirement.type_names])

    def evaluate(
        self,
        requirement: RouteRequirement,
        headers: Mapping[str, HeaderValue],
    ) -> Resolution:
        """Verify every required token type present in ``headers``."""
        required = self.resolve_types(requirement)
        if not required:
            logger.debug("No token types required (%s)", requirement.mode)
            return Resolution(state=ResolutionState.SATISFIED)

        logger.debug(
            "%s -> %s for types %s",
            ResolutionState.NOT_EVALUATED,
            ResolutionState.RESOLVING,
            required,
        )
        lowered = _lowercase_headers(headers)
        payloads: dict[str, Any] = {}
        for type_name in required:
            try:
                payloads[type_name] = self._verify_type(type_name, lowered)
            except AuthError as exc:
                logger.info(
                    "Token requirement rejected for type %s: %s",
                    type_name,
                    exc.kind,
                )
                return Resolution(state=ResolutionState.REJECTED, error=exc)
        return Resolution(state=ResolutionState.SATISFIED, payloads=payloads)

    def _verify_type(self, type_name: str, headers: Mapping[str, HeaderValue]) -> Any:
        config = self._service.get_token_type_config(type_name)
        if config is None:
            raise UnknownTokenTypeError(
                type_name, self._service.list_token_type_names()
            )

        header_name = config.header_name.lower()
        token = self._service.extract_token(headers.get(header_name), type_name)
        if not token:
            raise MissingCredentialError(type_name, header_name)

        try:
            return self._service.verify_token(type_name, token)
        except AuthError as exc:
            raise InvalidCredentialError(type_name, exc) from exc
