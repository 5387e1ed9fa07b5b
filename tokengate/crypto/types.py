"""Type definitions for token types, header claims and codec options."""

import re
from datetime import timedelta
from typing import Any, TypedDict

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

DEFAULT_ALGORITHM = "HS256"
SUPPORTED_ALGORITHMS = ("HS256", "HS384", "HS512")
RESERVED_HEADER_FIELDS = frozenset({"alg", "kid"})

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d|w|y)?\s*$", re.IGNORECASE)
_UNIT_SECONDS = {
    "ms": 0.001,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
    "y": 31_557_600,
}


def parse_duration(value: object) -> timedelta:
    """Parse a timedelta, a number of seconds, or shorthand like ``"15m"``."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError("duration must be a number, string or timedelta")
    if isinstance(value, int | float):
        return timedelta(seconds=value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match is None:
            raise ValueError(f'invalid duration "{value}"')
        amount, unit = match.groups()
        return timedelta(seconds=float(amount) * _UNIT_SECONDS[(unit or "s").lower()])
    raise ValueError("duration must be a number, string or timedelta")


class HeaderClaims(BaseModel):
    """JWT header fields written on signing and checked on verification.

    ``typ`` and ``cty`` are the well-known fields; any other keyword is kept
    as an extension claim, in the order it was given.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    typ: str | None = None
    cty: str | None = None

    @model_validator(mode="after")
    def _reject_reserved(self) -> "HeaderClaims":
        reserved = RESERVED_HEADER_FIELDS & set(self.model_extra or {})
        if reserved:
            raise ValueError(
                f"header claims cannot override {', '.join(sorted(reserved))}"
            )
        return self

    def expected_fields(self) -> list[tuple[str, Any]]:
        """List ``(field, value)`` pairs in check order: typ, cty, extras."""
        fields: list[tuple[str, Any]] = []
        if self.typ is not None:
            fields.append(("typ", self.typ))
        if self.cty is not None:
            fields.append(("cty", self.cty))
        for key, value in (self.model_extra or {}).items():
            if value is not None:
                fields.append((key, value))
        return fields

    def as_header(self) -> dict[str, Any]:
        """Header fields to merge into a token on signing."""
        return dict(self.expected_fields())


class TokenTypeConfig(BaseModel):
    """Configuration for one logical token type such as ``access``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    header_name: str = Field(
        min_length=1,
        validation_alias=AliasChoices("header_name", "headerName"),
    )
    expires_in: timedelta = Field(
        validation_alias=AliasChoices("expires_in", "expiresIn"),
    )
    algorithm: str = DEFAULT_ALGORITHM
    issuer: str | None = Field(
        default=None, validation_alias=AliasChoices("issuer", "iss")
    )
    audience: str | None = Field(
        default=None, validation_alias=AliasChoices("audience", "aud")
    )
    allowed_issuers: tuple[str, ...] = Field(
        default=(),
        validation_alias=AliasChoices("allowed_issuers", "allowedIss"),
    )
    header_claims: HeaderClaims | None = Field(
        default=None,
        validation_alias=AliasChoices("header_claims", "header"),
    )
    payload_schema: type[Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("payload_schema", "payloadSchema"),
    )

    @field_validator("expires_in", mode="before")
    @classmethod
    def _parse_expires_in(cls, value: object) -> timedelta:
        duration = parse_duration(value)
        if duration < timedelta(0):
            raise ValueError("expires_in must not be negative")
        return duration

    @field_validator("algorithm")
    @classmethod
    def _check_algorithm(cls, value: str) -> str:
        if value not in SUPPORTED_ALGORITHMS:
            raise ValueError(
                f'unsupported algorithm "{value}", '
                f"expected one of: {', '.join(SUPPORTED_ALGORITHMS)}"
            )
        return value


class DecodedHeader(TypedDict, total=False):
    """JWT header recovered from the first token segment, before verification."""

    alg: str
    kid: str
    typ: str
    cty: str


class SignOptions(BaseModel):
    """Options applied when signing a token."""

    model_config = ConfigDict(frozen=True)

    algorithm: str = DEFAULT_ALGORITHM
    issuer: str | None = None
    audience: str | None = None
    header_claims: HeaderClaims | None = None


class VerifyConstraints(BaseModel):
    """Constraints checked when verifying a token."""

    model_config = ConfigDict(frozen=True)

    algorithms: tuple[str, ...] = SUPPORTED_ALGORITHMS
    allowed_issuers: tuple[str, ...] = ()
    header_claims: HeaderClaims | None = None
