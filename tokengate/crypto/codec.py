"""JWT signing and kid-based verification with HMAC secrets."""

import base64
import json
import re
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any, cast

import jwt

from tokengate.core.errors import (
    ConfigurationError,
    HeaderMismatchError,
    InvalidHeaderFormatError,
    InvalidSignatureError,
    InvalidTokenError,
    IssuerNotAllowedError,
    MalformedTokenError,
    MissingIssuerError,
    MissingKeyIdError,
    TokenExpiredError,
    UnknownKeyIdError,
)
from tokengate.crypto.secret_store import SecretStore
from tokengate.crypto.types import (
    DecodedHeader,
    HeaderClaims,
    SignOptions,
    VerifyConstraints,
)

SEGMENT_COUNT = 3
BEARER_PATTERN = re.compile(r"Bearer\s+(\S+)", re.IGNORECASE)
# Audience is carried but not enforced. Subject and jti are free-form claims.
DECODE_OPTIONS: dict[str, Any] = {
    "verify_aud": False,
    "verify_sub": False,
    "verify_jti": False,
}


def sign_token(
    payload: Mapping[str, Any],
    secret: str,
    key_id: str,
    expires_in: timedelta,
    options: SignOptions | None = None,
) -> str:
    """Sign ``payload`` with ``secret``, embedding ``key_id`` as the kid header.

    A numeric ``iat`` in the payload is kept and ``exp`` counts from it.
    Raises ValueError when ``iat`` is present but not a number.
    """
    opts = options or SignOptions()
    claims = dict(payload)
    issued_at = _issued_at(claims)
    claims["iat"] = issued_at
    claims["exp"] = issued_at + expires_in
    if opts.issuer:
        claims["iss"] = opts.issuer
    if opts.audience:
        claims["aud"] = opts.audience

    headers: dict[str, Any] = {"kid": key_id}
    if opts.header_claims is not None:
        headers.update(opts.header_claims.as_header())

    try:
        return jwt.encode(claims, secret, algorithm=opts.algorithm, headers=headers)
    except NotImplementedError as exc:
        raise ConfigurationError(
            f'Unsupported signing algorithm "{opts.algorithm}"'
        ) from exc


def verify_token(
    token: str,
    secret_store: SecretStore,
    constraints: VerifyConstraints | None = None,
) -> dict[str, Any]:
    """Verify ``token`` against the secret named by its kid header.

    Checks run in a fixed order and the first failure is raised: structure,
    header decoding, kid presence, expected header claims, kid lookup,
    signature and expiry, then the issuer allow-list.
    """
    rules = constraints or VerifyConstraints()
    header = decode_header(token)
    kid = _require_kid(header)
    if rules.header_claims is not None:
        check_header_claims(header, rules.header_claims)
    secret = secret_store.get(kid)
    if secret is None:
        raise UnknownKeyIdError(kid, secret_store.key_ids())
    claims = _decode_claims(token, secret, rules.algorithms)
    if rules.allowed_issuers:
        check_issuer(claims, rules.allowed_issuers)
    return claims


def decode_header(token: str) -> DecodedHeader:
    """Parse the unverified header segment of a compact token."""
    parts = token.split(".")
    if len(parts) != SEGMENT_COUNT or not all(parts):
        raise MalformedTokenError(
            "Malformed token",
            detail="Malformed JWT token: Token must have 3 parts separated by dots",
        )
    try:
        header = json.loads(_b64url_decode(parts[0]))
    except ValueError as exc:
        raise MalformedTokenError(
            "Malformed token",
            detail="Malformed JWT token: Invalid base64 encoding in header",
        ) from exc
    if not isinstance(header, dict):
        raise MalformedTokenError(
            "Malformed token",
            detail="Malformed JWT token: Header is not a JSON object",
        )
    return cast(DecodedHeader, header)


def check_header_claims(header: DecodedHeader, expected: HeaderClaims) -> None:
    """Raise HeaderMismatchError on the first field that differs."""
    raw = cast(dict[str, Any], header)
    for field, value in expected.expected_fields():
        actual = raw.get(field)
        if type(actual) is not type(value) or actual != value:
            raise HeaderMismatchError(field, value, actual)


def check_issuer(claims: Mapping[str, Any], allowed: tuple[str, ...]) -> None:
    """Require an ``iss`` claim that is one of ``allowed``."""
    issuer = claims.get("iss")
    if not issuer:
        raise MissingIssuerError(allowed)
    if issuer not in allowed:
        raise IssuerNotAllowedError(str(issuer), allowed)


def extract_bearer_token(
    header_value: str | Sequence[str] | None,
    header_name: str,
    debug: bool = False,
) -> str | None:
    """Strip the ``Bearer`` prefix from a header value.

    Returns None when the header is absent. A value in any other format is
    also None, unless ``debug`` is set, in which case it raises
    InvalidHeaderFormatError.
    """
    if not header_value:
        return None
    value = header_value if isinstance(header_value, str) else header_value[0]
    if not value:
        return None
    match = BEARER_PATTERN.fullmatch(value)
    if match is None:
        if debug:
            raise InvalidHeaderFormatError(header_name)
        return None
    return match.group(1)


def _require_kid(header: DecodedHeader) -> str:
    kid = header.get("kid")
    if not kid or not isinstance(kid, str):
        raise MissingKeyIdError(
            "Missing kid in token header",
            detail=(
                "Missing kid in JWT token header. "
                "Ensure the token was signed with a kid parameter."
            ),
        )
    return kid


def _decode_claims(
    token: str, secret: str, algorithms: tuple[str, ...]
) -> dict[str, Any]:
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=list(algorithms),
            options=DECODE_OPTIONS,
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError(_unverified_expiry(token), datetime.now(UTC)) from exc
    except jwt.InvalidSignatureError as exc:
        raise InvalidSignatureError(
            "Invalid token",
            detail=(
                "Invalid token signature: Token was signed with a different "
                "secret or has been tampered with"
            ),
        ) from exc
    except jwt.InvalidAlgorithmError as exc:
        raise InvalidSignatureError(
            "Invalid token",
            detail=f"Token algorithm is not allowed: {exc}",
        ) from exc
    except jwt.DecodeError as exc:
        raise MalformedTokenError(
            "Malformed token",
            detail="Malformed token: Token structure is invalid or corrupted",
        ) from exc
    except jwt.PyJWTError as exc:
        raise InvalidTokenError(
            "Invalid token", detail=f"Token verification failed: {exc}"
        ) from exc


def _issued_at(claims: Mapping[str, Any]) -> datetime:
    if "iat" not in claims:
        return datetime.now(UTC)
    value = claims["iat"]
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ValueError('"iat" must be a number of seconds since the epoch')
    return datetime.fromtimestamp(value, UTC)


def _unverified_expiry(token: str) -> datetime:
    claims = jwt.decode(token, options={"verify_signature": False})
    return datetime.fromtimestamp(int(claims["exp"]), UTC)


def _b64url_decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))
