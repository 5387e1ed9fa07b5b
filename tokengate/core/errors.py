"""Typed error taxonomy for token signing, verification and resolution.

Every error carries a stable ``kind`` and an HTTP ``status_code``. The
generic ``message`` is safe to return to clients; ``detail`` holds the
diagnostic text shown only when diagnostics mode is enabled.
"""

from datetime import datetime
from enum import StrEnum
from typing import ClassVar

HTTP_UNAUTHORIZED = 401
HTTP_INTERNAL_ERROR = 500


class ErrorKind(StrEnum):
    """Stable identifiers for every error the engine raises."""

    CONFIGURATION = "configuration"
    MISSING_DEFAULT_SECRET = "missing_default_secret"
    MALFORMED_TOKEN = "malformed_token"
    MISSING_KEY_ID = "missing_key_id"
    UNKNOWN_KEY_ID = "unknown_key_id"
    INVALID_SIGNATURE = "invalid_signature"
    TOKEN_EXPIRED = "token_expired"
    HEADER_MISMATCH = "header_mismatch"
    MISSING_ISSUER = "missing_issuer"
    ISSUER_NOT_ALLOWED = "issuer_not_allowed"
    INVALID_PAYLOAD_SHAPE = "invalid_payload_shape"
    INVALID_TOKEN = "invalid_token"
    UNKNOWN_TOKEN_TYPE = "unknown_token_type"
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_CREDENTIAL = "invalid_credential"
    INVALID_HEADER_FORMAT = "invalid_header_format"


class ConfigurationError(Exception):
    """Fatal misconfiguration detected while building the engine."""

    kind: ClassVar[ErrorKind] = ErrorKind.CONFIGURATION


class MissingDefaultSecretError(ConfigurationError):
    """The default key id has no secret in the store."""

    kind: ClassVar[ErrorKind] = ErrorKind.MISSING_DEFAULT_SECRET


class AuthError(Exception):
    """Base class for errors raised while authenticating a request."""

    kind: ClassVar[ErrorKind] = ErrorKind.INVALID_TOKEN
    status_code: ClassVar[int] = HTTP_UNAUTHORIZED
    title: ClassVar[str] = "Unauthorized"

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def describe(self, debug: bool) -> str:
        """Return the diagnostic text in debug mode, the generic one otherwise."""
        if debug and self.detail:
            return self.detail
        return self.message


class MalformedTokenError(AuthError):
    kind: ClassVar[ErrorKind] = ErrorKind.MALFORMED_TOKEN


class MissingKeyIdError(AuthError):
    kind: ClassVar[ErrorKind] = ErrorKind.MISSING_KEY_ID


class UnknownKeyIdError(AuthError):
    kind: ClassVar[ErrorKind] = ErrorKind.UNKNOWN_KEY_ID

    def __init__(self, kid: str, available: list[str]) -> None:
        super().__init__(
            "Unknown key ID",
            detail=(
                f'Unknown key ID "{kid}" in JWT token. '
                f"Available keys: {', '.join(available)}"
            ),
        )
        self.kid = kid


class InvalidSignatureError(AuthError):
    kind: ClassVar[ErrorKind] = ErrorKind.INVALID_SIGNATURE


class TokenExpiredError(AuthError):
    """The token's ``exp`` claim has elapsed."""

    kind: ClassVar[ErrorKind] = ErrorKind.TOKEN_EXPIRED

    def __init__(self, expired_at: datetime, now: datetime) -> None:
        ago = int((now - expired_at).total_seconds())
        super().__init__(
            "Token has expired",
            detail=f"Token expired at {expired_at.isoformat()} ({ago} seconds ago)",
        )
        self.expired_at = expired_at


class HeaderMismatchError(AuthError):
    """A JWT header field differs from the configured expectation."""

    kind: ClassVar[ErrorKind] = ErrorKind.HEADER_MISMATCH

    def __init__(self, field: str, expected: object, actual: object) -> None:
        shown = "undefined" if actual is None else actual
        super().__init__(
            f"Invalid JWT header {field}",
            detail=(
                f"Invalid JWT header '{field}': "
                f'expected "{expected}", got "{shown}"'
            ),
        )
        self.field = field
        self.expected = expected
        self.actual = actual


class MissingIssuerError(AuthError):
    kind: ClassVar[ErrorKind] = ErrorKind.MISSING_ISSUER

    def __init__(self, allowed: tuple[str, ...]) -> None:
        super().__init__(
            "Token missing issuer claim",
            detail=(
                "Token missing issuer (iss) claim. "
                f"Expected one of: {', '.join(allowed)}"
            ),
        )


class IssuerNotAllowedError(AuthError):
    kind: ClassVar[ErrorKind] = ErrorKind.ISSUER_NOT_ALLOWED

    def __init__(self, issuer: str, allowed: tuple[str, ...]) -> None:
        super().__init__(
            "Invalid token issuer",
            detail=(
                f'Invalid token issuer "{issuer}". '
                f"Expected one of: {', '.join(allowed)}"
            ),
        )
        self.issuer = issuer


class InvalidPayloadShapeError(AuthError):
    kind: ClassVar[ErrorKind] = ErrorKind.INVALID_PAYLOAD_SHAPE


class InvalidTokenError(AuthError):
    """Catch-all for standard-claim failures other than expiry."""

    kind: ClassVar[ErrorKind] = ErrorKind.INVALID_TOKEN


class UnknownTokenTypeError(AuthError):
    """A token type name was used that is not registered.

    This is a deployment bug rather than a client error, so it maps to an
    internal-error response.
    """

    kind: ClassVar[ErrorKind] = ErrorKind.UNKNOWN_TOKEN_TYPE
    status_code: ClassVar[int] = HTTP_INTERNAL_ERROR
    title: ClassVar[str] = "Internal Server Error"

    def __init__(self, type_name: str, available: list[str]) -> None:
        super().__init__(
            f'Unknown token type "{type_name}"',
            detail=(
                f'Unknown token type "{type_name}". '
                f"Available types: {', '.join(available)}"
            ),
        )
        self.type_name = type_name


class MissingCredentialError(AuthError):
    kind: ClassVar[ErrorKind] = ErrorKind.MISSING_CREDENTIAL

    def __init__(self, type_name: str, header_name: str) -> None:
        super().__init__(
            f"Missing or invalid {header_name} header",
            detail=(
                f"Missing or invalid {header_name} header "
                f'for token type "{type_name}"'
            ),
        )
        self.type_name = type_name


class InvalidCredentialError(AuthError):
    """A presented token failed verification for a required type."""

    kind: ClassVar[ErrorKind] = ErrorKind.INVALID_CREDENTIAL

    def __init__(self, type_name: str, reason: AuthError) -> None:
        super().__init__(
            f"Invalid or expired {type_name} token",
            detail=(
                f'Token verification failed for type "{type_name}": '
                f"{reason.describe(True)}"
            ),
        )
        self.type_name = type_name
        self.reason = reason


class InvalidHeaderFormatError(AuthError):
    kind: ClassVar[ErrorKind] = ErrorKind.INVALID_HEADER_FORMAT

    def __init__(self, header_name: str) -> None:
        super().__init__(
            f"Invalid {header_name} header format",
            detail=f'Invalid {header_name} header format. Expected: "Bearer <token>"',
        )
        self.header_name = header_name
