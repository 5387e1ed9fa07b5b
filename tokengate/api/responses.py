"""Standard error response bodies."""

from pydantic import BaseModel


class ValidationDetail(BaseModel):
    """One invalid request field."""

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Body of every error response: ``{status, success, error, message}``."""

    status: int
    success: bool = False
    error: str
    message: str
    details: list[ValidationDetail] | None = None


def format_error(
    status: int,
    error: str,
    message: str,
    details: list[ValidationDetail] | None = None,
) -> ErrorResponse:
    """Build an error body; ``details`` is omitted from JSON when None."""
    return ErrorResponse(status=status, error=error, message=message, details=details)
