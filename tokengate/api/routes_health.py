"""Liveness endpoint."""

from fastapi import APIRouter
from pydantic import BaseModel

from tokengate.api.deps import skip_token_verification

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: int = 200
    message: str = "ok"


@router.get("/v1/health")
@skip_token_verification
async def health() -> HealthResponse:
    """GET /v1/health -- always public, even with mandatory token types."""
    return HealthResponse()
