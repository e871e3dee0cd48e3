"""Schemas shared by every endpoint."""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Body of every failed request."""

    error_code: str = Field(..., description="Machine-readable failure code")
    error: str = Field(..., description="Human-readable message")
    rid: str = Field(..., description="Request id, also sent as X-Request-ID")


# OpenAPI error documentation shared by the login routers
ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    code: {"model": ErrorResponse} for code in (400, 401, 404, 409, 410, 500, 502, 503)
}
