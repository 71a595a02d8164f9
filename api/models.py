"""
API request and response models for phonegate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request fields are loosely typed on purpose: phone and password validation
belongs to the auth core, which returns the user-facing 400 messages. A
stricter schema here would answer with 422 and a different message.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CredentialsRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup and /api/v1/auth/login."""

    phone: Any = None
    password: Any = Field(default=None, repr=False)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SignupResponse(BaseModel):
    user_id: str
    redirect_to: str = "/dashboard"


class LoginResponse(BaseModel):
    message: str
    redirect_to: str = "/dashboard"


class MeResponse(BaseModel):
    user_id: str
    phone: str


class ErrorDetail(BaseModel):
    """Structured error body shared by all error responses."""

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope: {"error": {...}}."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
