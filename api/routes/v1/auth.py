"""
api/routes/v1/auth.py -- Signup, login, logout and session-info endpoints.

Routes:
  POST /api/v1/auth/signup   -- create account; 201 + session cookie
  POST /api/v1/auth/login    -- password login; 200 + session cookie
  POST /api/v1/auth/logout   -- revoke session; 204, cookie cleared always
  GET  /api/v1/auth/me       -- current account (requires a valid session)

The routes are thin: AuthService decides the outcome and this module maps
it to a status code, an error envelope and the cookie. Handlers are sync
`def` so FastAPI runs them in its thread pool -- argon2 hashing is
CPU-bound and must not block the event loop.

Security:
  Cache-Control: no-store on every auth response.
  429 responses carry Retry-After.
  invalid_credentials renders one fixed body whether the phone exists or not.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.models import CredentialsRequest, ErrorDetail, ErrorResponse, LoginResponse, MeResponse, SignupResponse
from auth.dependencies import get_auth_service, get_client_ip, get_current_principal
from auth.models import Principal
from auth.service import AuthOutcome, AuthService, OutcomeKind
from auth.sessions import clear_session_cookie, set_session_cookie

# Auth policy:
# - POST /api/v1/auth/signup: public
# - POST /api/v1/auth/login:  public
# - POST /api/v1/auth/logout: public -- clearing a cookie needs no valid session
# - GET  /api/v1/auth/me:     requires a valid session (get_current_principal)
router = APIRouter()

_STATUS_BY_KIND: dict[OutcomeKind, int] = {
    OutcomeKind.created: 201,
    OutcomeKind.success: 200,
    OutcomeKind.logged_out: 204,
    OutcomeKind.validation_error: 400,
    OutcomeKind.invalid_credentials: 401,
    OutcomeKind.conflict: 409,
    OutcomeKind.locked: 423,
    OutcomeKind.rate_limited: 429,
    OutcomeKind.internal_error: 500,
}


@router.post("/auth/signup", status_code=201, response_model=SignupResponse)
def signup(
    request: Request,
    body: CredentialsRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Create an account for a phone number and start a session."""
    outcome = service.signup(body.phone, body.password, client_ip=get_client_ip(request))
    if outcome.kind is not OutcomeKind.created:
        return _error_response(outcome)

    resp = JSONResponse(
        status_code=201,
        content=SignupResponse(user_id=outcome.account_id).model_dump(),
    )
    set_session_cookie(resp, outcome.session.id, service.settings)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/login", response_model=LoginResponse)
def login(
    request: Request,
    body: CredentialsRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with phone and password; set the session cookie.

    Unknown phone and wrong password return the same 401 body.
    """
    outcome = service.login(body.phone, body.password, client_ip=get_client_ip(request))
    if outcome.kind is not OutcomeKind.success:
        return _error_response(outcome)

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(message=outcome.message).model_dump(),
    )
    set_session_cookie(resp, outcome.session.id, service.settings)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", status_code=204)
def logout(request: Request, service: AuthService = Depends(get_auth_service)) -> Response:
    """Revoke the current session (if any) and clear the cookie. Always 204."""
    service.logout(request.cookies.get(service.settings.session_cookie_name))
    resp = Response(status_code=204)
    clear_session_cookie(resp, service.settings)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(principal: Principal = Depends(get_current_principal)) -> MeResponse:
    """Return the account behind the current session."""
    return MeResponse(user_id=principal.account_id, phone=principal.phone_e164)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error_response(outcome: AuthOutcome) -> JSONResponse:
    """Render a failed outcome. Only the coarse user-facing message is sent."""
    resp = JSONResponse(
        status_code=_STATUS_BY_KIND[outcome.kind],
        content=ErrorResponse(error=ErrorDetail(code=outcome.kind.value, message=outcome.message)).model_dump(),
    )
    if outcome.kind is OutcomeKind.rate_limited and outcome.retry_after:
        resp.headers["Retry-After"] = str(outcome.retry_after)
    resp.headers["Cache-Control"] = "no-store"
    return resp
