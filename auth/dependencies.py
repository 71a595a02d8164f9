"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

The session cookie is the only credential. try_get_current_principal() is
the soft variant (returns None on failure). get_current_principal() wraps it
and raises HTTP 401; the 401 handler in api/main.py also clears the cookie
so the client drops a dead session reference.

get_client_ip() resolves the address the rate limiter keys on.

Layer rule: auth/dependencies.py may import from fastapi because this module
is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import ipaddress
import logging

from fastapi import HTTPException, Request

from auth.models import Principal
from auth.service import AuthService

logger = logging.getLogger("phonegate.auth")


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def try_get_current_principal(request: Request) -> Principal | None:
    """Resolve the session cookie. Returns None if missing, revoked or expired."""
    service = get_auth_service(request)
    session_id = request.cookies.get(service.settings.session_cookie_name)
    if not session_id:
        return None
    return service.authenticate(session_id)


def get_current_principal(request: Request) -> Principal:
    """Require a valid session. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_principal)): ...
    """
    principal = try_get_current_principal(request)
    if principal is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return principal


def get_client_ip(request: Request) -> str:
    """Return the client address used for per-IP quotas.

    X-Forwarded-For can be spoofed by clients, so its first hop is trusted
    only when the direct peer is a configured proxy (TRUSTED_PROXY_IPS).
    """
    direct_ip = request.client.host if request.client else "unknown"
    trusted = get_auth_service(request).settings.trusted_proxy_ips
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded and direct_ip in trusted:
        candidate = forwarded.split(",")[0].strip()
        if _is_valid_ip(candidate):
            return candidate
        logger.warning("Ignoring invalid address in X-Forwarded-For")
    return direct_ip


def _is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True
