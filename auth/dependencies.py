"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The access token travels only in the httpOnly "AccessToken" cookie (name from
Settings.access_cookie_name). There is no Authorization header fallback: the
browser is the only intended client and the cookie cannot be read by JS.

get_access_token() returns the raw cookie value (or None). Flows that need to
validate and act on the token themselves (change email, sign-out) take the raw
value and hand it to AccountService.

get_current_owner() is the hard variant for read-only routes: it resolves the
cookie to an Owner and raises HTTP 401 otherwise.

Layer rule: no imports from api/. This module may import from fastapi because
it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Owner
from auth.service import AccountService


def get_access_token(request: Request) -> str | None:
    """Return the access token cookie value, or None if absent."""
    return request.cookies.get(request.app.state.settings.access_cookie_name) or None


def get_current_owner(request: Request) -> Owner:
    """Require a valid, non-blacklisted access token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(owner: Owner = Depends(get_current_owner)): ...
    """
    service: AccountService = request.app.state.account_service
    outcome = service.current_owner(get_access_token(request))
    if not outcome.ok or outcome.owner is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return outcome.owner
