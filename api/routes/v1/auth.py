"""
api/routes/v1/auth.py -- Session endpoints (sign-in, sign-out, who-am-I).

Routes:
  POST /api/v1/auth/login   -- password login; sets the AccessToken cookie
  POST /api/v1/auth/logout  -- blacklists the access token, ends the login
                               session, clears the cookie; always 200
  GET  /api/v1/auth/me      -- current owner (requires auth), including whether
                               the login session is still active

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT).
  [C1] AccountService.sign_in() goes through authenticate_owner() for timing
       equalization -- never look the owner up inline here.
  [M5] Cache-Control: no-store on every response that touches credentials.
  The raw token is never returned in a body; it lives only in the httpOnly
  cookie.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.messages import error_response, request_locale, success_message, success_response
from api.models import LoginRequest, LoginResponse, MeResponse
from auth.dependencies import get_access_token, get_current_owner
from auth.models import Owner
from auth.service import AccountService
from auth.tokens import clear_access_cookie, set_access_cookie
from core.config import get_settings

router = APIRouter()


@limiter.limit(lambda: get_settings().login_rate_limit)  # [H2] must be ABOVE @router
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the AccessToken cookie.

    Returns the same error for an unknown email and a wrong password.
    """
    service: AccountService = request.app.state.account_service
    outcome = service.sign_in(body.email, body.password)
    if not outcome.ok:
        return error_response(request, outcome.result)

    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            code="signed_in",
            message=success_message("signed_in", request_locale(request)),
            owner_id=outcome.owner.id,
            is_verified=outcome.owner.is_verified,
            expires_at=outcome.issued.expires_at.isoformat(),
        ).model_dump(),
    )
    set_access_cookie(resp, outcome.issued, request.app.state.settings, now=request.app.state.token_engine.now())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/logout")
def logout(request: Request) -> JSONResponse:
    """Revoke the presented access token and clear the cookie.

    Logging out with a missing or already-invalid token still succeeds; the
    cookie is cleared either way.
    """
    service: AccountService = request.app.state.account_service
    service.sign_out(get_access_token(request))
    resp = success_response(request, "signed_out")
    clear_access_cookie(resp, request.app.state.settings)
    return resp


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, owner: Owner = Depends(get_current_owner)) -> MeResponse:
    """Return identity information for the authenticated owner.

    login_session_active reports whether the inline login-session token stored
    on the owner row still validates.
    """
    service: AccountService = request.app.state.account_service
    return MeResponse.from_owner(owner, login_session_active=service.is_login_session_active(owner))
