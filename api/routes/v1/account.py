"""
api/routes/v1/account.py -- Registration, verification, reset and account changes.

Routes:
  POST /api/v1/account/register                  -- sign up; sends verification email (201)
  POST /api/v1/account/resend-verification       -- new verification email (rate-limited)
  POST /api/v1/account/verify-email              -- apply a verification id
  POST /api/v1/account/reset-password            -- request a reset link (always 200)
  GET  /api/v1/account/reset-password?token=     -- email link target; redirects to frontend
  POST /api/v1/account/reset-password/complete   -- set a new password with a reset id
  POST /api/v1/account/change-email              -- requires auth; re-verification follows
  POST /api/v1/account/change-password           -- requires auth
  POST /api/v1/account/delete                    -- requires auth + password

Every handler maps 1:1 to an AccountService method. The service returns an
Outcome; this module only turns it into the success/error envelope.

Security:
  Reset requests answer 200 whether or not the email exists (no enumeration).
  Authenticated routes pass the raw cookie to the service, which validates
  it (including the blacklist) before touching the store.
"""

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.limiter import limiter
from api.messages import error_response, success_response
from api.models import (
    ChangeEmailRequest,
    ChangePasswordRequest,
    DeleteAccountRequest,
    EmailRequest,
    MessageResponse,
    ResetPasswordRequest,
    SignUpRequest,
    VerifyEmailRequest,
)
from auth.dependencies import get_access_token
from auth.service import AccountService
from auth.tokens import clear_access_cookie
from core.config import get_settings

router = APIRouter()


def _service(request: Request) -> AccountService:
    return request.app.state.account_service


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/account/register", response_model=MessageResponse, status_code=201)
def register(request: Request, body: SignUpRequest) -> JSONResponse:
    """Create an unverified owner and email a verification link.

    If the email provider fails the owner still exists (pending) and the
    response is 502 email_send_failed; resend-verification recovers.
    """
    outcome = _service(request).register(
        body.email,
        body.password,
        kind=body.owner_kind,
        display_name=body.display_name,
        identification_number=body.identification_number,
        business_type=body.business_type.value if body.business_type else None,
        phone_number=body.phone_number,
        terms_accepted=body.terms_and_conditions,
        addresses=body.addresses(),
    )
    if not outcome.ok:
        return error_response(request, outcome.result)
    return success_response(request, "registered", status_code=201)


@limiter.limit(lambda: get_settings().email_rate_limit)
@router.post("/account/resend-verification", response_model=MessageResponse)
def resend_verification(request: Request, body: EmailRequest) -> JSONResponse:
    outcome = _service(request).resend_verification(body.email)
    if not outcome.ok:
        return error_response(request, outcome.result)
    return success_response(request, "verification_sent")


@router.post("/account/verify-email", response_model=MessageResponse)
def verify_email(request: Request, body: VerifyEmailRequest) -> JSONResponse:
    outcome = _service(request).verify_email(body.verification_id)
    if not outcome.ok:
        return error_response(request, outcome.result)
    return success_response(request, "verified")


@limiter.limit(lambda: get_settings().email_rate_limit)
@router.post("/account/reset-password", response_model=MessageResponse)
def request_password_reset(request: Request, body: EmailRequest) -> JSONResponse:
    """Always 200 with the same message, whether or not the email exists."""
    _service(request).request_password_reset(body.email)
    return success_response(request, "reset_requested")


@router.get("/account/reset-password", include_in_schema=False)
def reset_password_link(request: Request, token: str = "") -> RedirectResponse:
    """Landing target for the reset email link.

    Valid reset ids redirect to the frontend reset form with the id; anything
    else redirects to the frontend's invalid-link page. The token is not
    consumed here.
    """
    base = request.app.state.settings.frontend_base_url.rstrip("/")
    outcome = _service(request).check_reset_token(token)
    if not outcome.ok:
        return RedirectResponse(f"{base}/reset-password/invalid", status_code=302)
    return RedirectResponse(f"{base}/reset-password?token={quote(token)}", status_code=302)


@router.post("/account/reset-password/complete", response_model=MessageResponse)
def complete_password_reset(request: Request, body: ResetPasswordRequest) -> JSONResponse:
    outcome = _service(request).complete_password_reset(body.token, body.new_password, body.confirm_password)
    if not outcome.ok:
        return error_response(request, outcome.result)
    return success_response(request, "password_reset")


# ---------------------------------------------------------------------------
# Authenticated endpoints (AccessToken cookie)
# ---------------------------------------------------------------------------


@router.post("/account/change-email", response_model=MessageResponse)
def change_email(request: Request, body: ChangeEmailRequest) -> JSONResponse:
    """Change the email, mark the account unverified, and send a new link.

    The current access token is revoked on success, so the cookie is cleared.
    """
    outcome = _service(request).change_email(get_access_token(request), body.current_password, body.new_email)
    resp = success_response(request, "email_changed") if outcome.ok else error_response(request, outcome.result)
    if outcome.owner is not None:
        # Email changed (even if the new link was not delivered): token revoked.
        clear_access_cookie(resp, request.app.state.settings)
    return resp


@router.post("/account/change-password", response_model=MessageResponse)
def change_password(request: Request, body: ChangePasswordRequest) -> JSONResponse:
    outcome = _service(request).change_password(
        get_access_token(request), body.current_password, body.new_password, body.confirm_password
    )
    if not outcome.ok:
        return error_response(request, outcome.result)
    return success_response(request, "password_changed")


@router.post("/account/delete", response_model=MessageResponse)
def delete_account(request: Request, body: DeleteAccountRequest) -> JSONResponse:
    outcome = _service(request).delete_account(get_access_token(request), body.password)
    if not outcome.ok:
        return error_response(request, outcome.result)
    resp = success_response(request, "account_deleted")
    clear_access_cookie(resp, request.app.state.settings)
    return resp
