"""
api/messages.py -- Localized user-facing messages and HTTP status mapping.

Every ServiceResult maps to one machine-readable code, one HTTP status, and
a short message per locale. Clients branch on the code; the message is for
display only and never contains internal detail.

Locale choice: the first Accept-Language tag we have a catalogue for, else
Settings.default_locale ("sv").
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse
from auth.models import ServiceResult

SUPPORTED_LOCALES = ("sv", "en")

STATUS_CODES: dict[ServiceResult, int] = {
    ServiceResult.SUCCESS: 200,
    ServiceResult.INVALID_TOKEN: 400,
    ServiceResult.EXPIRED_TOKEN: 400,
    ServiceResult.OWNER_NOT_FOUND: 404,
    ServiceResult.EMAIL_NOT_FOUND: 404,
    ServiceResult.ALREADY_VERIFIED: 409,
    ServiceResult.EMAIL_ALREADY_IN_USE: 409,
    ServiceResult.EMAIL_RESTRICTED: 400,
    ServiceResult.EMAIL_SEND_FAILED: 502,
    ServiceResult.INVALID_CREDENTIALS: 401,
    ServiceResult.PASSWORD_MISMATCH: 400,
    ServiceResult.UNAUTHORIZED: 401,
    ServiceResult.NOT_VERIFIED: 403,
    ServiceResult.FAILURE: 500,
}

_ERRORS: dict[str, dict[ServiceResult, str]] = {
    "sv": {
        ServiceResult.INVALID_TOKEN: "Länken är ogiltig eller har redan använts.",
        ServiceResult.EXPIRED_TOKEN: "Länken har gått ut. Begär en ny.",
        ServiceResult.OWNER_NOT_FOUND: "Kontot kunde inte hittas.",
        ServiceResult.EMAIL_NOT_FOUND: "E-postadress hittades inte.",
        ServiceResult.ALREADY_VERIFIED: "Kontot är redan verifierat.",
        ServiceResult.EMAIL_ALREADY_IN_USE: "E-postadressen är redan registrerad.",
        ServiceResult.EMAIL_RESTRICTED: "E-postadressen kan inte användas.",
        ServiceResult.EMAIL_SEND_FAILED: "Det gick inte att skicka e-post.",
        ServiceResult.INVALID_CREDENTIALS: "Ogiltiga inloggningsuppgifter.",
        ServiceResult.PASSWORD_MISMATCH: "Lösenorden matchar inte.",
        ServiceResult.UNAUTHORIZED: "Din session har gått ut eller är ogiltig.",
        ServiceResult.NOT_VERIFIED: "Kontot måste verifieras först.",
        ServiceResult.FAILURE: "Ett fel inträffade. Försök igen senare.",
    },
    "en": {
        ServiceResult.INVALID_TOKEN: "The link is invalid or has already been used.",
        ServiceResult.EXPIRED_TOKEN: "The link has expired. Please request a new one.",
        ServiceResult.OWNER_NOT_FOUND: "The account could not be found.",
        ServiceResult.EMAIL_NOT_FOUND: "The email address was not found.",
        ServiceResult.ALREADY_VERIFIED: "The account is already verified.",
        ServiceResult.EMAIL_ALREADY_IN_USE: "The email address is already registered.",
        ServiceResult.EMAIL_RESTRICTED: "The email address cannot be used.",
        ServiceResult.EMAIL_SEND_FAILED: "There was an issue sending the email.",
        ServiceResult.INVALID_CREDENTIALS: "The login details you provided are incorrect.",
        ServiceResult.PASSWORD_MISMATCH: "The passwords do not match.",
        ServiceResult.UNAUTHORIZED: "Your session has expired or is no longer valid.",
        ServiceResult.NOT_VERIFIED: "The account must be verified first.",
        ServiceResult.FAILURE: "An unexpected error occurred. Please try again later.",
    },
}

# Success messages are keyed by flow, not by ServiceResult (all are SUCCESS).
_SUCCESSES: dict[str, dict[str, str]] = {
    "sv": {
        "registered": "Registreringen slutfördes.",
        "verification_sent": "Verifikationsmejlet har skickats.",
        "verified": "Kontot har verifierats.",
        "reset_requested": "Din förfrågan har bearbetats.",
        "password_reset": "Lösenordet har återställts.",
        "email_changed": "E-poständringen har genomförts.",
        "password_changed": "Lösenordet har ändrats.",
        "signed_in": "Inloggningen lyckades.",
        "signed_out": "Du har loggats ut.",
        "account_deleted": "Kontot har raderats.",
    },
    "en": {
        "registered": "Registration completed.",
        "verification_sent": "The verification email has been sent.",
        "verified": "The account has been verified.",
        "reset_requested": "Your request has been processed.",
        "password_reset": "The password has been reset.",
        "email_changed": "The email change has been completed.",
        "password_changed": "The password has been changed.",
        "signed_in": "Signed in.",
        "signed_out": "Signed out.",
        "account_deleted": "The account has been deleted.",
    },
}


_TRANSPORT_ERRORS: dict[str, dict[str, str]] = {
    "sv": {
        "validation_error": "Ogiltig förfrågan.",
        "rate_limited": "För många förfrågningar. Försök igen senare.",
        "internal_error": "Ett oväntat fel inträffade.",
    },
    "en": {
        "validation_error": "Request validation failed.",
        "rate_limited": "Too many requests. Please try again later.",
        "internal_error": "An unexpected error occurred.",
    },
}


def pick_locale(accept_language: str | None, default: str) -> str:
    """Return the first supported primary language tag in Accept-Language.

    Quality values are ignored; header order is trusted.
    """
    for part in (accept_language or "").split(","):
        tag = part.split(";")[0].strip().lower().split("-")[0]
        if tag in SUPPORTED_LOCALES:
            return tag
    return default if default in SUPPORTED_LOCALES else "sv"


def error_message(result: ServiceResult, locale: str) -> str:
    return _ERRORS[locale].get(result) or _ERRORS[locale][ServiceResult.FAILURE]


def success_message(key: str, locale: str) -> str:
    return _SUCCESSES[locale][key]


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------


def request_locale(request: Request) -> str:
    return pick_locale(request.headers.get("accept-language"), request.app.state.settings.default_locale)


def envelope(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    """Wrap an error in {"error": {...}}. Error bodies are never cached."""
    resp = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


def transport_error(request: Request, status_code: int, code: str, detail: str | None = None) -> JSONResponse:
    """Envelope for failures raised outside AccountService (422, 429, 500)."""
    return envelope(status_code, code, _TRANSPORT_ERRORS[request_locale(request)][code], detail)


def error_response(request: Request, result: ServiceResult) -> JSONResponse:
    """Build the standard error envelope for a failed ServiceResult."""
    return envelope(STATUS_CODES.get(result, 500), result.value, error_message(result, request_locale(request)))


def success_response(request: Request, key: str, status_code: int = 200, **extra) -> JSONResponse:
    """Build {"code": key, "message": <localized>, **extra}."""
    content = {"code": key, "message": success_message(key, request_locale(request))}
    content.update(extra)
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp
