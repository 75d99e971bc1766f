"""
auth/dispatch.py -- Client for the external email-delivery provider.

The provider is a plain HTTP endpoint per token family. This module only POSTs
JSON and reports success or failure; SMTP and templating live on the provider.

Contract:
  POST <endpoint>  Content-Type: application/json
    verification:   {"verificationId": <record id>, "email": ..., "expiresAt": ...}
    reset password: {"token": <record id>, "email": ..., "expiresAt": ...}
  Any 2xx response is success. Every other status, a timeout, or a
  connection error is failure. No retries -- that is the caller's policy.

The record id (not the signed token) goes over the wire so the raw JWT never
appears in an email link. expiresAt is rendered in the business timezone for
display; it is never parsed back.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

import requests

from auth.models import IssuedToken, TokenKind
from core.config import Settings

logger = logging.getLogger("authprovider.dispatch")


def local_expiry(expires_at: datetime, tz_name: str) -> str:
    """Render a UTC expiry in the business timezone as ISO 8601."""
    return expires_at.astimezone(ZoneInfo(tz_name)).isoformat()


class EmailDispatchClient:
    """Fire-and-report POSTs to the configured provider endpoints.

    A requests.Session is shared for connection pooling. max_redirects=3
    replaces the requests default of 30 -- the endpoints are known services
    and a long redirect chain is more likely SSRF than a legitimate hop.
    """

    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self._endpoints = {
            TokenKind.EMAIL_VERIFICATION: settings.email_verification_endpoint,
            TokenKind.ACCOUNT_VERIFICATION: settings.account_verification_endpoint,
            TokenKind.RESET_PASSWORD: settings.reset_password_endpoint,
        }
        self._timeout = settings.dispatch_timeout_seconds
        self._tz_name = settings.business_timezone
        self._session = session or requests.Session()
        self._session.max_redirects = 3

    def send_token(self, issued: IssuedToken, email: str) -> bool:
        """Deliver a durable token to its owner. Returns True on a 2xx."""
        payload = {
            "email": email,
            "expiresAt": local_expiry(issued.expires_at, self._tz_name),
        }
        if issued.kind is TokenKind.RESET_PASSWORD:
            payload["token"] = issued.token_id
        else:
            payload["verificationId"] = issued.token_id
        return self.post(issued.kind, payload)

    def post(self, kind: TokenKind, payload: dict) -> bool:
        endpoint = self._endpoints.get(kind, "")
        if not endpoint:
            logger.warning("No provider endpoint configured for %s tokens", kind.value)
            return False
        try:
            resp = self._session.post(endpoint, json=payload, timeout=self._timeout)
        except requests.Timeout:
            logger.warning("Email provider timed out after %.1fs (%s)", self._timeout, kind.value)
            return False
        except requests.RequestException as e:
            logger.warning("Email provider request failed (%s): %s", kind.value, e)
            return False
        if 200 <= resp.status_code < 300:
            logger.info("Dispatched %s email via provider (%d)", kind.value, resp.status_code)
            return True
        logger.warning("Email provider rejected %s email: HTTP %d", kind.value, resp.status_code)
        return False

    def close(self) -> None:
        self._session.close()
