"""
auth/models.py -- Domain dataclasses and enums for owners and tokens.

Pattern: Data class (pure data container, near-zero logic). Stores and the
token engine do the work; these types only describe shape.

Result types:
  TokenStatus / ValidationResult -- what Validate() reports. Never raised.
  ServiceResult / Outcome        -- what an orchestrator reports to the HTTP
                                    layer. Never raised.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TokenKind(str, Enum):
    """Discriminator carried in every token as the ``token_type`` claim."""

    ACCESS = "access"
    EMAIL_VERIFICATION = "email_verification"
    ACCOUNT_VERIFICATION = "account_verification"
    RESET_PASSWORD = "reset_password"
    LOGIN_SESSION = "login_session"

    @property
    def is_durable(self) -> bool:
        """True for kinds persisted in the token table."""
        return self in DURABLE_KINDS

    @property
    def family(self) -> str:
        """Signing family (see core/config.py TOKEN_FAMILIES)."""
        return _FAMILY_BY_KIND[self]


DURABLE_KINDS = frozenset(
    {TokenKind.EMAIL_VERIFICATION, TokenKind.ACCOUNT_VERIFICATION, TokenKind.RESET_PASSWORD}
)
VERIFICATION_KINDS = (TokenKind.EMAIL_VERIFICATION, TokenKind.ACCOUNT_VERIFICATION)

_FAMILY_BY_KIND = {
    TokenKind.ACCESS: "access",
    TokenKind.EMAIL_VERIFICATION: "verification",
    TokenKind.ACCOUNT_VERIFICATION: "verification",
    TokenKind.RESET_PASSWORD: "reset",
    TokenKind.LOGIN_SESSION: "session",
}


class OwnerKind(str, Enum):
    USER = "user"
    COMPANY = "company"


@dataclass
class Address:
    street_address: str
    postal_code: str  # "123 45"
    city: str
    region: str
    is_primary: bool = False
    id: int | None = None
    owner_id: str | None = None


@dataclass
class Owner:
    """A user or company account that tokens are issued against.

    email is stored lower-cased and is unique across both owner kinds.
    is_verified flips false -> true on a successful verification and back to
    false only when the email changes.

    last_login_session_token holds the single live login-session token inline
    (there is no separate table for that kind). None means signed out.
    """

    id: str
    email: str
    password_hash: str
    kind: OwnerKind = OwnerKind.USER
    display_name: str = ""
    identification_number: str = ""
    business_type: str | None = None
    phone_number: str | None = None
    is_verified: bool = False
    terms_accepted: bool = False
    last_login_session_token: str | None = None
    created_at: str | None = None
    addresses: list[Address] = field(default_factory=list)


@dataclass
class TokenRecord:
    """Durable token row. One table holds every durable kind."""

    id: str
    owner_id: str
    kind: TokenKind
    token: str
    expires_at: datetime
    is_used: bool = False
    created_at: str | None = None

    def is_live(self, now: datetime) -> bool:
        return not self.is_used and self.expires_at > now


@dataclass
class IssuedToken:
    """What Issue() hands back: the signed string, its id, and its expiry.

    token_id is the durable record id for durable kinds (safe to put in links)
    and the jti claim otherwise.
    """

    token: str
    token_id: str
    kind: TokenKind
    expires_at: datetime


@dataclass
class BlacklistedToken:
    token: str
    expiration_time: datetime


class TokenStatus(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    EXPIRED = "expired"
    BLACKLISTED = "blacklisted"
    MISSING_TOKEN = "missing_token"


@dataclass
class ValidationResult:
    status: TokenStatus
    claims: dict = field(default_factory=dict)
    record: TokenRecord | None = None

    @property
    def ok(self) -> bool:
        return self.status is TokenStatus.VALID

    @property
    def owner_id(self) -> str | None:
        return self.claims.get("sub")


class ServiceResult(str, Enum):
    SUCCESS = "success"
    INVALID_TOKEN = "invalid_token"
    EXPIRED_TOKEN = "expired_token"
    OWNER_NOT_FOUND = "owner_not_found"
    EMAIL_NOT_FOUND = "email_not_found"
    ALREADY_VERIFIED = "already_verified"
    EMAIL_ALREADY_IN_USE = "email_already_in_use"
    EMAIL_RESTRICTED = "email_restricted"
    EMAIL_SEND_FAILED = "email_send_failed"
    INVALID_CREDENTIALS = "invalid_credentials"
    PASSWORD_MISMATCH = "password_mismatch"
    UNAUTHORIZED = "unauthorized"
    NOT_VERIFIED = "not_verified"
    FAILURE = "failure"


@dataclass
class Outcome:
    """Result of an orchestrator call.

    owner / issued / session are populated only where the flow produces them
    (sign-in returns both tokens; register returns the new owner).
    """

    result: ServiceResult
    owner: Owner | None = None
    issued: IssuedToken | None = None
    session: IssuedToken | None = None

    @property
    def ok(self) -> bool:
        return self.result is ServiceResult.SUCCESS
