"""
auth/tokens.py -- Password hashing and the token lifecycle engine.

Security design decisions:
  JWT: python-jose with HS256. Every token kind carries the same core claims
       (sub, email, token_type, jti, iss, aud, iat, exp). Kinds are grouped
       into signing families (access / verification / reset / session), each
       with its own key, issuer and audience, so a key leak in one family
       cannot mint tokens for another.

  Expiry: zero clock-skew tolerance. python-jose's own exp check is disabled
       and replaced by a strict `exp <= now -> Expired` comparison against the
       engine clock, so the boundary is exact and testable.

  Durable kinds (email/account verification, reset password): the signature
       check AND the persisted record check are both mandatory. A token whose
       jti has no matching unused, unexpired record is invalid even if its
       signature is perfect. Used records report Invalid, never a distinct
       "already used" status, so callers cannot be used as an oracle.

  Access tokens: no durable record. The registry (auth/registry.py) tracks the
       live token per owner; issuing a new one blacklists the previous one.

  Login session: a signed token stored inline on the owner row. Issuing a new
       one overwrites (revokes) the previous value.

  Passwords: bcrypt directly (no passlib wrapper), per-record salt from
       gensalt(). _DUMMY_HASH enables timing equalization in
       authenticate_owner() so response time does not reveal whether an email
       exists [C1].

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

import bcrypt
from jose import JWTError, jwt

from auth.errors import ConfigurationError, InvalidOwnerError
from auth.models import IssuedToken, Owner, TokenKind, TokenRecord, TokenStatus, ValidationResult
from core.config import Settings, get_settings

if TYPE_CHECKING:
    from auth.registry import AccessTokenRegistry
    from auth.store import OwnerStore, TokenStore

logger = logging.getLogger("authprovider.tokens")

_ALGORITHM = "HS256"

# Claims the engine owns. extra_claims passed to issue() cannot override them.
_RESERVED_CLAIMS = frozenset({"sub", "email", "token_type", "jti", "iss", "aud", "iat", "exp", "is_verified"})

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt accepts at most 72 bytes of input (newer releases raise
    ValueError beyond that). The API layer rejects longer passwords with 422.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Any hash bcrypt cannot parse (for example a legacy plaintext value) is a
    mismatch, never an error. Those owners recover through password reset.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1]. Same cost factor as real hashes so an
# unknown email costs the same bcrypt work as a wrong password.
_DUMMY_HASH: str = hash_password("authprovider_timing_dummy", get_settings().bcrypt_rounds)


def authenticate_owner(owners: OwnerStore, email: str, password: str) -> Owner | None:
    """Check an email/password pair with timing equalization.

    Always runs bcrypt whether or not the owner exists. Returns the Owner on
    success, None on any failure.
    """
    owner = owners.get_by_email(email)
    if owner is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, owner.password_hash):
        return None
    return owner


# ---------------------------------------------------------------------------
# Signing families
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JwtFamily:
    key: str
    issuer: str
    audience: str
    lifetime: timedelta

    def is_complete(self) -> bool:
        return bool(self.key and self.issuer and self.audience)


_LIFETIME_FIELDS = {
    TokenKind.ACCESS: "access_token_minutes",
    TokenKind.EMAIL_VERIFICATION: "email_verification_minutes",
    TokenKind.ACCOUNT_VERIFICATION: "account_verification_minutes",
    TokenKind.RESET_PASSWORD: "reset_password_minutes",
    TokenKind.LOGIN_SESSION: "login_session_minutes",
}


def family_for(settings: Settings, kind: TokenKind) -> JwtFamily:
    prefix = kind.family
    return JwtFamily(
        key=getattr(settings, f"{prefix}_jwt_key"),
        issuer=getattr(settings, f"{prefix}_jwt_issuer"),
        audience=getattr(settings, f"{prefix}_jwt_audience"),
        lifetime=timedelta(minutes=getattr(settings, _LIFETIME_FIELDS[kind])),
    )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class TokenEngine:
    """Issue, validate, consume and revoke tokens of every kind.

    Usage:
        engine = TokenEngine(settings, owners, tokens, registry)
        issued = engine.issue(owner.id, TokenKind.EMAIL_VERIFICATION)
        result = engine.validate_record(issued.token_id, VERIFICATION_KINDS)
        if result.ok:
            engine.consume(result.record.id)

    The clock is injectable so expiry boundaries can be tested exactly.
    Raises ConfigurationError at construction if any family lacks a key,
    issuer, or audience.
    """

    def __init__(
        self,
        settings: Settings,
        owners: OwnerStore,
        tokens: TokenStore,
        registry: AccessTokenRegistry,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._families = {kind: family_for(settings, kind) for kind in TokenKind}
        incomplete = sorted({kind.family for kind, fam in self._families.items() if not fam.is_complete()})
        if incomplete:
            raise ConfigurationError(f"Signing configuration incomplete for: {', '.join(incomplete)}")
        self._owners = owners
        self._tokens = tokens
        self._registry = registry
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue(self, owner_id: str, kind: TokenKind, extra_claims: dict | None = None) -> IssuedToken:
        """Mint a token of kind for the owner, revoking the previous one first.

        Raises InvalidOwnerError if the owner does not exist, or has no email
        for an email-bound kind.
        """
        owner = self._owners.get_by_id(owner_id)
        if owner is None:
            raise InvalidOwnerError(f"Owner {owner_id} does not exist")
        if kind.is_durable and not owner.email:
            raise InvalidOwnerError(f"Owner {owner_id} has no email address")

        family = self._families[kind]
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + family.lifetime
        token_id = str(uuid.uuid4())

        claims = {k: v for k, v in (extra_claims or {}).items() if k not in _RESERVED_CLAIMS}
        claims.update(
            {
                "sub": owner.id,
                "email": owner.email,
                "token_type": kind.value,
                "jti": token_id,
                "iss": family.issuer,
                "aud": family.audience,
                "iat": int(issued_at.timestamp()),
                "exp": int(expires_at.timestamp()),
            }
        )
        if kind is TokenKind.ACCESS:
            claims["is_verified"] = owner.is_verified

        token = jwt.encode(claims, family.key, algorithm=_ALGORITHM)
        issued = IssuedToken(token=token, token_id=token_id, kind=kind, expires_at=expires_at)

        if kind.is_durable:
            self._tokens.replace_for_owner(
                TokenRecord(id=token_id, owner_id=owner.id, kind=kind, token=token, expires_at=expires_at)
            )
        elif kind is TokenKind.ACCESS:
            self._registry.replace(owner.id, issued, now=issued_at)
        else:
            self._owners.update_owner(owner.id, last_login_session_token=token)

        logger.info("Issued %s token %s for owner %s", kind.value, token_id, owner.id)
        return issued

    # ------------------------------------------------------------------
    # Validate
    # ------------------------------------------------------------------

    def validate(self, token: str | None, kind: TokenKind) -> ValidationResult:
        """Verify signature, issuer, audience, type and expiry, then state.

        Never raises. Returns claims only when status is VALID.
        """
        if not token:
            return ValidationResult(TokenStatus.MISSING_TOKEN)

        family = self._families[kind]
        try:
            claims = jwt.decode(
                token,
                family.key,
                algorithms=[_ALGORITHM],
                audience=family.audience,
                issuer=family.issuer,
                options={"verify_exp": False},
            )
        except JWTError:
            return ValidationResult(TokenStatus.INVALID)

        owner_id = claims.get("sub")
        exp = claims.get("exp")
        if claims.get("token_type") != kind.value or not owner_id or not isinstance(exp, int):
            return ValidationResult(TokenStatus.INVALID)

        now = self._clock()
        if exp <= now.timestamp():
            return ValidationResult(TokenStatus.EXPIRED)

        if kind is TokenKind.ACCESS:
            if self._registry.is_blacklisted(owner_id, token):
                return ValidationResult(TokenStatus.BLACKLISTED)
            return ValidationResult(TokenStatus.VALID, claims=claims)

        if kind.is_durable:
            record = self._tokens.get_by_id(claims.get("jti", ""))
            if record is None or record.kind is not kind or record.owner_id != owner_id or record.token != token:
                return ValidationResult(TokenStatus.INVALID)
            if record.is_used:
                return ValidationResult(TokenStatus.INVALID)
            if record.expires_at <= now:
                return ValidationResult(TokenStatus.EXPIRED)
            return ValidationResult(TokenStatus.VALID, claims=claims, record=record)

        owner = self._owners.get_by_id(owner_id)
        if owner is None or owner.last_login_session_token != token:
            return ValidationResult(TokenStatus.INVALID)
        return ValidationResult(TokenStatus.VALID, claims=claims)

    def validate_record(self, record_id: str | None, kinds: tuple[TokenKind, ...]) -> ValidationResult:
        """Validate a durable token by its record id (the value sent in links).

        The record only locates the signed token; validate() still runs the
        full signature and state checks on it.
        """
        if not record_id:
            return ValidationResult(TokenStatus.MISSING_TOKEN)
        record = self._tokens.get_by_id(record_id)
        if record is None or record.kind not in kinds:
            return ValidationResult(TokenStatus.INVALID)
        return self.validate(record.token, record.kind)

    # ------------------------------------------------------------------
    # Consume / revoke
    # ------------------------------------------------------------------

    def consume(self, token_id: str) -> bool:
        """Mark a durable record used. Safe to call more than once.

        Returns True if the record exists.
        """
        found = self._tokens.mark_used(token_id)
        if found:
            logger.info("Consumed token %s", token_id)
        return found

    def claim(self, token_id: str) -> bool:
        """Consume a durable record only if it is still unused.

        Flows that act on a token call this before their side effect: of two
        requests holding the same valid token, exactly one gets True.
        """
        claimed = self._tokens.claim_unused(token_id)
        if claimed:
            logger.info("Consumed token %s", token_id)
        else:
            logger.info("Token %s already consumed", token_id)
        return claimed

    def revoke_all_for_owner(self, owner_id: str, kind: TokenKind, presented_token: str | None = None) -> int:
        """Revoke every live token of kind for the owner.

        presented_token (access kind only) is blacklisted as well, covering a
        token the registry no longer tracks as current.
        Returns the number of tokens revoked.
        """
        if kind.is_durable:
            count = self._tokens.delete_for_owner(owner_id, kind)
        elif kind is TokenKind.ACCESS:
            presented_exp = _unverified_expiry(presented_token) if presented_token else None
            count = self._registry.revoke(owner_id, presented_token, presented_exp, now=self._clock())
        else:
            count = 1 if self._owners.update_owner(owner_id, last_login_session_token=None) else 0
        if count:
            logger.info("Revoked %d %s token(s) for owner %s", count, kind.value, owner_id)
        return count


def _unverified_expiry(token: str) -> datetime | None:
    """Read exp without verifying. Only used for tokens already validated."""
    try:
        exp = jwt.get_unverified_claims(token).get("exp")
    except JWTError:
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc) if isinstance(exp, int) else None


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_access_cookie(response, issued: IssuedToken, settings: Settings, now: datetime | None = None) -> None:
    """Write the access token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the token expiry so both expire together.
    """
    remaining = issued.expires_at - (now or _utcnow())
    response.set_cookie(
        settings.access_cookie_name,
        value=issued.token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=max(int(remaining.total_seconds()), 0),
    )


def clear_access_cookie(response, settings: Settings) -> None:
    response.delete_cookie(
        settings.access_cookie_name,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
    )
