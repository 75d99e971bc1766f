"""
auth/service.py -- Account flows built on the token engine.

AccountService ties token issuance to side effects: creating owners, flipping
the verified flag, rotating password hashes, and dispatching emails. Every
method returns an Outcome; none raises for a condition a request can
legitimately trigger. Store failures (connection errors) propagate and the
API turns them into a generic 500.

Policies:
  register            -- the owner stays "pending verification" when dispatch
                         fails. The persisted token remains valid and
                         resend_verification() is the recovery path.
  resend_verification -- rejected with ALREADY_VERIFIED for verified owners.
  request_reset       -- always SUCCESS to the caller, whether or not the
                         email exists or the email provider answered. No
                         token is issued for an unknown email.
  change_email        -- the access token is validated before any store read,
                         so a blacklisted token never reaches the repository.
                         On success the owner is unverified again, gets a fresh
                         account-verification token, and must sign in again.
  complete_reset      -- also revokes the owner's access token and login
                         session.
  verify / reset      -- the token record is claimed (is_used 0 -> 1 in one
                         UPDATE) before the verified flag or password hash
                         changes, so concurrent requests with one link
                         cannot both succeed.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable

from sqlalchemy.exc import IntegrityError

from auth.dispatch import EmailDispatchClient
from auth.models import (
    VERIFICATION_KINDS,
    Address,
    Outcome,
    Owner,
    OwnerKind,
    ServiceResult,
    TokenKind,
    TokenStatus,
    ValidationResult,
)
from auth.store import OwnerStore
from auth.tokens import TokenEngine, authenticate_owner, hash_password, verify_password
from core.config import Settings

logger = logging.getLogger("authprovider.service")


def _token_failure(result: ValidationResult) -> ServiceResult:
    if result.status is TokenStatus.EXPIRED:
        return ServiceResult.EXPIRED_TOKEN
    return ServiceResult.INVALID_TOKEN


class AccountService:
    def __init__(
        self,
        settings: Settings,
        owners: OwnerStore,
        engine: TokenEngine,
        dispatch: EmailDispatchClient,
    ) -> None:
        self._settings = settings
        self._owners = owners
        self._engine = engine
        self._dispatch = dispatch

    def _hash(self, password: str) -> str:
        return hash_password(password, self._settings.bcrypt_rounds)

    def _send_verification(self, owner: Owner, kind: TokenKind) -> bool:
        """Issue a verification token of kind (revoking older ones) and dispatch it."""
        for other in VERIFICATION_KINDS:
            if other is not kind:
                self._engine.revoke_all_for_owner(owner.id, other)
        issued = self._engine.issue(owner.id, kind)
        return self._dispatch.send_token(issued, owner.email)

    def _authorize(self, access_token: str | None) -> tuple[ServiceResult | None, ValidationResult]:
        """Validate an access token for an authenticated flow.

        Only the registry and the signature are consulted, never the store.
        """
        result = self._engine.validate(access_token, TokenKind.ACCESS)
        if not result.ok:
            logger.info("Rejected access token (%s)", result.status.value)
            return ServiceResult.UNAUTHORIZED, result
        if not result.claims.get("is_verified"):
            return ServiceResult.NOT_VERIFIED, result
        return None, result

    # ------------------------------------------------------------------
    # Registration and verification
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        *,
        kind: OwnerKind = OwnerKind.USER,
        display_name: str = "",
        identification_number: str = "",
        business_type: str | None = None,
        phone_number: str | None = None,
        terms_accepted: bool = False,
        addresses: Iterable[Address] = (),
    ) -> Outcome:
        """Create an unverified owner and send an email-verification token."""
        email = email.strip().lower()
        if self._settings.is_restricted_email(email):
            logger.info("Registration blocked for restricted email")
            return Outcome(ServiceResult.EMAIL_RESTRICTED)
        if self._owners.email_in_use(email):
            return Outcome(ServiceResult.EMAIL_ALREADY_IN_USE)

        owner = Owner(
            id=str(uuid.uuid4()),
            email=email,
            password_hash=self._hash(password),
            kind=kind,
            display_name=display_name,
            identification_number=identification_number,
            business_type=business_type,
            phone_number=phone_number,
            terms_accepted=terms_accepted,
            addresses=list(addresses),
        )
        try:
            self._owners.create_owner(owner)
        except IntegrityError:
            # Concurrent registration for the same email won the race.
            return Outcome(ServiceResult.EMAIL_ALREADY_IN_USE)
        logger.info("Registered %s owner %s", kind.value, owner.id)

        if not self._send_verification(owner, TokenKind.EMAIL_VERIFICATION):
            logger.warning("Verification email not delivered for owner %s; owner left pending", owner.id)
            return Outcome(ServiceResult.EMAIL_SEND_FAILED, owner=owner)
        return Outcome(ServiceResult.SUCCESS, owner=owner)

    def resend_verification(self, email: str) -> Outcome:
        owner = self._owners.get_by_email(email)
        if owner is None:
            return Outcome(ServiceResult.EMAIL_NOT_FOUND)
        if owner.is_verified:
            return Outcome(ServiceResult.ALREADY_VERIFIED)
        if not self._send_verification(owner, TokenKind.EMAIL_VERIFICATION):
            return Outcome(ServiceResult.EMAIL_SEND_FAILED, owner=owner)
        return Outcome(ServiceResult.SUCCESS, owner=owner)

    def verify_email(self, verification_id: str | None) -> Outcome:
        """Apply a verification link (email or account verification).

        The token's email claim must match the owner's current email, so a
        link issued before an email change cannot verify the new address.
        """
        result = self._engine.validate_record(verification_id, VERIFICATION_KINDS)
        if not result.ok:
            return Outcome(_token_failure(result))

        owner = self._owners.get_by_id(result.owner_id)
        if owner is None:
            return Outcome(ServiceResult.OWNER_NOT_FOUND)
        if owner.is_verified:
            return Outcome(ServiceResult.ALREADY_VERIFIED)
        if result.claims.get("email") != owner.email:
            return Outcome(ServiceResult.INVALID_TOKEN)

        if not self._engine.claim(result.record.id):
            return Outcome(ServiceResult.INVALID_TOKEN)
        self._owners.update_owner(owner.id, is_verified=True)
        for kind in VERIFICATION_KINDS:
            if kind is not result.record.kind:
                self._engine.revoke_all_for_owner(owner.id, kind)
        owner.is_verified = True
        logger.info("Owner %s verified", owner.id)
        return Outcome(ServiceResult.SUCCESS, owner=owner)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str) -> Outcome:
        """Send a reset link if the email exists. Always reports SUCCESS."""
        owner = self._owners.get_by_email(email)
        if owner is None:
            logger.info("Password reset requested for unknown email")
            return Outcome(ServiceResult.SUCCESS)
        issued = self._engine.issue(owner.id, TokenKind.RESET_PASSWORD)
        if not self._dispatch.send_token(issued, owner.email):
            logger.warning("Reset email not delivered for owner %s", owner.id)
        return Outcome(ServiceResult.SUCCESS)

    def check_reset_token(self, reset_id: str | None) -> Outcome:
        """Validate a reset link without consuming it (landing-page redirect)."""
        result = self._engine.validate_record(reset_id, (TokenKind.RESET_PASSWORD,))
        if not result.ok:
            return Outcome(_token_failure(result))
        return Outcome(ServiceResult.SUCCESS)

    def complete_password_reset(self, reset_id: str | None, new_password: str, confirm_password: str) -> Outcome:
        if new_password != confirm_password:
            return Outcome(ServiceResult.PASSWORD_MISMATCH)
        result = self._engine.validate_record(reset_id, (TokenKind.RESET_PASSWORD,))
        if not result.ok:
            return Outcome(_token_failure(result))
        owner = self._owners.get_by_id(result.owner_id)
        if owner is None:
            return Outcome(ServiceResult.OWNER_NOT_FOUND)

        if not self._engine.claim(result.record.id):
            return Outcome(ServiceResult.INVALID_TOKEN)
        self._owners.update_owner(owner.id, password_hash=self._hash(new_password))
        self._engine.revoke_all_for_owner(owner.id, TokenKind.ACCESS)
        self._engine.revoke_all_for_owner(owner.id, TokenKind.LOGIN_SESSION)
        logger.info("Password reset completed for owner %s", owner.id)
        return Outcome(ServiceResult.SUCCESS, owner=owner)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def sign_in(self, email: str, password: str) -> Outcome:
        """Authenticate and issue a fresh access token and login session.

        Both issues revoke the owner's previous token of the same kind.
        """
        owner = authenticate_owner(self._owners, email, password)
        if owner is None:
            return Outcome(ServiceResult.INVALID_CREDENTIALS)
        access = self._engine.issue(owner.id, TokenKind.ACCESS)
        session = self._engine.issue(owner.id, TokenKind.LOGIN_SESSION)
        logger.info("Owner %s signed in", owner.id)
        return Outcome(ServiceResult.SUCCESS, owner=owner, issued=access, session=session)

    def sign_out(self, access_token: str | None) -> Outcome:
        """Blacklist the presented access token and end the login session."""
        result = self._engine.validate(access_token, TokenKind.ACCESS)
        if not result.ok:
            return Outcome(ServiceResult.UNAUTHORIZED)
        self._engine.revoke_all_for_owner(result.owner_id, TokenKind.ACCESS, presented_token=access_token)
        self._engine.revoke_all_for_owner(result.owner_id, TokenKind.LOGIN_SESSION)
        logger.info("Owner %s signed out", result.owner_id)
        return Outcome(ServiceResult.SUCCESS)

    def current_owner(self, access_token: str | None) -> Outcome:
        """Resolve an access token to its owner (verified or not)."""
        result = self._engine.validate(access_token, TokenKind.ACCESS)
        if not result.ok:
            return Outcome(ServiceResult.UNAUTHORIZED)
        owner = self._owners.get_by_id(result.owner_id)
        if owner is None:
            return Outcome(ServiceResult.UNAUTHORIZED)
        owner.addresses = self._owners.list_addresses(owner.id)
        return Outcome(ServiceResult.SUCCESS, owner=owner)

    def is_login_session_active(self, owner: Owner) -> bool:
        """True while the login-session token stored on the owner row validates."""
        if not owner.last_login_session_token:
            return False
        return self._engine.validate(owner.last_login_session_token, TokenKind.LOGIN_SESSION).ok

    # ------------------------------------------------------------------
    # Authenticated account changes
    # ------------------------------------------------------------------

    def change_email(self, access_token: str | None, current_password: str, new_email: str) -> Outcome:
        failure, auth = self._authorize(access_token)
        if failure is not None:
            return Outcome(failure)

        owner = self._owners.get_by_id(auth.owner_id)
        if owner is None:
            return Outcome(ServiceResult.OWNER_NOT_FOUND)
        if not verify_password(current_password, owner.password_hash):
            return Outcome(ServiceResult.INVALID_CREDENTIALS)

        new_email = new_email.strip().lower()
        if self._settings.is_restricted_email(new_email):
            return Outcome(ServiceResult.EMAIL_RESTRICTED)
        if self._owners.email_in_use(new_email):
            return Outcome(ServiceResult.EMAIL_ALREADY_IN_USE)
        try:
            self._owners.update_owner(owner.id, email=new_email, is_verified=False)
        except IntegrityError:
            return Outcome(ServiceResult.EMAIL_ALREADY_IN_USE)
        owner.email = new_email
        owner.is_verified = False
        logger.info("Owner %s changed email; verification required", owner.id)

        self._engine.revoke_all_for_owner(owner.id, TokenKind.ACCESS, presented_token=access_token)
        self._engine.revoke_all_for_owner(owner.id, TokenKind.LOGIN_SESSION)
        if not self._send_verification(owner, TokenKind.ACCOUNT_VERIFICATION):
            return Outcome(ServiceResult.EMAIL_SEND_FAILED, owner=owner)
        return Outcome(ServiceResult.SUCCESS, owner=owner)

    def change_password(
        self, access_token: str | None, current_password: str, new_password: str, confirm_password: str
    ) -> Outcome:
        failure, auth = self._authorize(access_token)
        if failure is not None:
            return Outcome(failure)
        if new_password != confirm_password:
            return Outcome(ServiceResult.PASSWORD_MISMATCH)

        owner = self._owners.get_by_id(auth.owner_id)
        if owner is None:
            return Outcome(ServiceResult.OWNER_NOT_FOUND)
        if not verify_password(current_password, owner.password_hash):
            return Outcome(ServiceResult.INVALID_CREDENTIALS)

        self._owners.update_owner(owner.id, password_hash=self._hash(new_password))
        logger.info("Owner %s changed password", owner.id)
        return Outcome(ServiceResult.SUCCESS, owner=owner)

    def delete_account(self, access_token: str | None, password: str) -> Outcome:
        """Delete the owner with its addresses and tokens after a password re-check."""
        result = self._engine.validate(access_token, TokenKind.ACCESS)
        if not result.ok:
            return Outcome(ServiceResult.UNAUTHORIZED)
        owner = self._owners.get_by_id(result.owner_id)
        if owner is None:
            return Outcome(ServiceResult.OWNER_NOT_FOUND)
        if not verify_password(password, owner.password_hash):
            return Outcome(ServiceResult.INVALID_CREDENTIALS)

        self._owners.delete_owner(owner.id)
        self._engine.revoke_all_for_owner(owner.id, TokenKind.ACCESS, presented_token=access_token)
        logger.info("Owner %s deleted", owner.id)
        return Outcome(ServiceResult.SUCCESS)
