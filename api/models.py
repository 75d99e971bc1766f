"""
API request and response models for the auth provider REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Structural validation (formats, lengths, password strength, sign-up
confirm-password) happens here and fails with 422 before any flow runs.
Checks that need state (email in use, token validity) live in AccountService.
"""

import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from auth.models import Address, Owner, OwnerKind
from core.models import BusinessType, Region

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

IDENTIFICATION_PATTERN = r"^\d{10}$"
POSTAL_CODE_PATTERN = r"^\d{3} \d{2}$"
PHONE_PATTERN = r"^\+?[0-9 \-]{6,20}$"

_PASSWORD_MIN = 8
_PASSWORD_MAX = 64
_PASSWORD_MAX_BYTES = 72  # bcrypt input limit; å/ä/ö are two bytes each in UTF-8


def _check_password_strength(value: str) -> str:
    """At least one letter, one digit and one special character, at most 72 UTF-8 bytes."""
    if len(value.encode("utf-8")) > _PASSWORD_MAX_BYTES:
        raise ValueError(f"Password must be at most {_PASSWORD_MAX_BYTES} bytes.")
    if not re.search(r"[A-Za-zÅÄÖåäö]", value) or not re.search(r"\d", value) or not re.search(r"[^\w\s]", value):
        raise ValueError("Password must contain a letter, a digit and a special character.")
    return value


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class AddressRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    street_address: str = Field(min_length=1, max_length=255)
    postal_code: str = Field(pattern=POSTAL_CODE_PATTERN)
    city: str = Field(min_length=1, max_length=100)
    region: Region

    def to_domain(self, is_primary: bool = False) -> Address:
        return Address(
            street_address=self.street_address,
            postal_code=self.postal_code,
            city=self.city,
            region=self.region.value,
            is_primary=is_primary,
        )


class SignUpRequest(BaseModel):
    """Request body for POST /api/v1/account/register.

    is_company=True registers a company owner; company_name and business_type
    are then required.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    identification_number: str = Field(pattern=IDENTIFICATION_PATTERN)
    is_company: bool = False
    company_name: Optional[str] = Field(default=None, max_length=255)
    business_type: Optional[BusinessType] = None
    full_name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone_number: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    terms_and_conditions: bool
    password: str = Field(min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)
    confirm_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    primary_address: Optional[AddressRequest] = None
    additional_addresses: list[AddressRequest] = Field(default_factory=list, max_length=10)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)

    @model_validator(mode="after")
    def check_consistency(self) -> "SignUpRequest":
        if not self.terms_and_conditions:
            raise ValueError("Terms and conditions must be accepted.")
        if self.password != self.confirm_password:
            raise ValueError("Passwords do not match.")
        if self.is_company and (not self.company_name or self.business_type is None):
            raise ValueError("Company registrations require company_name and business_type.")
        return self

    @property
    def owner_kind(self) -> OwnerKind:
        return OwnerKind.COMPANY if self.is_company else OwnerKind.USER

    @property
    def display_name(self) -> str:
        return self.company_name if self.is_company and self.company_name else self.full_name

    def addresses(self) -> list[Address]:
        result = [self.primary_address.to_domain(is_primary=True)] if self.primary_address else []
        result.extend(a.to_domain() for a in self.additional_addresses)
        return result


class EmailRequest(BaseModel):
    """Request body for resend-verification and reset-password requests."""

    model_config = ConfigDict(extra="forbid")

    email: EmailStr


class VerifyEmailRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    verification_id: str = Field(min_length=1, max_length=64)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/v1/account/reset-password/complete."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=64)
    new_password: str = Field(min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)
    confirm_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class ChangeEmailRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    current_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    new_email: EmailStr


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    current_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)
    new_password: str = Field(min_length=_PASSWORD_MIN, max_length=_PASSWORD_MAX)
    confirm_password: str = Field(min_length=1, max_length=_PASSWORD_MAX)

    @field_validator("new_password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password_strength(value)


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: EmailStr
    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


class DeleteAccountRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    password: str = Field(min_length=1, max_length=_PASSWORD_MAX)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    """Generic success envelope: machine code plus localized message."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class AddressResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    street_address: str
    postal_code: str
    city: str
    region: str
    is_primary: bool


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me."""

    model_config = ConfigDict(frozen=True)

    owner_id: str
    email: str
    kind: str
    display_name: str
    is_verified: bool
    addresses: list[AddressResponse] = Field(default_factory=list)
    login_session_active: bool = False

    @classmethod
    def from_owner(cls, owner: Owner, login_session_active: bool = False) -> "MeResponse":
        return cls(
            owner_id=owner.id,
            email=owner.email,
            kind=owner.kind.value,
            display_name=owner.display_name,
            is_verified=owner.is_verified,
            login_session_active=login_session_active,
            addresses=[
                AddressResponse(
                    street_address=a.street_address,
                    postal_code=a.postal_code,
                    city=a.city,
                    region=a.region,
                    is_primary=a.is_primary,
                )
                for a in owner.addresses
            ],
        )


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login. The token itself is only in the cookie."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    owner_id: str
    is_verified: bool
    expires_at: str


class ReferenceItemResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    display_name: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
