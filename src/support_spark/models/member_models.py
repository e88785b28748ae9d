"""
# Member and Session Models

Pydantic models for member identity, credentials and sessions.

- **MemberDocument**: the stored identity record, including the bcrypt hash. Never
  returned by the API; use `MemberOut`.
- **SessionDocument**: the stored session, keyed by the digest of its token.
- **RegisterRequest / LoginRequest / ChangeSecretRequest**: input contracts for the
  credential and session operations.
- **SessionResponse**: what a successful login or registration returns.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class MemberDocument(BaseModel):
    """
    Member record owned by the credential store.

    Immutable after creation except for credential rotation (`hashed_secret`,
    `secret_updated_at`).
    """

    member_id: str
    email: str
    display_name: str
    hashed_secret: str
    created_at: datetime
    secret_updated_at: Optional[datetime] = None
    is_demo: bool = False


class MemberOut(BaseModel):
    """Public view of a member; excludes the credential hash."""

    member_id: str
    email: str
    display_name: str
    created_at: datetime

    @classmethod
    def from_document(cls, member: MemberDocument) -> "MemberOut":
        return cls(
            member_id=member.member_id,
            email=member.email,
            display_name=member.display_name,
            created_at=member.created_at,
        )


class SessionDocument(BaseModel):
    """Ephemeral token-to-member mapping with an absolute expiry."""

    member_id: str
    created_at: datetime
    expires_at: datetime


class RegisterRequest(BaseModel):
    """
    Request model for member signup.

    **Validation:**
    *   **email**: Valid address, normalised to lowercase.
    *   **secret**: Non-empty; length policy is applied by the credential store.
    *   **display_name**: 1-100 characters after trimming.
    """

    email: EmailStr = Field(..., description="Email address used as the login identifier")
    secret: str = Field(..., min_length=1, description="Password")
    display_name: str = Field(..., description="Name shown to supporters")

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v):
        return v.strip().lower()

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Display name cannot be empty")
        if len(v) > 100:
            raise ValueError("Display name must be at most 100 characters")
        return v


class LoginRequest(BaseModel):
    identifier: str = Field(..., min_length=1, description="Email address of the member")
    secret: str = Field(..., min_length=1, description="Password")

    @field_validator("identifier")
    @classmethod
    def normalise_identifier(cls, v):
        v = v.strip().lower()
        if not v:
            raise ValueError("Identifier cannot be empty")
        return v


class ChangeSecretRequest(BaseModel):
    current_secret: str = Field(..., min_length=1)
    new_secret: str = Field(..., min_length=1)


class SessionResponse(BaseModel):
    """
    Returned by login, registration and demo login.

    The same token is also set as an HTTP-only cookie; API clients may send it back
    either as that cookie or as `Authorization: Bearer <token>`.
    """

    token: str
    token_type: str = "bearer"
    expires_at: datetime
    member: MemberOut


class DemoAccountInfo(BaseModel):
    display_name: str
    email: str


class DemoInfoResponse(BaseModel):
    """Demo accounts shown on the demo landing page; `None` until they are seeded."""

    member: Optional[DemoAccountInfo] = None
    supporter: Optional[DemoAccountInfo] = None
