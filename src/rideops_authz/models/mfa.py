"""MFA challenge models."""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from beartype import beartype
from pydantic import AwareDatetime, Field

from ..catalog.permissions import Permission
from .base import BaseModelConfig, TimestampedModel


class MFAMethod(str, Enum):
    """Available step-up methods."""

    TOTP = "totp"
    SMS = "sms"
    EMAIL = "email"


class MFAStatus(str, Enum):
    """Challenge state: created -> pending -> verified | expired | failed."""

    CREATED = "created"
    PENDING = "pending"
    VERIFIED = "verified"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (MFAStatus.VERIFIED, MFAStatus.FAILED, MFAStatus.EXPIRED)


class ChallengeContext(BaseModelConfig):
    """What the challenge is protecting."""

    permission: Permission = Permission.UNKNOWN
    session_id: str | None = Field(default=None, max_length=200)
    ip_address: str | None = Field(default=None, max_length=64)
    case_id: str | None = Field(default=None, max_length=100)


class MFAChallenge(TimestampedModel):
    """Server-side challenge record; only the code digest is kept."""

    challenge_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str = Field(..., min_length=1)
    method: MFAMethod
    permission: Permission
    status: MFAStatus = MFAStatus.CREATED
    sensitivity: float = Field(..., ge=0.0, le=1.0)
    expires_at: AwareDatetime
    code_digest: str | None = None
    consumed_at: AwareDatetime | None = None
    session_id: str | None = None

    @beartype
    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class ChallengeTicket(BaseModelConfig):
    """What the caller gets back: never the code itself."""

    challenge_id: str
    method: MFAMethod
    expires_at: datetime
    status: MFAStatus


class VerificationOutcome(BaseModelConfig):
    challenge_id: str
    status: MFAStatus
    user_id: str | None = None
    permission: Permission | None = None
    verified_at: datetime | None = None

    @property
    def verified(self) -> bool:
        return self.status is MFAStatus.VERIFIED
