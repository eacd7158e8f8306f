"""Audit records emitted by the engine.

Records are immutable and carry enough context (who, what, where, why and
under which policy version) to reconstruct any decision after the fact.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from beartype import beartype
from pydantic import Field

from .base import BaseModelConfig, utc_now


class AuditEventType(str, Enum):
    """Types of audit events."""

    # Decisions
    ACCESS_GRANTED = "access_granted"
    ACCESS_DENIED = "access_denied"
    EVALUATION_ERROR = "evaluation_error"

    # Escalation
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_GRANTED = "approval_granted"
    APPROVAL_DENIED = "approval_denied"
    GRANT_ISSUED = "grant_issued"
    GRANT_REVOKED = "grant_revoked"
    EMERGENCY_DECLARED = "emergency_declared"

    # Step-up authentication
    MFA_CHALLENGE_CREATED = "mfa_challenge_created"
    MFA_VERIFIED = "mfa_verified"
    MFA_FAILED = "mfa_failed"

    # Configuration
    ROLES_RELOADED = "roles_reloaded"

    # Data protection
    DATA_MASKED = "data_masked"


class RiskLevel(str, Enum):
    """Risk levels for audit events."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class DecisionRecord(BaseModelConfig):
    """One evaluation, as handed to ``AuditSink.log_access``."""

    record_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=utc_now)
    event_type: AuditEventType
    user_id: str
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    region_id: str | None = None
    decision: str
    reasons: tuple[str, ...]
    audit_level: str
    require_mfa: bool
    mask_fields: tuple[str, ...] = Field(default_factory=tuple)
    policy_version: str
    evaluation_time_ms: float = Field(..., ge=0)
    cache_hit: bool = False
    errored: bool = False
    emergency_override: bool = False
    case_id: str | None = None
    session_id: str | None = None
    ip_address: str | None = None

    @beartype
    def to_audit_record(self) -> dict[str, Any]:
        """Flatten to a serializable mapping for sinks that store rows."""
        return self.model_dump(mode="json")


class SecurityEvent(BaseModelConfig):
    """Sensitive state change or systemic failure."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=utc_now)
    event_type: AuditEventType
    risk_level: RiskLevel = RiskLevel.INFO
    actor_id: str | None = None
    subject_id: str | None = None
    action: str | None = None
    description: str = Field(..., min_length=1, max_length=2000)
    event_data: dict[str, Any] = Field(default_factory=dict)
    error_details: str | None = None


class DataMaskingEvent(BaseModelConfig):
    """Record of fields withheld from a caller."""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = Field(default_factory=utc_now)
    user_id: str
    resource_type: str
    resource_id: str | None = None
    masked_fields: tuple[str, ...]
    pii_scope: str
    policy_version: str
