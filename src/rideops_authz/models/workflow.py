# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Approval workflow definitions and request lifecycle models."""

from enum import Enum
from typing import Any, Final
from uuid import uuid4

from beartype import beartype
from pydantic import AwareDatetime, Field, field_validator, model_validator

from ..catalog.permissions import Permission
from .access import EscalationType, PIITier, RegionScope
from .base import BaseModelConfig, TimestampedModel


class SensitivityLevel(str, Enum):
    """Workflow sensitivity tier."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def required_level(self) -> int:
        """Minimum approver role level for this tier."""
        return REQUIRED_APPROVER_LEVELS[self]


REQUIRED_APPROVER_LEVELS: Final = {
    SensitivityLevel.LOW: 20,
    SensitivityLevel.MEDIUM: 30,
    SensitivityLevel.HIGH: 40,
    SensitivityLevel.CRITICAL: 60,
}


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class FieldKind(str, Enum):
    """Shape a required payload field must have."""

    TEXT = "text"
    LIST = "list"
    NUMBER = "number"


class RequiredField(BaseModelConfig):
    """A payload field a workflow insists on, with its validation message."""

    name: str = Field(..., min_length=1)
    kind: FieldKind = FieldKind.TEXT
    message: str = Field(..., min_length=1)

    @beartype
    def is_satisfied(self, payload: dict[str, Any]) -> bool:
        value = payload.get(self.name)
        if self.kind is FieldKind.LIST:
            return isinstance(value, (list, tuple)) and len(value) > 0
        if self.kind is FieldKind.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        return isinstance(value, str) and bool(value.strip())


class WorkflowDefinition(BaseModelConfig):
    """Static approval workflow configuration for one action."""

    action: Permission
    display_name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    sensitivity_level: SensitivityLevel
    dual_approval_required: bool = False
    mfa_required_for_approval: bool = False
    auto_grant_permissions: frozenset[Permission] = Field(default_factory=frozenset)
    default_ttl_seconds: int = Field(..., gt=0)
    max_ttl_seconds: int = Field(..., gt=0)
    required_fields: tuple[RequiredField, ...] = Field(default_factory=tuple)
    region_fields: tuple[str, ...] = Field(
        default_factory=tuple, description="Payload fields naming regions to grant"
    )
    pii_scope_override: PIITier | None = None
    case_field: str | None = Field(
        default=None, description="Payload field carrying the investigation case id"
    )
    escalation_type: EscalationType = EscalationType.APPROVAL

    @field_validator("action")
    @classmethod
    def validate_action(cls: type["WorkflowDefinition"], v: Permission) -> Permission:
        """Workflows are keyed by concrete catalog actions."""
        if not v.is_concrete:
            raise ValueError(f"Workflow action must be a concrete permission, got {v.value}")
        return v

    @field_validator("auto_grant_permissions")
    @classmethod
    def validate_grants(
        cls: type["WorkflowDefinition"], v: frozenset[Permission]
    ) -> frozenset[Permission]:
        """Auto-granted permissions must be concrete catalog members."""
        invalid = sorted(p.value for p in v if not p.is_concrete)
        if invalid:
            raise ValueError(f"Invalid auto-grant permissions: {', '.join(invalid)}")
        return v

    @model_validator(mode="after")
    def validate_ttl(self) -> "WorkflowDefinition":
        """Default TTL must fit under the ceiling."""
        if self.default_ttl_seconds > self.max_ttl_seconds:
            raise ValueError("default_ttl_seconds must be <= max_ttl_seconds")
        return self

    @property
    def required_level(self) -> int:
        return self.sensitivity_level.required_level

    @property
    def approvals_required(self) -> int:
        return 2 if self.dual_approval_required else 1


class ApproverProfile(BaseModelConfig):
    """Resolved view of an approver at the moment of approval."""

    user_id: str = Field(..., min_length=1)
    level: int = Field(..., ge=0)
    role: str | None = None
    permissions: frozenset[Permission] = Field(default_factory=frozenset)
    regions: RegionScope = Field(default_factory=RegionScope)


class ApprovalStep(BaseModelConfig):
    """One recorded approval."""

    approver_id: str
    approver_level: int
    approver_role: str | None = None
    mfa_verified: bool = False
    approved_at: AwareDatetime
    comments: str | None = Field(default=None, max_length=1000)


class ApprovalRequest(TimestampedModel):
    """Request for time-boxed access, pending human approval."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    action: Permission
    requester_id: str = Field(..., min_length=1)
    justification: str
    requested_action: dict[str, Any] = Field(default_factory=dict)
    ttl_seconds: int | None = Field(default=None, gt=0)
    status: ApprovalStatus = ApprovalStatus.PENDING
    approvals: tuple[ApprovalStep, ...] = Field(default_factory=tuple)
    decided_at: AwareDatetime | None = None
    grant_id: str | None = None
    denial_reason: str | None = Field(default=None, max_length=1000)
    denied_by: str | None = None

    @field_validator("action", mode="before")
    @classmethod
    def coerce_action(cls: type["ApprovalRequest"], v: Any) -> Any:
        """Map unrecognized identifiers to ``Permission.UNKNOWN``."""
        if isinstance(v, str) and not isinstance(v, Permission):
            return Permission(v)
        return v

    @property
    def approver_ids(self) -> tuple[str, ...]:
        return tuple(step.approver_id for step in self.approvals)

    @property
    def is_pending(self) -> bool:
        return self.status is ApprovalStatus.PENDING


class ValidationResult(BaseModelConfig):
    """Outcome of approval request validation; errors are ordered."""

    valid: bool
    errors: tuple[str, ...] = Field(default_factory=tuple)

    @classmethod
    def from_errors(cls, errors: list[str]) -> "ValidationResult":
        return cls(valid=not errors, errors=tuple(errors))


class RiskAssessment(BaseModelConfig):
    """Advisory risk summary shown to approvers."""

    risk_level: SensitivityLevel
    risk_factors: tuple[str, ...] = Field(default_factory=tuple)
    mitigation_measures: tuple[str, ...] = Field(default_factory=tuple)


class ApprovalRequestTemplate(BaseModelConfig):
    """Skeleton payload a requester fills in for a workflow."""

    action: Permission
    justification: str = ""
    requested_action: dict[str, Any] = Field(default_factory=dict)
    ttl_seconds: int
