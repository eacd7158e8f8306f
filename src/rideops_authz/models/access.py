# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Identity models: users, roles, assignments and temporary grants."""

from datetime import datetime
from enum import Enum
from typing import Final
from uuid import uuid4

from beartype import beartype
from pydantic import AwareDatetime, Field, field_validator, model_validator

from ..catalog.permissions import Permission
from .base import BaseModelConfig, TimestampedModel

WILDCARD_REGION: Final = "*"


class UserStatus(str, Enum):
    """Account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class PIITier(str, Enum):
    """Ordered PII visibility tier: none < masked < full."""

    NONE = "none"
    MASKED = "masked"
    FULL = "full"

    @property
    def rank(self) -> int:
        return _PII_RANKS[self]

    @classmethod
    def highest(cls, *tiers: "PIITier") -> "PIITier":
        """Return the most permissive tier, ``NONE`` when given nothing."""
        return max(tiers, key=lambda tier: tier.rank, default=cls.NONE)


_PII_RANKS: Final = {PIITier.NONE: 0, PIITier.MASKED: 1, PIITier.FULL: 2}


class EscalationType(str, Enum):
    """Origin of a temporary grant."""

    SUPPORT = "support"
    RISK_INVESTIGATOR = "risk_investigator"
    APPROVAL = "approval"
    EMERGENCY = "emergency"


def _reject_unknown(permissions: frozenset[Permission]) -> frozenset[Permission]:
    if Permission.UNKNOWN in permissions:
        raise ValueError("Permission set contains an unknown identifier")
    return permissions


class RegionScope(BaseModelConfig):
    """A set of region ids, or the wildcard matching every region."""

    all_regions: bool = Field(default=False, description="Wildcard scope")
    regions: frozenset[str] = Field(default_factory=frozenset)

    @classmethod
    def union(cls, *region_sets: frozenset[str]) -> "RegionScope":
        """Union several region sets; any wildcard marker wins."""
        merged: set[str] = set()
        for region_set in region_sets:
            merged.update(region_set)
        if WILDCARD_REGION in merged:
            return cls(all_regions=True)
        return cls(regions=frozenset(merged))

    @beartype
    def contains(self, region_id: str) -> bool:
        return self.all_regions or region_id in self.regions

    @beartype
    def describe(self) -> str:
        """Human-readable listing for denial reasons."""
        if self.all_regions:
            return "all regions"
        return ", ".join(sorted(self.regions)) or "none"


class Role(BaseModelConfig):
    """Role definition; inheritance is resolved by the role graph."""

    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=100)
    level: int = Field(..., ge=0, le=1000, description="Rank used for approver eligibility")
    permissions: frozenset[Permission] = Field(default_factory=frozenset)
    inherits_from: frozenset[str] = Field(default_factory=frozenset)
    description: str | None = Field(default=None, max_length=500)

    @field_validator("permissions")
    @classmethod
    def validate_permissions(
        cls: type["Role"], v: frozenset[Permission]
    ) -> frozenset[Permission]:
        """Role permissions must come from the closed catalog."""
        return _reject_unknown(v)


class RoleAssignment(BaseModelConfig):
    """Binding of a user to a role for a validity window."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    role_id: str = Field(..., min_length=1)
    allowed_regions: frozenset[str] = Field(default_factory=frozenset)
    valid_from: AwareDatetime
    valid_until: AwareDatetime | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def validate_window(self) -> "RoleAssignment":
        """Ensure the validity window is not inverted."""
        if self.valid_until is not None and self.valid_until <= self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self

    @beartype
    def is_effective(self, now: datetime) -> bool:
        """Active and inside the validity window at ``now``."""
        if not self.is_active or now < self.valid_from:
            return False
        return self.valid_until is None or now < self.valid_until

    @beartype
    def is_expired(self, now: datetime) -> bool:
        """Validity window has closed (regardless of ``is_active``)."""
        return self.valid_until is not None and now >= self.valid_until


class TemporaryAccessGrant(TimestampedModel):
    """Time-boxed permission, region or PII override.

    Effectiveness is derived on every read (``is_effective``) and never
    stored; nothing clears ``is_active`` when ``expires_at`` passes.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str = Field(..., min_length=1)
    granted_permissions: frozenset[Permission] = Field(default_factory=frozenset)
    granted_regions: frozenset[str] = Field(default_factory=frozenset)
    pii_scope_override: PIITier | None = None
    expires_at: AwareDatetime
    is_active: bool = True
    escalation_type: EscalationType
    case_id: str | None = Field(default=None, max_length=100)
    requested_by: str = Field(..., min_length=1)
    approved_by: tuple[str, ...] = Field(default_factory=tuple)
    justification: str = Field(default="", max_length=1000)
    approval_request_id: str | None = None
    revoked_at: AwareDatetime | None = None
    revoked_by: str | None = None
    revocation_reason: str | None = Field(default=None, max_length=500)

    @field_validator("granted_permissions")
    @classmethod
    def validate_permissions(
        cls: type["TemporaryAccessGrant"], v: frozenset[Permission]
    ) -> frozenset[Permission]:
        """Granted permissions must come from the closed catalog."""
        return _reject_unknown(v)

    @model_validator(mode="after")
    def validate_emergency_case(self) -> "TemporaryAccessGrant":
        """Emergency escalations always name their investigation case."""
        if self.escalation_type is EscalationType.EMERGENCY and not self.case_id:
            raise ValueError("Emergency grants require a case_id")
        return self

    @beartype
    def is_effective(self, now: datetime) -> bool:
        return self.is_active and now < self.expires_at

    @property
    def is_emergency_override(self) -> bool:
        """Tagged with an investigation case for cross-region work."""
        return self.escalation_type is EscalationType.EMERGENCY and bool(self.case_id)

    @beartype
    def covers(self, permission: Permission) -> bool:
        """Region-only overrides cover every action; otherwise the action must be granted."""
        if not self.granted_permissions:
            return True
        return (
            permission in self.granted_permissions
            or Permission.ALL in self.granted_permissions
        )


class User(BaseModelConfig):
    """Snapshot of a platform user as seen by the engine."""

    id: str = Field(..., min_length=1, max_length=100)
    display_name: str | None = Field(default=None, max_length=200)
    status: UserStatus = UserStatus.ACTIVE
    role_assignments: tuple[RoleAssignment, ...] = Field(default_factory=tuple)
    allowed_regions: frozenset[str] = Field(default_factory=frozenset)
    pii_scope: PIITier = PIITier.NONE
    mfa_enabled: bool = False
    temporary_grants: tuple[TemporaryAccessGrant, ...] = Field(default_factory=tuple)

    @property
    def is_active(self) -> bool:
        return self.status is UserStatus.ACTIVE

    @beartype
    def effective_grants(self, now: datetime) -> tuple[TemporaryAccessGrant, ...]:
        """Grants in effect at ``now``, in stored order."""
        return tuple(grant for grant in self.temporary_grants if grant.is_effective(now))
