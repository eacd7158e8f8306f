# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Policy evaluation request and decision models."""

from datetime import datetime
from enum import Enum
from typing import Any

from beartype import beartype
from pydantic import AwareDatetime, Field, field_validator

from ..catalog.permissions import Permission
from .base import BaseModelConfig, utc_now


class ResourceType(str, Enum):
    """Kinds of resource the engine authorizes against."""

    VEHICLE = "vehicle"
    DRIVER = "driver"
    PASSENGER = "passenger"
    TRIP = "trip"
    PAYOUT = "payout"
    SUPPORT_CASE = "support_case"
    USER_PROFILE = "user_profile"
    LOCATION = "location"
    REPORT = "report"
    SYSTEM = "system"


class DataClass(str, Enum):
    """Data sensitivity classification, ordered public < ... < restricted."""

    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"

    @property
    def rank(self) -> int:
        return list(DataClass).index(self)

    @beartype
    def at_least(self, other: "DataClass") -> bool:
        return self.rank >= other.rank


class OwnershipType(str, Enum):
    """Vehicle ownership models."""

    XPRESS_OWNED = "xpress_owned"
    FLEET_OWNED = "fleet_owned"
    OPERATOR_OWNED = "operator_owned"
    DRIVER_OWNED = "driver_owned"


class OperationType(str, Enum):
    """Coarse operation kind used for audit intensity."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    APPROVE = "approve"
    EXPORT = "export"

    @property
    def is_mutating(self) -> bool:
        return self is not OperationType.READ


class Channel(str, Enum):
    """Invocation channel."""

    UI = "ui"
    API = "api"
    BATCH = "batch"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


class AuditLevel(str, Enum):
    STANDARD = "standard"
    ENHANCED = "enhanced"


class OwnershipAccessLevel(str, Enum):
    """Vehicle ownership-derived access classification."""

    NONE = "none"
    BASIC = "basic"
    LIMITED = "limited"
    DETAILED = "detailed"
    FINANCIAL = "financial"
    FULL = "full"


class ResourceContext(BaseModelConfig):
    """Resource the action targets."""

    type: ResourceType
    resource_id: str | None = Field(default=None, max_length=200)
    region_id: str | None = Field(default=None, max_length=100)
    data_class: DataClass = DataClass.INTERNAL
    contains_pii: bool = False
    ownership_type: OwnershipType | None = None
    operation_type: OperationType = OperationType.READ

    @field_validator("region_id")
    @classmethod
    def normalize_region(cls: type["ResourceContext"], v: str | None) -> str | None:
        """Treat blank region ids as absent."""
        return v or None

    @beartype
    def fingerprint(self) -> str:
        """Stable identity used for decision caching."""
        return "|".join(
            [
                self.type.value,
                self.resource_id or "",
                self.region_id or "",
                self.data_class.value,
                "pii" if self.contains_pii else "nopii",
                self.ownership_type.value if self.ownership_type else "",
                self.operation_type.value,
            ]
        )


class InvocationContext(BaseModelConfig):
    """How and when the call was made."""

    channel: Channel = Channel.UI
    mfa_present: bool = False
    timestamp: AwareDatetime = Field(default_factory=utc_now)
    case_id: str | None = Field(default=None, max_length=100)
    session_id: str | None = Field(default=None, max_length=200)
    ip_address: str | None = Field(default=None, max_length=64)


class PolicyEvaluationRequest(BaseModelConfig):
    """Immutable snapshot of a single authorization question."""

    user_id: str = Field(..., max_length=100)
    resource: ResourceContext
    action: Permission
    context: InvocationContext = Field(default_factory=InvocationContext)

    @field_validator("action", mode="before")
    @classmethod
    def coerce_action(cls: type["PolicyEvaluationRequest"], v: Any) -> Any:
        """Map unrecognized identifiers to ``Permission.UNKNOWN``."""
        if isinstance(v, str) and not isinstance(v, Permission):
            return Permission(v)
        return v


class Obligations(BaseModelConfig):
    """Requirements the caller must honor before executing an allowed action."""

    require_mfa: bool = False
    audit_level: AuditLevel = AuditLevel.STANDARD
    mask_fields: frozenset[str] = Field(default_factory=frozenset)


class DecisionMetadata(BaseModelConfig):
    evaluation_time_ms: float = Field(..., ge=0)
    policy_version: str
    evaluated_at: datetime
    cache_hit: bool = False
    errored: bool = False
    emergency_override: bool = False


class PolicyDecision(BaseModelConfig):
    """Outcome of a policy evaluation."""

    decision: Decision
    reasons: tuple[str, ...] = Field(..., min_length=1)
    obligations: Obligations = Field(default_factory=Obligations)
    metadata: DecisionMetadata

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW


class VehicleAccessContext(BaseModelConfig):
    """Vehicle-specific resource description for ``evaluate_vehicle_access``."""

    vehicle_id: str | None = Field(default=None, max_length=200)
    region_id: str | None = Field(default=None, max_length=100)
    ownership_type: OwnershipType | None = None
    data_class: DataClass = DataClass.INTERNAL
    contains_pii: bool = False
    operation_type: OperationType = OperationType.READ
    invocation: InvocationContext = Field(default_factory=InvocationContext)


class ConditionType(str, Enum):
    TIME_LIMITED = "time_limited"


class AccessCondition(BaseModelConfig):
    """Operation-specific condition attached to an allowed vehicle action."""

    type: ConditionType
    description: str = Field(..., min_length=1, max_length=500)
    expires_at: AwareDatetime | None = None
    case_id: str | None = Field(default=None, max_length=100)


class VehicleAccessDecision(PolicyDecision):
    """Policy decision plus the ownership-derived access tier."""

    ownership_access_level: OwnershipAccessLevel = OwnershipAccessLevel.NONE
    conditions: tuple[AccessCondition, ...] = ()
