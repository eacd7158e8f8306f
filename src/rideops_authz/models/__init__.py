"""Domain models package for the access-control engine.

This package exports all Pydantic domain models with strict validation
and immutability for authorization decisions and escalation flows.
"""

from .access import (
    WILDCARD_REGION,
    EscalationType,
    PIITier,
    RegionScope,
    Role,
    RoleAssignment,
    TemporaryAccessGrant,
    User,
    UserStatus,
)
from .audit import (
    AuditEventType,
    DataMaskingEvent,
    DecisionRecord,
    RiskLevel,
    SecurityEvent,
)
from .base import BaseModelConfig, TimestampedModel, utc_now
from .mfa import (
    ChallengeContext,
    ChallengeTicket,
    MFAChallenge,
    MFAMethod,
    MFAStatus,
    VerificationOutcome,
)
from .policy import (
    AccessCondition,
    AuditLevel,
    Channel,
    ConditionType,
    DataClass,
    Decision,
    DecisionMetadata,
    InvocationContext,
    Obligations,
    OperationType,
    OwnershipAccessLevel,
    OwnershipType,
    PolicyDecision,
    PolicyEvaluationRequest,
    ResourceContext,
    ResourceType,
    VehicleAccessContext,
    VehicleAccessDecision,
)
from .workflow import (
    ApprovalRequest,
    ApprovalRequestTemplate,
    ApprovalStatus,
    ApprovalStep,
    ApproverProfile,
    FieldKind,
    RequiredField,
    RiskAssessment,
    SensitivityLevel,
    ValidationResult,
    WorkflowDefinition,
)

__all__ = [
    # Base models
    "BaseModelConfig",
    "TimestampedModel",
    "utc_now",
    # Identity
    "WILDCARD_REGION",
    "EscalationType",
    "PIITier",
    "RegionScope",
    "Role",
    "RoleAssignment",
    "TemporaryAccessGrant",
    "User",
    "UserStatus",
    # Evaluation
    "AccessCondition",
    "AuditLevel",
    "Channel",
    "ConditionType",
    "DataClass",
    "Decision",
    "DecisionMetadata",
    "InvocationContext",
    "Obligations",
    "OperationType",
    "OwnershipAccessLevel",
    "OwnershipType",
    "PolicyDecision",
    "PolicyEvaluationRequest",
    "ResourceContext",
    "ResourceType",
    "VehicleAccessContext",
    "VehicleAccessDecision",
    # Workflows
    "ApprovalRequest",
    "ApprovalRequestTemplate",
    "ApprovalStatus",
    "ApprovalStep",
    "ApproverProfile",
    "FieldKind",
    "RequiredField",
    "RiskAssessment",
    "SensitivityLevel",
    "ValidationResult",
    "WorkflowDefinition",
    # MFA
    "ChallengeContext",
    "ChallengeTicket",
    "MFAChallenge",
    "MFAMethod",
    "MFAStatus",
    "VerificationOutcome",
    # Audit
    "AuditEventType",
    "DataMaskingEvent",
    "DecisionRecord",
    "RiskLevel",
    "SecurityEvent",
]
