# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Static approval workflow table.

Loaded once when the service is created and read-only afterwards. Every
workflow auto-grants its own action so an approved request lets the
requester retry the call that was originally denied.
"""

from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Final

from beartype import beartype

from ..core.errors import WorkflowConfigurationError
from ..models.access import EscalationType, PIITier
from ..models.workflow import (
    FieldKind,
    RequiredField,
    SensitivityLevel,
    WorkflowDefinition,
)
from .permissions import Permission as P

_MINUTE: Final = 60
_HOUR: Final = 60 * _MINUTE

BUILTIN_WORKFLOWS: Final[tuple[WorkflowDefinition, ...]] = (
    WorkflowDefinition(
        action=P.UNMASK_PII_WITH_MFA,
        display_name="Unmask PII",
        description="Temporary full PII visibility for an investigation",
        sensitivity_level=SensitivityLevel.CRITICAL,
        dual_approval_required=True,
        mfa_required_for_approval=True,
        auto_grant_permissions=frozenset({P.UNMASK_PII_WITH_MFA}),
        default_ttl_seconds=30 * _MINUTE,
        max_ttl_seconds=_HOUR,
        required_fields=(
            RequiredField(
                name="user_ids",
                kind=FieldKind.LIST,
                message="user_ids array is required for PII unmasking requests",
            ),
            RequiredField(
                name="investigation_case",
                message="investigation_case is required for PII unmasking requests",
            ),
        ),
        pii_scope_override=PIITier.FULL,
        case_field="investigation_case",
        escalation_type=EscalationType.RISK_INVESTIGATOR,
    ),
    WorkflowDefinition(
        action=P.APPROVE_PAYOUT_BATCH,
        display_name="Approve payout batch",
        description="Release a driver payout batch",
        sensitivity_level=SensitivityLevel.CRITICAL,
        dual_approval_required=True,
        mfa_required_for_approval=True,
        auto_grant_permissions=frozenset({P.APPROVE_PAYOUT_BATCH}),
        default_ttl_seconds=30 * _MINUTE,
        max_ttl_seconds=_HOUR,
        required_fields=(
            RequiredField(
                name="batch_id", message="batch_id is required for payout approvals"
            ),
            RequiredField(
                name="amount",
                kind=FieldKind.NUMBER,
                message="amount is required for payout approvals",
            ),
            RequiredField(
                name="region", message="region is required for payout approvals"
            ),
        ),
        region_fields=("region",),
    ),
    WorkflowDefinition(
        action=P.ACCESS_RAW_LOCATION_DATA,
        display_name="Access raw location data",
        description="Unaggregated GPS traces for a single investigation",
        sensitivity_level=SensitivityLevel.CRITICAL,
        dual_approval_required=True,
        mfa_required_for_approval=True,
        auto_grant_permissions=frozenset({P.ACCESS_RAW_LOCATION_DATA}),
        default_ttl_seconds=10 * _MINUTE,
        max_ttl_seconds=30 * _MINUTE,
        pii_scope_override=PIITier.FULL,
        escalation_type=EscalationType.RISK_INVESTIGATOR,
    ),
    WorkflowDefinition(
        action=P.CROSS_REGION_OVERRIDE,
        display_name="Cross-region override",
        description="Temporary access to a region outside the base assignment",
        sensitivity_level=SensitivityLevel.HIGH,
        mfa_required_for_approval=True,
        auto_grant_permissions=frozenset({P.CROSS_REGION_OVERRIDE}),
        default_ttl_seconds=4 * _HOUR,
        max_ttl_seconds=24 * _HOUR,
        required_fields=(
            RequiredField(
                name="source_region",
                message="source_region is required for cross-region overrides",
            ),
            RequiredField(
                name="target_region",
                message="target_region is required for cross-region overrides",
            ),
        ),
        region_fields=("target_region",),
        case_field="case_id",
    ),
    WorkflowDefinition(
        action=P.ASSIGN_ROLES,
        display_name="Assign roles",
        sensitivity_level=SensitivityLevel.HIGH,
        mfa_required_for_approval=True,
        auto_grant_permissions=frozenset({P.ASSIGN_ROLES}),
        default_ttl_seconds=_HOUR,
        max_ttl_seconds=2 * _HOUR,
    ),
    WorkflowDefinition(
        action=P.EXPORT_AUDIT_DATA,
        display_name="Export audit data",
        sensitivity_level=SensitivityLevel.HIGH,
        mfa_required_for_approval=True,
        auto_grant_permissions=frozenset({P.EXPORT_AUDIT_DATA}),
        default_ttl_seconds=_HOUR,
        max_ttl_seconds=2 * _HOUR,
    ),
    WorkflowDefinition(
        action=P.PROMOTE_REGION_STAGE,
        display_name="Promote region stage",
        description="Move a region to its next launch stage",
        sensitivity_level=SensitivityLevel.HIGH,
        mfa_required_for_approval=True,
        auto_grant_permissions=frozenset({P.PROMOTE_REGION_STAGE}),
        default_ttl_seconds=_HOUR,
        max_ttl_seconds=4 * _HOUR,
        region_fields=("region",),
    ),
    WorkflowDefinition(
        action=P.MANAGE_API_KEYS,
        display_name="Manage API keys",
        sensitivity_level=SensitivityLevel.HIGH,
        mfa_required_for_approval=True,
        auto_grant_permissions=frozenset({P.MANAGE_API_KEYS}),
        default_ttl_seconds=_HOUR,
        max_ttl_seconds=2 * _HOUR,
    ),
    WorkflowDefinition(
        action=P.MANAGE_USERS,
        display_name="Manage users",
        sensitivity_level=SensitivityLevel.MEDIUM,
        auto_grant_permissions=frozenset({P.MANAGE_USERS}),
        default_ttl_seconds=2 * _HOUR,
        max_ttl_seconds=8 * _HOUR,
    ),
    WorkflowDefinition(
        action=P.CONFIGURE_PRELAUNCH_PRICING_FLAGGED,
        display_name="Configure pre-launch pricing",
        sensitivity_level=SensitivityLevel.MEDIUM,
        auto_grant_permissions=frozenset({P.CONFIGURE_PRELAUNCH_PRICING_FLAGGED}),
        default_ttl_seconds=2 * _HOUR,
        max_ttl_seconds=8 * _HOUR,
        region_fields=("region",),
    ),
    WorkflowDefinition(
        action=P.REVOKE_ACCESS,
        display_name="Revoke access",
        sensitivity_level=SensitivityLevel.MEDIUM,
        auto_grant_permissions=frozenset({P.REVOKE_ACCESS}),
        default_ttl_seconds=_HOUR,
        max_ttl_seconds=4 * _HOUR,
    ),
    WorkflowDefinition(
        action=P.CONFIGURE_ALERTS,
        display_name="Configure alerts",
        sensitivity_level=SensitivityLevel.LOW,
        auto_grant_permissions=frozenset({P.CONFIGURE_ALERTS}),
        default_ttl_seconds=4 * _HOUR,
        max_ttl_seconds=24 * _HOUR,
        region_fields=("region",),
    ),
)


@beartype
def build_workflow_table(
    definitions: Iterable[WorkflowDefinition],
) -> Mapping[P, WorkflowDefinition]:
    """Index definitions by action, rejecting duplicates."""
    table: dict[P, WorkflowDefinition] = {}
    for definition in definitions:
        if definition.action in table:
            raise WorkflowConfigurationError(
                "duplicate_workflow",
                f"Workflow for {definition.action.value} is defined more than once",
            )
        table[definition.action] = definition
    return MappingProxyType(table)
