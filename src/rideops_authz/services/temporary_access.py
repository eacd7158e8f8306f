# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Temporary access and escalation management.

Issues time-boxed grants from approved requests and emergency
declarations, and revokes them. Grants are never swept: ``is_effective``
is a pure predicate over ``is_active`` and ``expires_at`` that every
reader applies at read time.
"""

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta
from typing import Any

from beartype import beartype

from ..catalog.permissions import Permission
from ..core.config import Settings
from ..core.result_types import Err, Ok, Result
from ..core.types import GrantRepository
from ..models.access import EscalationType, PIITier, TemporaryAccessGrant
from ..models.audit import AuditEventType, RiskLevel, SecurityEvent
from ..models.base import utc_now
from ..models.workflow import (
    ApprovalRequest,
    ApprovalStatus,
    ApproverProfile,
    SensitivityLevel,
    WorkflowDefinition,
)
from .audit import AuditEmitter

logger = logging.getLogger(__name__)


@beartype
def is_effective(grant: TemporaryAccessGrant, now: datetime) -> bool:
    """A grant is effective while active and before its expiry."""
    return grant.is_effective(now)


@beartype
def payload_regions(payload: dict[str, Any], fields: Iterable[str]) -> frozenset[str]:
    """Collect region ids named by the given payload fields."""
    regions: set[str] = set()
    for field in fields:
        value = payload.get(field)
        if isinstance(value, str) and value.strip():
            regions.add(value.strip())
        elif isinstance(value, (list, tuple)):
            regions.update(v.strip() for v in value if isinstance(v, str) and v.strip())
    return frozenset(regions)


@beartype
def uncovered_regions(
    regions: frozenset[str], approvers: Sequence[ApproverProfile]
) -> frozenset[str]:
    """Regions no approver's effective scope covers."""
    return frozenset(
        region
        for region in regions
        if not any(approver.regions.contains(region) for approver in approvers)
    )


class TemporaryAccessManager:
    """Issues, stores and revokes temporary access grants."""

    def __init__(
        self,
        repository: GrantRepository,
        settings: Settings,
        audit: AuditEmitter,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize manager with dependency validation."""
        if not isinstance(repository, GrantRepository):
            raise ValueError("Grant repository must implement save_grant and get_grant")
        self._repository = repository
        self._settings = settings
        self._audit = audit
        self._clock = clock

    @staticmethod
    @beartype
    def is_effective(grant: TemporaryAccessGrant, now: datetime) -> bool:
        return is_effective(grant, now)

    @beartype
    async def grant(
        self,
        approval: ApprovalRequest,
        workflow: WorkflowDefinition,
        approvers: Sequence[ApproverProfile],
    ) -> Result[TemporaryAccessGrant, str]:
        """Turn an approved request into a grant for the requester.

        Args:
            approval: Request in ``approved`` state
            workflow: Workflow the request was approved under
            approvers: Resolved profiles of every approver, in approval order

        Returns:
            Result containing the stored grant or error
        """
        if approval.status is not ApprovalStatus.APPROVED:
            return Err(
                f"Approval request {approval.id} is {approval.status.value}; "
                "only approved requests produce grants"
            )
        if approval.action is not workflow.action:
            return Err(
                f"Workflow {workflow.action.value} does not match request action "
                f"{approval.action.value}"
            )

        payload = approval.requested_action
        regions = payload_regions(payload, workflow.region_fields)
        is_emergency = workflow.escalation_type is EscalationType.EMERGENCY
        if not is_emergency:
            missing = uncovered_regions(regions, approvers)
            if missing:
                return Err(
                    "Approvers do not cover requested regions: "
                    f"{', '.join(sorted(missing))}. An approver with access to those "
                    "regions must approve"
                )

        case_id = None
        if workflow.case_field is not None:
            raw_case = payload.get(workflow.case_field)
            case_id = str(raw_case) if raw_case else None

        ttl = min(approval.ttl_seconds or workflow.default_ttl_seconds, workflow.max_ttl_seconds)
        now = self._clock()
        grant = TemporaryAccessGrant(
            user_id=approval.requester_id,
            granted_permissions=workflow.auto_grant_permissions,
            granted_regions=regions,
            pii_scope_override=workflow.pii_scope_override,
            expires_at=now + timedelta(seconds=ttl),
            escalation_type=workflow.escalation_type,
            case_id=case_id,
            requested_by=approval.requester_id,
            approved_by=tuple(approver.user_id for approver in approvers),
            justification=approval.justification,
            approval_request_id=approval.id,
            created_at=now,
        )
        risk = (
            RiskLevel.HIGH
            if workflow.sensitivity_level in (SensitivityLevel.HIGH, SensitivityLevel.CRITICAL)
            else RiskLevel.MEDIUM
        )
        return await self._store(grant, AuditEventType.GRANT_ISSUED, risk)

    @beartype
    async def declare_emergency(
        self,
        user_id: str,
        declared_by: str,
        case_id: str,
        *,
        regions: frozenset[str],
        permissions: frozenset[Permission] = frozenset(),
        justification: str,
        ttl_seconds: int,
        pii_scope_override: PIITier | None = None,
    ) -> Result[TemporaryAccessGrant, str]:
        """Issue an emergency investigation grant.

        Emergency grants may name regions outside the user's base scope and
        are exempt from the approver region check. They require a case id
        and are capped at ``emergency_grant_max_ttl_seconds``.
        """
        if not case_id.strip():
            return Err("case_id is required for emergency access")
        if not justification.strip():
            return Err("Justification is required for emergency access")
        if ttl_seconds <= 0:
            return Err("ttl_seconds must be positive")
        max_ttl = self._settings.emergency_grant_max_ttl_seconds
        if ttl_seconds > max_ttl:
            return Err(
                f"Emergency TTL {ttl_seconds}s exceeds the maximum of {max_ttl}s. "
                "Request a shorter window"
            )
        if any(not permission.is_concrete for permission in permissions):
            return Err("Emergency grants must name concrete permissions")

        now = self._clock()
        grant = TemporaryAccessGrant(
            user_id=user_id,
            granted_permissions=permissions,
            granted_regions=regions,
            pii_scope_override=pii_scope_override,
            expires_at=now + timedelta(seconds=ttl_seconds),
            escalation_type=EscalationType.EMERGENCY,
            case_id=case_id.strip(),
            requested_by=declared_by,
            approved_by=(declared_by,),
            justification=justification,
            created_at=now,
        )
        return await self._store(grant, AuditEventType.EMERGENCY_DECLARED, RiskLevel.HIGH)

    @beartype
    async def revoke(
        self, grant_id: str, revoked_by: str, reason: str
    ) -> Result[TemporaryAccessGrant, str]:
        """Deactivate a grant before its natural expiry."""
        try:
            grant = await self._repository.get_grant(grant_id)
        except Exception as e:
            return Err(f"Failed to load grant: {str(e)}")
        if grant is None:
            return Err(f"Grant {grant_id} not found")
        if not grant.is_active:
            return Err(f"Grant {grant_id} is already revoked")

        revoked = grant.model_copy(
            update={
                "is_active": False,
                "revoked_at": self._clock(),
                "revoked_by": revoked_by,
                "revocation_reason": reason,
            }
        )
        return await self._store(revoked, AuditEventType.GRANT_REVOKED, RiskLevel.MEDIUM)

    async def _store(
        self, grant: TemporaryAccessGrant, event_type: AuditEventType, risk: RiskLevel
    ) -> Result[TemporaryAccessGrant, str]:
        try:
            await self._repository.save_grant(grant)
        except Exception as e:
            logger.error("Failed to persist grant %s: %s", grant.id, e)
            return Err(f"Failed to persist grant: {str(e)}")

        await self._audit.security_event(
            SecurityEvent(
                event_type=event_type,
                risk_level=risk,
                actor_id=grant.revoked_by or grant.requested_by,
                subject_id=grant.user_id,
                action=",".join(sorted(p.value for p in grant.granted_permissions)) or None,
                description=f"Temporary grant {grant.id} {event_type.value.replace('_', ' ')}",
                event_data={
                    "grant_id": grant.id,
                    "escalation_type": grant.escalation_type.value,
                    "case_id": grant.case_id,
                    "regions": sorted(grant.granted_regions),
                    "expires_at": grant.expires_at.isoformat(),
                },
            )
        )
        return Ok(grant)
