# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Approval workflow management.

Holds the static workflow table, validates approval requests, decides
approver eligibility and drives the ``pending -> approved | denied``
lifecycle. Granting access for an approved request is the escalation
manager's job; this module only records who approved what.
"""

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Final

from beartype import beartype

from ..catalog.permissions import Permission
from ..core.result_types import Err, Ok, Result
from ..models.audit import AuditEventType, RiskLevel, SecurityEvent
from ..models.base import utc_now
from ..models.workflow import (
    ApprovalRequest,
    ApprovalRequestTemplate,
    ApprovalStatus,
    ApprovalStep,
    ApproverProfile,
    FieldKind,
    RiskAssessment,
    SensitivityLevel,
    ValidationResult,
    WorkflowDefinition,
)
from .audit import AuditEmitter

logger = logging.getLogger(__name__)

JUSTIFICATION_MIN_LENGTH: Final = 10
JUSTIFICATION_MAX_LENGTH: Final = 1000

_AUDIT_RISK: Final = {
    SensitivityLevel.LOW: RiskLevel.LOW,
    SensitivityLevel.MEDIUM: RiskLevel.MEDIUM,
    SensitivityLevel.HIGH: RiskLevel.HIGH,
    SensitivityLevel.CRITICAL: RiskLevel.CRITICAL,
}

_SENSITIVITY_RISK_FACTORS: Final = {
    SensitivityLevel.CRITICAL: (
        "Exposes regulated personal or financial data",
        "Irreversible impact if misused",
    ),
    SensitivityLevel.HIGH: ("Elevated privileges outside normal duties",),
    SensitivityLevel.MEDIUM: ("Changes operational configuration",),
    SensitivityLevel.LOW: ("Limited operational impact",),
}


class ApprovalWorkflowManager:
    """Workflow lookup, request validation and approval lifecycle."""

    def __init__(
        self,
        workflows: Mapping[Permission, WorkflowDefinition],
        audit: AuditEmitter,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize manager with a loaded workflow table."""
        self._workflows = workflows
        self._audit = audit
        self._clock = clock
        self._requests: dict[str, ApprovalRequest] = {}

    @property
    def workflows(self) -> Mapping[Permission, WorkflowDefinition]:
        return self._workflows

    @beartype
    def get_workflow_definition(self, action: Permission | str) -> WorkflowDefinition | None:
        """Workflow for an action, ``None`` when the action has no workflow."""
        return self._workflows.get(Permission(action))

    @beartype
    def validate_approval_request(
        self, request: ApprovalRequest, workflow: WorkflowDefinition | None
    ) -> ValidationResult:
        """Collect every validation error, in a stable order."""
        errors: list[str] = []

        justification = request.justification.strip()
        if not justification:
            errors.append("Justification is required")
        elif len(justification) < JUSTIFICATION_MIN_LENGTH:
            errors.append(
                f"Justification must be at least {JUSTIFICATION_MIN_LENGTH} characters"
            )
        elif len(justification) > JUSTIFICATION_MAX_LENGTH:
            errors.append(
                f"Justification must not exceed {JUSTIFICATION_MAX_LENGTH} characters"
            )

        if workflow is None or workflow.action is not request.action:
            errors.append(f"Unknown workflow action: {request.action.value}")
            return ValidationResult.from_errors(errors)

        payload = request.requested_action
        if not payload:
            errors.append("requested_action payload is required")
        else:
            payload_action = payload.get("action")
            if payload_action is not None and Permission(payload_action) is not workflow.action:
                errors.append(
                    f"requested_action.action ({payload_action}) must match "
                    f"workflow action {workflow.action.value}"
                )
            for required in workflow.required_fields:
                if not required.is_satisfied(payload):
                    errors.append(required.message)

        if request.ttl_seconds is not None and request.ttl_seconds > workflow.max_ttl_seconds:
            errors.append(
                f"Requested TTL {request.ttl_seconds}s exceeds the maximum of "
                f"{workflow.max_ttl_seconds}s for {workflow.action.value}"
            )

        return ValidationResult.from_errors(errors)

    @beartype
    def can_user_approve_workflow(
        self,
        approver_level: int,
        approver_role: str | None,
        approver_permissions: frozenset[Permission],
        action: Permission | str,
    ) -> bool:
        """Eligible with ``approve_requests`` or a level at the workflow's bar."""
        workflow = self.get_workflow_definition(action)
        if workflow is None:
            return False
        if (
            Permission.APPROVE_REQUESTS in approver_permissions
            or Permission.ALL in approver_permissions
        ):
            return True
        eligible = approver_level >= workflow.required_level
        if not eligible:
            logger.debug(
                "Role %s (level %d) below required level %d for %s",
                approver_role,
                approver_level,
                workflow.required_level,
                workflow.action.value,
            )
        return eligible

    @beartype
    def approvable_workflows(
        self,
        approver_level: int,
        approver_role: str | None,
        approver_permissions: frozenset[Permission],
    ) -> tuple[WorkflowDefinition, ...]:
        """Workflows the approver is eligible for, in table order."""
        return tuple(
            workflow
            for workflow in self._workflows.values()
            if self.can_user_approve_workflow(
                approver_level, approver_role, approver_permissions, workflow.action
            )
        )

    @beartype
    def approval_request_template(
        self, action: Permission | str
    ) -> ApprovalRequestTemplate | None:
        """Skeleton request with placeholders for every required payload field."""
        workflow = self.get_workflow_definition(action)
        if workflow is None:
            return None
        placeholders: dict[str, object] = {"action": workflow.action.value}
        for required in workflow.required_fields:
            if required.kind is FieldKind.LIST:
                placeholders[required.name] = []
            elif required.kind is FieldKind.NUMBER:
                placeholders[required.name] = 0
            else:
                placeholders[required.name] = ""
        return ApprovalRequestTemplate(
            action=workflow.action,
            requested_action=placeholders,
            ttl_seconds=workflow.default_ttl_seconds,
        )

    @staticmethod
    @beartype
    def estimated_approval_time(workflow: WorkflowDefinition) -> str:
        """Human-readable turnaround estimate."""
        if workflow.sensitivity_level is SensitivityLevel.CRITICAL:
            return "8-12 hours" if workflow.dual_approval_required else "4-8 hours"
        if workflow.sensitivity_level is SensitivityLevel.HIGH:
            return "2-4 hours"
        if workflow.sensitivity_level is SensitivityLevel.MEDIUM:
            return "1-3 hours"
        return "1-2 hours"

    @beartype
    def workflow_risk_assessment(self, action: Permission | str) -> RiskAssessment:
        """Advisory risk factors and mitigations for approvers."""
        workflow = self.get_workflow_definition(action)
        if workflow is None:
            return RiskAssessment(
                risk_level=SensitivityLevel.MEDIUM,
                risk_factors=("Unknown workflow",),
                mitigation_measures=("Verify workflow definition",),
            )

        factors = list(_SENSITIVITY_RISK_FACTORS[workflow.sensitivity_level])
        if workflow.pii_scope_override is not None:
            factors.append("Elevates PII visibility")
        if workflow.region_fields:
            factors.append("Extends regional scope")

        mitigations = [f"Access expires after {workflow.default_ttl_seconds // 60} minutes"]
        if workflow.dual_approval_required:
            mitigations.append("Dual approval required")
        if workflow.mfa_required_for_approval:
            mitigations.append("MFA verification mandatory")
        mitigations.append("All actions are audited")

        return RiskAssessment(
            risk_level=workflow.sensitivity_level,
            risk_factors=tuple(factors),
            mitigation_measures=tuple(mitigations),
        )

    @beartype
    def get_request(self, request_id: str) -> ApprovalRequest | None:
        return self._requests.get(request_id)

    @beartype
    async def submit(self, request: ApprovalRequest) -> Result[ApprovalRequest, str]:
        """Validate and store a new pending request."""
        workflow = self.get_workflow_definition(request.action)
        validation = self.validate_approval_request(request, workflow)
        if not validation.valid:
            return Err("Invalid approval request: " + "; ".join(validation.errors))

        if request.id in self._requests:
            return Err(f"Approval request {request.id} already exists")

        stored = request.model_copy(
            update={
                "status": ApprovalStatus.PENDING,
                "approvals": (),
                "created_at": self._clock(),
            }
        )
        self._requests[stored.id] = stored
        await self._audit.security_event(
            SecurityEvent(
                event_type=AuditEventType.APPROVAL_REQUESTED,
                risk_level=_AUDIT_RISK[workflow.sensitivity_level],
                actor_id=request.requester_id,
                subject_id=request.requester_id,
                action=request.action.value,
                description=f"Approval requested for {workflow.display_name}",
                event_data={"request_id": stored.id, "justification": stored.justification},
            )
        )
        return Ok(stored)

    @beartype
    async def approve(
        self,
        request_id: str,
        approver: ApproverProfile,
        *,
        mfa_verified: bool = False,
        comments: str | None = None,
    ) -> Result[ApprovalRequest, str]:
        """Record one approval; the request is approved once enough distinct approvers sign."""
        request = self._requests.get(request_id)
        if request is None:
            return Err(f"Approval request {request_id} not found")
        if not request.is_pending:
            return Err(f"Approval request {request_id} is already {request.status.value}")

        workflow = self.get_workflow_definition(request.action)
        if workflow is None:
            return Err(f"No workflow defined for {request.action.value}")

        if approver.user_id == request.requester_id:
            return Err("Requesters cannot approve their own request")
        if approver.user_id in request.approver_ids:
            return Err(
                f"Approver {approver.user_id} has already approved this request; "
                "dual approval requires a distinct second approver"
            )
        if not self.can_user_approve_workflow(
            approver.level, approver.role, approver.permissions, workflow.action
        ):
            return Err(
                f"Approver {approver.user_id} (level {approver.level}) is not eligible to "
                f"approve {workflow.action.value}: requires approve_requests or level "
                f">= {workflow.required_level}"
            )
        if workflow.mfa_required_for_approval and not mfa_verified:
            return Err(
                f"MFA verification is required to approve {workflow.action.value}. "
                "Complete a step-up challenge and retry"
            )

        now = self._clock()
        step = ApprovalStep(
            approver_id=approver.user_id,
            approver_level=approver.level,
            approver_role=approver.role,
            mfa_verified=mfa_verified,
            approved_at=now,
            comments=comments,
        )
        approvals = request.approvals + (step,)
        complete = len(approvals) >= workflow.approvals_required
        updated = request.model_copy(
            update={
                "approvals": approvals,
                "status": ApprovalStatus.APPROVED if complete else ApprovalStatus.PENDING,
                "decided_at": now if complete else None,
            }
        )
        self._requests[request_id] = updated

        await self._audit.security_event(
            SecurityEvent(
                event_type=AuditEventType.APPROVAL_GRANTED,
                risk_level=_AUDIT_RISK[workflow.sensitivity_level],
                actor_id=approver.user_id,
                subject_id=request.requester_id,
                action=request.action.value,
                description=(
                    f"Approval {len(approvals)}/{workflow.approvals_required} recorded"
                ),
                event_data={"request_id": request_id, "complete": complete},
            )
        )
        return Ok(updated)

    @beartype
    async def deny(
        self, request_id: str, denied_by: str, reason: str
    ) -> Result[ApprovalRequest, str]:
        """Close a pending request as denied."""
        request = self._requests.get(request_id)
        if request is None:
            return Err(f"Approval request {request_id} not found")
        if not request.is_pending:
            return Err(f"Approval request {request_id} is already {request.status.value}")
        if not reason.strip():
            return Err("A denial reason is required")
        return Ok(await self._close_denied(request, denied_by, reason))

    @beartype
    async def mark_denied(
        self, request_id: str, denied_by: str, reason: str
    ) -> Result[ApprovalRequest, str]:
        """Deny a request regardless of state, e.g. when its grant cannot be issued."""
        request = self._requests.get(request_id)
        if request is None:
            return Err(f"Approval request {request_id} not found")
        return Ok(await self._close_denied(request, denied_by, reason))

    @beartype
    def record_grant(self, request_id: str, grant_id: str) -> ApprovalRequest | None:
        """Link an approved request to the grant it produced."""
        request = self._requests.get(request_id)
        if request is None:
            return None
        updated = request.model_copy(update={"grant_id": grant_id})
        self._requests[request_id] = updated
        return updated

    async def _close_denied(
        self, request: ApprovalRequest, denied_by: str, reason: str
    ) -> ApprovalRequest:
        updated = request.model_copy(
            update={
                "status": ApprovalStatus.DENIED,
                "decided_at": self._clock(),
                "denial_reason": reason,
                "denied_by": denied_by,
            }
        )
        self._requests[request.id] = updated
        await self._audit.security_event(
            SecurityEvent(
                event_type=AuditEventType.APPROVAL_DENIED,
                risk_level=RiskLevel.LOW,
                actor_id=denied_by,
                subject_id=request.requester_id,
                action=request.action.value,
                description=f"Approval request denied: {reason}",
                event_data={"request_id": request.id},
            )
        )
        return updated
