"""Unit tests for approval workflow management."""

import pytest

from rideops_authz.catalog.permissions import Permission
from rideops_authz.catalog.workflows import BUILTIN_WORKFLOWS, build_workflow_table
from rideops_authz.core.errors import WorkflowConfigurationError
from rideops_authz.models.access import RegionScope
from rideops_authz.models.audit import AuditEventType
from rideops_authz.models.workflow import (
    ApprovalRequest,
    ApprovalStatus,
    ApproverProfile,
    SensitivityLevel,
)
from rideops_authz.services.approval_workflow import ApprovalWorkflowManager
from tests.fixtures.test_data import NOW


@pytest.fixture
def manager(workflows, audit, clock) -> ApprovalWorkflowManager:
    return ApprovalWorkflowManager(workflows, audit, clock=clock)


def approver(user_id: str, level: int = 60, *, permissions=frozenset(), role: str = "executive") -> ApproverProfile:
    return ApproverProfile(
        user_id=user_id,
        level=level,
        role=role,
        permissions=permissions,
        regions=RegionScope(all_regions=True),
    )


def unmask_request(**overrides) -> ApprovalRequest:
    values = {
        "action": Permission.UNMASK_PII_WITH_MFA,
        "requester_id": "investigator_1",
        "justification": "Fraud ring investigation for case 88",
        "requested_action": {
            "action": "unmask_pii_with_mfa",
            "user_ids": ["driver-17", "driver-22"],
            "investigation_case": "CASE-88",
        },
    }
    values.update(overrides)
    return ApprovalRequest(**values)


class TestWorkflowTable:
    def test_lookup_by_enum_or_string(self, manager):
        assert manager.get_workflow_definition("unmask_pii_with_mfa").dual_approval_required
        assert manager.get_workflow_definition(Permission.CONFIGURE_ALERTS) is not None

    def test_unknown_action_has_no_workflow(self, manager):
        assert manager.get_workflow_definition("launch_rockets") is None
        assert manager.get_workflow_definition(Permission.VIEW_LIVE_MAP) is None

    def test_duplicate_definitions_are_rejected(self):
        with pytest.raises(WorkflowConfigurationError, match="more than once"):
            build_workflow_table(BUILTIN_WORKFLOWS + BUILTIN_WORKFLOWS[:1])

    def test_critical_workflows_require_dual_approval_and_mfa(self):
        for workflow in BUILTIN_WORKFLOWS:
            if workflow.sensitivity_level is SensitivityLevel.CRITICAL:
                assert workflow.dual_approval_required
                assert workflow.mfa_required_for_approval


class TestValidation:
    """Errors are collected in a stable order."""

    def test_complete_request_is_valid(self, manager):
        request = unmask_request()

        result = manager.validate_approval_request(
            request, manager.get_workflow_definition(request.action)
        )

        assert result.valid
        assert result.errors == ()

    def test_missing_fields_use_workflow_messages(self, manager):
        request = unmask_request(requested_action={"action": "unmask_pii_with_mfa"})

        result = manager.validate_approval_request(
            request, manager.get_workflow_definition(request.action)
        )

        assert not result.valid
        assert result.errors == (
            "user_ids array is required for PII unmasking requests",
            "investigation_case is required for PII unmasking requests",
        )

    @pytest.mark.parametrize(
        ("justification", "expected"),
        [
            ("", "Justification is required"),
            ("too short", "Justification must be at least 10 characters"),
            ("x" * 1001, "Justification must not exceed 1000 characters"),
        ],
    )
    def test_justification_rules(self, manager, justification, expected):
        request = unmask_request(justification=justification)

        result = manager.validate_approval_request(
            request, manager.get_workflow_definition(request.action)
        )

        assert result.errors[0] == expected

    def test_unknown_workflow_stops_validation(self, manager):
        request = unmask_request(action=Permission.VIEW_LIVE_MAP, requested_action={})

        result = manager.validate_approval_request(request, None)

        assert result.errors == ("Unknown workflow action: view_live_map",)

    def test_payload_action_must_match(self, manager):
        request = unmask_request(
            requested_action={
                "action": "approve_payout_batch",
                "user_ids": ["driver-1"],
                "investigation_case": "CASE-1",
            }
        )

        result = manager.validate_approval_request(
            request, manager.get_workflow_definition(request.action)
        )

        assert "must match workflow action unmask_pii_with_mfa" in result.errors[0]

    def test_ttl_above_ceiling_is_rejected(self, manager):
        request = unmask_request(ttl_seconds=7200)

        result = manager.validate_approval_request(
            request, manager.get_workflow_definition(request.action)
        )

        assert result.errors == (
            "Requested TTL 7200s exceeds the maximum of 3600s for unmask_pii_with_mfa",
        )


class TestEligibility:
    @pytest.mark.parametrize(
        ("level", "action", "expected"),
        [
            (60, Permission.UNMASK_PII_WITH_MFA, True),
            (59, Permission.UNMASK_PII_WITH_MFA, False),
            (40, Permission.ASSIGN_ROLES, True),
            (30, Permission.MANAGE_USERS, True),
            (20, Permission.CONFIGURE_ALERTS, True),
            (10, Permission.CONFIGURE_ALERTS, False),
        ],
    )
    def test_level_threshold(self, manager, level, action, expected):
        assert manager.can_user_approve_workflow(level, "role", frozenset(), action) is expected

    def test_approve_requests_permission_overrides_level(self, manager):
        assert manager.can_user_approve_workflow(
            5, "iam", frozenset({Permission.APPROVE_REQUESTS}), Permission.UNMASK_PII_WITH_MFA
        )

    def test_wildcard_overrides_level(self, manager):
        assert manager.can_user_approve_workflow(
            0, None, frozenset({Permission.ALL}), Permission.APPROVE_PAYOUT_BATCH
        )

    def test_unknown_workflow_is_never_approvable(self, manager):
        assert not manager.can_user_approve_workflow(
            100, "root", frozenset({Permission.ALL}), "launch_rockets"
        )

    def test_approvable_workflows_for_mid_level(self, manager):
        actions = {
            w.action for w in manager.approvable_workflows(30, "ops_manager", frozenset())
        }

        assert Permission.MANAGE_USERS in actions
        assert Permission.CONFIGURE_ALERTS in actions
        assert Permission.ASSIGN_ROLES not in actions


class TestLifecycle:
    """pending -> approved | denied."""

    async def test_submit_stores_pending_request(self, manager, audit_sink):
        result = await manager.submit(unmask_request())

        assert result.is_ok()
        stored = result.unwrap()
        assert stored.status is ApprovalStatus.PENDING
        assert stored.created_at == NOW
        assert manager.get_request(stored.id) == stored
        assert audit_sink.security_events[-1].event_type is AuditEventType.APPROVAL_REQUESTED

    async def test_submit_rejects_invalid_request(self, manager):
        result = await manager.submit(unmask_request(justification=""))

        assert result.is_err()
        assert "Justification is required" in result.unwrap_err()

    async def test_dual_approval_needs_two_distinct_approvers(self, manager):
        request = (await manager.submit(unmask_request())).unwrap()

        first = await manager.approve(request.id, approver("exec_1"), mfa_verified=True)
        assert first.unwrap().status is ApprovalStatus.PENDING

        duplicate = await manager.approve(request.id, approver("exec_1"), mfa_verified=True)
        assert duplicate.is_err()
        assert "distinct second approver" in duplicate.unwrap_err()

        second = await manager.approve(request.id, approver("exec_2"), mfa_verified=True)
        approved = second.unwrap()
        assert approved.status is ApprovalStatus.APPROVED
        assert approved.approver_ids == ("exec_1", "exec_2")
        assert approved.decided_at == NOW

    async def test_single_approval_workflow_completes_immediately(self, manager):
        request = (
            await manager.submit(
                ApprovalRequest(
                    action=Permission.CONFIGURE_ALERTS,
                    requester_id="ground_1",
                    justification="Surge alert thresholds for the weekend",
                    requested_action={"action": "configure_alerts", "region": "sao_paulo"},
                )
            )
        ).unwrap()

        result = await manager.approve(request.id, approver("manager_1", 30, role="ops_manager"))

        assert result.unwrap().status is ApprovalStatus.APPROVED

    async def test_requester_cannot_self_approve(self, manager):
        request = (await manager.submit(unmask_request())).unwrap()

        result = await manager.approve(request.id, approver("investigator_1"), mfa_verified=True)

        assert result.unwrap_err() == "Requesters cannot approve their own request"

    async def test_ineligible_approver_is_rejected(self, manager):
        request = (await manager.submit(unmask_request())).unwrap()

        result = await manager.approve(
            request.id, approver("manager_1", 30, role="ops_manager"), mfa_verified=True
        )

        assert "not eligible" in result.unwrap_err()

    async def test_mfa_required_for_approval(self, manager):
        request = (await manager.submit(unmask_request())).unwrap()

        result = await manager.approve(request.id, approver("exec_1"))

        assert "MFA verification is required" in result.unwrap_err()
        assert manager.get_request(request.id).approvals == ()

    async def test_deny_closes_request(self, manager, audit_sink):
        request = (await manager.submit(unmask_request())).unwrap()

        denied = (await manager.deny(request.id, "exec_1", "Case already closed")).unwrap()

        assert denied.status is ApprovalStatus.DENIED
        assert denied.denial_reason == "Case already closed"
        assert audit_sink.security_events[-1].event_type is AuditEventType.APPROVAL_DENIED

        late = await manager.approve(request.id, approver("exec_2"), mfa_verified=True)
        assert "already denied" in late.unwrap_err()

    async def test_deny_requires_reason(self, manager):
        request = (await manager.submit(unmask_request())).unwrap()

        assert (await manager.deny(request.id, "exec_1", "  ")).is_err()

    async def test_unknown_request(self, manager):
        result = await manager.approve("missing", approver("exec_1"), mfa_verified=True)

        assert result.unwrap_err() == "Approval request missing not found"

    async def test_record_grant_links_request(self, manager):
        request = (await manager.submit(unmask_request())).unwrap()

        linked = manager.record_grant(request.id, "grant-1")

        assert linked.grant_id == "grant-1"
        assert manager.record_grant("missing", "grant-1") is None


class TestAdvisory:
    def test_estimated_approval_time(self, manager):
        unmask = manager.get_workflow_definition(Permission.UNMASK_PII_WITH_MFA)
        alerts = manager.get_workflow_definition(Permission.CONFIGURE_ALERTS)

        assert ApprovalWorkflowManager.estimated_approval_time(unmask) == "8-12 hours"
        assert ApprovalWorkflowManager.estimated_approval_time(alerts) == "1-2 hours"

    def test_risk_assessment(self, manager):
        assessment = manager.workflow_risk_assessment(Permission.UNMASK_PII_WITH_MFA)

        assert assessment.risk_level is SensitivityLevel.CRITICAL
        assert "Elevates PII visibility" in assessment.risk_factors
        assert "Dual approval required" in assessment.mitigation_measures
        assert "MFA verification mandatory" in assessment.mitigation_measures

    def test_risk_assessment_for_unknown_workflow(self, manager):
        assessment = manager.workflow_risk_assessment("launch_rockets")

        assert assessment.risk_factors == ("Unknown workflow",)

    def test_request_template_has_placeholders(self, manager):
        template = manager.approval_request_template(Permission.APPROVE_PAYOUT_BATCH)

        assert template.requested_action == {
            "action": "approve_payout_batch",
            "batch_id": "",
            "amount": 0,
            "region": "",
        }
        assert template.ttl_seconds == 1800
