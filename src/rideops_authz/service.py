# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Access-control service facade.

One :class:`AccessControlService` value is built at process start with its
collaborators injected and then passed explicitly to whoever needs it.
Every role, grant or workflow change that goes through the facade clears
the affected decision-cache entries.
"""

import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from beartype import beartype

from .catalog.permissions import Permission
from .catalog.roles import BUILTIN_ROLES
from .catalog.workflows import BUILTIN_WORKFLOWS, build_workflow_table
from .core.cache import DecisionCache
from .core.config import Settings, get_settings
from .core.errors import RoleGraphError
from .core.logging_utils import configure_logging
from .core.result_types import Err, Ok, Result
from .core.types import AuditSink, ChallengeDelivery, DirectoryStore, GrantRepository, TOTPSecretStore
from .models.access import PIITier, RegionScope, Role, TemporaryAccessGrant, User
from .models.audit import AuditEventType, RiskLevel, SecurityEvent
from .models.base import utc_now
from .models.mfa import ChallengeContext, ChallengeTicket, MFAMethod, VerificationOutcome
from .models.policy import PolicyDecision, VehicleAccessDecision
from .models.workflow import (
    ApprovalRequest,
    ApprovalStatus,
    ApproverProfile,
    ValidationResult,
    WorkflowDefinition,
)
from .services.approval_workflow import ApprovalWorkflowManager
from .services.audit import AuditEmitter, LoggingAuditSink
from .services.mfa import MFAChallengeService
from .services.policy_engine import PolicyEngine
from .services.role_resolver import (
    RoleGraph,
    has_permission,
    highest_role_level,
    primary_role,
    resolve_permissions,
)
from .services.scope_resolver import effective_pii_scope, effective_regions, grant_permissions
from .services.temporary_access import TemporaryAccessManager

logger = logging.getLogger(__name__)

_EMERGENCY_DECLARER_PERMISSIONS = (Permission.CROSS_REGION_OVERRIDE, Permission.APPROVE_REQUESTS)
_REVOKER_PERMISSIONS = (Permission.REVOKE_ACCESS, Permission.APPROVE_REQUESTS)


class AccessControlService:
    """Public surface of the access-control engine."""

    def __init__(
        self,
        *,
        directory: DirectoryStore,
        engine: PolicyEngine,
        approvals: ApprovalWorkflowManager,
        escalations: TemporaryAccessManager,
        mfa: MFAChallengeService,
        audit: AuditEmitter,
        cache: DecisionCache,
        clock: Callable[[], datetime],
    ) -> None:
        """Wire pre-built components. Prefer :meth:`create`."""
        self._directory = directory
        self._engine = engine
        self._approvals = approvals
        self._escalations = escalations
        self._mfa = mfa
        self._audit = audit
        self._cache = cache
        self._clock = clock

    @classmethod
    async def create(
        cls,
        directory: DirectoryStore,
        *,
        delivery: ChallengeDelivery,
        totp_secrets: TOTPSecretStore,
        grants: GrantRepository | None = None,
        audit_sink: AuditSink | None = None,
        workflows: Iterable[WorkflowDefinition] = BUILTIN_WORKFLOWS,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> "AccessControlService":
        """Load roles and workflows once and build the service.

        A directory without roles falls back to the built-in catalog.

        Raises:
            RoleGraphError: the directory's roles form a cycle or reference
                unknown parents
            WorkflowConfigurationError: the workflow table is malformed
        """
        settings = settings or get_settings()
        configure_logging(level=settings.log_level_value)

        if grants is None:
            if not isinstance(directory, GrantRepository):
                raise ValueError("A grant repository is required when the directory cannot store grants")
            grants = directory

        roles = await directory.list_roles()
        role_graph = RoleGraph.build(roles or BUILTIN_ROLES)
        workflow_table = build_workflow_table(workflows)

        audit = AuditEmitter(audit_sink or LoggingAuditSink())
        cache = DecisionCache(
            ttl_seconds=settings.decision_cache_ttl_seconds,
            max_entries=settings.decision_cache_max_entries,
        )
        mfa = MFAChallengeService(delivery, totp_secrets, settings, audit, clock=clock)
        engine = PolicyEngine(
            directory,
            role_graph,
            workflow_table,
            settings,
            audit,
            cache=cache,
            clock=clock,
            sensitivity_of=mfa.get_sensitivity_level,
        )
        logger.info(
            "Access control ready: %d roles, %d workflows, policy %s",
            len(role_graph),
            len(workflow_table),
            settings.policy_version,
        )
        return cls(
            directory=directory,
            engine=engine,
            approvals=ApprovalWorkflowManager(workflow_table, audit, clock=clock),
            escalations=TemporaryAccessManager(grants, settings, audit, clock=clock),
            mfa=mfa,
            audit=audit,
            cache=cache,
            clock=clock,
        )

    @property
    def engine(self) -> PolicyEngine:
        return self._engine

    @property
    def approvals(self) -> ApprovalWorkflowManager:
        return self._approvals

    @property
    def mfa(self) -> MFAChallengeService:
        return self._mfa

    @property
    def cache(self) -> DecisionCache:
        return self._cache

    # Evaluation

    async def evaluate_policy(self, request: object) -> PolicyDecision:
        return await self._engine.evaluate_policy(request)

    async def evaluate_vehicle_access(
        self, user_id: object, context: object, permission: object
    ) -> VehicleAccessDecision:
        return await self._engine.evaluate_vehicle_access(user_id, context, permission)

    @beartype
    def effective_regions(self, user: User) -> RegionScope:
        return effective_regions(user, self._clock())

    @beartype
    def effective_pii_scope(self, user: User) -> PIITier:
        return effective_pii_scope(user, self._clock())

    # Workflows

    @beartype
    def get_workflow_definition(self, action: Permission | str) -> WorkflowDefinition | None:
        return self._approvals.get_workflow_definition(action)

    @beartype
    def validate_approval_request(
        self, request: ApprovalRequest, workflow: WorkflowDefinition | None = None
    ) -> ValidationResult:
        """Validate against ``workflow``, or the request action's workflow."""
        return self._approvals.validate_approval_request(
            request, workflow or self._approvals.get_workflow_definition(request.action)
        )

    @beartype
    def can_user_approve_workflow(
        self,
        approver_level: int,
        approver_role: str | None,
        approver_permissions: frozenset[Permission],
        action: Permission | str,
    ) -> bool:
        return self._approvals.can_user_approve_workflow(
            approver_level, approver_role, approver_permissions, action
        )

    @beartype
    async def submit_approval_request(
        self,
        requester_id: str,
        action: Permission | str,
        justification: str,
        requested_action: dict[str, Any],
        *,
        ttl_seconds: int | None = None,
    ) -> Result[ApprovalRequest, str]:
        """File a request for time-boxed access. Does not block on approval."""
        requester = await self._load_active_user(requester_id)
        if isinstance(requester, Err):
            return requester
        try:
            request = ApprovalRequest(
                action=action,
                requester_id=requester_id,
                justification=justification,
                requested_action=requested_action,
                ttl_seconds=ttl_seconds,
            )
        except ValueError as e:
            return Err(f"Invalid approval request: {str(e)}")
        return await self._approvals.submit(request)

    @beartype
    async def approve_request(
        self,
        request_id: str,
        approver_id: str,
        *,
        mfa_verified: bool = False,
        comments: str | None = None,
    ) -> Result[ApprovalRequest, str]:
        """Record an approval and, once complete, issue the grant."""
        profile = await self._principal(approver_id)
        if isinstance(profile, Err):
            return profile

        result = await self._approvals.approve(
            request_id, profile.value, mfa_verified=mfa_verified, comments=comments
        )
        if isinstance(result, Err) or result.value.status is not ApprovalStatus.APPROVED:
            return result

        request = result.value
        workflow = self._approvals.get_workflow_definition(request.action)
        approvers: list[ApproverProfile] = []
        for step in request.approvals:
            resolved = await self._principal(step.approver_id)
            if isinstance(resolved, Err):
                await self._approvals.mark_denied(request_id, "system", resolved.error)
                return resolved
            approvers.append(resolved.value)

        granted = await self._escalations.grant(request, workflow, approvers)
        if isinstance(granted, Err):
            await self._approvals.mark_denied(request_id, "system", granted.error)
            return Err(f"Grant could not be issued: {granted.error}")

        await self._cache.invalidate_user(request.requester_id)
        linked = self._approvals.record_grant(request_id, granted.value.id)
        return Ok(linked or request)

    @beartype
    async def deny_request(
        self, request_id: str, approver_id: str, reason: str
    ) -> Result[ApprovalRequest, str]:
        profile = await self._principal(approver_id)
        if isinstance(profile, Err):
            return profile
        request = self._approvals.get_request(request_id)
        if request is not None and not self._approvals.can_user_approve_workflow(
            profile.value.level, profile.value.role, profile.value.permissions, request.action
        ):
            return Err(f"User {approver_id} is not eligible to decide {request.action.value}")
        return await self._approvals.deny(request_id, approver_id, reason)

    # Escalation

    @beartype
    async def declare_emergency(
        self,
        user_id: str,
        declared_by: str,
        case_id: str,
        *,
        regions: frozenset[str],
        justification: str,
        ttl_seconds: int,
        permissions: frozenset[Permission] = frozenset(),
        pii_scope_override: PIITier | None = None,
    ) -> Result[TemporaryAccessGrant, str]:
        """Issue an emergency cross-region grant tagged with an investigation case."""
        declarer = await self._principal(declared_by)
        if isinstance(declarer, Err):
            return declarer
        if not any(
            has_permission(declarer.value.permissions, p) for p in _EMERGENCY_DECLARER_PERMISSIONS
        ):
            return Err(
                f"User {declared_by} cannot declare emergency access: requires "
                "cross_region_override or approve_requests"
            )
        target = await self._load_active_user(user_id)
        if isinstance(target, Err):
            return target

        result = await self._escalations.declare_emergency(
            user_id,
            declared_by,
            case_id,
            regions=regions,
            permissions=permissions,
            justification=justification,
            ttl_seconds=ttl_seconds,
            pii_scope_override=pii_scope_override,
        )
        if isinstance(result, Ok):
            await self._cache.invalidate_user(user_id)
        return result

    @beartype
    async def revoke_grant(
        self, grant_id: str, revoked_by: str, reason: str
    ) -> Result[TemporaryAccessGrant, str]:
        """Deactivate a grant before it expires."""
        revoker = await self._principal(revoked_by)
        if isinstance(revoker, Err):
            return revoker
        if not any(has_permission(revoker.value.permissions, p) for p in _REVOKER_PERMISSIONS):
            return Err(
                f"User {revoked_by} cannot revoke grants: requires revoke_access or "
                "approve_requests"
            )
        result = await self._escalations.revoke(grant_id, revoked_by, reason)
        if isinstance(result, Ok):
            await self._cache.invalidate_user(result.value.user_id)
        return result

    # MFA

    @beartype
    async def create_challenge(
        self, user_id: str, method: MFAMethod, context: ChallengeContext
    ) -> Result[ChallengeTicket, str]:
        return await self._mfa.create_challenge(user_id, method, context)

    @beartype
    async def verify(self, challenge_id: str, code: str) -> VerificationOutcome:
        return await self._mfa.verify(challenge_id, code)

    # Configuration

    @beartype
    async def reload_roles(self) -> Result[int, str]:
        """Rebuild the role graph from the directory and clear the cache.

        A graph that fails validation is rejected and the current one kept.
        """
        try:
            roles = await self._directory.list_roles()
            graph = RoleGraph.build(roles or BUILTIN_ROLES)
        except RoleGraphError as e:
            logger.error("Rejected role reload: %s", e)
            return Err(f"Role graph rejected: {str(e)}")
        except Exception as e:
            return Err(f"Failed to load roles: {str(e)}")
        return Ok(await self._install_graph(graph))

    @beartype
    async def refresh_role(self, role_id: str) -> Result[Role, str]:
        """Re-read a single role and rebuild the graph around it."""
        try:
            role = await self._directory.get_role(role_id)
        except Exception as e:
            return Err(f"Failed to load role: {str(e)}")
        if role is None:
            return Err(f"Role {role_id} not found")

        current = self._engine.role_graph
        roles = [current.get(rid) for rid in sorted(current.role_ids) if rid != role_id]
        try:
            graph = RoleGraph.build([r for r in roles if r is not None] + [role])
        except RoleGraphError as e:
            logger.error("Rejected refresh of role %s: %s", role_id, e)
            return Err(f"Role graph rejected: {str(e)}")
        await self._install_graph(graph)
        return Ok(role)

    @beartype
    async def invalidate_cache(self, user_id: str | None = None) -> None:
        """Drop cached decisions for one user, or for everyone."""
        if user_id is None:
            await self._cache.clear()
        else:
            await self._cache.invalidate_user(user_id)

    async def _install_graph(self, graph: RoleGraph) -> int:
        self._engine.replace_role_graph(graph)
        await self._cache.clear()
        await self._audit.security_event(
            SecurityEvent(
                event_type=AuditEventType.ROLES_RELOADED,
                risk_level=RiskLevel.MEDIUM,
                description=f"Role graph reloaded with {len(graph)} roles",
            )
        )
        return len(graph)

    async def _load_active_user(self, user_id: str) -> Result[User, str]:
        try:
            user = await self._directory.get_user(user_id)
        except Exception as e:
            return Err(f"Failed to load user: {str(e)}")
        if user is None:
            return Err(f"User {user_id} not found")
        if not user.is_active:
            return Err(f"User {user_id} is inactive")
        return Ok(user)

    async def _principal(self, user_id: str) -> Result[ApproverProfile, str]:
        """Resolve a user's current level, permissions and regions."""
        loaded = await self._load_active_user(user_id)
        if isinstance(loaded, Err):
            return loaded
        user = loaded.value
        now = self._clock()
        graph = self._engine.role_graph
        return Ok(
            ApproverProfile(
                user_id=user.id,
                level=highest_role_level(user, graph, now),
                role=primary_role(user, graph, now),
                permissions=resolve_permissions(user, graph, now) | grant_permissions(user, now),
                regions=effective_regions(user, now),
            )
        )
