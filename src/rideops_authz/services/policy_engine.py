# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Policy evaluation engine.

Checks run in strict precedence order and the first failing check decides
the denial reason:

1. structural validity (``invalid context``)
2. user status (``inactive``)
3. role presence (``no roles``)
4. assignment freshness (``expired``)
5. permission membership (``not permitted``)
6. regional containment, with the emergency-override bypass (``region <id>``)
7. vehicle ownership tier and role eligibility (``Insufficient ownership``)
8. data classification / PII gate (``PII``)

Obligations (step-up MFA and audit intensity) are computed for every
outcome, allow or deny. Evaluation never raises: malformed input is a
structural denial and any unexpected failure is a fail-closed denial with
``metadata.errored`` set and an elevated audit event.
"""

import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any, Final

from attrs import field, frozen
from beartype import beartype
from pydantic import ValidationError

from ..catalog.ownership import ownership_access_level
from ..catalog.permissions import REGION_AGNOSTIC_PERMISSIONS, Permission, is_sensitive_action
from ..core.cache import DecisionCache
from ..core.config import Settings
from ..core.types import DirectoryStore
from ..models.access import PIITier, RoleAssignment, User
from ..models.audit import (
    AuditEventType,
    DataMaskingEvent,
    DecisionRecord,
    RiskLevel,
    SecurityEvent,
)
from ..models.base import utc_now
from ..models.policy import (
    AccessCondition,
    AuditLevel,
    ConditionType,
    DataClass,
    Decision,
    DecisionMetadata,
    Obligations,
    OwnershipAccessLevel,
    PolicyDecision,
    PolicyEvaluationRequest,
    ResourceContext,
    ResourceType,
    VehicleAccessContext,
    VehicleAccessDecision,
)
from ..models.workflow import WorkflowDefinition
from .audit import AuditEmitter
from .masking import holds_financial_access, mask_fields_for, requires_masking
from .mfa import DEFAULT_SENSITIVITY, SENSITIVITY_LEVELS
from .role_resolver import (
    RoleGraph,
    effective_assignments,
    expired_sources,
    has_permission,
    resolve_permissions,
)
from .scope_resolver import (
    effective_pii_scope,
    find_emergency_override,
    grant_permissions,
    honored_pii_scope,
    standard_regions,
)

logger = logging.getLogger(__name__)

INVALID_CONTEXT = "invalid context"
SYSTEM_ERROR = "system error"
INVESTIGATION_ACCESS_WINDOW: Final = timedelta(days=7)


@frozen
class _Outcome:
    """Result of the pure decision core."""

    allowed: bool
    reasons: tuple[str, ...]
    mask_fields: frozenset[str] = field(factory=frozenset)
    emergency_override: bool = False
    honored_scope: PIITier = PIITier.NONE
    ownership_level: OwnershipAccessLevel = OwnershipAccessLevel.NONE
    conditions: tuple[AccessCondition, ...] = ()
    cacheable: bool = True


def _deny(reason: str, *, override: bool = False, cacheable: bool = True) -> _Outcome:
    return _Outcome(
        allowed=False, reasons=(reason,), emergency_override=override, cacheable=cacheable
    )


def _invalid(detail: str) -> _Outcome:
    return _deny(f"{INVALID_CONTEXT}: {detail}", cacheable=False)


@beartype
def next_validity_boundary(user: User, now: datetime) -> datetime | None:
    """Earliest future instant at which an assignment or grant changes state."""
    candidates: list[datetime] = []
    for assignment in user.role_assignments:
        if not assignment.is_active:
            continue
        if assignment.valid_from > now:
            candidates.append(assignment.valid_from)
        if assignment.valid_until is not None and assignment.valid_until > now:
            candidates.append(assignment.valid_until)
    for grant in user.temporary_grants:
        if grant.is_active and grant.expires_at > now:
            candidates.append(grant.expires_at)
    return min(candidates, default=None)


class PolicyEngine:
    """Evaluates authorization requests against roles, scopes and grants."""

    def __init__(
        self,
        directory: DirectoryStore,
        role_graph: RoleGraph,
        workflows: Mapping[Permission, WorkflowDefinition],
        settings: Settings,
        audit: AuditEmitter,
        *,
        cache: DecisionCache | None = None,
        clock: Callable[[], datetime] = utc_now,
        sensitivity_of: Callable[[Permission], float] | None = None,
    ) -> None:
        """Initialize engine with dependency validation."""
        if not isinstance(directory, DirectoryStore):
            raise ValueError("Directory store must implement get_user, get_role and list_roles")
        self._directory = directory
        self._role_graph = role_graph
        self._workflows = workflows
        self._settings = settings
        self._audit = audit
        self._cache = cache
        self._clock = clock
        self._sensitivity_of = sensitivity_of or (
            lambda permission: SENSITIVITY_LEVELS.get(permission, DEFAULT_SENSITIVITY)
        )

    @property
    def role_graph(self) -> RoleGraph:
        return self._role_graph

    @beartype
    def replace_role_graph(self, role_graph: RoleGraph) -> None:
        """Swap in a rebuilt role graph. Callers must clear the decision cache."""
        self._role_graph = role_graph

    async def evaluate_policy(self, request: object) -> PolicyDecision:
        """Decide a request. Never raises.

        Accepts a ``PolicyEvaluationRequest`` or a mapping in its shape;
        anything else is denied as ``invalid context``.
        """
        started = time.perf_counter()
        now = self._clock()

        if not isinstance(request, PolicyEvaluationRequest):
            if not isinstance(request, Mapping):
                return await self._reject_malformed(
                    None,
                    f"request: expected a mapping, got {type(request).__name__}",
                    started,
                    now,
                )
            try:
                request = PolicyEvaluationRequest.model_validate(dict(request))
            except ValidationError as e:
                return await self._reject_malformed(request, self._describe(e), started, now)

        return await self._evaluate(request, started, now)

    async def evaluate_vehicle_access(
        self, user_id: object, context: object, permission: object
    ) -> VehicleAccessDecision:
        """Vehicle-scoped evaluation plus the ownership access tier. Never raises."""
        started = time.perf_counter()
        now = self._clock()

        if not isinstance(user_id, str) or not isinstance(permission, str):
            raw = {
                "user_id": user_id if isinstance(user_id, str) else None,
                "action": permission if isinstance(permission, str) else None,
            }
            decision = await self._reject_malformed(
                raw, "user_id and permission must be strings", started, now
            )
            return self._as_vehicle_decision(decision)

        action = Permission(permission)
        raw = {"user_id": user_id, "action": action.value}
        if not isinstance(context, VehicleAccessContext):
            if not isinstance(context, Mapping):
                decision = await self._reject_malformed(
                    raw,
                    f"context: expected a mapping, got {type(context).__name__}",
                    started,
                    now,
                )
                return self._as_vehicle_decision(decision)
            try:
                context = VehicleAccessContext.model_validate(dict(context))
            except ValidationError as e:
                decision = await self._reject_malformed(raw, self._describe(e), started, now)
                return self._as_vehicle_decision(decision)

        try:
            request = PolicyEvaluationRequest(
                user_id=user_id,
                action=action,
                resource=ResourceContext(
                    type=ResourceType.VEHICLE,
                    resource_id=context.vehicle_id,
                    region_id=context.region_id,
                    data_class=context.data_class,
                    contains_pii=context.contains_pii,
                    ownership_type=context.ownership_type,
                    operation_type=context.operation_type,
                ),
                context=context.invocation,
            )
        except ValidationError as e:
            decision = await self._reject_malformed(raw, self._describe(e), started, now)
            return self._as_vehicle_decision(decision)

        return self._as_vehicle_decision(await self._evaluate(request, started, now))

    async def _evaluate(
        self, request: PolicyEvaluationRequest, started: float, now: datetime
    ) -> PolicyDecision:
        cache_key = None
        if self._cache is not None and self._settings.decision_cache_enabled:
            cache_key = DecisionCache.make_key(
                request.user_id,
                request.resource.fingerprint(),
                request.action.value,
                mfa_present=request.context.mfa_present,
                case_id=request.context.case_id,
                channel=request.context.channel.value,
            )
            cached = await self._cache.get(cache_key, now)
            if cached is not None:
                decision = cached.model_copy(
                    update={
                        "metadata": cached.metadata.model_copy(
                            update={
                                "cache_hit": True,
                                "evaluated_at": now,
                                "evaluation_time_ms": self._elapsed_ms(started),
                            }
                        )
                    }
                )
                await self._emit(request, decision)
                return decision

        try:
            outcome, user = await self._run_checks(request, now)
        except Exception as e:
            logger.error(
                "Policy evaluation failed closed for user %s action %s: %s",
                request.user_id,
                request.action.value,
                e,
            )
            decision = self._build(
                request,
                _deny(f"{SYSTEM_ERROR}: {type(e).__name__}: {e}", cacheable=False),
                started,
                now,
                errored=True,
            )
            await self._emit(request, decision)
            await self._audit.security_event(
                SecurityEvent(
                    event_type=AuditEventType.EVALUATION_ERROR,
                    risk_level=RiskLevel.HIGH,
                    subject_id=request.user_id or None,
                    action=request.action.value,
                    description="Policy evaluation failed closed",
                    error_details=f"{type(e).__name__}: {e}",
                )
            )
            return decision

        decision = self._build(request, outcome, started, now)

        if cache_key is not None and outcome.cacheable and user is not None:
            await self._cache.set(
                cache_key,
                request.user_id,
                decision,
                now,
                not_after=next_validity_boundary(user, now),
            )

        await self._emit(request, decision, honored_scope=outcome.honored_scope)
        return decision

    async def _run_checks(
        self, request: PolicyEvaluationRequest, now: datetime
    ) -> tuple[_Outcome, User | None]:
        structural = self._check_structure(request)
        if structural is not None:
            return structural, None

        user = await self._directory.get_user(request.user_id)
        if user is None:
            return _invalid(f"user {request.user_id} not found"), None

        return self._decide(request, user, now), user

    @staticmethod
    def _check_structure(request: PolicyEvaluationRequest) -> _Outcome | None:
        resource = request.resource
        if not request.user_id.strip():
            return _invalid("user id is required")
        if not request.action.is_concrete:
            return _invalid("unknown action")
        if resource.type is ResourceType.VEHICLE and resource.ownership_type is None:
            return _invalid("vehicle resources require a recognized ownership type")
        if resource.region_id is None and request.action not in REGION_AGNOSTIC_PERMISSIONS:
            return _invalid(f"region is required for action {request.action.value}")
        return None

    def _decide(self, request: PolicyEvaluationRequest, user: User, now: datetime) -> _Outcome:
        """Checks 2-7 against a loaded user. Pure."""
        action = request.action
        resource = request.resource
        context = request.context
        graph = self._role_graph

        if not user.is_active:
            return _deny(f"User {user.id} is inactive")

        role_permissions = resolve_permissions(user, graph, now)
        effective = role_permissions | grant_permissions(user, now)
        expired = expired_sources(user, graph, action, now)

        if not effective:
            reason = f"User {user.id} has no roles in effect"
            if expired:
                reason += "; " + self._expired_reason(expired[0], action)
            return _deny(reason)

        if not has_permission(effective, action) and expired:
            return _deny(self._expired_reason(expired[0], action))

        if not has_permission(effective, action):
            return _deny(f"Action {action.value} not permitted for user {user.id}")

        reasons: list[str] = []
        override_used = False
        region_id = resource.region_id
        if region_id is not None:
            regions = standard_regions(user, now)
            if not regions.contains(region_id):
                override = find_emergency_override(
                    user, action, region_id, now, case_id=context.case_id
                )
                if override is None:
                    return _deny(
                        f"Access denied to region {region_id}: user {user.id} is scoped to "
                        f"{regions.describe()}"
                    )
                override_used = True
                reasons.append(
                    f"Cross-region override granted for case {override.case_id} "
                    f"(emergency override) in region {region_id}"
                )

        ownership_level = OwnershipAccessLevel.NONE
        if resource.type is ResourceType.VEHICLE and resource.ownership_type is not None:
            role_ids = {a.role_id for a in effective_assignments(user, graph, now)}
            ownership_level = ownership_access_level(resource.ownership_type, action, role_ids)
            if ownership_level is OwnershipAccessLevel.NONE:
                return _deny(
                    f"Insufficient ownership privileges for {action.value} on "
                    f"{resource.ownership_type.value} vehicles",
                    override=override_used,
                )

        scope = effective_pii_scope(user, now)
        honored = honored_pii_scope(
            scope, contains_pii=resource.contains_pii, mfa_present=context.mfa_present
        )
        if resource.contains_pii:
            if resource.data_class is DataClass.RESTRICTED:
                if scope is not PIITier.FULL:
                    return _deny(
                        f"PII access to restricted data requires full PII scope; "
                        f"user {user.id} has {scope.value}",
                        override=override_used,
                    )
                if not context.mfa_present:
                    return _deny(
                        "PII access to restricted data requires MFA verification",
                        override=override_used,
                    )
            elif scope is PIITier.NONE:
                return _deny(
                    f"PII access denied: user {user.id} has no PII scope",
                    override=override_used,
                )

        mask: frozenset[str] = frozenset()
        if requires_masking(resource.data_class, resource.contains_pii, honored):
            mask = mask_fields_for(
                resource.type,
                honored,
                contains_pii=resource.contains_pii,
                financial_access=holds_financial_access(effective),
            )

        if has_permission(role_permissions, action):
            roles = sorted(
                a.role_id
                for a in effective_assignments(user, graph, now)
                if graph.grants(a.role_id, action)
            )
            reasons.append(f"Action {action.value} permitted by role {', '.join(roles)}")
        else:
            reasons.append(f"Action {action.value} permitted by temporary grant")
        if mask:
            reasons.append(f"PII scope {honored.value}: {len(mask)} fields masked")

        return _Outcome(
            allowed=True,
            reasons=tuple(reasons),
            mask_fields=mask,
            emergency_override=override_used,
            honored_scope=honored,
            ownership_level=ownership_level,
            conditions=self._operation_conditions(request, now),
        )

    @staticmethod
    def _operation_conditions(
        request: PolicyEvaluationRequest, now: datetime
    ) -> tuple[AccessCondition, ...]:
        case_id = request.context.case_id
        if request.action is Permission.INVESTIGATE_VEHICLE_INCIDENTS and case_id:
            return (
                AccessCondition(
                    type=ConditionType.TIME_LIMITED,
                    description="Investigation access valid for 7 days",
                    expires_at=now + INVESTIGATION_ACCESS_WINDOW,
                    case_id=case_id,
                ),
            )
        return ()

    @staticmethod
    def _expired_reason(assignment: RoleAssignment, action: Permission) -> str:
        return (
            f"Role assignment '{assignment.role_id}' granting {action.value} expired at "
            f"{assignment.valid_until.isoformat()}"
        )

    def _requires_mfa(self, request: PolicyEvaluationRequest, override_used: bool) -> bool:
        action = request.action
        workflow = self._workflows.get(action)
        return (
            is_sensitive_action(action)
            or (workflow is not None and workflow.mfa_required_for_approval)
            or request.resource.data_class is DataClass.RESTRICTED
            or override_used
            or self._sensitivity_of(action) >= self._settings.mfa_sensitivity_threshold
        )

    @staticmethod
    def _audit_level(
        request: PolicyEvaluationRequest, override_used: bool, errored: bool
    ) -> AuditLevel:
        resource = request.resource
        enhanced = (
            resource.data_class is DataClass.RESTRICTED
            or resource.contains_pii
            or (
                resource.operation_type.is_mutating
                and resource.data_class.at_least(DataClass.CONFIDENTIAL)
            )
            or override_used
            or errored
        )
        return AuditLevel.ENHANCED if enhanced else AuditLevel.STANDARD

    def _build(
        self,
        request: PolicyEvaluationRequest,
        outcome: _Outcome,
        started: float,
        now: datetime,
        *,
        errored: bool = False,
    ) -> PolicyDecision:
        fields: dict[str, Any] = {
            "decision": Decision.ALLOW if outcome.allowed else Decision.DENY,
            "reasons": outcome.reasons,
            "obligations": Obligations(
                require_mfa=self._requires_mfa(request, outcome.emergency_override),
                audit_level=self._audit_level(request, outcome.emergency_override, errored),
                mask_fields=outcome.mask_fields if outcome.allowed else frozenset(),
            ),
            "metadata": DecisionMetadata(
                evaluation_time_ms=self._elapsed_ms(started),
                policy_version=self._settings.policy_version,
                evaluated_at=now,
                errored=errored,
                emergency_override=outcome.emergency_override,
            ),
        }
        decision: PolicyDecision
        if request.resource.type is ResourceType.VEHICLE:
            decision = VehicleAccessDecision(
                **fields,
                ownership_access_level=outcome.ownership_level,
                conditions=outcome.conditions,
            )
        else:
            decision = PolicyDecision(**fields)
        if decision.allowed:
            logger.debug(
                "Allowed %s for user %s: %s",
                request.action.value,
                request.user_id,
                "; ".join(decision.reasons),
            )
        else:
            logger.info(
                "Denied %s for user %s: %s",
                request.action.value,
                request.user_id,
                decision.reasons[0],
            )
        return decision

    @staticmethod
    def _describe(error: ValidationError) -> str:
        return "; ".join(
            f"{'.'.join(str(loc) for loc in item['loc']) or 'request'}: {item['msg']}"
            for item in error.errors()
        )

    async def _reject_malformed(
        self, raw: Any, problems: str, started: float, now: datetime
    ) -> PolicyDecision:
        decision = PolicyDecision(
            decision=Decision.DENY,
            reasons=(f"{INVALID_CONTEXT}: {problems}",),
            obligations=Obligations(),
            metadata=DecisionMetadata(
                evaluation_time_ms=self._elapsed_ms(started),
                policy_version=self._settings.policy_version,
                evaluated_at=now,
            ),
        )
        logger.info("Rejected malformed evaluation request: %s", problems)
        user_id = raw.get("user_id") if isinstance(raw, Mapping) else None
        action = raw.get("action") if isinstance(raw, Mapping) else None
        await self._audit.access(
            DecisionRecord(
                event_type=AuditEventType.ACCESS_DENIED,
                user_id=str(user_id or ""),
                action=str(action or Permission.UNKNOWN.value),
                decision=decision.decision.value,
                reasons=decision.reasons,
                audit_level=decision.obligations.audit_level.value,
                require_mfa=False,
                policy_version=decision.metadata.policy_version,
                evaluation_time_ms=decision.metadata.evaluation_time_ms,
            )
        )
        return decision

    async def _emit(
        self,
        request: PolicyEvaluationRequest,
        decision: PolicyDecision,
        *,
        honored_scope: PIITier | None = None,
    ) -> None:
        resource = request.resource
        metadata = decision.metadata
        if metadata.errored:
            event_type = AuditEventType.EVALUATION_ERROR
        elif decision.allowed:
            event_type = AuditEventType.ACCESS_GRANTED
        else:
            event_type = AuditEventType.ACCESS_DENIED

        await self._audit.access(
            DecisionRecord(
                event_type=event_type,
                user_id=request.user_id,
                action=request.action.value,
                resource_type=resource.type.value,
                resource_id=resource.resource_id,
                region_id=resource.region_id,
                decision=decision.decision.value,
                reasons=decision.reasons,
                audit_level=decision.obligations.audit_level.value,
                require_mfa=decision.obligations.require_mfa,
                mask_fields=tuple(sorted(decision.obligations.mask_fields)),
                policy_version=metadata.policy_version,
                evaluation_time_ms=metadata.evaluation_time_ms,
                cache_hit=metadata.cache_hit,
                errored=metadata.errored,
                emergency_override=metadata.emergency_override,
                case_id=request.context.case_id,
                session_id=request.context.session_id,
                ip_address=request.context.ip_address,
            )
        )

        if decision.obligations.mask_fields:
            await self._audit.data_masking(
                DataMaskingEvent(
                    user_id=request.user_id,
                    resource_type=resource.type.value,
                    resource_id=resource.resource_id,
                    masked_fields=tuple(sorted(decision.obligations.mask_fields)),
                    pii_scope=(honored_scope or PIITier.MASKED).value,
                    policy_version=metadata.policy_version,
                )
            )

    @staticmethod
    def _as_vehicle_decision(decision: PolicyDecision) -> VehicleAccessDecision:
        if isinstance(decision, VehicleAccessDecision):
            return decision
        return VehicleAccessDecision(
            decision=decision.decision,
            reasons=decision.reasons,
            obligations=decision.obligations,
            metadata=decision.metadata,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.perf_counter() - started) * 1000, 3)
