"""Test data factories for users, assignments, grants and requests.

Everything is pinned to a fixed instant so validity windows and expiries
are deterministic. Factories return frozen pydantic models; tests derive
variants with ``model_copy``.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from beartype import beartype

from rideops_authz.catalog.permissions import Permission
from rideops_authz.models.access import (
    EscalationType,
    PIITier,
    RoleAssignment,
    TemporaryAccessGrant,
    User,
    UserStatus,
)
from rideops_authz.models.policy import (
    DataClass,
    InvocationContext,
    OperationType,
    OwnershipType,
    PolicyEvaluationRequest,
    ResourceContext,
    ResourceType,
)

NOW = datetime(2025, 9, 15, 12, 0, tzinfo=timezone.utc)
HOME_REGION = "sao_paulo"
OTHER_REGION = "rio_de_janeiro"


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


@beartype
def make_assignment(
    role_id: str,
    *,
    valid_from: datetime | None = None,
    valid_until: datetime | None = None,
    is_active: bool = True,
) -> RoleAssignment:
    return RoleAssignment(
        role_id=role_id,
        valid_from=valid_from or NOW - timedelta(days=30),
        valid_until=valid_until,
        is_active=is_active,
    )


@beartype
def make_user(
    user_id: str,
    *role_ids: str,
    regions: frozenset[str] = frozenset({HOME_REGION}),
    pii_scope: PIITier = PIITier.NONE,
    status: UserStatus = UserStatus.ACTIVE,
    assignments: tuple[RoleAssignment, ...] | None = None,
    grants: tuple[TemporaryAccessGrant, ...] = (),
    mfa_enabled: bool = True,
) -> User:
    """User holding one open-ended assignment per role id unless given explicit ones."""
    if assignments is None:
        assignments = tuple(make_assignment(role_id) for role_id in role_ids)
    return User(
        id=user_id,
        display_name=user_id.replace("_", " ").title(),
        status=status,
        role_assignments=assignments,
        allowed_regions=regions,
        pii_scope=pii_scope,
        mfa_enabled=mfa_enabled,
        temporary_grants=grants,
    )


@beartype
def make_grant(
    user_id: str,
    *,
    permissions: frozenset[Permission] = frozenset(),
    regions: frozenset[str] = frozenset(),
    pii_scope_override: PIITier | None = None,
    expires_at: datetime | None = None,
    escalation_type: EscalationType = EscalationType.APPROVAL,
    case_id: str | None = None,
    is_active: bool = True,
) -> TemporaryAccessGrant:
    return TemporaryAccessGrant(
        user_id=user_id,
        granted_permissions=permissions,
        granted_regions=regions,
        pii_scope_override=pii_scope_override,
        expires_at=expires_at or NOW + timedelta(hours=1),
        is_active=is_active,
        escalation_type=escalation_type,
        case_id=case_id,
        requested_by=user_id,
        approved_by=("iam_admin_1",),
        justification="Investigation of reported incident",
        created_at=NOW - timedelta(minutes=5),
    )


@beartype
def make_request(
    user_id: str,
    action: Permission | str,
    *,
    resource_type: ResourceType = ResourceType.TRIP,
    region_id: str | None = HOME_REGION,
    data_class: DataClass = DataClass.INTERNAL,
    contains_pii: bool = False,
    ownership_type: OwnershipType | None = None,
    operation_type: OperationType = OperationType.READ,
    mfa_present: bool = False,
    case_id: str | None = None,
    resource_id: str | None = "res-001",
) -> PolicyEvaluationRequest:
    return PolicyEvaluationRequest(
        user_id=user_id,
        action=action,
        resource=ResourceContext(
            type=resource_type,
            resource_id=resource_id,
            region_id=region_id,
            data_class=data_class,
            contains_pii=contains_pii,
            ownership_type=ownership_type,
            operation_type=operation_type,
        ),
        context=InvocationContext(mfa_present=mfa_present, case_id=case_id, timestamp=NOW),
    )


@beartype
def vehicle_request(user_id: str, action: Permission | str, **kwargs: Any) -> PolicyEvaluationRequest:
    """Vehicle request with a default ownership type."""
    kwargs.setdefault("ownership_type", OwnershipType.XPRESS_OWNED)
    return make_request(user_id, action, resource_type=ResourceType.VEHICLE, **kwargs)
