"""Regional and PII scope resolution.

Both scopes are folded from the user's base values plus every temporary
grant in effect at ``now``. Grant effectiveness is recomputed on every
call; nothing here caches or mutates.
"""

from datetime import datetime

from beartype import beartype

from ..catalog.permissions import Permission
from ..models.access import PIITier, RegionScope, TemporaryAccessGrant, User


@beartype
def effective_regions(user: User, now: datetime) -> RegionScope:
    """Base regions unioned with every effective grant's regions."""
    return RegionScope.union(
        user.allowed_regions,
        *(grant.granted_regions for grant in user.effective_grants(now)),
    )


@beartype
def standard_regions(user: User, now: datetime) -> RegionScope:
    """Effective regions without emergency overrides."""
    return RegionScope.union(
        user.allowed_regions,
        *(
            grant.granted_regions
            for grant in user.effective_grants(now)
            if not grant.is_emergency_override
        ),
    )


@beartype
def effective_pii_scope(user: User, now: datetime) -> PIITier:
    """Highest of the base tier and every effective grant's override."""
    overrides = [
        grant.pii_scope_override
        for grant in user.effective_grants(now)
        if grant.pii_scope_override is not None
    ]
    return PIITier.highest(user.pii_scope, *overrides)


@beartype
def honored_pii_scope(scope: PIITier, *, contains_pii: bool, mfa_present: bool) -> PIITier:
    """Tier actually applied to a request.

    ``full`` on a PII-bearing resource is only honored with MFA present;
    without it the caller sees the masked view.
    """
    if scope is PIITier.FULL and contains_pii and not mfa_present:
        return PIITier.MASKED
    return scope


@beartype
def find_emergency_override(
    user: User,
    permission: Permission,
    region_id: str,
    now: datetime,
    *,
    case_id: str | None = None,
) -> TemporaryAccessGrant | None:
    """Effective emergency grant that lets ``permission`` reach ``region_id``.

    When the caller names a case, only a grant for that case qualifies.
    """
    for grant in user.effective_grants(now):
        if not grant.is_emergency_override or not grant.covers(permission):
            continue
        if case_id is not None and grant.case_id != case_id:
            continue
        regions = RegionScope.union(grant.granted_regions)
        if not grant.granted_regions or regions.contains(region_id):
            return grant
    return None


@beartype
def grant_permissions(user: User, now: datetime) -> frozenset[Permission]:
    """Permissions contributed by effective grants."""
    permissions: set[Permission] = set()
    for grant in user.effective_grants(now):
        permissions |= grant.granted_permissions
    return frozenset(permissions)
