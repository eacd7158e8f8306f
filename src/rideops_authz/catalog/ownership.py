"""Vehicle ownership access matrix.

Each ownership model lists which vehicle permissions fall into which
access tier. Tiers above ``basic`` are restricted to specific roles; a
permission the matrix does not list for an ownership model is refused.
"""

from collections.abc import Iterable
from typing import Final

from beartype import beartype

from ..models.policy import OwnershipAccessLevel, OwnershipType
from .permissions import Permission as P

# Matrix tiers in the order they are searched.
_TIER_ORDER: Final = (
    OwnershipAccessLevel.BASIC,
    OwnershipAccessLevel.DETAILED,
    OwnershipAccessLevel.FINANCIAL,
    OwnershipAccessLevel.FULL,
)

# Roles that unlock each tier. Basic is open to any role holding the permission.
TIER_ROLES: Final[dict[OwnershipAccessLevel, frozenset[str]]] = {
    OwnershipAccessLevel.DETAILED: frozenset({"ops_manager", "regional_manager", "executive"}),
    OwnershipAccessLevel.FINANCIAL: frozenset({"finance_ops", "regional_manager", "executive"}),
    OwnershipAccessLevel.FULL: frozenset({"executive", "risk_investigator"}),
}

VEHICLE_OWNERSHIP_ACCESS_MATRIX: Final[
    dict[OwnershipType, dict[OwnershipAccessLevel, frozenset[P]]]
] = {
    OwnershipType.XPRESS_OWNED: {
        OwnershipAccessLevel.BASIC: frozenset(
            {
                P.VIEW_VEHICLES_DETAILED,
                P.UPDATE_VEHICLE_DETAILS,
                P.ASSIGN_DRIVER_TO_VEHICLE,
                P.SCHEDULE_VEHICLE_MAINTENANCE,
                P.VIEW_VEHICLE_TELEMETRY_DETAILED,
            }
        ),
        OwnershipAccessLevel.DETAILED: frozenset(
            {
                P.MANAGE_VEHICLE_COMPLIANCE,
                P.APPROVE_VEHICLE_ASSIGNMENTS,
                P.VIEW_VEHICLE_FINANCIAL_REPORTS,
                P.CREATE_VEHICLE_REPORTS,
            }
        ),
        OwnershipAccessLevel.FINANCIAL: frozenset(
            {
                P.APPROVE_VEHICLE_PURCHASES,
                P.MANAGE_VEHICLE_FINANCING,
                P.VIEW_VEHICLE_COST_ANALYSIS,
                P.APPROVE_VEHICLE_MAINTENANCE_BUDGETS,
            }
        ),
        OwnershipAccessLevel.FULL: frozenset(
            {
                P.APPROVE_VEHICLE_DECOMMISSIONING,
                P.AUDIT_VEHICLE_OWNERSHIP_VERIFICATION,
            }
        ),
    },
    OwnershipType.FLEET_OWNED: {
        OwnershipAccessLevel.BASIC: frozenset(
            {
                P.VIEW_VEHICLES_DETAILED,
                P.ASSIGN_DRIVER_TO_VEHICLE,
                P.VIEW_VEHICLE_TELEMETRY_BASIC,
                P.SCHEDULE_VEHICLE_MAINTENANCE,
            }
        ),
        OwnershipAccessLevel.DETAILED: frozenset(
            {
                P.VIEW_VEHICLE_MAINTENANCE_HISTORY,
                P.MANAGE_VEHICLE_COMPLIANCE,
                P.CREATE_VEHICLE_REPORTS,
            }
        ),
        OwnershipAccessLevel.FINANCIAL: frozenset({P.VIEW_VEHICLE_COST_ANALYSIS}),
        OwnershipAccessLevel.FULL: frozenset({P.INVESTIGATE_VEHICLE_INCIDENTS}),
    },
    OwnershipType.OPERATOR_OWNED: {
        OwnershipAccessLevel.BASIC: frozenset(
            {
                P.VIEW_VEHICLES_BASIC,
                P.ASSIGN_DRIVER_TO_VEHICLE,
                P.VIEW_VEHICLE_TELEMETRY_BASIC,
            }
        ),
        OwnershipAccessLevel.DETAILED: frozenset(
            {P.VIEW_VEHICLE_MAINTENANCE_HISTORY, P.UPDATE_VEHICLE_SUPPORT_NOTES}
        ),
        OwnershipAccessLevel.FINANCIAL: frozenset(),
        OwnershipAccessLevel.FULL: frozenset(),
    },
    OwnershipType.DRIVER_OWNED: {
        OwnershipAccessLevel.BASIC: frozenset(
            {P.VIEW_VEHICLES_BASIC, P.VIEW_VEHICLE_TELEMETRY_BASIC}
        ),
        OwnershipAccessLevel.DETAILED: frozenset({P.VIEW_VEHICLE_MAINTENANCE_HISTORY}),
        OwnershipAccessLevel.FINANCIAL: frozenset(),
        OwnershipAccessLevel.FULL: frozenset(),
    },
}


@beartype
def ownership_tier(ownership_type: OwnershipType, permission: P) -> OwnershipAccessLevel:
    """Tier that lists ``permission`` for the ownership model, ``none`` if unlisted."""
    tiers = VEHICLE_OWNERSHIP_ACCESS_MATRIX[ownership_type]
    for tier in _TIER_ORDER:
        if permission in tiers[tier]:
            return tier
    return OwnershipAccessLevel.NONE


@beartype
def ownership_access_level(
    ownership_type: OwnershipType, permission: P, role_ids: Iterable[str]
) -> OwnershipAccessLevel:
    """Tier the given roles unlock for ``permission``.

    Returns ``none`` when the permission is unlisted for the ownership
    model or none of the roles is eligible for its tier.
    """
    tier = ownership_tier(ownership_type, permission)
    if tier is OwnershipAccessLevel.NONE:
        return tier
    eligible = TIER_ROLES.get(tier)
    if eligible is None or not eligible.isdisjoint(role_ids):
        return tier
    return OwnershipAccessLevel.NONE
