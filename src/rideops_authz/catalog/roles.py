# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Built-in operations roles.

Levels rank roles for approver eligibility; inheritance lets senior roles
pick up the permissions of the roles they supervise. Deployments may load
their own role table through a :class:`DirectoryStore` instead.
"""

from typing import Final

from ..models.access import Role
from .permissions import Permission as P

GROUND_OPS: Final = Role(
    id="ground_ops",
    name="Ground Operations",
    level=10,
    permissions=frozenset(
        {
            P.VIEW_LIVE_MAP,
            P.ASSIGN_DRIVER,
            P.MANAGE_QUEUE,
            P.VIEW_VEHICLES_BASIC,
            P.VIEW_VEHICLE_TELEMETRY_BASIC,
            P.UPDATE_VEHICLE_STATUS_BASIC,
        }
    ),
)

OPS_MONITOR: Final = Role(
    id="ops_monitor",
    name="Operations Monitor",
    level=20,
    permissions=frozenset(
        {P.VIEW_LIVE_MAP, P.VIEW_OPS_KPIS_MASKED, P.VIEW_VEHICLE_DASHBOARD}
    ),
)

SUPPORT: Final = Role(
    id="support",
    name="Customer Support",
    level=25,
    permissions=frozenset(
        {
            P.CASE_OPEN,
            P.CASE_CLOSE,
            P.VIEW_TICKET_HISTORY,
            P.ESCALATE_TO_RISK,
            P.VIEW_MASKED_PROFILES,
            P.VIEW_VEHICLES_SUPPORT,
            P.UPDATE_VEHICLE_SUPPORT_NOTES,
        }
    ),
)

ANALYST: Final = Role(
    id="analyst",
    name="Analyst",
    level=25,
    permissions=frozenset(
        {
            P.QUERY_CURATED_VIEWS,
            P.VIEW_OPS_KPIS_MASKED,
            P.VIEW_VEHICLE_ANALYTICS,
            P.ANALYZE_VEHICLE_UTILIZATION,
            P.EXPORT_VEHICLE_DATA_ANONYMIZED,
        }
    ),
)

OPS_MANAGER: Final = Role(
    id="ops_manager",
    name="Operations Manager",
    level=30,
    inherits_from=frozenset({"ground_ops", "ops_monitor"}),
    permissions=frozenset(
        {
            P.VIEW_VEHICLES_DETAILED,
            P.UPDATE_VEHICLE_DETAILS,
            P.ASSIGN_DRIVER_TO_VEHICLE,
            P.SCHEDULE_VEHICLE_MAINTENANCE,
            P.VIEW_VEHICLE_MAINTENANCE_HISTORY,
            P.VIEW_VEHICLE_TELEMETRY_DETAILED,
            P.CONFIGURE_ALERTS,
        }
    ),
)

FINANCE_OPS: Final = Role(
    id="finance_ops",
    name="Finance Operations",
    level=30,
    permissions=frozenset(
        {
            P.VIEW_VEHICLE_COST_ANALYSIS,
            P.VIEW_VEHICLE_FINANCIAL_REPORTS,
            P.PROCESS_VEHICLE_INSURANCE_CLAIMS,
            P.MANAGE_VEHICLE_DEPRECIATION,
        }
    ),
)

RISK_INVESTIGATOR: Final = Role(
    id="risk_investigator",
    name="Risk Investigator",
    level=35,
    inherits_from=frozenset({"support"}),
    permissions=frozenset(
        {
            P.UNMASK_PII_WITH_MFA,
            P.INVESTIGATE_VEHICLE_INCIDENTS,
            P.ACCESS_VEHICLE_INCIDENT_REPORTS,
            P.ACCESS_VEHICLE_TRACKING_HISTORY,
            P.ACCESS_VEHICLE_SECURITY_LOGS,
        }
    ),
)

REGIONAL_MANAGER: Final = Role(
    id="regional_manager",
    name="Regional Manager",
    level=40,
    inherits_from=frozenset({"ops_manager", "finance_ops"}),
    permissions=frozenset(
        {
            P.APPROVE_REQUESTS,
            P.MANAGE_REGIONAL_VEHICLES,
            P.APPROVE_VEHICLE_ASSIGNMENTS,
            P.APPROVE_VEHICLE_REGISTRATIONS,
            P.APPROVE_MAJOR_VEHICLE_MAINTENANCE,
            P.MANAGE_VEHICLE_COMPLIANCE,
            P.REVIEW_VEHICLE_COMPLIANCE_VIOLATIONS,
            P.CONFIGURE_VEHICLE_OPERATIONAL_PARAMS,
            P.CREATE_VEHICLE_REPORTS,
        }
    ),
)

AUDITOR: Final = Role(
    id="auditor",
    name="Auditor",
    level=50,
    permissions=frozenset(
        {
            P.EXPORT_AUDIT_DATA,
            P.QUERY_CURATED_VIEWS,
            P.AUDIT_VEHICLE_OWNERSHIP_VERIFICATION,
            P.VIEW_VEHICLE_FINANCIAL_REPORTS,
        }
    ),
)

EXECUTIVE: Final = Role(
    id="executive",
    name="Executive",
    level=60,
    inherits_from=frozenset({"regional_manager"}),
    permissions=frozenset(
        {
            P.APPROVE_PAYOUT_BATCH,
            P.APPROVE_VEHICLE_PURCHASES,
            P.MANAGE_VEHICLE_FINANCING,
            P.APPROVE_VEHICLE_MAINTENANCE_BUDGETS,
            P.MANAGE_VEHICLE_FLEET_BUDGET,
            P.APPROVE_VEHICLE_DECOMMISSIONING,
            P.APPROVE_STRATEGIC_VEHICLE_INVESTMENTS,
            P.APPROVE_VEHICLE_EXPANSION_PLANS,
            P.APPROVE_MAJOR_VEHICLE_PARTNERSHIPS,
            P.MANAGE_VEHICLE_PARTNERSHIPS,
            P.VIEW_GLOBAL_FLEET_ANALYTICS,
            P.ACCESS_EXECUTIVE_VEHICLE_REPORTS,
            P.PROMOTE_REGION_STAGE,
            P.CONFIGURE_PRELAUNCH_PRICING_FLAGGED,
        }
    ),
)

IAM_ADMIN: Final = Role(
    id="iam_admin",
    name="IAM Administrator",
    level=80,
    permissions=frozenset(
        {
            P.MANAGE_USERS,
            P.ASSIGN_ROLES,
            P.REVOKE_ACCESS,
            P.MANAGE_API_KEYS,
            P.APPROVE_REQUESTS,
            P.CROSS_REGION_OVERRIDE,
        }
    ),
)

BUILTIN_ROLES: Final[tuple[Role, ...]] = (
    GROUND_OPS,
    OPS_MONITOR,
    SUPPORT,
    ANALYST,
    OPS_MANAGER,
    FINANCE_OPS,
    RISK_INVESTIGATOR,
    REGIONAL_MANAGER,
    AUDITOR,
    EXECUTIVE,
    IAM_ADMIN,
)
