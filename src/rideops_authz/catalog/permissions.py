# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Closed catalog of permission identifiers.

Every action the engine can authorize is a member of :class:`Permission`.
Unrecognized identifiers map to ``Permission.UNKNOWN`` instead of being
matched as free-form strings; role and workflow configuration rejects
``UNKNOWN`` at load time, and the engine denies it as a structural error.
"""

from enum import Enum
from typing import Final

from beartype import beartype


class Permission(str, Enum):
    """Permission and action identifiers."""

    # Wildcard and sentinel
    ALL = "*"
    UNKNOWN = "unknown"

    # Live operations
    VIEW_LIVE_MAP = "view_live_map"
    ASSIGN_DRIVER = "assign_driver"
    MANAGE_QUEUE = "manage_queue"
    VIEW_OPS_KPIS_MASKED = "view_ops_kpis_masked"
    QUERY_CURATED_VIEWS = "query_curated_views"

    # Support and investigations
    CASE_OPEN = "case_open"
    CASE_CLOSE = "case_close"
    VIEW_TICKET_HISTORY = "view_ticket_history"
    ESCALATE_TO_RISK = "escalate_to_risk"
    VIEW_MASKED_PROFILES = "view_masked_profiles"
    UNMASK_PII_WITH_MFA = "unmask_pii_with_mfa"
    ACCESS_RAW_LOCATION_DATA = "access_raw_location_data"

    # Administration
    APPROVE_REQUESTS = "approve_requests"
    CROSS_REGION_OVERRIDE = "cross_region_override"
    MANAGE_USERS = "manage_users"
    ASSIGN_ROLES = "assign_roles"
    REVOKE_ACCESS = "revoke_access"
    MANAGE_API_KEYS = "manage_api_keys"
    EXPORT_AUDIT_DATA = "export_audit_data"
    CONFIGURE_ALERTS = "configure_alerts"
    CONFIGURE_PRELAUNCH_PRICING_FLAGGED = "configure_prelaunch_pricing_flagged"
    PROMOTE_REGION_STAGE = "promote_region_stage"
    APPROVE_PAYOUT_BATCH = "approve_payout_batch"

    # Vehicle basics
    VIEW_VEHICLES_BASIC = "view_vehicles_basic"
    VIEW_VEHICLES_DETAILED = "view_vehicles_detailed"
    VIEW_VEHICLES_SUPPORT = "view_vehicles_support"
    VIEW_VEHICLE_DASHBOARD = "view_vehicle_dashboard"
    VIEW_VEHICLE_ANALYTICS = "view_vehicle_analytics"

    # Vehicle management
    CREATE_VEHICLES = "create_vehicles"
    UPDATE_VEHICLE_DETAILS = "update_vehicle_details"
    DELETE_VEHICLES = "delete_vehicles"
    APPROVE_VEHICLE_REGISTRATIONS = "approve_vehicle_registrations"
    APPROVE_VEHICLE_DECOMMISSIONING = "approve_vehicle_decommissioning"
    MANAGE_REGIONAL_VEHICLES = "manage_regional_vehicles"
    MANAGE_VEHICLE_FLEET_BUDGET = "manage_vehicle_fleet_budget"

    # Vehicle assignments and operations
    ASSIGN_DRIVER_TO_VEHICLE = "assign_driver_to_vehicle"
    APPROVE_VEHICLE_ASSIGNMENTS = "approve_vehicle_assignments"
    UPDATE_VEHICLE_STATUS_BASIC = "update_vehicle_status_basic"
    CONFIGURE_VEHICLE_OPERATIONAL_PARAMS = "configure_vehicle_operational_params"

    # Maintenance and compliance
    SCHEDULE_VEHICLE_MAINTENANCE = "schedule_vehicle_maintenance"
    APPROVE_MAJOR_VEHICLE_MAINTENANCE = "approve_major_vehicle_maintenance"
    VIEW_VEHICLE_MAINTENANCE_HISTORY = "view_vehicle_maintenance_history"
    MANAGE_VEHICLE_COMPLIANCE = "manage_vehicle_compliance"
    REVIEW_VEHICLE_COMPLIANCE_VIOLATIONS = "review_vehicle_compliance_violations"

    # Telemetry
    VIEW_VEHICLE_TELEMETRY_BASIC = "view_vehicle_telemetry_basic"
    VIEW_VEHICLE_TELEMETRY_DETAILED = "view_vehicle_telemetry_detailed"
    ACCESS_VEHICLE_TRACKING_HISTORY = "access_vehicle_tracking_history"
    ACCESS_VEHICLE_SECURITY_LOGS = "access_vehicle_security_logs"

    # Financial
    APPROVE_VEHICLE_PURCHASES = "approve_vehicle_purchases"
    MANAGE_VEHICLE_FINANCING = "manage_vehicle_financing"
    PROCESS_VEHICLE_INSURANCE_CLAIMS = "process_vehicle_insurance_claims"
    APPROVE_VEHICLE_MAINTENANCE_BUDGETS = "approve_vehicle_maintenance_budgets"
    VIEW_VEHICLE_COST_ANALYSIS = "view_vehicle_cost_analysis"
    MANAGE_VEHICLE_DEPRECIATION = "manage_vehicle_depreciation"
    VIEW_VEHICLE_FINANCIAL_REPORTS = "view_vehicle_financial_reports"

    # Reporting
    CREATE_VEHICLE_REPORTS = "create_vehicle_reports"
    ANALYZE_VEHICLE_UTILIZATION = "analyze_vehicle_utilization"
    EXPORT_VEHICLE_DATA_ANONYMIZED = "export_vehicle_data_anonymized"
    VIEW_GLOBAL_FLEET_ANALYTICS = "view_global_fleet_analytics"
    ACCESS_EXECUTIVE_VEHICLE_REPORTS = "access_executive_vehicle_reports"

    # Investigation
    INVESTIGATE_VEHICLE_INCIDENTS = "investigate_vehicle_incidents"
    ACCESS_VEHICLE_INCIDENT_REPORTS = "access_vehicle_incident_reports"
    UPDATE_VEHICLE_SUPPORT_NOTES = "update_vehicle_support_notes"
    AUDIT_VEHICLE_OWNERSHIP_VERIFICATION = "audit_vehicle_ownership_verification"

    # Strategic
    APPROVE_STRATEGIC_VEHICLE_INVESTMENTS = "approve_strategic_vehicle_investments"
    APPROVE_VEHICLE_EXPANSION_PLANS = "approve_vehicle_expansion_plans"
    APPROVE_MAJOR_VEHICLE_PARTNERSHIPS = "approve_major_vehicle_partnerships"
    MANAGE_VEHICLE_PARTNERSHIPS = "manage_vehicle_partnerships"

    @classmethod
    def _missing_(cls, value: object) -> "Permission":
        return cls.UNKNOWN

    @property
    def is_concrete(self) -> bool:
        """True for real actions (not the wildcard or the unknown sentinel)."""
        return self not in (Permission.ALL, Permission.UNKNOWN)


FINANCIAL_APPROVAL_PERMISSIONS: Final = frozenset(
    {
        Permission.APPROVE_PAYOUT_BATCH,
        Permission.APPROVE_VEHICLE_PURCHASES,
        Permission.MANAGE_VEHICLE_FINANCING,
        Permission.PROCESS_VEHICLE_INSURANCE_CLAIMS,
        Permission.APPROVE_VEHICLE_MAINTENANCE_BUDGETS,
        Permission.APPROVE_STRATEGIC_VEHICLE_INVESTMENTS,
    }
)

DECOMMISSIONING_PERMISSIONS: Final = frozenset(
    {
        Permission.APPROVE_VEHICLE_DECOMMISSIONING,
        Permission.DELETE_VEHICLES,
    }
)

CROSS_REGION_PERMISSIONS: Final = frozenset({Permission.CROSS_REGION_OVERRIDE})

PII_UNMASKING_PERMISSIONS: Final = frozenset(
    {
        Permission.UNMASK_PII_WITH_MFA,
        Permission.ACCESS_RAW_LOCATION_DATA,
    }
)

# Actions whose resources may legitimately carry no region.
REGION_AGNOSTIC_PERMISSIONS: Final = frozenset(
    {
        Permission.APPROVE_REQUESTS,
        Permission.MANAGE_USERS,
        Permission.ASSIGN_ROLES,
        Permission.REVOKE_ACCESS,
        Permission.MANAGE_API_KEYS,
        Permission.EXPORT_AUDIT_DATA,
        Permission.CONFIGURE_ALERTS,
        Permission.VIEW_MASKED_PROFILES,
        Permission.UNMASK_PII_WITH_MFA,
        Permission.VIEW_GLOBAL_FLEET_ANALYTICS,
        Permission.ACCESS_EXECUTIVE_VEHICLE_REPORTS,
    }
)


@beartype
def is_sensitive_action(permission: Permission) -> bool:
    """Check whether an action always carries a step-up obligation."""
    return (
        permission in FINANCIAL_APPROVAL_PERMISSIONS
        or permission in DECOMMISSIONING_PERMISSIONS
        or permission in CROSS_REGION_PERMISSIONS
        or permission in PII_UNMASKING_PERMISSIONS
    )


@beartype
def parse_permissions(values: list[str] | tuple[str, ...] | frozenset[str]) -> frozenset[Permission]:
    """Parse identifiers, rejecting anything outside the catalog."""
    parsed = frozenset(Permission(value) for value in values)
    if Permission.UNKNOWN in parsed:
        unknown = sorted(value for value in values if Permission(value) is Permission.UNKNOWN)
        raise ValueError(f"Unknown permission identifiers: {', '.join(unknown)}")
    return parsed
