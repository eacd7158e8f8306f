"""Closed catalogs: permissions, built-in roles, workflows and ownership tiers.

Only the permission catalog is re-exported here; the role, workflow and
ownership tables depend on the domain models and are imported from their
own modules.
"""

from .permissions import (
    CROSS_REGION_PERMISSIONS,
    DECOMMISSIONING_PERMISSIONS,
    FINANCIAL_APPROVAL_PERMISSIONS,
    PII_UNMASKING_PERMISSIONS,
    REGION_AGNOSTIC_PERMISSIONS,
    Permission,
    is_sensitive_action,
    parse_permissions,
)

__all__ = [
    "CROSS_REGION_PERMISSIONS",
    "DECOMMISSIONING_PERMISSIONS",
    "FINANCIAL_APPROVAL_PERMISSIONS",
    "PII_UNMASKING_PERMISSIONS",
    "REGION_AGNOSTIC_PERMISSIONS",
    "Permission",
    "is_sensitive_action",
    "parse_permissions",
]
