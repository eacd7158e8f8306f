# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""RideOps access control - policy decisions for the ride-hailing operations platform."""

__version__ = "0.1.0"

from .catalog.permissions import Permission
from .core.config import Settings, get_settings
from .core.result_types import Err, Ok, Result
from .models.access import PIITier, RegionScope, Role, RoleAssignment, TemporaryAccessGrant, User
from .models.mfa import ChallengeContext, MFAMethod
from .models.policy import (
    Decision,
    InvocationContext,
    PolicyDecision,
    PolicyEvaluationRequest,
    ResourceContext,
    VehicleAccessContext,
    VehicleAccessDecision,
)
from .service import AccessControlService

__all__ = [
    "__version__",
    "AccessControlService",
    "ChallengeContext",
    "Decision",
    "Err",
    "InvocationContext",
    "MFAMethod",
    "Ok",
    "PIITier",
    "Permission",
    "PolicyDecision",
    "PolicyEvaluationRequest",
    "RegionScope",
    "ResourceContext",
    "Result",
    "Role",
    "RoleAssignment",
    "Settings",
    "TemporaryAccessGrant",
    "User",
    "VehicleAccessContext",
    "VehicleAccessDecision",
    "get_settings",
]
