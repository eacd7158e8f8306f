# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Authorization service layer."""

from ..core.result_types import Err, Ok, Result
from .approval_workflow import ApprovalWorkflowManager
from .audit import AuditEmitter, LoggingAuditSink
from .mfa import MFAChallengeService
from .policy_engine import PolicyEngine
from .role_resolver import RoleGraph, resolve_permissions
from .scope_resolver import effective_pii_scope, effective_regions
from .temporary_access import TemporaryAccessManager

__all__ = [
    "Result",
    "Ok",
    "Err",
    "ApprovalWorkflowManager",
    "AuditEmitter",
    "LoggingAuditSink",
    "MFAChallengeService",
    "PolicyEngine",
    "RoleGraph",
    "resolve_permissions",
    "effective_pii_scope",
    "effective_regions",
    "TemporaryAccessManager",
]
