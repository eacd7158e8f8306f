# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Role & permission resolution.

Roles form an explicit directed graph (child -> parents via
``inherits_from``). The graph is validated once when it is built: unknown
parents and cycles raise :class:`RoleGraphError`. Each role's transitive
permission closure is computed at build time, so resolving a user's
permissions is a set union over already-flattened closures.
"""

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime
from types import MappingProxyType

from beartype import beartype

from ..catalog.permissions import Permission
from ..core.errors import RoleGraphError
from ..models.access import Role, RoleAssignment, User

logger = logging.getLogger(__name__)

_VISITING = 1
_DONE = 2


class RoleGraph:
    """Validated, immutable role inheritance graph with memoized closures."""

    def __init__(
        self,
        roles: Mapping[str, Role],
        closures: Mapping[str, frozenset[Permission]],
    ) -> None:
        """Use :meth:`build`; this constructor trusts its inputs."""
        self._roles = MappingProxyType(dict(roles))
        self._closures = MappingProxyType(dict(closures))

    @classmethod
    @beartype
    def build(cls, roles: Iterable[Role]) -> "RoleGraph":
        """Validate the inheritance graph and flatten every role's permissions."""
        index: dict[str, Role] = {}
        for role in roles:
            if role.id in index:
                raise RoleGraphError(
                    "duplicate_role", f"Role {role.id} is defined more than once"
                )
            index[role.id] = role

        for role in index.values():
            missing = sorted(parent for parent in role.inherits_from if parent not in index)
            if missing:
                raise RoleGraphError(
                    "unknown_parent",
                    f"Role {role.id} inherits from unknown roles: {', '.join(missing)}",
                )

        state: dict[str, int] = {}
        closures: dict[str, frozenset[Permission]] = {}

        def visit(role_id: str, path: list[str]) -> frozenset[Permission]:
            if state.get(role_id) == _DONE:
                return closures[role_id]
            if state.get(role_id) == _VISITING:
                cycle = path[path.index(role_id) :] + [role_id]
                raise RoleGraphError(
                    "inheritance_cycle",
                    f"Role inheritance cycle: {' -> '.join(cycle)}",
                )
            state[role_id] = _VISITING
            role = index[role_id]
            collected = set(role.permissions)
            for parent in sorted(role.inherits_from):
                collected |= visit(parent, path + [role_id])
            state[role_id] = _DONE
            closures[role_id] = frozenset(collected)
            return closures[role_id]

        for role_id in sorted(index):
            visit(role_id, [])

        logger.debug("Built role graph with %d roles", len(index))
        return cls(index, closures)

    def __contains__(self, role_id: object) -> bool:
        return role_id in self._roles

    def __len__(self) -> int:
        return len(self._roles)

    @property
    def role_ids(self) -> frozenset[str]:
        return frozenset(self._roles)

    @beartype
    def get(self, role_id: str) -> Role | None:
        return self._roles.get(role_id)

    @beartype
    def permissions_for(self, role_id: str) -> frozenset[Permission]:
        """Transitive permission closure; empty for unknown roles."""
        return self._closures.get(role_id, frozenset())

    @beartype
    def grants(self, role_id: str, permission: Permission) -> bool:
        return has_permission(self.permissions_for(role_id), permission)


@beartype
def has_permission(permissions: frozenset[Permission], permission: Permission) -> bool:
    """Membership check honoring the ``*`` wildcard."""
    if not permission.is_concrete:
        return False
    return permission in permissions or Permission.ALL in permissions


@beartype
def is_assignment_effective(assignment: RoleAssignment, now: datetime) -> bool:
    return assignment.is_effective(now)


@beartype
def effective_assignments(
    user: User, graph: RoleGraph, now: datetime
) -> tuple[RoleAssignment, ...]:
    """Assignments in effect at ``now`` whose role is known to the graph."""
    effective: list[RoleAssignment] = []
    for assignment in user.role_assignments:
        if not assignment.is_effective(now):
            continue
        if assignment.role_id not in graph:
            logger.warning(
                "User %s is assigned unknown role %s; ignoring",
                user.id,
                assignment.role_id,
            )
            continue
        effective.append(assignment)
    return tuple(effective)


@beartype
def resolve_permissions(user: User, graph: RoleGraph, now: datetime) -> frozenset[Permission]:
    """Flattened permissions of every effective role assignment.

    Inactive, expired and not-yet-valid assignments contribute nothing.
    A user with no effective assignment resolves to the empty set.
    """
    permissions: set[Permission] = set()
    for assignment in effective_assignments(user, graph, now):
        permissions |= graph.permissions_for(assignment.role_id)
    return frozenset(permissions)


@beartype
def expired_sources(
    user: User, graph: RoleGraph, permission: Permission, now: datetime
) -> tuple[RoleAssignment, ...]:
    """Expired assignments that would have granted ``permission``."""
    return tuple(
        assignment
        for assignment in user.role_assignments
        if assignment.is_expired(now) and graph.grants(assignment.role_id, permission)
    )


@beartype
def highest_role_level(user: User, graph: RoleGraph, now: datetime) -> int:
    """Level of the most senior effective role, 0 without any."""
    levels = [
        role.level
        for assignment in effective_assignments(user, graph, now)
        if (role := graph.get(assignment.role_id)) is not None
    ]
    return max(levels, default=0)


@beartype
def primary_role(user: User, graph: RoleGraph, now: datetime) -> str | None:
    """Id of the most senior effective role."""
    best: Role | None = None
    for assignment in effective_assignments(user, graph, now):
        role = graph.get(assignment.role_id)
        if role is not None and (best is None or role.level > best.level):
            best = role
    return best.id if best else None
