"""Unit tests for role graph construction and permission resolution."""

from datetime import timedelta

import pytest

from rideops_authz.catalog.permissions import Permission
from rideops_authz.catalog.roles import BUILTIN_ROLES
from rideops_authz.core.errors import RoleGraphError
from rideops_authz.models.access import Role
from rideops_authz.services.role_resolver import (
    RoleGraph,
    effective_assignments,
    expired_sources,
    has_permission,
    highest_role_level,
    primary_role,
    resolve_permissions,
)
from tests.fixtures.test_data import NOW, make_assignment, make_user


def role(role_id: str, *parents: str, level: int = 10, permissions=frozenset()) -> Role:
    return Role(
        id=role_id,
        name=role_id.title(),
        level=level,
        permissions=permissions,
        inherits_from=frozenset(parents),
    )


class TestRoleGraph:
    """Graph validation happens once, at build time."""

    def test_builtin_roles_build(self, role_graph):
        assert len(role_graph) == len(BUILTIN_ROLES)
        assert "executive" in role_graph

    def test_inherited_permissions_are_transitive(self, role_graph):
        executive = role_graph.permissions_for("executive")

        assert Permission.APPROVE_PAYOUT_BATCH in executive
        assert Permission.APPROVE_REQUESTS in executive  # regional_manager
        assert Permission.VIEW_VEHICLES_DETAILED in executive  # ops_manager
        assert Permission.VIEW_LIVE_MAP in executive  # ground_ops

    def test_cycle_is_rejected(self):
        with pytest.raises(RoleGraphError) as exc_info:
            RoleGraph.build([role("a", "b"), role("b", "c"), role("c", "a")])

        assert exc_info.value.error == "inheritance_cycle"
        assert "a -> b -> c -> a" in str(exc_info.value)

    def test_self_inheritance_is_a_cycle(self):
        with pytest.raises(RoleGraphError, match="cycle"):
            RoleGraph.build([role("a", "a")])

    def test_unknown_parent_is_rejected(self):
        with pytest.raises(RoleGraphError) as exc_info:
            RoleGraph.build([role("a", "ghost")])

        assert exc_info.value.error == "unknown_parent"
        assert exc_info.value.to_dict()["error_description"].endswith("ghost")

    def test_duplicate_role_is_rejected(self):
        with pytest.raises(RoleGraphError, match="more than once"):
            RoleGraph.build([role("a"), role("a")])

    def test_diamond_inheritance_is_not_a_cycle(self):
        graph = RoleGraph.build(
            [
                role("base", permissions=frozenset({Permission.VIEW_LIVE_MAP})),
                role("left", "base"),
                role("right", "base"),
                role("top", "left", "right"),
            ]
        )

        assert graph.permissions_for("top") == frozenset({Permission.VIEW_LIVE_MAP})

    def test_unknown_role_has_no_permissions(self, role_graph):
        assert role_graph.permissions_for("ghost") == frozenset()
        assert role_graph.get("ghost") is None


class TestHasPermission:
    def test_wildcard_grants_concrete_actions(self):
        assert has_permission(frozenset({Permission.ALL}), Permission.EXPORT_AUDIT_DATA)

    def test_unknown_action_is_never_granted(self):
        assert not has_permission(frozenset({Permission.ALL}), Permission.UNKNOWN)

    def test_unknown_identifier_maps_to_sentinel(self):
        assert Permission("launch_rockets") is Permission.UNKNOWN


class TestResolvePermissions:
    """Only effective assignments contribute."""

    def test_union_of_effective_roles(self, role_graph):
        user = make_user("u1", "ground_ops", "support")

        permissions = resolve_permissions(user, role_graph, NOW)

        assert Permission.MANAGE_QUEUE in permissions
        assert Permission.CASE_OPEN in permissions

    @pytest.mark.parametrize(
        "assignment_kwargs",
        [
            {"is_active": False},
            {"valid_from": NOW + timedelta(hours=1)},
            {"valid_from": NOW - timedelta(days=2), "valid_until": NOW},
        ],
        ids=["inactive", "not-yet-valid", "expired"],
    )
    def test_ineffective_assignment_contributes_nothing(self, role_graph, assignment_kwargs):
        user = make_user("u1", assignments=(make_assignment("support", **assignment_kwargs),))

        assert resolve_permissions(user, role_graph, NOW) == frozenset()

    def test_unknown_role_assignment_is_skipped(self, role_graph, caplog):
        user = make_user("u1", "ghost_role", "ground_ops")

        assignments = effective_assignments(user, role_graph, NOW)

        assert [a.role_id for a in assignments] == ["ground_ops"]
        assert "unknown role ghost_role" in caplog.text

    def test_expired_sources_only_lists_granting_assignments(self, role_graph):
        expired_support = make_assignment(
            "support", valid_from=NOW - timedelta(days=5), valid_until=NOW - timedelta(days=1)
        )
        expired_analyst = make_assignment(
            "analyst", valid_from=NOW - timedelta(days=5), valid_until=NOW - timedelta(days=1)
        )
        user = make_user("u1", assignments=(expired_support, expired_analyst))

        sources = expired_sources(user, role_graph, Permission.CASE_OPEN, NOW)

        assert sources == (expired_support,)


class TestRoleLevels:
    def test_highest_level_and_primary_role(self, role_graph):
        user = make_user("u1", "support", "regional_manager")

        assert highest_role_level(user, role_graph, NOW) == 40
        assert primary_role(user, role_graph, NOW) == "regional_manager"

    def test_no_roles_is_level_zero(self, role_graph):
        user = make_user("u1")

        assert highest_role_level(user, role_graph, NOW) == 0
        assert primary_role(user, role_graph, NOW) is None
