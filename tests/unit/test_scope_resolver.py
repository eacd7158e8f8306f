"""Unit tests for regional and PII scope resolution."""

from datetime import timedelta

from rideops_authz.catalog.permissions import Permission
from rideops_authz.models.access import EscalationType, PIITier, RegionScope
from rideops_authz.services.scope_resolver import (
    effective_pii_scope,
    effective_regions,
    find_emergency_override,
    grant_permissions,
    honored_pii_scope,
    standard_regions,
)
from tests.fixtures.test_data import HOME_REGION, NOW, OTHER_REGION, make_grant, make_user


class TestEffectiveRegions:
    def test_base_regions_only(self):
        user = make_user("u1")

        scope = effective_regions(user, NOW)

        assert scope == RegionScope(regions=frozenset({HOME_REGION}))
        assert scope.describe() == HOME_REGION

    def test_effective_grants_extend_regions(self):
        grant = make_grant("u1", regions=frozenset({OTHER_REGION}))
        user = make_user("u1", grants=(grant,))

        scope = effective_regions(user, NOW)

        assert scope.contains(HOME_REGION)
        assert scope.contains(OTHER_REGION)

    def test_expired_grant_regions_drop_out(self):
        grant = make_grant("u1", regions=frozenset({OTHER_REGION}), expires_at=NOW)
        user = make_user("u1", grants=(grant,))

        assert not effective_regions(user, NOW).contains(OTHER_REGION)

    def test_wildcard_in_any_set_wins(self):
        grant = make_grant("u1", regions=frozenset({"*"}))
        user = make_user("u1", grants=(grant,))

        scope = effective_regions(user, NOW)

        assert scope.all_regions
        assert scope.contains("anywhere")
        assert scope.describe() == "all regions"

    def test_standard_regions_exclude_emergency_grants(self):
        grant = make_grant(
            "u1",
            regions=frozenset({OTHER_REGION}),
            escalation_type=EscalationType.EMERGENCY,
            case_id="CASE-9",
        )
        user = make_user("u1", grants=(grant,))

        assert effective_regions(user, NOW).contains(OTHER_REGION)
        assert not standard_regions(user, NOW).contains(OTHER_REGION)


class TestPIIScope:
    def test_highest_tier_wins(self):
        grant = make_grant("u1", pii_scope_override=PIITier.FULL)
        user = make_user("u1", pii_scope=PIITier.MASKED, grants=(grant,))

        assert effective_pii_scope(user, NOW) is PIITier.FULL

    def test_override_never_lowers_scope(self):
        grant = make_grant("u1", pii_scope_override=PIITier.NONE)
        user = make_user("u1", pii_scope=PIITier.MASKED, grants=(grant,))

        assert effective_pii_scope(user, NOW) is PIITier.MASKED

    def test_expired_override_is_ignored(self):
        grant = make_grant(
            "u1", pii_scope_override=PIITier.FULL, expires_at=NOW - timedelta(seconds=1)
        )
        user = make_user("u1", grants=(grant,))

        assert effective_pii_scope(user, NOW) is PIITier.NONE

    def test_full_on_pii_requires_mfa_to_be_honored(self):
        assert honored_pii_scope(PIITier.FULL, contains_pii=True, mfa_present=False) is PIITier.MASKED
        assert honored_pii_scope(PIITier.FULL, contains_pii=True, mfa_present=True) is PIITier.FULL
        assert honored_pii_scope(PIITier.FULL, contains_pii=False, mfa_present=False) is PIITier.FULL
        assert honored_pii_scope(PIITier.MASKED, contains_pii=True, mfa_present=True) is PIITier.MASKED


class TestEmergencyOverride:
    def _emergency(self, **kwargs):
        kwargs.setdefault("regions", frozenset({OTHER_REGION}))
        return make_grant(
            "u1", escalation_type=EscalationType.EMERGENCY, case_id="CASE-1", **kwargs
        )

    def test_finds_matching_override(self):
        grant = self._emergency()
        user = make_user("u1", grants=(grant,))

        found = find_emergency_override(user, Permission.CASE_OPEN, OTHER_REGION, NOW)

        assert found == grant

    def test_permission_scoped_override_must_cover_action(self):
        grant = self._emergency(permissions=frozenset({Permission.CASE_OPEN}))
        user = make_user("u1", grants=(grant,))

        assert find_emergency_override(user, Permission.CASE_OPEN, OTHER_REGION, NOW) == grant
        assert find_emergency_override(user, Permission.CASE_CLOSE, OTHER_REGION, NOW) is None

    def test_region_must_be_covered(self):
        user = make_user("u1", grants=(self._emergency(),))

        assert find_emergency_override(user, Permission.CASE_OPEN, "lagos", NOW) is None

    def test_case_must_match_when_named(self):
        user = make_user("u1", grants=(self._emergency(),))

        assert find_emergency_override(
            user, Permission.CASE_OPEN, OTHER_REGION, NOW, case_id="CASE-1"
        ) is not None
        assert find_emergency_override(
            user, Permission.CASE_OPEN, OTHER_REGION, NOW, case_id="CASE-2"
        ) is None

    def test_approval_grants_are_not_overrides(self):
        grant = make_grant("u1", regions=frozenset({OTHER_REGION}), case_id="CASE-1")
        user = make_user("u1", grants=(grant,))

        assert find_emergency_override(user, Permission.CASE_OPEN, OTHER_REGION, NOW) is None


def test_grant_permissions_union_of_effective_grants():
    active = make_grant("u1", permissions=frozenset({Permission.EXPORT_AUDIT_DATA}))
    revoked = make_grant("u1", permissions=frozenset({Permission.ASSIGN_ROLES}), is_active=False)
    user = make_user("u1", grants=(active, revoked))

    assert grant_permissions(user, NOW) == frozenset({Permission.EXPORT_AUDIT_DATA})
