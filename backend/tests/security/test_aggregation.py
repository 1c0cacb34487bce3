"""
Tests for core.security.aggregation - effective permission resolution
"""
from datetime import datetime, timedelta

from core.security.aggregation import (
    DirectGrant, RoleGrant, group_by_resource, resolve_effective_permissions,
)
from core.security.permission import PermissionKey

NOW = datetime(2026, 3, 1, 12, 0, 0)


def key(text):
    return PermissionKey.parse(text)


def role(role_id, name, *codes, **kwargs):
    return RoleGrant(role_id=role_id, role_name=name,
                     permissions=frozenset(key(c) for c in codes), **kwargs)


class TestResolveEffectivePermissions:
    def test_union_of_roles(self):
        effective = resolve_effective_permissions(
            [role(1, "Front Desk", "guests.read.property"),
             role(2, "Night Audit", "reservations.read.property", "guests.read.property")],
            [], NOW,
        )
        assert effective.as_strings() == ["guests.read.property", "reservations.read.property"]
        assert effective.role_names == ("Front Desk", "Night Audit")

    def test_expired_and_inactive_roles_contribute_nothing(self):
        effective = resolve_effective_permissions(
            [role(1, "Old", "user.read.department", expires_at=NOW - timedelta(seconds=1)),
             role(2, "Off", "payslip.read.own", is_active=False),
             role(3, "Future", "vacation.read.own", expires_at=NOW + timedelta(days=1))],
            [], NOW,
        )
        assert effective.as_strings() == ["vacation.read.own"]
        assert effective.role_names == ("Future",)

    def test_expiry_equal_to_now_is_expired(self):
        effective = resolve_effective_permissions(
            [role(1, "Edge", "user.read.own", expires_at=NOW)], [], NOW,
        )
        assert effective.is_empty

    def test_direct_grant_adds(self):
        effective = resolve_effective_permissions(
            [], [DirectGrant(key("training.assign.department"))], NOW,
        )
        assert effective.has(key("training.assign.department"))
        assert key("training.assign.department") in effective.direct

    # ── Denials ──

    def test_denial_beats_role_grant(self):
        effective = resolve_effective_permissions(
            [role(1, "HR", "payslip.read.department", "user.read.department")],
            [DirectGrant(key("payslip.read.department"), granted=False)],
            NOW,
        )
        assert effective.is_denied(key("payslip.read.department"))
        assert not effective.has(key("payslip.read.department"))
        assert effective.has(key("user.read.department"))

    def test_denial_beats_direct_grant(self):
        effective = resolve_effective_permissions(
            [],
            [DirectGrant(key("user.read.own")), DirectGrant(key("user.read.own"), granted=False)],
            NOW,
        )
        assert effective.is_empty
        assert effective.direct == frozenset()

    def test_denial_blocks_wildcard_match(self):
        effective = resolve_effective_permissions(
            [role(1, "Manager", "*.*.property")],
            [DirectGrant(key("reservations.update.property"), granted=False)],
            NOW,
        )
        assert effective.find_match(key("reservations.update.property")) is None
        assert effective.has(key("reservations.read.property"))

    def test_inactive_denial_is_ignored(self):
        effective = resolve_effective_permissions(
            [role(1, "HR", "payslip.read.department")],
            [DirectGrant(key("payslip.read.department"), granted=False, is_active=False)],
            NOW,
        )
        assert effective.has(key("payslip.read.department"))


class TestEffectivePermissions:
    def test_find_match_prefers_exact(self):
        effective = resolve_effective_permissions(
            [role(1, "Mixed", "*.*.organization", "user.read.department")], [], NOW,
        )
        assert effective.find_match(key("user.read.department")) == key("user.read.department")
        assert effective.find_match(key("user.read.property")) == key("*.*.organization")

    def test_scope_hierarchy_match(self):
        effective = resolve_effective_permissions(
            [role(1, "Lead", "user.read.property")], [], NOW,
        )
        assert effective.has(key("user.read.own"))
        assert not effective.has(key("user.read.organization"))

    def test_group_by_resource(self):
        grouped = group_by_resource([
            key("user.read.own"), key("payslip.read.own"), key("user.update.own"),
        ])
        assert grouped == {
            "payslip": ["payslip.read.own"],
            "user": ["user.read.own", "user.update.own"],
        }
