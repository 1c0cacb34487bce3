"""
Tests for app.services.role_service - custom roles and the permission catalog
"""
import pytest

from app.models.audit import AuditLog
from app.models.rbac import CustomRole, Permission, RolePermission, UserCustomRole, UserPermission
from app.services.permission_service import PermissionService
from app.services.role_service import PermissionCatalogService, RoleService, priority_level
from core.security.context import Principal
from core.security.legacy_roles import LegacyRole


@pytest.fixture
def roles(db_session, seeded_catalog):
    return RoleService(db_session, actor_id=None)


@pytest.fixture
def catalog(db_session, seeded_catalog):
    return PermissionCatalogService(db_session)


def perm_id(db_session, code):
    return PermissionService(db_session).resolve_permission(permission=code).id


class TestRoleCrud:
    def test_create_role_with_permissions(self, db_session, roles, organization):
        role = roles.create_role(
            "Housekeeping Lead", organization_id=organization.id, description="Floor supervisors",
            permission_ids=[perm_id(db_session, "training.assign.department")],
        )
        assert role.id is not None
        assert [p.code for p in roles.get_role_permissions(role.id)] == ["training.assign.department"]
        assert db_session.query(AuditLog).filter(AuditLog.action == "ROLE_CREATED").count() == 1

    def test_name_is_unique_per_organization(self, roles, organization, other_organization):
        roles.create_role("Concierge", organization_id=organization.id)
        with pytest.raises(ValueError, match="already exists"):
            roles.create_role("Concierge", organization_id=organization.id)
        assert roles.create_role("Concierge", organization_id=other_organization.id).id

    def test_get_roles_includes_global_roles(self, roles, organization, other_organization):
        roles.create_role("Concierge", organization_id=organization.id)
        roles.create_role("Ski Instructor", organization_id=other_organization.id)
        names = [r.name for r in roles.get_roles(organization.id)]
        assert "Concierge" in names
        assert "Platform Administrator" in names
        assert "Ski Instructor" not in names
        assert names[0] == "Platform Administrator"

    def test_get_roles_hides_inactive(self, roles, organization):
        role = roles.create_role("Seasonal", organization_id=organization.id)
        roles.update_role(role.id, is_active=False)
        assert role not in roles.get_roles(organization.id)
        assert role in roles.get_roles(organization.id, include_inactive=True)

    def test_update_role(self, roles, organization):
        role = roles.create_role("Concierge", organization_id=organization.id)
        roles.create_role("Bell Desk", organization_id=organization.id)
        updated = roles.update_role(role.id, description="Guest services", priority=5)
        assert updated.description == "Guest services"
        assert updated.priority == 5
        with pytest.raises(ValueError):
            roles.update_role(role.id, name="Bell Desk")

    def test_update_missing_role(self, roles):
        with pytest.raises(LookupError):
            roles.update_role(999, name="Ghost")

    def test_delete_cascades(self, db_session, roles, organization, make_user):
        user = make_user()
        role = roles.create_role("Temp", organization_id=organization.id,
                                 permission_ids=[perm_id(db_session, "user.read.department")])
        PermissionService(db_session).assign_role(user.id, role.id)

        roles.delete_role(role.id)
        assert db_session.query(CustomRole).filter(CustomRole.id == role.id).first() is None
        assert db_session.query(RolePermission).filter(RolePermission.role_id == role.id).count() == 0
        assert db_session.query(UserCustomRole).filter(UserCustomRole.role_id == role.id).count() == 0

    def test_system_roles_cannot_be_deleted(self, roles):
        system_role = roles.get_role_by_name("Staff Member", None)
        with pytest.raises(ValueError, match="cannot be deleted"):
            roles.delete_role(system_role.id)


class TestRolePermissions:
    def test_assign_permissions_replaces(self, db_session, roles, organization):
        role = roles.create_role("Desk", organization_id=organization.id,
                                 permission_ids=[perm_id(db_session, "guests.read.property")])
        roles.assign_permissions(role.id, [perm_id(db_session, "units.read.property"),
                                           perm_id(db_session, "units.read.property")])
        assert [p.code for p in roles.get_role_permissions(role.id)] == ["units.read.property"]

    def test_unknown_permission_ids(self, roles, organization):
        role = roles.create_role("Desk", organization_id=organization.id)
        with pytest.raises(ValueError, match="Unknown permission ids"):
            roles.assign_permissions(role.id, [424242])

    def test_add_and_remove(self, db_session, roles, organization):
        role = roles.create_role("Desk", organization_id=organization.id)
        pid = perm_id(db_session, "guests.read.property")
        roles.add_permission(role.id, pid)
        roles.add_permission(role.id, pid)
        assert db_session.query(RolePermission).filter(RolePermission.role_id == role.id).count() == 1
        roles.remove_permission(role.id, pid)
        assert db_session.query(RolePermission).filter(RolePermission.role_id == role.id).count() == 0

    def test_changes_invalidate_holders(self, db_session, roles, organization, make_user):
        user = make_user()
        service = PermissionService(db_session)
        role = roles.create_role("Desk", organization_id=organization.id,
                                 permission_ids=[perm_id(db_session, "guests.read.property")])
        service.assign_role(user.id, role.id)
        principal = Principal.from_user(user)
        assert not service.evaluate(principal, "units.read.property").allowed

        roles.add_permission(role.id, perm_id(db_session, "units.read.property"))
        result = service.evaluate(principal, "units.read.property")
        assert result.allowed
        assert result.source == "role"

    def test_user_count(self, db_session, roles, organization, make_user):
        role = roles.create_role("Desk", organization_id=organization.id)
        service = PermissionService(db_session)
        for _ in range(2):
            service.assign_role(make_user().id, role.id)
        assert roles.user_count(role.id) == 2


class TestAssignments:
    @pytest.fixture
    def desk(self, db_session, roles, organization):
        return roles.create_role("Desk", organization_id=organization.id, priority=500,
                                 permission_ids=[perm_id(db_session, "guests.read.property")])

    def test_get_user_roles_filters(self, db_session, roles, desk, make_user):
        service = PermissionService(db_session)
        first, second = make_user(), make_user()
        staff_member = roles.get_role_by_name("Staff Member", None)
        service.assign_role(first.id, desk.id)
        service.assign_role(first.id, staff_member.id)
        service.assign_role(second.id, desk.id)
        service.unassign_role(second.id, desk.id)

        assert {a.role_id for a in roles.get_user_roles(user_id=first.id)} == {desk.id, staff_member.id}
        assert [a.user_id for a in roles.get_user_roles(role_id=desk.id, is_active=True)] == [first.id]
        assert [a.user_id for a in roles.get_user_roles(role_id=desk.id, is_active=False)] == [second.id]

    def test_get_user_roles_by_organization(self, db_session, roles, desk, make_user, other_organization):
        outsider = make_user(organization_id=other_organization.id, property_id=None, department_id=None)
        ski = roles.create_role("Ski Instructor", organization_id=other_organization.id)
        service = PermissionService(db_session)
        service.assign_role(outsider.id, ski.id)
        service.assign_role(make_user().id, desk.id)

        assignments = roles.get_user_roles(organization_id=desk.organization_id)
        assert [a.role_id for a in assignments] == [desk.id]

    def test_bulk_assign_reports_each_user(self, db_session, roles, desk, make_user, other_organization):
        owner = make_user(LegacyRole.ORGANIZATION_OWNER, property_id=None, department_id=None)
        first, second = make_user(), make_user()
        outsider = make_user(organization_id=other_organization.id, property_id=None, department_id=None)
        service = RoleService(db_session, actor_id=owner.id)

        result = service.bulk_assign(desk.id, [first.id, second.id, outsider.id, 999, first.id],
                                     actor=Principal.from_user(owner), reason="front office")
        assert result["successful"] == [first.id, second.id]
        assert [f["user_id"] for f in result["failed"]] == [outsider.id, 999]
        assert result["summary"] == {"total": 4, "successful": 2, "failed": 2}
        assert roles.user_count(desk.id) == 2
        assignment = roles.get_user_roles(user_id=first.id)[0]
        assert assignment.assigned_by == owner.id
        assert PermissionService(db_session).evaluate(Principal.from_user(second), "guests.read.property").allowed

    def test_bulk_assign_refuses_global_role_for_tenant_admin(self, db_session, roles, make_user):
        owner = make_user(LegacyRole.ORGANIZATION_OWNER, property_id=None, department_id=None)
        staff = make_user()
        platform = roles.get_role_by_name("Platform Administrator", None)
        result = RoleService(db_session, actor_id=owner.id).bulk_assign(
            platform.id, [staff.id], actor=Principal.from_user(owner)
        )
        assert result["successful"] == []
        assert "platform administrator" in result["failed"][0]["error"]

    def test_bulk_remove(self, db_session, roles, desk, make_user):
        first, second = make_user(), make_user()
        PermissionService(db_session).assign_role(first.id, desk.id)
        result = roles.bulk_remove(desk.id, [first.id, second.id])
        assert result["successful"] == [first.id]
        assert result["failed"][0]["user_id"] == second.id
        assert roles.user_count(desk.id) == 0


class TestRoleStats:
    def test_counts(self, db_session, roles, organization, other_organization, make_user):
        service = PermissionService(db_session)
        desk = roles.create_role("Desk", organization_id=organization.id, priority=500)
        seasonal = roles.create_role("Seasonal", organization_id=organization.id)
        roles.update_role(seasonal.id, is_active=False)
        roles.create_role("Ski Instructor", organization_id=other_organization.id)
        staff_member = roles.get_role_by_name("Staff Member", None)

        first, second, third = make_user(), make_user(), make_user()
        service.assign_role(first.id, desk.id)
        service.assign_role(second.id, desk.id)
        service.assign_role(third.id, staff_member.id)
        service.assign_role(third.id, desk.id)
        service.unassign_role(third.id, desk.id)

        stats = roles.get_stats(organization.id)
        assert stats["total_roles"] == 7
        assert stats["active_roles"] == 6
        assert stats["system_roles"] == 5
        assert stats["custom_roles"] == 2
        assert stats["total_assignments"] == 3
        assert stats["assignments_by_role"] == {desk.id: 2, staff_member.id: 1}
        assert stats["assignments_by_level"]["Supervisor"] == 2
        assert stats["assignments_by_level"]["Staff"] == 1
        assert stats["assignments_by_level"]["Executive"] == 0
        assert len(stats["recent_assignments"]) == 3
        assert {a["role"] for a in stats["recent_assignments"]} == {"Desk", "Staff Member"}

    def test_priority_levels(self):
        assert priority_level(1000) == "Executive"
        assert priority_level(700) == "Management"
        assert priority_level(499) == "Senior Staff"
        assert priority_level(0) == "Staff"


class TestPermissionCatalog:
    def test_list_by_category(self, catalog):
        admin_perms = catalog.get_permissions("Administration")
        assert admin_perms
        assert all(p.category == "Administration" for p in admin_perms)

    def test_create_permission(self, catalog):
        perm = catalog.create_permission("spa", "book", "platform", "Book Spa", category="Wellness")
        assert perm.code == "spa.book.all"
        assert perm.is_system is False

    def test_duplicate_triple(self, catalog):
        with pytest.raises(ValueError, match="already exists"):
            catalog.create_permission("user", "read", "own", "Duplicate")

    def test_update_only_descriptive_fields(self, catalog):
        perm = catalog.create_permission("spa", "book", "own", "Book Spa")
        updated = catalog.update_permission(perm.id, name="Book Treatment", resource="gym")
        assert updated.name == "Book Treatment"
        assert updated.resource == "spa"

    def test_delete_system_permission(self, db_session, catalog):
        with pytest.raises(ValueError, match="System permission"):
            catalog.delete_permission(perm_id(db_session, "user.read.own"))

    def test_delete_refused_while_used_by_role(self, db_session, catalog, organization):
        perm = catalog.create_permission("spa", "book", "own", "Book Spa")
        RoleService(db_session).create_role("Spa", organization_id=organization.id, permission_ids=[perm.id])
        with pytest.raises(ValueError, match="still used"):
            catalog.delete_permission(perm.id)

    def test_delete_removes_user_overrides(self, db_session, catalog, make_user):
        user = make_user(LegacyRole.STAFF)
        perm = catalog.create_permission("spa", "book", "own", "Book Spa")
        PermissionService(db_session).grant_permission(user.id, permission_id=perm.id)

        catalog.delete_permission(perm.id)
        assert db_session.query(Permission).filter(Permission.id == perm.id).first() is None
        assert db_session.query(UserPermission).filter(UserPermission.user_id == user.id).count() == 0

    def test_missing_permission(self, catalog):
        with pytest.raises(LookupError):
            catalog.update_permission(999, name="x")
        with pytest.raises(LookupError):
            catalog.delete_permission(999)
