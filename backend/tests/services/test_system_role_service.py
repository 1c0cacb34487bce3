"""
Tests for app.services.system_role_service - legacy enum roles
"""
from datetime import timedelta

import pytest

from app.database import utcnow
from app.models.audit import AuditLog
from app.models.tenant import User
from app.services.exceptions import AccessDenied
from app.services.permission_service import PermissionService, get_memory_cache
from app.services.system_role_service import SystemRoleService
from core.security.legacy_roles import LegacyRole


@pytest.fixture
def manager(make_user):
    return make_user(LegacyRole.PROPERTY_MANAGER)


class TestListRoles:
    def test_every_role_is_listed(self, db_session, manager, make_user):
        make_user(LegacyRole.STAFF)
        make_user(LegacyRole.STAFF)
        roles = SystemRoleService(db_session, manager).list_roles()

        assert [r["role"] for r in roles] == [r.value for r in LegacyRole]
        by_role = {r["role"]: r for r in roles}
        assert by_role["STAFF"]["user_count"] == 2
        assert by_role["PROPERTY_MANAGER"]["user_count"] == 1
        assert by_role["STAFF"]["assignable"] is True
        assert by_role["ORGANIZATION_ADMIN"]["assignable"] is False
        assert by_role["PLATFORM_ADMIN"]["level"] == 10

    def test_counts_are_tenant_filtered(self, db_session, manager, make_user, other_organization):
        make_user(LegacyRole.STAFF, organization_id=other_organization.id,
                  property_id=None, department_id=None)
        role = SystemRoleService(db_session, manager).get_role(LegacyRole.STAFF)
        assert role["user_count"] == 0

    def test_preview_permissions(self, db_session, manager):
        preview = SystemRoleService(db_session, manager).preview_permissions(LegacyRole.CLIENT)
        assert preview["role"] == "CLIENT"
        assert "portal.access.own" in preview["permissions"]
        assert preview["info"]["user_type"] == "CLIENT"

    def test_users_by_role(self, db_session, manager, make_user):
        staff = make_user(LegacyRole.STAFF)
        users = SystemRoleService(db_session, manager).get_users_by_role(LegacyRole.STAFF)
        assert users == [staff]


class TestAssignRole:
    def test_assign(self, db_session, manager, make_user):
        staff = make_user(LegacyRole.STAFF)
        user = SystemRoleService(db_session, manager).assign_role(
            staff.id, LegacyRole.VENDOR, reason="contractor"
        )
        assert user.role == LegacyRole.VENDOR
        entry = db_session.query(AuditLog).filter(AuditLog.action == "ROLE_ASSIGNMENT").one()
        assert entry.old_values == {"role": "STAFF"}
        assert entry.new_values == {"role": "VENDOR", "reason": "contractor"}

    def test_cannot_assign_higher_role(self, db_session, manager, make_user):
        staff = make_user(LegacyRole.STAFF)
        with pytest.raises(AccessDenied, match="cannot assign role ORGANIZATION_OWNER"):
            SystemRoleService(db_session, manager).assign_role(staff.id, LegacyRole.ORGANIZATION_OWNER)

    def test_missing_user(self, db_session, manager):
        with pytest.raises(LookupError):
            SystemRoleService(db_session, manager).assign_role(999, LegacyRole.STAFF)

    def test_no_self_elevation(self, db_session, manager):
        with pytest.raises(ValueError, match="higher than your current role"):
            SystemRoleService(db_session, manager).assign_role(manager.id, LegacyRole.ORGANIZATION_OWNER)

    def test_self_demotion_is_allowed(self, db_session, make_user):
        admin = make_user(LegacyRole.PLATFORM_ADMIN)
        user = SystemRoleService(db_session, admin).assign_role(admin.id, LegacyRole.STAFF)
        assert user.role == LegacyRole.STAFF

    def test_assignment_survives_commit(self, db_session, manager, make_user):
        staff = make_user(LegacyRole.STAFF)
        SystemRoleService(db_session, manager).assign_role(staff.id, LegacyRole.VENDOR)
        db_session.commit()
        db_session.expire_all()
        assert db_session.get(User, staff.id).role == LegacyRole.VENDOR
        assert db_session.query(AuditLog).filter(AuditLog.action == "ROLE_ASSIGNMENT").count() == 1

    def test_other_organization_is_refused(self, db_session, manager, make_user, other_organization):
        outsider = make_user(LegacyRole.STAFF, organization_id=other_organization.id,
                             property_id=None, department_id=None)
        with pytest.raises(AccessDenied, match="different organization"):
            SystemRoleService(db_session, manager).assign_role(outsider.id, LegacyRole.VENDOR)
        db_session.refresh(outsider)
        assert outsider.role == LegacyRole.STAFF

    def test_platform_admin_crosses_organizations(self, db_session, make_user, other_organization):
        admin = make_user(LegacyRole.PLATFORM_ADMIN)
        outsider = make_user(LegacyRole.STAFF, organization_id=other_organization.id,
                             property_id=None, department_id=None)
        user = SystemRoleService(db_session, admin).assign_role(outsider.id, LegacyRole.VENDOR)
        assert user.role == LegacyRole.VENDOR

    def test_assignment_clears_cache(self, db_session, manager, make_user):
        staff = make_user(LegacyRole.STAFF)
        PermissionService(db_session).get_effective_permissions(staff.id)
        assert f"user:{staff.id}:effective" in get_memory_cache()

        SystemRoleService(db_session, manager).assign_role(staff.id, LegacyRole.CLIENT)
        assert f"user:{staff.id}:effective" not in get_memory_cache()


class TestStatistics:
    def test_statistics(self, db_session, manager, make_user):
        staff = make_user(LegacyRole.STAFF)
        make_user(LegacyRole.STAFF)
        make_user(LegacyRole.STAFF)
        service = SystemRoleService(db_session, manager)
        service.assign_role(staff.id, LegacyRole.CLIENT)

        stats = service.get_statistics()
        assert stats["total_users"] == 4
        distribution = {d["role"]: d for d in stats["role_distribution"]}
        assert distribution["STAFF"] == {"role": "STAFF", "count": 2, "percentage": 50}
        assert distribution["CLIENT"]["count"] == 1
        assert stats["recent_role_changes"] == 1

    def test_old_changes_are_not_recent(self, db_session, manager, make_user):
        staff = make_user(LegacyRole.STAFF)
        service = SystemRoleService(db_session, manager)
        service.assign_role(staff.id, LegacyRole.CLIENT)
        db_session.query(AuditLog).update({"created_at": utcnow() - timedelta(days=31)})
        assert service.get_statistics()["recent_role_changes"] == 0


class TestBulkAssign:
    def test_failures_do_not_stop_the_batch(self, db_session, manager, make_user, other_organization):
        first = make_user(LegacyRole.STAFF)
        second = make_user(LegacyRole.STAFF)
        outsider = make_user(LegacyRole.STAFF, organization_id=other_organization.id,
                             property_id=None, department_id=None)
        result = SystemRoleService(db_session, manager).bulk_assign_roles([
            {"user_id": first.id, "role": LegacyRole.VENDOR},
            {"user_id": 999, "role": LegacyRole.VENDOR},
            {"user_id": second.id, "role": LegacyRole.ORGANIZATION_OWNER},
            {"user_id": outsider.id, "role": LegacyRole.VENDOR},
            {"user_id": second.id, "role": "CLIENT", "reason": "guest account"},
        ], reason="season start")

        assert [u.id for u in result["successful"]] == [first.id, second.id]
        assert [f["user_id"] for f in result["failed"]] == [999, second.id, outsider.id]
        assert "cannot assign role ORGANIZATION_OWNER" in result["failed"][1]["error"]
        assert second.role == LegacyRole.CLIENT

        reasons = [e.new_values["reason"] for e in
                   db_session.query(AuditLog).filter(AuditLog.action == "ROLE_ASSIGNMENT").order_by(AuditLog.id)]
        assert reasons == ["season start", "guest account"]

    def test_unknown_role_is_reported(self, db_session, manager, make_user):
        staff = make_user(LegacyRole.STAFF)
        result = SystemRoleService(db_session, manager).bulk_assign_roles(
            [{"user_id": staff.id, "role": "CONCIERGE"}]
        )
        assert result["successful"] == []
        assert result["failed"][0]["user_id"] == staff.id


class TestRoleHistory:
    def test_newest_first(self, db_session, manager, make_user):
        staff = make_user(LegacyRole.STAFF)
        service = SystemRoleService(db_session, manager)
        service.assign_role(staff.id, LegacyRole.VENDOR)
        service.assign_role(staff.id, LegacyRole.CLIENT)

        history = service.get_user_role_history(staff.id)
        assert [e.new_values["role"] for e in history] == ["CLIENT", "VENDOR"]
        assert all(e.actor_id == manager.id for e in history)
        assert service.get_user_role_history(staff.id, limit=1)[0].new_values["role"] == "CLIENT"

    def test_other_organization_is_refused(self, db_session, manager, make_user, other_organization):
        outsider = make_user(LegacyRole.STAFF, organization_id=other_organization.id,
                             property_id=None, department_id=None)
        with pytest.raises(AccessDenied):
            SystemRoleService(db_session, manager).get_user_role_history(outsider.id)

    def test_missing_user(self, db_session, manager):
        with pytest.raises(LookupError):
            SystemRoleService(db_session, manager).get_user_role_history(999)
