"""
Tests for AuditService
"""
from app.models.audit import AuditLog
from app.services.audit_service import AuditService
from app.services.permission_service import PermissionService


class TestAuditLog:
    def test_log_entry(self, db_session, staff_user):
        entry = AuditService(db_session).log(
            "ROLE_CREATED", "CustomRole", 7, actor_id=staff_user.id,
            new_values={"name": "Night Audit"},
        )
        assert entry.id is not None
        assert entry.created_at is not None
        assert entry.old_values is None
        assert entry.new_values == {"name": "Night Audit"}

    def test_system_actor(self, db_session):
        entry = AuditService(db_session).log("PERMISSION_CREATED", "Permission", 1)
        assert entry.actor_id is None

    def test_permission_changes_are_audited(self, db_session, seeded_catalog, staff_user, org_owner):
        service = PermissionService(db_session)
        service.grant_permission(staff_user.id, permission="vacation.approve.department",
                                 granted_by=org_owner.id, reason="shift lead")
        service.revoke_permission(staff_user.id, permission="vacation.approve.department",
                                  revoked_by=org_owner.id)

        actions = [e.action for e in db_session.query(AuditLog).order_by(AuditLog.id)]
        assert actions == ["PERMISSION_GRANTED", "PERMISSION_REVOKED"]
        revoked = db_session.query(AuditLog).filter(AuditLog.action == "PERMISSION_REVOKED").one()
        assert revoked.actor_id == org_owner.id
        assert revoked.old_values == {"granted": True, "is_active": True}
        assert revoked.new_values["permission"] == "vacation.approve.department"
