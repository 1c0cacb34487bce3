"""
Role service - custom role management + permission catalog management
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.models.rbac import CustomRole, Permission, RolePermission, UserCustomRole, UserPermission
from app.models.tenant import User
from app.services.audit_service import AuditService
from app.services.exceptions import AccessDenied
from app.services.permission_service import PermissionService
from core.security.context import Principal
from core.security.legacy_roles import LegacyRole
from core.security.permission import PermissionKey
from core.security.scope import canonical_scope

logger = logging.getLogger(__name__)

# priority floor -> level label
PRIORITY_LEVELS = (
    (900, "Executive"),
    (700, "Management"),
    (500, "Supervisor"),
    (300, "Senior Staff"),
)


def priority_level(priority: int) -> str:
    for floor, label in PRIORITY_LEVELS:
        if priority >= floor:
            return label
    return "Staff"


class RoleService:
    """Custom role management"""

    def __init__(self, db: Session, actor_id: Optional[int] = None):
        self.db = db
        self.actor_id = actor_id
        self.permissions = PermissionService(db)

    def get_roles(self, organization_id: Optional[int] = None,
                  include_inactive: bool = False) -> List[CustomRole]:
        """Roles of an organization plus the global system roles"""
        q = self.db.query(CustomRole)
        if organization_id is not None:
            q = q.filter(or_(
                CustomRole.organization_id == organization_id,
                CustomRole.organization_id.is_(None),
            ))
        if not include_inactive:
            q = q.filter(CustomRole.is_active == True)
        return q.order_by(CustomRole.priority.desc(), CustomRole.id).all()

    def get_role_by_id(self, role_id: int) -> Optional[CustomRole]:
        return self.db.query(CustomRole).filter(CustomRole.id == role_id).first()

    def get_role_by_name(self, name: str, organization_id: Optional[int]) -> Optional[CustomRole]:
        q = self.db.query(CustomRole).filter(CustomRole.name == name)
        if organization_id is None:
            q = q.filter(CustomRole.organization_id.is_(None))
        else:
            q = q.filter(CustomRole.organization_id == organization_id)
        return q.first()

    def _require_role(self, role_id: int) -> CustomRole:
        role = self.get_role_by_id(role_id)
        if not role:
            raise LookupError(f"Role {role_id} not found")
        return role

    def create_role(self, name: str, organization_id: Optional[int] = None,
                    description: str = "", property_id: Optional[int] = None,
                    priority: int = 0, permission_ids: Optional[List[int]] = None) -> CustomRole:
        if self.get_role_by_name(name, organization_id):
            raise ValueError(f"Role '{name}' already exists in this organization")

        role = CustomRole(
            name=name, organization_id=organization_id, property_id=property_id,
            description=description, priority=priority, created_by=self.actor_id,
        )
        self.db.add(role)
        self.db.flush()
        if permission_ids:
            self.assign_permissions(role.id, permission_ids)

        AuditService(self.db).log(
            "ROLE_CREATED", "CustomRole", role.id, actor_id=self.actor_id,
            new_values={"name": name, "organization_id": organization_id},
        )
        return role

    def update_role(self, role_id: int, **kwargs) -> CustomRole:
        role = self._require_role(role_id)

        new_name = kwargs.get("name")
        if new_name and new_name != role.name:
            if self.get_role_by_name(new_name, role.organization_id):
                raise ValueError(f"Role '{new_name}' already exists in this organization")

        old_values = {}
        for key, value in kwargs.items():
            if key in ("name", "description", "priority", "is_active") and value is not None:
                old_values[key] = getattr(role, key)
                setattr(role, key, value)

        self.db.flush()
        if "is_active" in old_values:
            self._invalidate_holders(role_id)
        AuditService(self.db).log(
            "ROLE_UPDATED", "CustomRole", role.id, actor_id=self.actor_id,
            old_values=old_values, new_values={k: kwargs[k] for k in old_values},
        )
        return role

    def delete_role(self, role_id: int) -> None:
        role = self._require_role(role_id)
        if role.is_system_role:
            raise ValueError(f"System role '{role.name}' cannot be deleted")

        holders = self._holder_ids(role_id)
        # role_permissions and user_roles go with the role (ORM cascade)
        self.db.delete(role)
        self.db.flush()

        self._invalidate_users(holders)
        AuditService(self.db).log(
            "ROLE_DELETED", "CustomRole", role_id, actor_id=self.actor_id,
            old_values={"name": role.name},
        )

    # ===== Role permissions =====

    def get_role_permissions(self, role_id: int) -> List[Permission]:
        return self._require_role(role_id).permissions

    def assign_permissions(self, role_id: int, permission_ids: List[int]) -> None:
        """Replace all permissions for a role"""
        self._require_role(role_id)
        self._check_permission_ids(permission_ids)

        self.db.query(RolePermission).filter(RolePermission.role_id == role_id).delete()
        for pid in dict.fromkeys(permission_ids):
            self.db.add(RolePermission(role_id=role_id, permission_id=pid, granted=True))
        self.db.flush()
        self.db.expire_all()
        self._invalidate_holders(role_id)

    def add_permission(self, role_id: int, permission_id: int) -> None:
        role = self._require_role(role_id)
        self._check_permission_ids([permission_id])
        existing = self.db.query(RolePermission).filter(
            RolePermission.role_id == role_id,
            RolePermission.permission_id == permission_id,
        ).first()
        if not existing:
            role.role_permissions.append(RolePermission(permission_id=permission_id, granted=True))
            self.db.flush()
            self._invalidate_holders(role_id)

    def remove_permission(self, role_id: int, permission_id: int) -> None:
        removed = self.db.query(RolePermission).filter(
            RolePermission.role_id == role_id,
            RolePermission.permission_id == permission_id,
        ).delete()
        self.db.flush()
        self.db.expire_all()
        if removed:
            self._invalidate_holders(role_id)

    def _check_permission_ids(self, permission_ids: List[int]) -> None:
        if not permission_ids:
            return
        found = {
            pid for (pid,) in self.db.query(Permission.id).filter(Permission.id.in_(permission_ids))
        }
        missing = sorted(set(permission_ids) - found)
        if missing:
            raise ValueError(f"Unknown permission ids: {missing}")

    # ===== Cache invalidation =====

    def _holder_ids(self, role_id: int) -> List[int]:
        return [
            uid for (uid,) in self.db.query(UserCustomRole.user_id).filter(
                UserCustomRole.role_id == role_id
            )
        ]

    def _invalidate_users(self, user_ids: List[int]) -> None:
        for uid in user_ids:
            self.permissions.clear_user_cache(uid)

    def _invalidate_holders(self, role_id: int) -> None:
        self._invalidate_users(self._holder_ids(role_id))

    # ===== Counts =====

    def user_count(self, role_id: int) -> int:
        return self.db.query(UserCustomRole).filter(
            UserCustomRole.role_id == role_id,
            UserCustomRole.is_active == True,
        ).count()

    # ===== Assignments =====

    def get_user_roles(self, user_id: Optional[int] = None, role_id: Optional[int] = None,
                       organization_id: Optional[int] = None,
                       is_active: Optional[bool] = None) -> List[UserCustomRole]:
        """Role assignments, newest first; organization_id keeps its roles plus the global ones"""
        q = self.db.query(UserCustomRole).join(CustomRole)
        if user_id is not None:
            q = q.filter(UserCustomRole.user_id == user_id)
        if role_id is not None:
            q = q.filter(UserCustomRole.role_id == role_id)
        if organization_id is not None:
            q = q.filter(or_(
                CustomRole.organization_id == organization_id,
                CustomRole.organization_id.is_(None),
            ))
        if is_active is not None:
            q = q.filter(UserCustomRole.is_active == is_active)
        return q.order_by(UserCustomRole.created_at.desc(), UserCustomRole.id.desc()).all()

    def _check_target(self, actor: Optional[Principal], user_id: int) -> None:
        if actor is None or actor.role == LegacyRole.PLATFORM_ADMIN.value:
            return
        user = self.db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
        if user is not None and user.organization_id != actor.organization_id:
            raise AccessDenied("Access denied: user belongs to another organization")

    def bulk_assign(self, role_id: int, user_ids: List[int], actor: Optional[Principal] = None,
                    reason: Optional[str] = None) -> Dict[str, Any]:
        """Assign one role to many users; failures are reported per user"""
        def assign(uid):
            self._check_target(actor, uid)
            self.permissions.assign_role(uid, role_id, assigned_by=self.actor_id,
                                         reason=reason, actor=actor)
        return self._for_each_user(user_ids, assign, "assign")

    def bulk_remove(self, role_id: int, user_ids: List[int], actor: Optional[Principal] = None,
                    reason: Optional[str] = None) -> Dict[str, Any]:
        def remove(uid):
            self._check_target(actor, uid)
            self.permissions.unassign_role(uid, role_id, unassigned_by=self.actor_id, reason=reason)
        return self._for_each_user(user_ids, remove, "remove")

    def _for_each_user(self, user_ids: List[int], action, verb: str) -> Dict[str, Any]:
        successful: List[int] = []
        failed: List[Dict[str, Any]] = []
        for uid in dict.fromkeys(user_ids):
            try:
                action(uid)
            except (LookupError, ValueError, AccessDenied) as e:
                logger.error(f"Bulk role {verb} failed for user {uid}: {e}")
                failed.append({"user_id": uid, "error": str(e)})
                continue
            successful.append(uid)
        return {
            "successful": successful,
            "failed": failed,
            "summary": {"total": len(successful) + len(failed),
                        "successful": len(successful), "failed": len(failed)},
        }

    # ===== Statistics =====

    def get_stats(self, organization_id: Optional[int] = None) -> Dict[str, Any]:
        """Role and assignment counts, by role and by priority level"""
        roles = self.get_roles(organization_id, include_inactive=True)
        role_ids = [r.id for r in roles]
        counts = dict(
            self.db.query(UserCustomRole.role_id, func.count(UserCustomRole.id)).filter(
                UserCustomRole.role_id.in_(role_ids),
                UserCustomRole.is_active == True,
            ).group_by(UserCustomRole.role_id).all()
        ) if role_ids else {}

        by_level: Dict[str, int] = {}
        for role in roles:
            level = priority_level(role.priority or 0)
            by_level[level] = by_level.get(level, 0) + counts.get(role.id, 0)

        recent = [
            {
                "id": a.id,
                "user_id": a.user_id,
                "role_id": a.role_id,
                "role": a.role.name,
                "assigned_by": a.assigned_by,
                "assigned_at": a.created_at,
            }
            for a in self.get_user_roles(organization_id=organization_id, is_active=True)[:10]
        ]
        return {
            "total_roles": len(roles),
            "active_roles": sum(1 for r in roles if r.is_active),
            "system_roles": sum(1 for r in roles if r.is_system_role),
            "custom_roles": sum(1 for r in roles if not r.is_system_role),
            "total_assignments": sum(counts.values()),
            "assignments_by_role": counts,
            "assignments_by_level": by_level,
            "recent_assignments": recent,
        }


class PermissionCatalogService:
    """Permission catalog management"""

    def __init__(self, db: Session, actor_id: Optional[int] = None):
        self.db = db
        self.actor_id = actor_id

    def get_permissions(self, category: Optional[str] = None) -> List[Permission]:
        q = self.db.query(Permission)
        if category:
            q = q.filter(Permission.category == category)
        return q.order_by(Permission.category, Permission.resource, Permission.action, Permission.id).all()

    def get_permission_by_id(self, perm_id: int) -> Optional[Permission]:
        return self.db.query(Permission).filter(Permission.id == perm_id).first()

    def create_permission(self, resource: str, action: str, scope: str, name: str,
                          description: Optional[str] = None,
                          category: Optional[str] = None) -> Permission:
        key = PermissionKey.parse(f"{resource}.{action}.{canonical_scope(scope)}")
        existing = self.db.query(Permission).filter(
            Permission.resource == key.resource,
            Permission.action == key.action,
            Permission.scope == key.scope,
        ).first()
        if existing:
            raise ValueError(f"Permission '{key}' already exists")

        perm = Permission(
            resource=key.resource, action=key.action, scope=key.scope,
            name=name, description=description, category=category, is_system=False,
        )
        self.db.add(perm)
        self.db.flush()
        AuditService(self.db).log(
            "PERMISSION_CREATED", "Permission", perm.id, actor_id=self.actor_id,
            new_values={"permission": str(key), "name": name},
        )
        return perm

    def update_permission(self, perm_id: int, **kwargs) -> Permission:
        """Only descriptive fields change; the triple is immutable"""
        perm = self.get_permission_by_id(perm_id)
        if not perm:
            raise LookupError(f"Permission {perm_id} not found")

        for key, value in kwargs.items():
            if key in ("name", "description", "category") and value is not None:
                setattr(perm, key, value)
        self.db.flush()
        return perm

    def delete_permission(self, perm_id: int) -> None:
        perm = self.get_permission_by_id(perm_id)
        if not perm:
            raise LookupError(f"Permission {perm_id} not found")
        if perm.is_system:
            raise ValueError(f"System permission '{perm.code}' cannot be deleted")

        role_count = self.db.query(RolePermission).filter(
            RolePermission.permission_id == perm_id
        ).count()
        if role_count > 0:
            raise ValueError(
                f"Permission '{perm.code}' is still used by {role_count} role(s), remove it from them first"
            )

        holders = [
            uid for (uid,) in self.db.query(UserPermission.user_id).filter(
                UserPermission.permission_id == perm_id
            )
        ]
        self.db.query(UserPermission).filter(UserPermission.permission_id == perm_id).delete()
        self.db.delete(perm)
        self.db.flush()

        svc = PermissionService(self.db)
        for uid in holders:
            svc.clear_user_cache(uid)
        AuditService(self.db).log(
            "PERMISSION_DELETED", "Permission", perm_id, actor_id=self.actor_id,
            old_values={"permission": perm.code},
        )
