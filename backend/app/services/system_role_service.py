"""
System role service - legacy enum roles: catalog, statistics, assignment
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.database import utcnow
from app.models.audit import AuditLog
from app.models.tenant import User
from app.services.audit_service import AuditService
from app.services.exceptions import AccessDenied
from app.services.permission_service import PermissionService
from core.security.legacy_roles import (
    LegacyRole, assignable_roles, can_assign_role, legacy_patterns, role_info,
)

logger = logging.getLogger(__name__)

ROLE_ASSIGNMENT = "ROLE_ASSIGNMENT"


class SystemRoleService:

    def __init__(self, db: Session, current_user: User):
        self.db = db
        self.current_user = current_user
        self.permissions = PermissionService(db)

    def _tenant_filtered_users(self):
        q = self.db.query(User).filter(User.deleted_at.is_(None))
        if self.current_user.role != LegacyRole.PLATFORM_ADMIN and self.current_user.organization_id:
            q = q.filter(User.organization_id == self.current_user.organization_id)
        return q

    def _role_counts(self) -> Dict[str, int]:
        rows = self._tenant_filtered_users().with_entities(User.role, func.count(User.id)).group_by(User.role).all()
        return {(r.value if isinstance(r, LegacyRole) else str(r)): c for r, c in rows}

    def _describe(self, role: LegacyRole, counts: Dict[str, int], assignable) -> Dict[str, Any]:
        return {
            "role": role.value,
            **role_info(role).to_dict(),
            "user_count": counts.get(role.value, 0),
            "assignable": role in assignable,
        }

    def list_roles(self) -> List[Dict[str, Any]]:
        counts = self._role_counts()
        assignable = assignable_roles(self.current_user.role)
        return [self._describe(role, counts, assignable) for role in LegacyRole]

    def get_role(self, role: LegacyRole) -> Dict[str, Any]:
        return self._describe(role, self._role_counts(), assignable_roles(self.current_user.role))

    def preview_permissions(self, role: LegacyRole) -> Dict[str, Any]:
        return {
            "role": role.value,
            "info": role_info(role).to_dict(),
            "permissions": sorted(str(k) for k in legacy_patterns(role)),
        }

    def get_users_by_role(self, role: LegacyRole) -> List[User]:
        q = self._tenant_filtered_users().filter(User.role == role)
        if self.current_user.role in (LegacyRole.PROPERTY_MANAGER, LegacyRole.DEPARTMENT_ADMIN) \
                and self.current_user.property_id:
            q = q.filter(User.property_id == self.current_user.property_id)
        return q.order_by(User.last_name, User.first_name).all()

    def _target_user(self, user_id: int) -> User:
        """A live user the caller may manage (same organization unless platform admin)"""
        target = self.db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
        if not target:
            raise LookupError(f"User with ID {user_id} not found")
        if self.current_user.role != LegacyRole.PLATFORM_ADMIN \
                and target.organization_id != self.current_user.organization_id:
            raise AccessDenied("Access denied to user from different organization")
        return target

    def assign_role(self, user_id: int, role: LegacyRole, reason: str = None) -> User:
        """
        Set a user's legacy role

        Raises:
            LookupError: target user missing
            AccessDenied: target in another organization, or the caller's role cannot assign `role`
            ValueError: a user tries to raise their own role
        """
        actor = self.current_user
        target = self._target_user(user_id)

        if target.id == actor.id and role_info(role).level > role_info(actor.role).level:
            raise ValueError("You cannot assign yourself a role higher than your current role")

        if not can_assign_role(actor.role, role):
            raise AccessDenied(
                f"You cannot assign role {role.value}. Your role {actor.role.value} "
                f"does not have sufficient privileges."
            )

        old_role = target.role
        target.role = role
        self.db.flush()

        self.permissions.clear_user_cache(target.id)
        AuditService(self.db).log(
            ROLE_ASSIGNMENT, "User", target.id, actor_id=actor.id,
            old_values={"role": old_role.value if old_role else None},
            new_values={"role": role.value, "reason": reason},
        )
        logger.info(f"Role {role.value} assigned to user {target.id} by {actor.id}")
        return target

    def get_statistics(self) -> Dict[str, Any]:
        counts = self._role_counts()
        total = sum(counts.values())
        since = utcnow() - timedelta(days=30)
        recent = self.db.query(AuditLog).filter(
            AuditLog.action == ROLE_ASSIGNMENT,
            AuditLog.entity == "User",
            AuditLog.created_at >= since,
        ).count()
        return {
            "total_users": total,
            "role_distribution": [
                {
                    "role": role,
                    "count": count,
                    "percentage": round(count * 100 / total) if total else 0,
                }
                for role, count in sorted(counts.items())
            ],
            "recent_role_changes": recent,
        }

    def bulk_assign_roles(self, assignments: List[Dict[str, Any]], reason: str = None) -> Dict[str, Any]:
        """
        Assign legacy roles one user at a time; a failing item does not stop the rest

        Each assignment is a mapping with user_id, role and an optional reason
        that overrides the batch reason.
        """
        logger.debug(f"Bulk assigning roles for {len(assignments)} users")
        successful: List[User] = []
        failed: List[Dict[str, Any]] = []
        for item in assignments:
            try:
                user = self.assign_role(item["user_id"], LegacyRole(item["role"]),
                                        item.get("reason") or reason)
            except (LookupError, ValueError, AccessDenied) as e:
                logger.error(f"Failed to assign role to user {item.get('user_id')}: {e}")
                failed.append({"user_id": item.get("user_id"), "error": str(e)})
                continue
            successful.append(user)
        return {"successful": successful, "failed": failed}

    def get_user_role_history(self, user_id: int, limit: int = 50) -> List[AuditLog]:
        """Legacy role changes of one user, newest first"""
        self._target_user(user_id)
        return AuditService(self.db).get_history(
            entity="User", entity_id=user_id, actions=[ROLE_ASSIGNMENT], limit=limit,
        )
