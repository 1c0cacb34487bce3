"""
Audit service - records permission and role changes and reads them back
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.models.audit import AuditLog

logger = logging.getLogger(__name__)

ROLE_ASSIGNMENT_ACTIONS = ("ROLE_ASSIGNED", "ROLE_UNASSIGNED")
PERMISSION_ACTIONS = ("PERMISSION_GRANTED", "PERMISSION_DENIED", "PERMISSION_REVOKED")


class AuditService:

    def __init__(self, db: Session):
        self.db = db

    def log(self, action: str, entity: str, entity_id: Optional[int] = None,
            actor_id: Optional[int] = None,
            old_values: Optional[Dict[str, Any]] = None,
            new_values: Optional[Dict[str, Any]] = None) -> AuditLog:
        entry = AuditLog(
            actor_id=actor_id,
            action=action,
            entity=entity,
            entity_id=entity_id,
            old_values=old_values,
            new_values=new_values,
        )
        self.db.add(entry)
        self.db.flush()
        logger.info(f"audit: {action} {entity}#{entity_id} by user {actor_id}")
        return entry

    # ===== Reads =====

    def get_history(self, entity: Optional[str] = None, entity_id: Optional[int] = None,
                    actor_id: Optional[int] = None, actions: Optional[Iterable[str]] = None,
                    limit: int = 50) -> List[AuditLog]:
        """Entries newest first"""
        q = self.db.query(AuditLog)
        if entity is not None:
            q = q.filter(AuditLog.entity == entity)
        if entity_id is not None:
            q = q.filter(AuditLog.entity_id == entity_id)
        if actor_id is not None:
            q = q.filter(AuditLog.actor_id == actor_id)
        if actions:
            q = q.filter(AuditLog.action.in_(list(actions)))
        return q.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()

    def get_changes_for(self, field: str, value: int, entity: str,
                        actions: Iterable[str], limit: int = 50) -> List[AuditLog]:
        """Entries whose new values reference `value` under `field` (e.g. user_id)"""
        return self.db.query(AuditLog).filter(
            AuditLog.entity == entity,
            AuditLog.action.in_(list(actions)),
            AuditLog.new_values[field].as_integer() == value,
        ).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()

    def get_user_role_history(self, user_id: int, limit: int = 50) -> List[AuditLog]:
        """Custom role assignments and removals of one user"""
        return self.get_changes_for("user_id", user_id, "UserCustomRole", ROLE_ASSIGNMENT_ACTIONS, limit)

    def get_user_permission_history(self, user_id: int, limit: int = 50) -> List[AuditLog]:
        """Direct grants, denials and revocations of one user"""
        return self.get_changes_for("user_id", user_id, "UserPermission", PERMISSION_ACTIONS, limit)

    def get_role_history(self, role_id: int, limit: int = 50) -> List[AuditLog]:
        """Changes to a custom role and to its user assignments, newest first"""
        entries = self.get_history(entity="CustomRole", entity_id=role_id, limit=limit)
        entries += self.get_changes_for("role_id", role_id, "UserCustomRole", ROLE_ASSIGNMENT_ACTIONS, limit)
        entries.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return entries[:limit]

    def get_user_access_history(self, user_id: int, limit: int = 50) -> List[AuditLog]:
        """Direct permission and custom role changes of one user, newest first"""
        entries = self.get_user_permission_history(user_id, limit) + self.get_user_role_history(user_id, limit)
        entries.sort(key=lambda e: (e.created_at, e.id), reverse=True)
        return entries[:limit]
