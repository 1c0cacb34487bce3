"""
Tenant service - organization / property / department access validation
"""
import logging
from typing import List

from sqlalchemy.orm import Session

from app.models.tenant import Department, Organization, Property, User
from core.security.legacy_roles import LegacyRole

logger = logging.getLogger(__name__)

ORGANIZATION_LEVEL_ROLES = (LegacyRole.ORGANIZATION_OWNER, LegacyRole.ORGANIZATION_ADMIN)
MULTI_DEPARTMENT_ROLES = ORGANIZATION_LEVEL_ROLES + (LegacyRole.PROPERTY_MANAGER,)


class TenantService:

    def __init__(self, db: Session):
        self.db = db

    def validate_organization_access(self, user: User, organization_id: int) -> bool:
        org = self.db.query(Organization).filter(
            Organization.id == organization_id, Organization.deleted_at.is_(None)
        ).first()
        if not org:
            logger.warning(f"Organization {organization_id} not found during access validation")
            return False
        if user.role == LegacyRole.PLATFORM_ADMIN:
            return True
        return user.organization_id is not None and user.organization_id == organization_id

    def validate_property_access(self, user: User, property_id: int) -> bool:
        prop = self.db.query(Property).filter(
            Property.id == property_id, Property.deleted_at.is_(None)
        ).first()
        if not prop:
            logger.warning(f"Property {property_id} not found during access validation")
            return False
        if user.role == LegacyRole.PLATFORM_ADMIN:
            return True
        if prop.organization_id != user.organization_id:
            return False
        if user.role in ORGANIZATION_LEVEL_ROLES:
            return True
        return user.property_id == property_id

    def validate_department_access(self, user: User, department_id: int) -> bool:
        department = self.db.query(Department).filter(
            Department.id == department_id, Department.deleted_at.is_(None)
        ).first()
        if not department:
            logger.warning(f"Department {department_id} not found during access validation")
            return False
        if user.role == LegacyRole.PLATFORM_ADMIN:
            return True

        if user.role in ORGANIZATION_LEVEL_ROLES:
            prop = self.db.query(Property).filter(Property.id == department.property_id).first()
            return prop is not None and prop.organization_id == user.organization_id
        if department.property_id != user.property_id:
            return False
        if user.role in MULTI_DEPARTMENT_ROLES:
            return True
        return user.department_id == department_id

    def get_available_properties(self, user: User) -> List[Property]:
        """Properties the user may switch to"""
        q = self.db.query(Property).filter(
            Property.is_active == True, Property.deleted_at.is_(None)
        )
        if user.role == LegacyRole.PLATFORM_ADMIN:
            return q.order_by(Property.name).all()
        if user.organization_id is None:
            return []
        if user.role in ORGANIZATION_LEVEL_ROLES:
            return q.filter(Property.organization_id == user.organization_id).order_by(Property.name).all()
        if user.property_id is None:
            return []
        return q.filter(Property.id == user.property_id).all()
