# ORM Models
from app.models.tenant import Organization, Property, Department, User
from app.models.rbac import (
    Permission, PermissionCondition, CustomRole, RolePermission,
    UserCustomRole, UserPermission, PermissionCache, PERMISSION_TABLES,
)
from app.models.audit import AuditLog

__all__ = [
    'Organization', 'Property', 'Department', 'User',
    'Permission', 'PermissionCondition', 'CustomRole', 'RolePermission',
    'UserCustomRole', 'UserPermission', 'PermissionCache', 'PERMISSION_TABLES',
    'AuditLog',
]
