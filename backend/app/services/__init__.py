# Business Services
from app.services.audit_service import AuditService
from app.services.permission_service import PermissionService
from app.services.role_service import RoleService, PermissionCatalogService
from app.services.system_role_service import SystemRoleService
from app.services.tenant_service import TenantService

__all__ = [
    'AuditService', 'PermissionService', 'RoleService', 'PermissionCatalogService',
    'SystemRoleService', 'TenantService',
]
