"""
Permission codes required by the API routes

Codes are `resource.action.scope`; see core.security.permission.
"""

# Permission administration
PERMISSION_READ = "permission.read.organization"
PERMISSION_GRANT = "permission.grant.organization"
PERMISSION_REVOKE = "permission.revoke.organization"
PERMISSION_MANAGE = "permission.manage.all"

# Custom roles
ROLE_READ = "role.read.organization"
ROLE_CREATE = "role.create.organization"
ROLE_UPDATE = "role.update.organization"
ROLE_DELETE = "role.delete.organization"
ROLE_ASSIGN = "role.assign.organization"

# System
SYSTEM_READ = "system.read.all"
SYSTEM_MANAGE = "system.manage.all"
