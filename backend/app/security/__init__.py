# Security module
from app.security.auth import (
    get_password_hash, verify_password, create_access_token, decode_token,
    get_current_user, get_principal, require_roles, require_permission,
    permission_scope, require_tenant_access,
)

__all__ = [
    'get_password_hash', 'verify_password', 'create_access_token', 'decode_token',
    'get_current_user', 'get_principal', 'require_roles', 'require_permission',
    'permission_scope', 'require_tenant_access',
]
