# API Routers
from app.routers import auth, permissions, roles, system_roles

__all__ = ['auth', 'permissions', 'roles', 'system_roles']
