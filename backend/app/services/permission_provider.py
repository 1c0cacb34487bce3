"""
RBACPermissionProvider - app-layer implementation of IPermissionProvider

Resolves permissions through PermissionService with bounded per-user TTL caches.
"""
import time
from typing import Callable, List, Optional, Set

from app.config import settings
from core.security.cache import TTLCache
from core.security.permission import IPermissionProvider, PermissionKey, matches
from app.services.permission_service import PermissionService


class RBACPermissionProvider(IPermissionProvider):
    """Database-backed RBAC permission provider"""

    def __init__(self, db_session_factory, ttl_seconds: Optional[float] = None,
                 max_size: Optional[int] = None, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            db_session_factory: callable that returns a new DB session
            ttl_seconds: cache entry lifetime, PERMISSION_MEMORY_CACHE_TTL by default
            max_size: cached users per cache, PERMISSION_MAX_CACHE_SIZE by default
        """
        self._db_session_factory = db_session_factory
        ttl = settings.PERMISSION_MEMORY_CACHE_TTL if ttl_seconds is None else ttl_seconds
        size = settings.PERMISSION_MAX_CACHE_SIZE if max_size is None else max_size
        self._permission_cache = TTLCache(ttl_seconds=ttl, max_size=size, clock=clock)
        self._role_cache = TTLCache(ttl_seconds=ttl, max_size=size, clock=clock)

    def has_permission(self, user_id: int, permission_code: str) -> bool:
        """Wildcard and scope-hierarchy aware match against the user's keys"""
        permissions = self.get_user_permissions(user_id)
        if permission_code in permissions:
            return True
        try:
            required = PermissionKey.parse(permission_code)
        except ValueError:
            return False
        return any(matches(PermissionKey.parse(p), required) for p in permissions)

    def get_user_permissions(self, user_id: int) -> Set[str]:
        cached = self._permission_cache.get(user_id)
        if cached is not None:
            return cached

        db = self._db_session_factory()
        try:
            svc = PermissionService(db)
            try:
                permissions = set(svc.get_user_permissions(user_id))
            except LookupError:
                return set()
            self._permission_cache.set(user_id, permissions)
            return permissions
        finally:
            db.close()

    def get_user_roles(self, user_id: int) -> List[str]:
        cached = self._role_cache.get(user_id)
        if cached is not None:
            return cached

        db = self._db_session_factory()
        try:
            svc = PermissionService(db)
            try:
                roles = svc.get_user_role_names(user_id)
            except LookupError:
                return []
            self._role_cache.set(user_id, roles)
            return roles
        finally:
            db.close()

    def invalidate_user(self, user_id: int) -> None:
        """Invalidate cache for a specific user (call after role/permission change)"""
        self._permission_cache.delete(user_id)
        self._role_cache.delete(user_id)

    def invalidate_all(self) -> None:
        """Invalidate all caches (call after bulk role/permission changes)"""
        self._permission_cache.clear()
        self._role_cache.clear()
