"""
Permission service - authoritative permission evaluation and administration

Evaluation order for a required `resource.action.scope`:
1. an active direct denial of exactly that key denies
2. a matching key in the effective set (roles + direct grants) allows,
   subject to the conditions stored on the grant or the catalog permission
3. otherwise, for PLATFORM_ADMIN or users without any custom permissions,
   the legacy enum role patterns are consulted
4. otherwise deny

Granted results carry tenant scope filters and are then checked against the
request-level conditions. Results are memoized per user, key and context in
the permission_cache table.
"""
import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from sqlalchemy import inspect, func
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import Settings, settings as default_settings
from app.database import utcnow
from app.models.rbac import (
    PERMISSION_TABLES, Permission, PermissionCondition, CustomRole, RolePermission,
    UserCustomRole, UserPermission, PermissionCache,
)
from app.models.tenant import User
from app.services.permission_seed import SYSTEM_CONDITIONS, SYSTEM_PERMISSIONS, SYSTEM_ROLES
from app.services.audit_service import AuditService
from app.services.exceptions import AccessDenied, PermissionSystemUnavailable
from core.security.aggregation import (
    DirectGrant, EffectivePermissions, RoleGrant, group_by_resource,
    resolve_effective_permissions,
)
from core.security.cache import TTLCache
from core.security.conditions import (
    StoredCondition, condition_registry, evaluate_request_conditions,
)
from core.security.context import EvaluationContext, Principal
from core.security.legacy_roles import LegacyRole, legacy_allows, legacy_patterns
from core.security.permission import (
    PermissionKey, PermissionLike, normalize, permission_provider_registry,
)
from core.security.scope_filters import scope_filters

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    allowed: bool
    reason: Optional[str] = None
    source: str = "default"  # role | user | legacy | cached | default | error
    scope_filters: Optional[Dict[str, Any]] = None
    ttl: Optional[int] = None
    permission: Optional[str] = None
    time_dependent: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "permission": self.permission,
            "allowed": self.allowed,
            "reason": self.reason,
            "source": self.source,
            "scope_filters": self.scope_filters,
            "ttl": self.ttl,
        }


@dataclass
class BulkResult:
    permissions: Dict[str, EvaluationResult] = field(default_factory=dict)
    cached: int = 0
    evaluated: int = 0
    errors: int = 0


_memory_cache: Optional[TTLCache] = None


def get_memory_cache() -> TTLCache:
    """Process-wide cache of resolved effective permission sets"""
    global _memory_cache
    if _memory_cache is None:
        _memory_cache = TTLCache(
            ttl_seconds=default_settings.PERMISSION_MEMORY_CACHE_TTL,
            max_size=default_settings.PERMISSION_MAX_CACHE_SIZE,
        )
    return _memory_cache


def mask_database_url(url: str) -> str:
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "***"


def _coerce_conditions(raw: Any) -> List[StoredCondition]:
    """Grant-level conditions: a list of condition mappings, one mapping, or {type: value}"""
    if not raw:
        return []
    if isinstance(raw, list):
        return [StoredCondition.from_mapping(c) for c in raw if isinstance(c, Mapping)]
    if isinstance(raw, Mapping):
        if "condition_type" in raw or "conditionType" in raw:
            return [StoredCondition.from_mapping(raw)]
        return [
            StoredCondition(condition_type=str(k), value=dict(v) if isinstance(v, Mapping) else {})
            for k, v in raw.items()
        ]
    return []


class PermissionService:
    """Permission evaluation and administration for one DB session"""

    def __init__(self, db: Session, settings: Optional[Settings] = None,
                 memory_cache: Optional[TTLCache] = None):
        self.db = db
        self.settings = settings or default_settings
        self.memory_cache = memory_cache if memory_cache is not None else get_memory_cache()
        self._available: Optional[bool] = None

    # ========== System availability ==========

    def permission_system_available(self, refresh: bool = False) -> bool:
        """Whether the permission tables exist (legacy mode when they do not)"""
        if self._available is not None and not refresh:
            return self._available
        if self.settings.FORCE_PERMISSION_SYSTEM:
            self._available = True
            return True
        self._available = self._check_tables_with_retry()
        return self._available

    def _check_tables_with_retry(self) -> bool:
        attempts = max(1, self.settings.PERMISSION_TABLE_CHECK_RETRIES)
        for attempt in range(1, attempts + 1):
            try:
                inspector = inspect(self.db.connection())
                missing = [t for t in PERMISSION_TABLES if not inspector.has_table(t)]
                if missing:
                    logger.warning(f"Permission tables missing: {missing}")
                    return False
                return True
            except SQLAlchemyError as e:
                logger.warning(f"Permission table check failed (attempt {attempt}/{attempts}): {e}")
                if attempt < attempts:
                    time.sleep(self.settings.PERMISSION_TABLE_CHECK_DELAY * attempt)
        logger.error("Permission table check gave up, running in legacy mode")
        return False

    def _require_available(self) -> None:
        if not self.permission_system_available():
            raise PermissionSystemUnavailable(
                "Permission system is not available (permission tables missing)"
            )

    # ========== Effective permissions ==========

    def _get_user(self, user_id: int) -> User:
        user = self.db.query(User).filter(
            User.id == user_id, User.deleted_at.is_(None)
        ).first()
        if not user:
            raise LookupError(f"User {user_id} not found")
        return user

    def _live_role_assignments(self, user_id: int) -> List[UserCustomRole]:
        return self.db.query(UserCustomRole).join(CustomRole).filter(
            UserCustomRole.user_id == user_id,
            CustomRole.is_active == True,
        ).all()

    def get_effective_permissions(self, user_id: int) -> EffectivePermissions:
        """Resolved permission set of a user (memoized in the in-process cache)"""
        self._get_user(user_id)
        cache_key = f"user:{user_id}:effective"
        cached = self.memory_cache.get(cache_key)
        if cached is not None:
            return cached

        role_grants = []
        for assignment in self._live_role_assignments(user_id):
            keys = frozenset(
                rp.permission.key for rp in assignment.role.role_permissions if rp.granted
            )
            role_grants.append(RoleGrant(
                role_id=assignment.role_id,
                role_name=assignment.role.name,
                permissions=keys,
                is_active=assignment.is_active,
                expires_at=assignment.expires_at,
            ))

        overrides = [
            DirectGrant(
                key=up.permission.key,
                granted=up.granted,
                is_active=up.is_active,
                expires_at=up.expires_at,
            )
            for up in self.db.query(UserPermission).filter(UserPermission.user_id == user_id).all()
        ]

        effective = resolve_effective_permissions(role_grants, overrides, utcnow())
        self.memory_cache.set(cache_key, effective)
        return effective

    def get_user_permissions(self, user_id: int) -> List[str]:
        """Effective permission keys, or the legacy role patterns when there are none"""
        user = self._get_user(user_id)
        if self.permission_system_available():
            effective = self.get_effective_permissions(user_id)
            if not effective.is_empty:
                return effective.as_strings()
        return sorted(str(k) for k in legacy_patterns(user.role))

    def get_user_role_names(self, user_id: int) -> List[str]:
        if not self.permission_system_available():
            return []
        return list(self.get_effective_permissions(user_id).role_names)

    # ========== Evaluation ==========

    def evaluate(self, principal: Principal, required: PermissionLike,
                 context: Optional[EvaluationContext] = None) -> EvaluationResult:
        """
        Evaluate one required permission for a principal

        Raises:
            ValueError / TypeError: if `required` is malformed
        """
        requirement = normalize(required)
        key = requirement.key
        context = context or EvaluationContext()

        if not self.permission_system_available():
            return EvaluationResult(
                allowed=False,
                reason="Permission system unavailable, legacy mode",
                source="legacy",
                permission=str(key),
            )

        cache_key = self._cache_key(principal.user_id, key, context, requirement.conditions)
        now = utcnow()
        row = self.db.query(PermissionCache).filter(
            PermissionCache.cache_key == cache_key,
            PermissionCache.expires_at > now,
        ).first()
        if row is not None:
            return EvaluationResult(
                allowed=row.allowed,
                reason=row.reason,
                source="cached",
                scope_filters=scope_filters(principal, key.scope) if row.allowed else None,
                ttl=int((row.expires_at - now).total_seconds()),
                permission=str(key),
            )

        result = self._evaluate_uncached(principal, requirement, context)
        result.permission = str(key)
        if result.time_dependent and context.current_time is None:
            # decided by the wall clock
            result.ttl = None
        else:
            result.ttl = self.settings.PERMISSION_CACHE_TTL
            self._store_cache(cache_key, principal, key, context, result, now)
        logger.debug(
            f"evaluate user={principal.user_id} {key} -> {result.allowed} ({result.source})"
        )
        return result

    def _evaluate_uncached(self, principal: Principal, requirement, context: EvaluationContext) -> EvaluationResult:
        key = requirement.key
        effective = self.get_effective_permissions(principal.user_id)

        if effective.is_denied(key):
            return EvaluationResult(False, "Permission explicitly denied", "user")

        matched = effective.matching(key)
        if matched:
            result = self._check_grants(principal, effective, matched, context)
            if not result.allowed:
                return result
        elif self._legacy_fallback_applies(principal, effective) and legacy_allows(principal.role, key):
            result = EvaluationResult(True, None, "legacy")
        else:
            return EvaluationResult(False, "No matching permission found", "default")

        result.scope_filters = scope_filters(principal, key.scope)
        request_check = evaluate_request_conditions(requirement.conditions, principal, context)
        if not request_check.allowed:
            return EvaluationResult(False, request_check.reason, result.source,
                                    time_dependent=result.time_dependent)
        return result

    @staticmethod
    def _legacy_fallback_applies(principal: Principal, effective: EffectivePermissions) -> bool:
        return principal.role == LegacyRole.PLATFORM_ADMIN.value or effective.is_empty

    def _grant_conditions(self, principal: Principal, effective: EffectivePermissions,
                          matched: List[PermissionKey]):
        """
        (source, conditions) for every grant backing one of the matched keys

        Conditions stored on a grant replace the catalog permission's conditions
        for that grant only. Direct grants come before role grants.
        """
        live_role_ids = [
            a.role_id for a in self._live_role_assignments(principal.user_id)
            if a.is_active and (a.expires_at is None or a.expires_at > utcnow())
        ]
        for match in matched:
            permission = self._find_permission(match)
            if permission is None:
                yield ("user" if match in effective.direct else "role"), []
                continue
            catalog = [
                StoredCondition(c.condition_type, c.value or {}, c.description)
                for c in permission.conditions
            ]
            if match in effective.direct:
                override = self.db.query(UserPermission).filter(
                    UserPermission.user_id == principal.user_id,
                    UserPermission.permission_id == permission.id,
                ).first()
                yield "user", _coerce_conditions(override.conditions if override else None) or catalog
            if match in effective.from_roles and live_role_ids:
                for rp in self.db.query(RolePermission).filter(
                    RolePermission.role_id.in_(live_role_ids),
                    RolePermission.permission_id == permission.id,
                    RolePermission.granted == True,
                ).order_by(RolePermission.id).all():
                    yield "role", _coerce_conditions(rp.conditions) or catalog

    def _check_grants(self, principal: Principal, effective: EffectivePermissions,
                      matched: List[PermissionKey], context: EvaluationContext) -> EvaluationResult:
        """Allowed when any backing grant passes its conditions, else the last failure"""
        failure = None
        time_dependent = False
        for source, conditions in self._grant_conditions(principal, effective, matched):
            time_dependent = time_dependent or any(c.condition_type == "time" for c in conditions)
            check = condition_registry.evaluate_all(conditions, principal, context)
            if check.allowed:
                return EvaluationResult(True, None, source, time_dependent=time_dependent)
            failure = EvaluationResult(False, check.reason, source, time_dependent=time_dependent)
        if failure is None:
            source = "user" if matched[0] in effective.direct else "role"
            return EvaluationResult(True, None, source)
        return failure

    def evaluate_any(self, principal: Principal, requirements: Iterable[PermissionLike],
                     context: Optional[EvaluationContext] = None) -> EvaluationResult:
        """OR logic: the first allowed result, else the last denial"""
        last = EvaluationResult(False, "No permissions specified", "default")
        for required in requirements:
            result = self.evaluate(principal, required, context)
            if result.allowed:
                return result
            last = result
        return last

    def check_bulk(self, principal: Principal, checks: Iterable[Mapping[str, Any]],
                   global_context: Optional[EvaluationContext] = None) -> BulkResult:
        """Evaluate many permissions; malformed checks are counted as errors and denied"""
        bulk = BulkResult()
        base = global_context or EvaluationContext()
        for check in checks:
            label = ".".join(str(check.get(p) or "") for p in ("resource", "action", "scope"))
            item_context = check.get("context")
            if isinstance(item_context, Mapping):
                item_context = EvaluationContext(
                    **{k: v for k, v in item_context.items() if v is not None}
                )
            try:
                requirement = normalize(check)
                label = str(requirement.key)
                result = self.evaluate(principal, requirement, base.merged(item_context))
            except (ValueError, TypeError) as e:
                bulk.errors += 1
                bulk.permissions[label] = EvaluationResult(
                    False, f"Invalid permission: {e}", "error", permission=label
                )
                continue
            if result.source == "cached":
                bulk.cached += 1
            else:
                bulk.evaluated += 1
            bulk.permissions[label] = result
        return bulk

    # ========== Result cache ==========

    @staticmethod
    def _cache_key(user_id: int, key: PermissionKey, context: EvaluationContext,
                   conditions: Optional[Mapping[str, Any]]) -> str:
        material = context.cache_fingerprint() + "|" + json.dumps(conditions or {}, sort_keys=True, default=str)
        digest = hashlib.sha1(material.encode("utf-8")).hexdigest()[:16]
        return f"{user_id}:{key}:{digest}"

    def _store_cache(self, cache_key: str, principal: Principal, key: PermissionKey,
                     context: EvaluationContext, result: EvaluationResult, now: datetime) -> None:
        expires_at = now + timedelta(seconds=self.settings.PERMISSION_CACHE_TTL)
        row = self.db.query(PermissionCache).filter(PermissionCache.cache_key == cache_key).first()
        if row is None:
            row = PermissionCache(cache_key=cache_key, user_id=principal.user_id)
            self.db.add(row)
        row.organization_id = context.organization_id
        row.property_id = context.property_id
        row.resource = key.resource
        row.action = key.action
        row.scope = key.scope
        row.allowed = result.allowed
        row.reason = result.reason
        row.expires_at = expires_at
        self.db.flush()

    def clear_user_cache(self, user_id: int) -> int:
        """Drop every cached result for a user; returns the number of DB rows removed"""
        removed = 0
        if self.permission_system_available():
            removed = self.db.query(PermissionCache).filter(
                PermissionCache.user_id == user_id
            ).delete(synchronize_session=False)
            self.db.flush()
        self.memory_cache.delete_prefix(f"user:{user_id}:")
        permission_provider_registry.invalidate_user(user_id)
        return removed

    def cleanup_expired_cache(self) -> int:
        self._require_available()
        removed = self.db.query(PermissionCache).filter(
            PermissionCache.expires_at <= utcnow()
        ).delete(synchronize_session=False)
        self.db.flush()
        self.memory_cache.purge_expired()
        logger.info(f"Removed {removed} expired permission cache entries")
        return removed

    def get_cache_stats(self, user_id: Optional[int] = None) -> Dict[str, int]:
        if not self.permission_system_available():
            return {"total": 0, "expired": 0, "valid": 0}
        q = self.db.query(PermissionCache)
        if user_id is not None:
            q = q.filter(PermissionCache.user_id == user_id)
        total = q.count()
        expired = q.filter(PermissionCache.expires_at <= utcnow()).count()
        return {"total": total, "expired": expired, "valid": total - expired}

    # ========== Delegation ==========

    def within_reach(self, actor: Principal, key: PermissionKey) -> bool:
        """Whether `actor` itself holds `key`; nobody hands out more than they have"""
        if actor.role == LegacyRole.PLATFORM_ADMIN.value:
            return True
        effective = self.get_effective_permissions(actor.user_id)
        if effective.is_denied(key):
            return False
        if effective.has(key):
            return True
        return effective.is_empty and legacy_allows(actor.role, key)

    def ensure_within_reach(self, actor: Optional[Principal], permissions: Iterable[Permission]) -> None:
        """
        Raises:
            AccessDenied: a permission lies beyond what `actor` holds
        """
        if actor is None:
            return
        for perm in permissions:
            if not self.within_reach(actor, perm.key):
                raise AccessDenied(f"Access denied: cannot delegate {perm.code} beyond your own permissions")

    def ensure_can_assign(self, actor: Optional[Principal], role: CustomRole) -> None:
        """
        Global roles are assigned by platform administrators only; tenant
        roles by members of the same organization holding every granted key

        Raises:
            AccessDenied
        """
        if actor is None or actor.role == LegacyRole.PLATFORM_ADMIN.value:
            return
        if role.organization_id is None:
            raise AccessDenied(
                f"Access denied: global role '{role.name}' can only be assigned by a platform administrator"
            )
        if role.organization_id != actor.organization_id:
            raise AccessDenied(f"Access denied: role '{role.name}' belongs to another organization")
        self.ensure_within_reach(actor, [rp.permission for rp in role.role_permissions if rp.granted])

    # ========== Mutations ==========

    def _find_permission(self, key: PermissionKey) -> Optional[Permission]:
        return self.db.query(Permission).filter(
            Permission.resource == key.resource,
            Permission.action == key.action,
            Permission.scope == key.scope,
        ).first()

    def resolve_permission(self, permission_id: Optional[int] = None,
                           permission: Union[str, PermissionKey, None] = None) -> Permission:
        """Catalog permission by id or key"""
        if permission_id is not None:
            row = self.db.query(Permission).filter(Permission.id == permission_id).first()
        elif permission is not None:
            key = permission if isinstance(permission, PermissionKey) else PermissionKey.parse(permission)
            row = self._find_permission(key)
        else:
            raise ValueError("permission_id or permission is required")
        if not row:
            raise LookupError(f"Permission {permission_id or permission} not found")
        return row

    def _upsert_override(self, user_id: int, perm: Permission, granted: bool,
                         actor_id: Optional[int], expires_at: Optional[datetime],
                         conditions: Optional[Dict[str, Any]], reason: Optional[str]) -> UserPermission:
        override = self.db.query(UserPermission).filter(
            UserPermission.user_id == user_id,
            UserPermission.permission_id == perm.id,
        ).first()
        if override is None:
            override = UserPermission(user_id=user_id, permission_id=perm.id)
            self.db.add(override)
        override.granted = granted
        override.is_active = True
        override.expires_at = expires_at
        override.granted_by = actor_id
        override.conditions = conditions
        override.extra = {
            **(override.extra or {}),
            "reason": reason,
            "changedAt": utcnow().isoformat(),
        }
        self.db.flush()
        return override

    def grant_permission(self, user_id: int, permission_id: Optional[int] = None,
                         permission: Optional[str] = None, granted_by: Optional[int] = None,
                         expires_at: Optional[datetime] = None,
                         conditions: Optional[Dict[str, Any]] = None,
                         reason: Optional[str] = None,
                         actor: Optional[Principal] = None) -> UserPermission:
        """Grant a catalog permission directly to a user (upsert)"""
        self._require_available()
        self._get_user(user_id)
        perm = self.resolve_permission(permission_id, permission)
        self.ensure_within_reach(actor, [perm])
        override = self._upsert_override(user_id, perm, True, granted_by, expires_at, conditions, reason)
        AuditService(self.db).log(
            "PERMISSION_GRANTED", "UserPermission", override.id, actor_id=granted_by,
            new_values={"user_id": user_id, "permission": perm.code, "reason": reason},
        )
        self.clear_user_cache(user_id)
        return override

    def deny_permission(self, user_id: int, permission_id: Optional[int] = None,
                        permission: Optional[str] = None, denied_by: Optional[int] = None,
                        expires_at: Optional[datetime] = None,
                        conditions: Optional[Dict[str, Any]] = None,
                        reason: Optional[str] = None) -> UserPermission:
        """Explicitly deny a permission; beats any role grant of the same key"""
        self._require_available()
        self._get_user(user_id)
        perm = self.resolve_permission(permission_id, permission)
        override = self._upsert_override(user_id, perm, False, denied_by, expires_at, conditions, reason)
        AuditService(self.db).log(
            "PERMISSION_DENIED", "UserPermission", override.id, actor_id=denied_by,
            new_values={"user_id": user_id, "permission": perm.code, "reason": reason},
        )
        self.clear_user_cache(user_id)
        return override

    def revoke_permission(self, user_id: int, permission_id: Optional[int] = None,
                          permission: Optional[str] = None, revoked_by: Optional[int] = None,
                          reason: Optional[str] = None) -> UserPermission:
        """Deactivate a direct grant or denial, keeping the row with revocation metadata"""
        self._require_available()
        perm = self.resolve_permission(permission_id, permission)
        override = self.db.query(UserPermission).filter(
            UserPermission.user_id == user_id,
            UserPermission.permission_id == perm.id,
        ).first()
        if not override:
            raise LookupError(f"User {user_id} has no direct entry for {perm.code}")

        old_values = {"granted": override.granted, "is_active": override.is_active}
        override.granted = False
        override.is_active = False
        override.extra = {
            **(override.extra or {}),
            "revokedBy": revoked_by,
            "revokedAt": utcnow().isoformat(),
            "reason": reason,
        }
        self.db.flush()
        AuditService(self.db).log(
            "PERMISSION_REVOKED", "UserPermission", override.id, actor_id=revoked_by,
            old_values=old_values,
            new_values={"user_id": user_id, "permission": perm.code, "reason": reason},
        )
        self.clear_user_cache(user_id)
        return override

    def assign_role(self, user_id: int, role_id: int, assigned_by: Optional[int] = None,
                    expires_at: Optional[datetime] = None,
                    conditions: Optional[Dict[str, Any]] = None,
                    reason: Optional[str] = None,
                    actor: Optional[Principal] = None) -> UserCustomRole:
        """Assign a custom role to a user (upsert; reactivates an old assignment)"""
        self._require_available()
        self._get_user(user_id)
        role = self.db.query(CustomRole).filter(CustomRole.id == role_id).first()
        if not role:
            raise LookupError(f"Role {role_id} not found")
        if not role.is_active:
            raise ValueError(f"Role '{role.name}' is inactive")
        self.ensure_can_assign(actor, role)

        assignment = self.db.query(UserCustomRole).filter(
            UserCustomRole.user_id == user_id,
            UserCustomRole.role_id == role_id,
        ).first()
        if assignment is None:
            assignment = UserCustomRole(user_id=user_id, role_id=role_id)
            self.db.add(assignment)
        assignment.is_active = True
        assignment.expires_at = expires_at
        assignment.assigned_by = assigned_by
        assignment.conditions = conditions
        assignment.extra = {**(assignment.extra or {}), "reason": reason}
        self.db.flush()

        AuditService(self.db).log(
            "ROLE_ASSIGNED", "UserCustomRole", assignment.id, actor_id=assigned_by,
            new_values={"user_id": user_id, "role_id": role_id, "role": role.name, "reason": reason},
        )
        self.clear_user_cache(user_id)
        return assignment

    def unassign_role(self, user_id: int, role_id: int, unassigned_by: Optional[int] = None,
                      reason: Optional[str] = None) -> UserCustomRole:
        self._require_available()
        assignment = self.db.query(UserCustomRole).filter(
            UserCustomRole.user_id == user_id,
            UserCustomRole.role_id == role_id,
        ).first()
        if not assignment or not assignment.is_active:
            raise LookupError(f"User {user_id} does not hold role {role_id}")

        assignment.is_active = False
        assignment.extra = {
            **(assignment.extra or {}),
            "unassignedBy": unassigned_by,
            "unassignedAt": utcnow().isoformat(),
            "reason": reason,
        }
        self.db.flush()
        AuditService(self.db).log(
            "ROLE_UNASSIGNED", "UserCustomRole", assignment.id, actor_id=unassigned_by,
            old_values={"is_active": True},
            new_values={"user_id": user_id, "role_id": role_id, "reason": reason},
        )
        self.clear_user_cache(user_id)
        return assignment

    # ========== Summaries and status ==========

    def get_user_summary(self, user_id: int) -> Dict[str, Any]:
        user = self._get_user(user_id)
        summary = {
            "user_id": user.id,
            "legacy_role": user.role.value if user.role else None,
            "roles": [],
            "permissions": self.get_user_permissions(user_id),
            "direct": [],
            "denied": [],
            "by_resource": {},
            "uses_legacy_fallback": True,
            "cache": self.get_cache_stats(user_id),
        }
        if not self.permission_system_available():
            return summary

        effective = self.get_effective_permissions(user_id)
        now = utcnow()
        summary["roles"] = [
            {
                "id": a.role_id,
                "name": a.role.name,
                "expires_at": a.expires_at.isoformat() if a.expires_at else None,
            }
            for a in self._live_role_assignments(user_id)
            if a.is_active and (a.expires_at is None or a.expires_at > now)
        ]
        summary["direct"] = sorted(str(k) for k in effective.direct)
        summary["denied"] = sorted(str(k) for k in effective.denied)
        summary["by_resource"] = group_by_resource(effective.granted)
        summary["uses_legacy_fallback"] = effective.is_empty
        return summary

    def get_system_status(self) -> Dict[str, Any]:
        available = self.permission_system_available(refresh=True)
        status = {
            "permission_tables_exist": available,
            "skip_permission_init": self.settings.SKIP_PERMISSION_INIT,
            "force_permission_system": self.settings.FORCE_PERMISSION_SYSTEM,
            "database_url": mask_database_url(self.settings.DATABASE_URL),
            "memory_cache": self.memory_cache.stats(),
            "counts": {},
        }
        if available:
            status["counts"] = {
                "permissions": self.db.query(func.count(Permission.id)).scalar(),
                "custom_roles": self.db.query(func.count(CustomRole.id)).scalar(),
                "role_permissions": self.db.query(func.count(RolePermission.id)).scalar(),
                "user_custom_roles": self.db.query(func.count(UserCustomRole.id)).scalar(),
                "user_permissions": self.db.query(func.count(UserPermission.id)).scalar(),
                "permission_cache": self.db.query(func.count(PermissionCache.id)).scalar(),
            }
        return status

    # ========== Bootstrap ==========

    def ensure_system_permissions(self) -> int:
        """Upsert the built-in permission catalog; returns the number created"""
        if not self.permission_system_available():
            logger.warning("Skipping system permissions creation - tables do not exist")
            return 0
        created = 0
        for resource, action, scope, name, category in SYSTEM_PERMISSIONS:
            key = PermissionKey.parse(f"{resource}.{action}.{scope}")
            perm = self._find_permission(key)
            if perm is None:
                perm = Permission(resource=key.resource, action=key.action, scope=key.scope)
                self.db.add(perm)
                created += 1
            perm.name = name
            perm.category = category
            perm.is_system = True
        self.db.flush()

        for code, condition_type, operator, value, description in SYSTEM_CONDITIONS:
            perm = self._find_permission(PermissionKey.parse(code))
            if perm is None:
                continue
            exists = self.db.query(PermissionCondition).filter(
                PermissionCondition.permission_id == perm.id,
                PermissionCondition.condition_type == condition_type,
            ).first()
            if not exists:
                self.db.add(PermissionCondition(
                    permission_id=perm.id, condition_type=condition_type,
                    operator=operator, value=value, description=description,
                ))
        self.db.flush()
        logger.info(f"System permissions ensured ({created} created)")
        return created

    def ensure_system_roles(self) -> int:
        """Upsert the global system roles and their permissions; returns the number created"""
        if not self.permission_system_available():
            logger.warning("Skipping system roles creation - tables do not exist")
            return 0
        created = 0
        for name, (description, priority, codes) in SYSTEM_ROLES.items():
            role = self.db.query(CustomRole).filter(
                CustomRole.organization_id.is_(None),
                CustomRole.name == name,
            ).first()
            if role is None:
                role = CustomRole(name=name, organization_id=None, is_active=True)
                self.db.add(role)
                created += 1
            role.description = description
            role.priority = priority
            role.is_system_role = True
            self.db.flush()

            existing = {rp.permission_id for rp in role.role_permissions}
            for code in codes:
                perm = self._find_permission(PermissionKey.parse(code))
                if perm is None:
                    logger.warning(f"System role '{name}' references unknown permission {code}")
                    continue
                if perm.id not in existing:
                    self.db.add(RolePermission(role_id=role.id, permission_id=perm.id, granted=True))
        self.db.flush()
        logger.info(f"System roles ensured ({created} created)")
        return created

    def initialize(self) -> bool:
        """Startup bootstrap; never raises so the app can start in legacy mode"""
        if self.settings.SKIP_PERMISSION_INIT:
            logger.warning("Permission system initialization skipped due to SKIP_PERMISSION_INIT=true")
            return False
        if self.settings.FORCE_PERMISSION_SYSTEM:
            logger.warning("FORCE_PERMISSION_SYSTEM=true - bypassing table existence check")
        try:
            if not self.permission_system_available(refresh=True):
                logger.warning("Permission tables do not exist, running in legacy mode")
                return False
            self.ensure_system_permissions()
            self.ensure_system_roles()
            self.db.commit()
            logger.info("Permission service initialized with system permissions and roles")
            return True
        except SQLAlchemyError as e:
            self.db.rollback()
            self._available = False
            logger.error(f"Failed to initialize permission system, falling back to legacy mode: {e}")
            return False

    def force_reinitialize(self) -> Dict[str, Any]:
        """Re-check the tables and re-seed; caller commits"""
        available = self.permission_system_available(refresh=True)
        permissions_created = roles_created = 0
        if available:
            permissions_created = self.ensure_system_permissions()
            roles_created = self.ensure_system_roles()
            self.memory_cache.clear()
        return {
            "permission_tables_exist": available,
            "permissions_created": permissions_created,
            "roles_created": roles_created,
        }
