"""
core/security - access control building blocks

Domain-independent pieces of permission evaluation:
- scope: scope hierarchy (own < department < property < organization < all)
- permission: `resource.action.scope` keys, matching, provider registry
- aggregation: effective permission set from roles and direct overrides
- legacy_roles: legacy enum role catalog and fallback patterns
- conditions: stored and request-level conditional grants
- scope_filters: tenant query filters and resource access checks
- cache: in-process TTL cache

Usage:
    >>> from core.security import PermissionKey, matches
    >>> matches(PermissionKey.parse("*.read.property"), PermissionKey.parse("user.read.own"))
    True
"""

from core.security.scope import (
    Scope,
    WILDCARD,
    to_scope,
    is_valid_scope,
    scope_level,
    covers,
)

from core.security.permission import (
    PermissionKey,
    PermissionRequirement,
    normalize,
    matches,
    matches_pattern,
    IPermissionProvider,
    PermissionProviderRegistry,
    permission_provider_registry,
)

from core.security.context import Principal, EvaluationContext

from core.security.aggregation import (
    RoleGrant,
    DirectGrant,
    EffectivePermissions,
    resolve_effective_permissions,
)

from core.security.legacy_roles import (
    LegacyRole,
    ADMIN_ROLES,
    legacy_patterns,
    legacy_allows,
    role_info,
    can_assign_role,
)

from core.security.conditions import (
    ConditionResult,
    StoredCondition,
    condition_registry,
    evaluate_request_conditions,
)

from core.security.scope_filters import (
    scope_filters,
    automatic_scope_filter,
    can_access_resource,
    apply_filters,
)

from core.security.cache import TTLCache

__all__ = [
    # scope
    "Scope",
    "WILDCARD",
    "to_scope",
    "is_valid_scope",
    "scope_level",
    "covers",
    # permission keys
    "PermissionKey",
    "PermissionRequirement",
    "normalize",
    "matches",
    "matches_pattern",
    "IPermissionProvider",
    "PermissionProviderRegistry",
    "permission_provider_registry",
    # context
    "Principal",
    "EvaluationContext",
    # aggregation
    "RoleGrant",
    "DirectGrant",
    "EffectivePermissions",
    "resolve_effective_permissions",
    # legacy roles
    "LegacyRole",
    "ADMIN_ROLES",
    "legacy_patterns",
    "legacy_allows",
    "role_info",
    "can_assign_role",
    # conditions
    "ConditionResult",
    "StoredCondition",
    "condition_registry",
    "evaluate_request_conditions",
    # scope filters
    "scope_filters",
    "automatic_scope_filter",
    "can_access_resource",
    "apply_filters",
    # cache
    "TTLCache",
]
