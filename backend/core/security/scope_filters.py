"""
core/security/scope_filters.py

Translate a granted scope into tenant filters for data queries, and decide
whether a principal may touch a concrete resource at a required scope.
"""
from typing import Any, Dict, Mapping, Optional, Union

from core.security.context import Principal
from core.security.scope import Scope, WILDCARD, to_scope

# legacy roles that reach a resource regardless of tenant ids, per required scope
_SCOPE_OVERRIDE_ROLES = {
    Scope.ALL: ("PLATFORM_ADMIN",),
    Scope.ORGANIZATION: ("PLATFORM_ADMIN",),
    Scope.PROPERTY: ("PLATFORM_ADMIN", "ORGANIZATION_OWNER", "ORGANIZATION_ADMIN"),
    Scope.DEPARTMENT: (
        "PLATFORM_ADMIN", "ORGANIZATION_OWNER", "ORGANIZATION_ADMIN", "PROPERTY_MANAGER",
    ),
    Scope.OWN: (
        "PLATFORM_ADMIN", "ORGANIZATION_OWNER", "ORGANIZATION_ADMIN",
        "PROPERTY_MANAGER", "DEPARTMENT_ADMIN",
    ),
}

# tenant columns checked per required scope, narrowest first
_SCOPE_COLUMNS = {
    Scope.ALL: (),
    Scope.ORGANIZATION: ("organization_id",),
    Scope.PROPERTY: ("property_id", "organization_id"),
    Scope.DEPARTMENT: ("department_id", "property_id", "organization_id"),
    Scope.OWN: ("department_id", "property_id", "organization_id"),
}


def _tenant_filters(principal: Principal, columns) -> Dict[str, Any]:
    filters = {}
    for column in columns:
        value = getattr(principal, column)
        if value is not None:
            filters[column] = value
    return filters


def scope_filters(principal: Principal, scope: Union[str, Scope]) -> Dict[str, Any]:
    """
    Query filters restricting data to what `scope` lets the principal see

    Example:
        >>> scope_filters(Principal(user_id=7, organization_id=1, property_id=3), "property")
        {'property_id': 3, 'organization_id': 1}
    """
    if scope == WILDCARD:
        return {}
    scope = to_scope(scope)
    filters = {}
    if scope == Scope.OWN:
        filters["user_id"] = principal.user_id
    filters.update(_tenant_filters(principal, _SCOPE_COLUMNS[scope]))
    return filters


_AUTOMATIC_COLUMN = {
    Scope.ORGANIZATION: "organization_id",
    Scope.PROPERTY: "property_id",
    Scope.DEPARTMENT: "department_id",
}


def automatic_scope_filter(principal: Principal, scope: Union[str, Scope]) -> Optional[Dict[str, Any]]:
    """Single-column filter for a scope; None when the principal lacks the attribute"""
    scope = to_scope(scope)
    if scope == Scope.ALL:
        return {}
    if scope == Scope.OWN:
        return {"user_id": principal.user_id}
    column = _AUTOMATIC_COLUMN[scope]
    value = getattr(principal, column)
    if value is None:
        return None
    return {column: value}


def _resource_value(resource: Any, name: str) -> Any:
    if isinstance(resource, Mapping):
        return resource.get(name)
    return getattr(resource, name, None)


def can_access_resource(principal: Principal, resource: Any, required_scope: Union[str, Scope]) -> bool:
    """
    Whether the principal may access `resource` at `required_scope`

    `resource` is a mapping or object exposing any of user_id, department_id,
    property_id and organization_id. A match on any tenant column at or above
    the required scope grants access, as does one of the scope's override roles.
    """
    if resource is None:
        return False
    try:
        scope = to_scope(required_scope)
    except ValueError:
        return False

    if principal.role in _SCOPE_OVERRIDE_ROLES[scope]:
        return True
    if scope == Scope.ALL:
        return False
    if scope == Scope.OWN and _resource_value(resource, "user_id") == principal.user_id:
        return True
    for column in _SCOPE_COLUMNS[scope]:
        mine = getattr(principal, column)
        if mine is not None and _resource_value(resource, column) == mine:
            return True
    return False


def apply_filters(where: Optional[Mapping[str, Any]], filters: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Merge scope filters into an existing filter mapping; filters win"""
    merged = dict(where or {})
    merged.update(filters or {})
    return merged


__all__ = [
    "scope_filters",
    "automatic_scope_filter",
    "can_access_resource",
    "apply_filters",
]
