"""
core/security/legacy_roles.py

Legacy enum roles: the per-user role column that predates custom roles.

The catalog (patterns, display info, hierarchy level) is loaded from
legacy_roles.yaml next to this module. Legacy patterns act as a fallback
permission source; see app.services.permission_service for when it applies.
"""
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, FrozenSet, List, Union
import logging

import yaml

from core.security.permission import PermissionKey, matches
from core.security.scope import Scope, to_scope

logger = logging.getLogger(__name__)

_catalog_file = Path(__file__).parent / "legacy_roles.yaml"


class LegacyRole(str, Enum):
    """Legacy user role enum"""
    PLATFORM_ADMIN = "PLATFORM_ADMIN"
    ORGANIZATION_OWNER = "ORGANIZATION_OWNER"
    ORGANIZATION_ADMIN = "ORGANIZATION_ADMIN"
    PROPERTY_MANAGER = "PROPERTY_MANAGER"
    DEPARTMENT_ADMIN = "DEPARTMENT_ADMIN"
    STAFF = "STAFF"
    CLIENT = "CLIENT"
    VENDOR = "VENDOR"


# Roles allowed to use the permission administration endpoints
ADMIN_ROLES = (
    LegacyRole.PLATFORM_ADMIN,
    LegacyRole.ORGANIZATION_OWNER,
    LegacyRole.ORGANIZATION_ADMIN,
    LegacyRole.PROPERTY_MANAGER,
    LegacyRole.DEPARTMENT_ADMIN,
)


@dataclass(frozen=True)
class RoleInfo:
    """Display and hierarchy information for a legacy role"""

    name: str
    description: str
    level: int
    user_type: str = "INTERNAL"
    capabilities: List[str] = field(default_factory=list, compare=False, hash=False)

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "description": self.description,
            "level": self.level,
            "user_type": self.user_type,
            "capabilities": list(self.capabilities),
        }


UNKNOWN_ROLE = RoleInfo(
    name="Unknown Role",
    description="Role information not found",
    level=0,
)


@lru_cache()
def load_catalog() -> Dict[str, Dict]:
    """Raw catalog from legacy_roles.yaml (cached for the process lifetime)"""
    with open(_catalog_file, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    unknown = set(data) - {r.value for r in LegacyRole}
    if unknown:
        logger.warning(f"Ignoring unknown legacy roles in catalog: {sorted(unknown)}")
    return {k: v for k, v in data.items() if k not in unknown}


def _coerce(role: Union[str, LegacyRole, None]) -> Union[LegacyRole, None]:
    if role is None or isinstance(role, LegacyRole):
        return role
    try:
        return LegacyRole(str(role))
    except ValueError:
        return None


def legacy_patterns(role: Union[str, LegacyRole, None]) -> FrozenSet[PermissionKey]:
    """Permission patterns granted by a legacy role (empty for unknown roles)"""
    role = _coerce(role)
    if role is None:
        return frozenset()
    entry = load_catalog().get(role.value) or {}
    return frozenset(PermissionKey.parse(p) for p in entry.get("patterns", []))


def role_info(role: Union[str, LegacyRole, None]) -> RoleInfo:
    role = _coerce(role)
    if role is None:
        return UNKNOWN_ROLE
    entry = load_catalog().get(role.value)
    if not entry:
        return UNKNOWN_ROLE
    return RoleInfo(
        name=entry.get("name", role.value),
        description=entry.get("description", ""),
        level=int(entry.get("level", 0)),
        user_type=entry.get("user_type", "INTERNAL"),
        capabilities=list(entry.get("capabilities", [])),
    )


def all_role_infos() -> List[Dict]:
    """Every legacy role with its info, in enum order"""
    return [{"role": r.value, **role_info(r).to_dict()} for r in LegacyRole]


def can_assign_role(actor: Union[str, LegacyRole], target: Union[str, LegacyRole]) -> bool:
    """Platform admins may assign any role; others only roles strictly below their own level"""
    actor_role = _coerce(actor)
    if actor_role == LegacyRole.PLATFORM_ADMIN:
        return True
    return role_info(actor).level > role_info(target).level


def assignable_roles(actor: Union[str, LegacyRole]) -> List[LegacyRole]:
    return [r for r in LegacyRole if can_assign_role(actor, r)]


def legacy_allows(role: Union[str, LegacyRole, None], required: PermissionKey) -> bool:
    """Check `required` against the legacy role's patterns"""
    role = _coerce(role)
    if role is None:
        return False
    if not any(matches(p, required) for p in legacy_patterns(role)):
        return False
    return department_admin_allows(role, required)


def department_admin_allows(role: Union[str, LegacyRole, None], required: PermissionKey) -> bool:
    """Department admins only get property-scoped access for reads"""
    if _coerce(role) != LegacyRole.DEPARTMENT_ADMIN:
        return True
    if required.scope != "*" and to_scope(required.scope) == Scope.PROPERTY:
        return required.action == "read"
    return True


__all__ = [
    "LegacyRole",
    "ADMIN_ROLES",
    "RoleInfo",
    "UNKNOWN_ROLE",
    "load_catalog",
    "legacy_patterns",
    "role_info",
    "all_role_infos",
    "can_assign_role",
    "assignable_roles",
    "legacy_allows",
    "department_admin_allows",
]
