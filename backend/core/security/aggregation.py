"""
core/security/aggregation.py

Resolves a user's effective permission set from custom-role assignments and
direct user overrides:

    effective = union(active role grants) | direct grants - direct denials

Assignments and overrides that are inactive or whose expiry is not in the
future contribute nothing. Domain-independent: the app layer converts ORM rows
into RoleGrant / DirectGrant before calling resolve_effective_permissions().
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional

from core.security.permission import PermissionKey, matches


def _is_live(is_active: bool, expires_at: Optional[datetime], now: datetime) -> bool:
    if not is_active:
        return False
    return expires_at is None or expires_at > now


@dataclass(frozen=True)
class RoleGrant:
    """A user's assignment to a custom role with the keys that role grants"""

    role_id: int
    role_name: str
    permissions: FrozenSet[PermissionKey]
    is_active: bool = True
    expires_at: Optional[datetime] = None

    def is_live(self, now: datetime) -> bool:
        return _is_live(self.is_active, self.expires_at, now)


@dataclass(frozen=True)
class DirectGrant:
    """A direct per-user override; granted=False is an explicit denial"""

    key: PermissionKey
    granted: bool = True
    is_active: bool = True
    expires_at: Optional[datetime] = None

    def is_live(self, now: datetime) -> bool:
        return _is_live(self.is_active, self.expires_at, now)


@dataclass(frozen=True)
class EffectivePermissions:
    """Resolved permission set of one user"""

    granted: FrozenSet[PermissionKey] = frozenset()
    denied: FrozenSet[PermissionKey] = frozenset()
    from_roles: FrozenSet[PermissionKey] = frozenset()
    direct: FrozenSet[PermissionKey] = frozenset()
    role_names: tuple = ()

    @property
    def is_empty(self) -> bool:
        return not self.granted

    def is_denied(self, required: PermissionKey) -> bool:
        return required in self.denied

    def find_match(self, required: PermissionKey) -> Optional[PermissionKey]:
        """The granted key satisfying `required`, exact matches first"""
        if required in self.denied:
            return None
        if required in self.granted:
            return required
        for key in sorted(self.granted, key=str):
            if matches(key, required):
                return key
        return None

    def matching(self, required: PermissionKey) -> List[PermissionKey]:
        """Every granted key satisfying `required`, exact match first"""
        if required in self.denied:
            return []
        found = [key for key in sorted(self.granted, key=str) if key != required and matches(key, required)]
        if required in self.granted:
            found.insert(0, required)
        return found

    def has(self, required: PermissionKey) -> bool:
        return self.find_match(required) is not None

    def as_strings(self) -> list:
        return sorted(str(k) for k in self.granted)


def resolve_effective_permissions(
    roles: Iterable[RoleGrant],
    overrides: Iterable[DirectGrant],
    now: datetime,
) -> EffectivePermissions:
    """Aggregate live role grants and apply direct grants and denials"""
    from_roles = set()
    role_names = []
    for role in roles:
        if not role.is_live(now):
            continue
        role_names.append(role.role_name)
        from_roles.update(role.permissions)

    direct = set()
    denied = set()
    for override in overrides:
        if not override.is_live(now):
            continue
        if override.granted:
            direct.add(override.key)
        else:
            denied.add(override.key)

    # a denial of a key also beats a direct grant of the same key
    direct -= denied
    granted = (from_roles | direct) - denied
    return EffectivePermissions(
        granted=frozenset(granted),
        denied=frozenset(denied),
        from_roles=frozenset(from_roles),
        direct=frozenset(direct),
        role_names=tuple(sorted(set(role_names))),
    )


def group_by_resource(keys: Iterable[PermissionKey]) -> Dict[str, list]:
    """Keys grouped by resource, for summaries"""
    grouped: Dict[str, list] = {}
    for key in sorted(keys, key=str):
        grouped.setdefault(key.resource, []).append(str(key))
    return grouped


__all__ = [
    "RoleGrant",
    "DirectGrant",
    "EffectivePermissions",
    "resolve_effective_permissions",
    "group_by_resource",
]
