"""
core/security/permission.py: permission keys and provider interface

Permissions are `resource.action.scope` triples, e.g. `user.read.department`.
Grants may use `*` for resource or action; the scope of a grant is compared
through the scope hierarchy (see core.security.scope).

The app layer implements IPermissionProvider and registers it with
PermissionProviderRegistry at startup.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Set, Union
import threading

from core.security.scope import WILDCARD, canonical_scope, covers


@dataclass(frozen=True)
class PermissionKey:
    """
    A `(resource, action, scope)` triple

    Attributes:
        resource: resource name ("user", "payslip", "*")
        action: action name ("read", "update", "*")
        scope: scope name ("own" ... "all", or "*")
    """

    resource: str
    action: str
    scope: str

    def __str__(self) -> str:
        return f"{self.resource}.{self.action}.{self.scope}"

    @classmethod
    def parse(cls, text: str) -> "PermissionKey":
        """
        Parse `resource.action.scope`

        Raises:
            ValueError: if the string does not have exactly three parts,
                a part is empty, or the scope is unknown
        """
        parts = str(text).split(".")
        if len(parts) != 3 or not all(p.strip() for p in parts):
            raise ValueError(
                f"Invalid permission format: {text}. Expected format: resource.action.scope"
            )
        resource, action, scope = (p.strip() for p in parts)
        return cls(resource=resource, action=action, scope=canonical_scope(scope))

    @property
    def is_wildcard(self) -> bool:
        return WILDCARD in (self.resource, self.action, self.scope)


@dataclass(frozen=True)
class PermissionRequirement:
    """A required permission plus optional request-level conditions"""

    key: PermissionKey
    conditions: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __str__(self) -> str:
        return str(self.key)


PermissionLike = Union[str, PermissionKey, PermissionRequirement, Mapping[str, Any]]


def normalize(value: PermissionLike) -> PermissionRequirement:
    """Accept a string, a key, a requirement or a mapping and return a requirement"""
    if isinstance(value, PermissionRequirement):
        return value
    if isinstance(value, PermissionKey):
        return PermissionRequirement(key=value)
    if isinstance(value, str):
        return PermissionRequirement(key=PermissionKey.parse(value))
    if isinstance(value, Mapping):
        missing = [k for k in ("resource", "action", "scope") if not value.get(k)]
        if missing:
            raise ValueError(f"Permission is missing fields: {', '.join(missing)}")
        key = PermissionKey(
            resource=str(value["resource"]),
            action=str(value["action"]),
            scope=canonical_scope(str(value["scope"])),
        )
        return PermissionRequirement(key=key, conditions=dict(value.get("conditions") or {}))
    raise TypeError(f"Unsupported permission value: {value!r}")


def matches(granted: PermissionKey, required: PermissionKey) -> bool:
    """
    Whether a granted key satisfies a required key

    Resource and action must be equal or wildcarded in the grant; the granted
    scope must cover the required scope.
    """
    if granted.resource != WILDCARD and granted.resource != required.resource:
        return False
    if granted.action != WILDCARD and granted.action != required.action:
        return False
    return covers(granted.scope, required.scope)


def matches_pattern(value: str, pattern: str) -> bool:
    """Literal part-wise wildcard match (`users.*.platform`, `*.read.*`), no hierarchy"""
    value_parts = value.split(".")
    pattern_parts = pattern.split(".")
    if len(value_parts) != len(pattern_parts):
        return False
    return all(p == WILDCARD or p == v for p, v in zip(pattern_parts, value_parts))


class IPermissionProvider(ABC):
    """Permission provider interface implemented by the app layer"""

    @abstractmethod
    def has_permission(self, user_id: int, permission: str) -> bool:
        """Whether the user holds a permission matching `permission`"""

    @abstractmethod
    def get_user_permissions(self, user_id: int) -> Set[str]:
        """All effective permission keys for the user"""

    @abstractmethod
    def get_user_roles(self, user_id: int) -> List[str]:
        """Names of the user's active custom roles"""


class PermissionProviderRegistry:
    """Process-wide permission provider registry (singleton)

    Registered by the app lifespan:
        registry = PermissionProviderRegistry()
        registry.set_provider(RBACPermissionProvider(SessionLocal))
    """

    _instance: Optional["PermissionProviderRegistry"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "PermissionProviderRegistry":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._provider = None
        return cls._instance

    def set_provider(self, provider: IPermissionProvider) -> None:
        self._provider = provider

    def get_provider(self) -> Optional[IPermissionProvider]:
        return self._provider

    def has_provider(self) -> bool:
        return self._provider is not None

    def has_permission(self, user_id: int, permission: str) -> bool:
        """Deny when no provider is registered"""
        if self._provider is None:
            return False
        return self._provider.has_permission(user_id, permission)

    def get_user_permissions(self, user_id: int) -> Set[str]:
        if self._provider is None:
            return set()
        return self._provider.get_user_permissions(user_id)

    def get_user_roles(self, user_id: int) -> List[str]:
        if self._provider is None:
            return []
        return self._provider.get_user_roles(user_id)

    def invalidate_user(self, user_id: int) -> None:
        """Drop cached data for a user if the provider keeps any"""
        invalidate = getattr(self._provider, "invalidate_user", None)
        if invalidate is not None:
            invalidate(user_id)

    def clear(self) -> None:
        """Unregister the provider (tests)"""
        self._provider = None


permission_provider_registry = PermissionProviderRegistry()

__all__ = [
    "PermissionKey",
    "PermissionRequirement",
    "PermissionLike",
    "normalize",
    "matches",
    "matches_pattern",
    "IPermissionProvider",
    "PermissionProviderRegistry",
    "permission_provider_registry",
]
