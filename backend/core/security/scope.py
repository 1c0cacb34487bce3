"""
core/security/scope.py

Scope hierarchy for tenant-scoped permissions.

A granted scope covers every scope at or below it:

    own < department < property < organization < all

"platform" is accepted as a synonym for "all"; older permission strings and the
legacy role catalog still use it.
"""
from enum import Enum
from typing import Union


class Scope(str, Enum):
    """Permission scope levels, lowest first"""
    OWN = "own"
    DEPARTMENT = "department"
    PROPERTY = "property"
    ORGANIZATION = "organization"
    ALL = "all"


SCOPE_ALIASES = {"platform": Scope.ALL}

SCOPE_HIERARCHY = [
    Scope.OWN,
    Scope.DEPARTMENT,
    Scope.PROPERTY,
    Scope.ORGANIZATION,
    Scope.ALL,
]

WILDCARD = "*"


def to_scope(value: Union[str, Scope]) -> Scope:
    """Resolve a scope name (or alias) to a Scope member.

    Raises:
        ValueError: if the name is not a known scope
    """
    if isinstance(value, Scope):
        return value
    name = str(value).strip().lower()
    if name in SCOPE_ALIASES:
        return SCOPE_ALIASES[name]
    try:
        return Scope(name)
    except ValueError:
        raise ValueError(f"Unknown permission scope: {value!r}")


def is_valid_scope(value: str) -> bool:
    try:
        to_scope(value)
    except ValueError:
        return False
    return True


def scope_level(value: Union[str, Scope]) -> int:
    """Position of a scope in the hierarchy (own=0 ... all=4)"""
    return SCOPE_HIERARCHY.index(to_scope(value))


def covers(granted: Union[str, Scope], required: Union[str, Scope]) -> bool:
    """Whether a permission granted at `granted` scope satisfies `required`.

    A wildcard grant covers every scope. A wildcard requirement is only
    covered by a wildcard or by the top of the hierarchy.
    """
    if granted == WILDCARD:
        return True
    if required == WILDCARD:
        return to_scope(granted) == Scope.ALL
    return scope_level(granted) >= scope_level(required)


def canonical_scope(value: str) -> str:
    """Canonical storage form of a scope name; wildcards pass through"""
    if value == WILDCARD:
        return value
    return to_scope(value).value


__all__ = [
    "Scope",
    "SCOPE_ALIASES",
    "SCOPE_HIERARCHY",
    "WILDCARD",
    "to_scope",
    "is_valid_scope",
    "scope_level",
    "covers",
    "canonical_scope",
]
