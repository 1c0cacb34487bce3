"""
Service-layer exceptions

Services raise ValueError for bad input or conflicts and LookupError for
missing entities; these cover the forbidden cases (HTTP 403).
"""


class AccessDenied(Exception):
    """The caller may not perform the operation"""


class PermissionSystemUnavailable(AccessDenied):
    """Raised by mutations while the permission tables are missing (legacy mode)"""
