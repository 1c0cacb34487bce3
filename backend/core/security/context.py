"""
core/security/context.py

Who is asking and about what: the principal evaluated by the permission
service, and the per-request context (target tenant ids, resource owner, time)
that conditions and scope filters are computed from.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class Principal:
    """
    The authenticated user as seen by permission evaluation

    Attributes:
        user_id: user ID
        role: legacy enum role value (e.g. "PROPERTY_MANAGER")
        organization_id: tenant organization
        property_id: property within the organization
        department_id: department within the property
    """

    user_id: int
    role: Optional[str] = None
    organization_id: Optional[int] = None
    property_id: Optional[int] = None
    department_id: Optional[int] = None

    @classmethod
    def from_user(cls, user: Any) -> "Principal":
        role = getattr(user, "role", None)
        return cls(
            user_id=user.id,
            role=getattr(role, "value", role),
            organization_id=getattr(user, "organization_id", None),
            property_id=getattr(user, "property_id", None),
            department_id=getattr(user, "department_id", None),
        )


@dataclass
class EvaluationContext:
    """Request-level attributes a permission is evaluated against"""

    organization_id: Optional[int] = None
    property_id: Optional[int] = None
    department_id: Optional[int] = None
    resource_owner_id: Optional[int] = None
    resource_id: Optional[int] = None
    current_time: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_request_data(cls, *sources: Optional[Mapping[str, Any]]) -> "EvaluationContext":
        """Build from path params / body / query, first source wins per field"""

        def pick(*names: str) -> Optional[int]:
            for source in sources:
                if not source:
                    continue
                for name in names:
                    value = source.get(name)
                    if value not in (None, ""):
                        try:
                            return int(value)
                        except (TypeError, ValueError):
                            continue
            return None

        return cls(
            organization_id=pick("organization_id", "organizationId"),
            property_id=pick("property_id", "propertyId"),
            department_id=pick("department_id", "departmentId"),
            resource_owner_id=pick("user_id", "userId"),
            resource_id=pick("resource_id", "resourceId"),
        )

    def merged(self, other: Optional["EvaluationContext"]) -> "EvaluationContext":
        """Fields set on `other` override this context"""
        if other is None:
            return self
        values = {}
        for name in ("organization_id", "property_id", "department_id",
                     "resource_owner_id", "resource_id", "current_time"):
            override = getattr(other, name)
            values[name] = override if override is not None else getattr(self, name)
        return EvaluationContext(metadata={**self.metadata, **other.metadata}, **values)

    def cache_fingerprint(self) -> str:
        """Stable string of the fields that influence an evaluation result"""
        parts = [
            f"o={self.organization_id}",
            f"p={self.property_id}",
            f"d={self.department_id}",
            f"u={self.resource_owner_id}",
            f"r={self.resource_id}",
            f"t={self.current_time.isoformat(timespec='minutes') if self.current_time else None}",
        ]
        return "|".join(parts)


__all__ = ["Principal", "EvaluationContext"]
