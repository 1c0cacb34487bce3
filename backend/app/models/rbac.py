"""
RBAC ORM models - permission catalog, custom roles, assignments, overrides, result cache
"""
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, ForeignKey, UniqueConstraint, JSON
)
from sqlalchemy.orm import relationship

from app.database import Base, utcnow
from core.security.permission import PermissionKey

# Tables that must exist for the permission system to run
PERMISSION_TABLES = (
    "permissions",
    "custom_roles",
    "role_permissions",
    "user_custom_roles",
    "user_permissions",
)


class Permission(Base):
    """Catalog entry for one resource.action.scope triple"""
    __tablename__ = "permissions"
    __table_args__ = (
        UniqueConstraint("resource", "action", "scope", name="uq_permission_triple"),
    )

    id = Column(Integer, primary_key=True, index=True)
    resource = Column(String(100), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    scope = Column(String(30), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text)
    category = Column(String(50), index=True)
    is_system = Column(Boolean, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    conditions = relationship(
        "PermissionCondition", back_populates="permission", cascade="all, delete-orphan"
    )

    @property
    def key(self) -> PermissionKey:
        return PermissionKey.parse(f"{self.resource}.{self.action}.{self.scope}")

    @property
    def code(self) -> str:
        return f"{self.resource}.{self.action}.{self.scope}"


class PermissionCondition(Base):
    """Condition attached to a catalog permission (time window, department list...)"""
    __tablename__ = "permission_conditions"

    id = Column(Integer, primary_key=True, index=True)
    permission_id = Column(Integer, ForeignKey("permissions.id"), nullable=False, index=True)
    condition_type = Column(String(50), nullable=False)
    operator = Column(String(30))
    value = Column(JSON, nullable=False, default=dict)
    description = Column(String(255))
    created_at = Column(DateTime, default=utcnow)

    permission = relationship("Permission", back_populates="conditions")


class CustomRole(Base):
    """Named bundle of permissions; organization_id NULL for global system roles"""
    __tablename__ = "custom_roles"
    __table_args__ = (
        UniqueConstraint("organization_id", "name", name="uq_custom_role_org_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    is_system_role = Column(Boolean, default=False)
    priority = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    role_permissions = relationship(
        "RolePermission", back_populates="role", cascade="all, delete-orphan"
    )
    user_roles = relationship(
        "UserCustomRole", back_populates="role", cascade="all, delete-orphan"
    )

    @property
    def permissions(self):
        """Catalog permissions this role grants"""
        return [rp.permission for rp in self.role_permissions if rp.granted]


class RolePermission(Base):
    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )

    id = Column(Integer, primary_key=True, index=True)
    role_id = Column(Integer, ForeignKey("custom_roles.id"), nullable=False, index=True)
    permission_id = Column(Integer, ForeignKey("permissions.id"), nullable=False, index=True)
    granted = Column(Boolean, default=True)
    conditions = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    role = relationship("CustomRole", back_populates="role_permissions")
    permission = relationship("Permission")


class UserCustomRole(Base):
    """Assignment of a custom role to a user"""
    __tablename__ = "user_custom_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_custom_role"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role_id = Column(Integer, ForeignKey("custom_roles.id"), nullable=False, index=True)
    assigned_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_active = Column(Boolean, default=True)
    expires_at = Column(DateTime, nullable=True)
    conditions = Column(JSON, nullable=True)
    extra = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", foreign_keys=[user_id], back_populates="custom_roles")
    role = relationship("CustomRole", back_populates="user_roles")


class UserPermission(Base):
    """
    Direct per-user permission override
    granted=False is an explicit denial that beats every role grant of the same key
    """
    __tablename__ = "user_permissions"
    __table_args__ = (
        UniqueConstraint("user_id", "permission_id", name="uq_user_permission"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    permission_id = Column(Integer, ForeignKey("permissions.id"), nullable=False, index=True)
    granted = Column(Boolean, default=True)
    is_active = Column(Boolean, default=True)
    expires_at = Column(DateTime, nullable=True)
    granted_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    conditions = Column(JSON, nullable=True)
    extra = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    user = relationship("User", foreign_keys=[user_id], back_populates="permission_overrides")
    permission = relationship("Permission")


class PermissionCache(Base):
    """Memoized evaluation result per user, permission and context"""
    __tablename__ = "permission_cache"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    organization_id = Column(Integer, nullable=True)
    property_id = Column(Integer, nullable=True)
    resource = Column(String(100), nullable=False)
    action = Column(String(50), nullable=False)
    scope = Column(String(30), nullable=False)
    allowed = Column(Boolean, nullable=False)
    reason = Column(String(255))
    conditions = Column(JSON, nullable=True)
    cache_key = Column(String(255), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow)
