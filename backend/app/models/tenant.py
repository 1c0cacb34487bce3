"""
Tenant ORM models - organization, property, department, user

Organization -> Property -> Department form the tenant hierarchy a user
belongs to. Rows are soft deleted through deleted_at.
"""
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import relationship

from app.database import Base, utcnow
from core.security.legacy_roles import LegacyRole


class Organization(Base):
    """Hotel chain or group"""
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    properties = relationship("Property", back_populates="organization")


class Property(Base):
    """Single hotel within an organization"""
    __tablename__ = "properties"
    __table_args__ = (
        UniqueConstraint("organization_id", "slug", name="uq_property_org_slug"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(200), nullable=False)
    slug = Column(String(100), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    organization = relationship("Organization", back_populates="properties")
    departments = relationship("Department", back_populates="hotel")


class Department(Base):
    """Department within a property, optionally nested"""
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=True, index=True)
    parent_id = Column(Integer, ForeignKey("departments.id"), nullable=True)
    name = Column(String(100), nullable=False)
    level = Column(Integer, default=0)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    hotel = relationship("Property", back_populates="departments")
    children = relationship("Department", backref="parent", remote_side="Department.id")


class User(Base):
    """
    Platform user
    role is the legacy enum role; custom roles are assigned via user_custom_roles
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    role = Column(SQLEnum(LegacyRole), nullable=False, default=LegacyRole.STAFF)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=True, index=True)
    department_id = Column(Integer, ForeignKey("departments.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime, nullable=True)

    organization = relationship("Organization")
    hotel = relationship("Property")
    department = relationship("Department")
    custom_roles = relationship(
        "UserCustomRole",
        foreign_keys="UserCustomRole.user_id",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    permission_overrides = relationship(
        "UserPermission",
        foreign_keys="UserPermission.user_id",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
