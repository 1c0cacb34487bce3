"""
Audit log model
Records permission and role changes with before/after values
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey

from app.database import Base, utcnow


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    action = Column(String(100), nullable=False, index=True)    # e.g. PERMISSION_GRANTED
    entity = Column(String(50), nullable=False)                 # e.g. UserPermission
    entity_id = Column(Integer, nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    ip_address = Column(String(50))
    created_at = Column(DateTime, default=utcnow, index=True)
