"""
System role routes - legacy enum roles
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.schemas import (
    AuditLogResponse, BulkSystemRoleAssign, BulkSystemRoleAssignResponse, SystemRoleAssign,
    SystemRoleResponse, UserResponse,
)
from app.models.tenant import User
from app.security.auth import get_current_user, require_roles
from app.services.exceptions import AccessDenied
from app.services.system_role_service import SystemRoleService
from core.security.legacy_roles import ADMIN_ROLES, LegacyRole

router = APIRouter(prefix="/system-roles", tags=["System Roles"])


@router.get("", response_model=List[SystemRoleResponse])
def list_system_roles(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """All legacy roles with user counts and whether the caller may assign them"""
    return SystemRoleService(db, current_user).list_roles()


@router.get("/statistics")
def get_role_statistics(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*ADMIN_ROLES)),
):
    return SystemRoleService(db, current_user).get_statistics()


@router.get("/history/{user_id}", response_model=List[AuditLogResponse])
def get_user_role_history(
    user_id: int,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*ADMIN_ROLES)),
):
    """Legacy role changes of a user, newest first"""
    try:
        return SystemRoleService(db, current_user).get_user_role_history(user_id, limit)
    except AccessDenied as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/{role}", response_model=SystemRoleResponse)
def get_system_role(
    role: LegacyRole,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return SystemRoleService(db, current_user).get_role(role)


@router.get("/{role}/permissions")
def preview_role_permissions(
    role: LegacyRole,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Permission patterns the legacy role implies"""
    return SystemRoleService(db, current_user).preview_permissions(role)


@router.get("/{role}/users", response_model=List[UserResponse])
def get_role_users(
    role: LegacyRole,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*ADMIN_ROLES)),
):
    return SystemRoleService(db, current_user).get_users_by_role(role)


@router.post("/assign", response_model=UserResponse)
def assign_system_role(
    data: SystemRoleAssign,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*ADMIN_ROLES)),
):
    service = SystemRoleService(db, current_user)
    try:
        user = service.assign_role(data.user_id, data.role, data.reason)
        db.commit()
        return user
    except AccessDenied as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except LookupError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/bulk-assign", response_model=BulkSystemRoleAssignResponse)
def bulk_assign_system_roles(
    data: BulkSystemRoleAssign,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*ADMIN_ROLES)),
):
    """Assign legacy roles to many users; failed items are reported, the rest are committed"""
    service = SystemRoleService(db, current_user)
    result = service.bulk_assign_roles([a.model_dump() for a in data.assignments], data.reason)
    db.commit()
    return result
