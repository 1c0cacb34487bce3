"""
Custom role routes
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.rbac import CustomRole, Permission
from app.models.schemas import (
    AuditLogResponse, PermissionResponse, RoleCreate, RoleDetailResponse, RoleResponse,
    RolePermissionsUpdate, RoleUpdate, RoleUsersBulk, RoleUsersBulkResponse, UserRoleResponse,
)
from app.models.tenant import User
from app.security.auth import require_permission, require_tenant_access
from app.security.permissions import ROLE_ASSIGN, ROLE_CREATE, ROLE_DELETE, ROLE_READ, ROLE_UPDATE
from app.services.audit_service import AuditService
from app.services.exceptions import AccessDenied
from app.services.permission_service import PermissionService
from app.services.role_service import RoleService
from core.security.context import Principal
from core.security.legacy_roles import ADMIN_ROLES, LegacyRole

router = APIRouter(prefix="/roles", tags=["Roles"])


def _role_response(service: RoleService, role: CustomRole, detail: bool = False):
    data = RoleResponse.model_validate(role).model_dump()
    permissions = role.permissions
    data["permission_count"] = len(permissions)
    data["user_count"] = service.user_count(role.id)
    if detail:
        data["permissions"] = [PermissionResponse.model_validate(p) for p in permissions]
        return RoleDetailResponse(**data)
    return RoleResponse(**data)


def _get_visible_role(service: RoleService, current_user: User, role_id: int) -> CustomRole:
    role = service.get_role_by_id(role_id)
    if not role:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    if current_user.role != LegacyRole.PLATFORM_ADMIN and role.organization_id not in (
        None, current_user.organization_id
    ):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role not found")
    return role


def _ensure_editable(current_user: User, role: CustomRole) -> None:
    """Global roles belong to the platform"""
    if role.organization_id is None and current_user.role != LegacyRole.PLATFORM_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: global roles can only be changed by platform administrators",
        )


def _ensure_delegable(db: Session, current_user: User, permission_ids: List[int]) -> None:
    """Non-platform callers only put permissions they hold themselves into a role"""
    if not permission_ids:
        return
    permissions = db.query(Permission).filter(Permission.id.in_(permission_ids)).all()
    try:
        PermissionService(db).ensure_within_reach(Principal.from_user(current_user), permissions)
    except AccessDenied as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


def _scoped_organization(current_user: User) -> Optional[int]:
    return None if current_user.role == LegacyRole.PLATFORM_ADMIN else current_user.organization_id


@router.get("", response_model=List[RoleResponse])
def list_roles(
    organization_id: Optional[int] = None,
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_READ, roles=ADMIN_ROLES)),
    _tenant: User = Depends(require_tenant_access("organization", "organization_id")),
):
    """Roles of an organization plus the global system roles"""
    if organization_id is None and current_user.role != LegacyRole.PLATFORM_ADMIN:
        organization_id = current_user.organization_id
    service = RoleService(db)
    roles = service.get_roles(organization_id, include_inactive)
    return [_role_response(service, r) for r in roles]


@router.get("/stats")
def get_role_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_READ, roles=ADMIN_ROLES)),
):
    """Role and assignment counts for the caller's organization"""
    return RoleService(db).get_stats(_scoped_organization(current_user))


@router.get("/assignments", response_model=List[UserRoleResponse])
def list_role_assignments(
    user_id: Optional[int] = None,
    role_id: Optional[int] = None,
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_READ, roles=ADMIN_ROLES)),
):
    """Role assignments, filtered by user, role and state"""
    return RoleService(db).get_user_roles(
        user_id=user_id, role_id=role_id,
        organization_id=_scoped_organization(current_user), is_active=is_active,
    )


@router.get("/{role_id}", response_model=RoleDetailResponse)
def get_role(
    role_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_READ, roles=ADMIN_ROLES)),
):
    service = RoleService(db)
    role = _get_visible_role(service, current_user, role_id)
    return _role_response(service, role, detail=True)


@router.post("", response_model=RoleDetailResponse, status_code=status.HTTP_201_CREATED)
def create_role(
    data: RoleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_CREATE, roles=ADMIN_ROLES)),
):
    organization_id = data.organization_id
    if current_user.role != LegacyRole.PLATFORM_ADMIN:
        if organization_id not in (None, current_user.organization_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied to organization {organization_id}",
            )
        organization_id = current_user.organization_id

    _ensure_delegable(db, current_user, data.permission_ids)
    service = RoleService(db, actor_id=current_user.id)
    try:
        role = service.create_role(
            data.name, organization_id=organization_id, description=data.description or "",
            property_id=data.property_id, priority=data.priority, permission_ids=data.permission_ids,
        )
        db.commit()
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _role_response(service, role, detail=True)


@router.put("/{role_id}", response_model=RoleDetailResponse)
def update_role(
    role_id: int,
    data: RoleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_UPDATE, roles=ADMIN_ROLES)),
):
    service = RoleService(db, actor_id=current_user.id)
    role = _get_visible_role(service, current_user, role_id)
    _ensure_editable(current_user, role)
    try:
        role = service.update_role(role_id, **data.model_dump(exclude_unset=True))
        db.commit()
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _role_response(service, role, detail=True)


@router.delete("/{role_id}")
def delete_role(
    role_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_DELETE, roles=ADMIN_ROLES)),
):
    service = RoleService(db, actor_id=current_user.id)
    role = _get_visible_role(service, current_user, role_id)
    _ensure_editable(current_user, role)
    try:
        service.delete_role(role_id)
        db.commit()
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"message": "Role deleted"}


@router.put("/{role_id}/permissions", response_model=RoleDetailResponse)
def update_role_permissions(
    role_id: int,
    data: RolePermissionsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_UPDATE, roles=ADMIN_ROLES)),
):
    """Replace the permission list of a role"""
    service = RoleService(db, actor_id=current_user.id)
    role = _get_visible_role(service, current_user, role_id)
    _ensure_editable(current_user, role)
    _ensure_delegable(db, current_user, data.permission_ids)
    try:
        service.assign_permissions(role_id, data.permission_ids)
        db.commit()
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _role_response(service, service.get_role_by_id(role_id), detail=True)


@router.get("/{role_id}/history", response_model=List[AuditLogResponse])
def get_role_history(
    role_id: int,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_READ, roles=ADMIN_ROLES)),
):
    """Changes to the role and its assignments, newest first"""
    service = RoleService(db)
    _get_visible_role(service, current_user, role_id)
    return AuditService(db).get_role_history(role_id, limit)


def _bulk_users(db: Session, current_user: User, role_id: int, action) -> dict:
    service = RoleService(db, actor_id=current_user.id)
    _get_visible_role(service, current_user, role_id)
    result = action(service, Principal.from_user(current_user))
    db.commit()
    return result


@router.post("/{role_id}/users/bulk-assign", response_model=RoleUsersBulkResponse)
def bulk_assign_role(
    role_id: int,
    data: RoleUsersBulk,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_ASSIGN, roles=ADMIN_ROLES)),
):
    """Assign the role to many users; failed users are reported, the rest are committed"""
    return _bulk_users(db, current_user, role_id, lambda service, actor: service.bulk_assign(
        role_id, data.user_ids, actor=actor, reason=data.reason,
    ))


@router.post("/{role_id}/users/bulk-remove", response_model=RoleUsersBulkResponse)
def bulk_remove_role(
    role_id: int,
    data: RoleUsersBulk,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_ASSIGN, roles=ADMIN_ROLES)),
):
    return _bulk_users(db, current_user, role_id, lambda service, actor: service.bulk_remove(
        role_id, data.user_ids, actor=actor, reason=data.reason,
    ))
