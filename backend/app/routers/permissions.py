"""
Permission routes - checks, overrides, role assignment, cache and catalog
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.schemas import (
    AssignRoleRequest, AuditLogResponse, BulkCheckRequest, BulkCheckResponse, DenyPermissionRequest,
    GrantPermissionRequest, PermissionCheckRequest, PermissionCheckResponse,
    PermissionContextIn, PermissionCreate, PermissionResponse, PermissionUpdate,
    RevokePermissionRequest, UnassignRoleRequest, UserPermissionResponse, UserRoleResponse,
)
from app.models.tenant import User
from app.security.auth import get_current_user, require_permission
from app.security.permissions import (
    PERMISSION_GRANT, PERMISSION_MANAGE, PERMISSION_READ, PERMISSION_REVOKE,
    ROLE_ASSIGN, SYSTEM_MANAGE, SYSTEM_READ,
)
from app.services.audit_service import AuditService
from app.services.exceptions import AccessDenied
from app.services.permission_service import PermissionService
from app.services.role_service import PermissionCatalogService
from core.security.context import EvaluationContext, Principal
from core.security.legacy_roles import ADMIN_ROLES, LegacyRole

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/permissions", tags=["Permissions"])


def _context(data: Optional[PermissionContextIn]) -> EvaluationContext:
    if data is None:
        return EvaluationContext()
    return EvaluationContext(**data.model_dump(exclude_none=True))


def _target_user(db: Session, current_user: User, user_id: int) -> User:
    """Target user, restricted to the caller's organization for non-platform users"""
    user = db.query(User).filter(User.id == user_id, User.deleted_at.is_(None)).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User {user_id} not found")
    if current_user.role != LegacyRole.PLATFORM_ADMIN and user.organization_id != current_user.organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied: user belongs to another organization",
        )
    return user


def _run_mutation(db: Session, action):
    """Run a service mutation in the request transaction"""
    try:
        result = action()
        db.commit()
        return result
    except LookupError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AccessDenied as e:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


# ============== Checks ==============

@router.post("/check", response_model=PermissionCheckResponse)
def check_permission(
    data: PermissionCheckRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Check one permission for the current user"""
    service = PermissionService(db)
    try:
        result = service.evaluate(
            Principal.from_user(current_user),
            data.model_dump(include={"resource", "action", "scope", "conditions"}),
            _context(data.context),
        )
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    db.commit()
    return result.to_dict()


@router.post("/check/bulk", response_model=BulkCheckResponse)
def check_permissions_bulk(
    data: BulkCheckRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service = PermissionService(db)
    bulk = service.check_bulk(
        Principal.from_user(current_user),
        [item.model_dump(exclude_none=True) for item in data.permissions],
        _context(data.global_context),
    )
    db.commit()
    return {
        "permissions": {k: r.to_dict() for k, r in bulk.permissions.items()},
        "cached": bulk.cached,
        "evaluated": bulk.evaluated,
        "errors": bulk.errors,
    }


@router.post("/user/{user_id}/check", response_model=PermissionCheckResponse)
def check_user_permission(
    user_id: int,
    data: PermissionCheckRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_READ, roles=ADMIN_ROLES)),
):
    """Check a permission on behalf of another user"""
    target = _target_user(db, current_user, user_id)
    service = PermissionService(db)
    try:
        result = service.evaluate(
            Principal.from_user(target),
            data.model_dump(include={"resource", "action", "scope", "conditions"}),
            _context(data.context),
        )
    except (ValueError, TypeError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    db.commit()
    return result.to_dict()


# ============== Reads ==============

@router.get("/my", response_model=List[str])
def get_my_permissions(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return PermissionService(db).get_user_permissions(current_user.id)


@router.get("/my/summary")
def get_my_summary(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return PermissionService(db).get_user_summary(current_user.id)


@router.get("/user/{user_id}", response_model=List[str])
def get_user_permissions(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_READ, roles=ADMIN_ROLES)),
):
    _target_user(db, current_user, user_id)
    return PermissionService(db).get_user_permissions(user_id)


@router.get("/user/{user_id}/summary")
def get_user_summary(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_READ, roles=ADMIN_ROLES)),
):
    _target_user(db, current_user, user_id)
    return PermissionService(db).get_user_summary(user_id)


@router.get("/user/{user_id}/history", response_model=List[AuditLogResponse])
def get_user_history(
    user_id: int,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_READ, roles=ADMIN_ROLES)),
):
    """Direct permission and role assignment changes of a user, newest first"""
    _target_user(db, current_user, user_id)
    return AuditService(db).get_user_access_history(user_id, limit)


# ============== Mutations ==============

@router.post("/grant", response_model=UserPermissionResponse)
def grant_permission(
    data: GrantPermissionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_GRANT, roles=ADMIN_ROLES)),
):
    _target_user(db, current_user, data.user_id)
    service = PermissionService(db)
    return _run_mutation(db, lambda: service.grant_permission(
        data.user_id, data.permission_id, data.permission, granted_by=current_user.id,
        expires_at=data.expires_at, conditions=data.conditions, reason=data.reason,
        actor=Principal.from_user(current_user),
    ))


@router.post("/revoke", response_model=UserPermissionResponse)
def revoke_permission(
    data: RevokePermissionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_REVOKE, roles=ADMIN_ROLES)),
):
    _target_user(db, current_user, data.user_id)
    service = PermissionService(db)
    return _run_mutation(db, lambda: service.revoke_permission(
        data.user_id, data.permission_id, data.permission,
        revoked_by=current_user.id, reason=data.reason,
    ))


@router.post("/deny", response_model=UserPermissionResponse)
def deny_permission(
    data: DenyPermissionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_REVOKE, roles=ADMIN_ROLES)),
):
    """Explicit denial, takes precedence over role grants"""
    _target_user(db, current_user, data.user_id)
    service = PermissionService(db)
    return _run_mutation(db, lambda: service.deny_permission(
        data.user_id, data.permission_id, data.permission, denied_by=current_user.id,
        expires_at=data.expires_at, conditions=data.conditions, reason=data.reason,
    ))


@router.post("/role/assign", response_model=UserRoleResponse)
def assign_role(
    data: AssignRoleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_ASSIGN, roles=ADMIN_ROLES)),
):
    _target_user(db, current_user, data.user_id)
    service = PermissionService(db)
    return _run_mutation(db, lambda: service.assign_role(
        data.user_id, data.role_id, assigned_by=current_user.id,
        expires_at=data.expires_at, conditions=data.conditions, reason=data.reason,
        actor=Principal.from_user(current_user),
    ))


@router.post("/role/unassign", response_model=UserRoleResponse)
def unassign_role(
    data: UnassignRoleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(ROLE_ASSIGN, roles=ADMIN_ROLES)),
):
    _target_user(db, current_user, data.user_id)
    service = PermissionService(db)
    return _run_mutation(db, lambda: service.unassign_role(
        data.user_id, data.role_id, unassigned_by=current_user.id, reason=data.reason,
    ))


# ============== Cache ==============

@router.delete("/my/cache")
def clear_my_cache(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    removed = PermissionService(db).clear_user_cache(current_user.id)
    db.commit()
    return {"message": "Permission cache cleared", "removed": removed}


@router.delete("/user/{user_id}/cache")
def clear_user_cache(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_MANAGE, roles=ADMIN_ROLES)),
):
    _target_user(db, current_user, user_id)
    removed = PermissionService(db).clear_user_cache(user_id)
    db.commit()
    return {"message": f"Permission cache cleared for user {user_id}", "removed": removed}


# ============== System ==============

@router.get("/status")
def get_system_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(SYSTEM_READ, roles=(LegacyRole.PLATFORM_ADMIN,))),
):
    return PermissionService(db).get_system_status()


@router.post("/cache/cleanup")
def cleanup_expired_cache(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(SYSTEM_MANAGE, roles=(LegacyRole.PLATFORM_ADMIN,))),
):
    service = PermissionService(db)
    removed = _run_mutation(db, service.cleanup_expired_cache)
    return {"message": "Expired cache entries removed", "removed": removed}


@router.post("/reinitialize")
def reinitialize_permission_system(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(SYSTEM_MANAGE, roles=(LegacyRole.PLATFORM_ADMIN,))),
):
    """Re-check the permission tables and re-seed the system catalog"""
    service = PermissionService(db)
    result = _run_mutation(db, service.force_reinitialize)
    logger.info(f"Permission system reinitialized by user {current_user.id}: {result}")
    return result


# ============== Catalog ==============

@router.get("/catalog", response_model=List[PermissionResponse])
def list_catalog(
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_READ, roles=ADMIN_ROLES)),
):
    return PermissionCatalogService(db).get_permissions(category)


@router.post("/catalog", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
def create_catalog_permission(
    data: PermissionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_MANAGE, roles=(LegacyRole.PLATFORM_ADMIN,))),
):
    service = PermissionCatalogService(db, actor_id=current_user.id)
    return _run_mutation(db, lambda: service.create_permission(**data.model_dump()))


@router.put("/catalog/{permission_id}", response_model=PermissionResponse)
def update_catalog_permission(
    permission_id: int,
    data: PermissionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_MANAGE, roles=(LegacyRole.PLATFORM_ADMIN,))),
):
    service = PermissionCatalogService(db, actor_id=current_user.id)
    return _run_mutation(
        db, lambda: service.update_permission(permission_id, **data.model_dump(exclude_unset=True))
    )


@router.delete("/catalog/{permission_id}")
def delete_catalog_permission(
    permission_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission(PERMISSION_MANAGE, roles=(LegacyRole.PLATFORM_ADMIN,))),
):
    service = PermissionCatalogService(db, actor_id=current_user.id)
    _run_mutation(db, lambda: service.delete_permission(permission_id))
    return {"message": "Permission deleted"}
