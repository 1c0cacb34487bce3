"""
Authentication routes
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.schemas import LoginRequest, LoginResponse, UserResponse
from app.models.tenant import User
from app.security.auth import get_current_user
from app.services.permission_service import PermissionService
from app.services.tenant_service import TenantService
from app.services.user_service import UserService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/login", response_model=LoginResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    service = UserService(db)
    try:
        result = service.authenticate(data.email, data.password)
        if not result:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )
        return result
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


@router.get("/me")
def get_current_user_info(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Current user with custom roles and effective permissions"""
    service = PermissionService(db)
    return {
        **UserResponse.model_validate(current_user).model_dump(),
        'roles': service.get_user_role_names(current_user.id),
        'permissions': service.get_user_permissions(current_user.id),
    }


@router.get("/properties")
def get_available_properties(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[dict]:
    """Properties the current user may switch to"""
    properties = TenantService(db).get_available_properties(current_user)
    return [
        {'id': p.id, 'name': p.name, 'slug': p.slug, 'organization_id': p.organization_id}
        for p in properties
    ]
